"""
LLM Factory
Build an LLM provider from settings
"""
from typing import Optional
import logging

from utils.exceptions import ConfigurationError
from .base import BaseLLM
from .openai_llm import OpenAILLM
from .anthropic_llm import AnthropicLLM


logger = logging.getLogger(__name__)


DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
}


def get_llm(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    **kwargs,
) -> BaseLLM:
    """
    Create an LLM instance.

    Args:
        provider: openai or anthropic (defaults to LLM_PROVIDER)
        model: model name (defaults to LLM_MODEL_NAME, then the provider default)
        **kwargs: temperature, max_tokens, timeout, api_key, base_url

    Returns:
        BaseLLM instance
    """
    from config import get_llm_settings

    settings = get_llm_settings()

    provider = (provider or settings.provider or "openai").strip().lower()
    model = model or settings.model_name or DEFAULT_MODELS.get(provider)

    api_keys = {
        "openai": settings.openai_api_key,
        "anthropic": settings.anthropic_api_key,
    }
    api_key = kwargs.pop("api_key", None) or api_keys.get(provider)

    for key, value in {
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
        "timeout": settings.timeout,
    }.items():
        kwargs.setdefault(key, value)

    logger.info(f"[LLM] provider={provider} model={model}")

    if provider == "openai":
        return OpenAILLM(
            model=model,
            api_key=api_key,
            base_url=kwargs.pop("base_url", None),
            **kwargs,
        )
    if provider == "anthropic":
        return AnthropicLLM(
            model=model,
            api_key=api_key,
            **kwargs,
        )
    raise ConfigurationError(f"Unsupported LLM provider: {provider}", {"supported": sorted(DEFAULT_MODELS)})

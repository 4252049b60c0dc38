"""
OpenAI LLM
Chat Completions API (gpt-4o-mini by default)
"""
from typing import List, Optional
import logging

from utils.exceptions import LLMError
from .base import BaseLLM, Message, LLMResponse


logger = logging.getLogger(__name__)


class OpenAILLM(BaseLLM):
    """OpenAI chat completion provider"""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 800,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self.base_url = base_url
        self._client = None

    @property
    def provider(self) -> str:
        return "openai"

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    def complete(self, messages: List[Message], **kwargs) -> LLMResponse:
        client = self._get_client()
        request_params = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }

        try:
            response = client.chat.completions.create(**request_params)
        except Exception as exc:
            raise LLMError(f"OpenAI completion failed: {exc}", provider=self.provider, model=self.model) from exc

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={
                "prompt_tokens": getattr(usage, "prompt_tokens", 0) or 0,
                "completion_tokens": getattr(usage, "completion_tokens", 0) or 0,
                "total_tokens": getattr(usage, "total_tokens", 0) or 0,
            },
            finish_reason=choice.finish_reason,
            raw_response=response,
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

"""
Anthropic LLM
Messages API (Claude models)
"""
from typing import Dict, List, Optional, Tuple
import logging

from utils.exceptions import LLMError
from .base import BaseLLM, Message, MessageRole, LLMResponse


logger = logging.getLogger(__name__)


class AnthropicLLM(BaseLLM):
    """Anthropic Claude provider"""

    def __init__(
        self,
        model: str = "claude-3-5-haiku-latest",
        api_key: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 800,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key
        self._client = None

    @property
    def provider(self) -> str:
        return "anthropic"

    def _get_client(self):
        if self._client is None:
            from anthropic import Anthropic
            self._client = Anthropic(
                api_key=self.api_key,
                timeout=self.timeout,
            )
        return self._client

    @staticmethod
    def _convert_messages(messages: List[Message]) -> Tuple[Optional[str], List[Dict[str, str]]]:
        """Split out the system prompt; Anthropic takes it as a separate field."""
        system_prompt = None
        converted = []
        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_prompt = msg.content
            else:
                converted.append({"role": msg.role.value, "content": msg.content})
        return system_prompt, converted

    def complete(self, messages: List[Message], **kwargs) -> LLMResponse:
        client = self._get_client()
        system_prompt, converted = self._convert_messages(messages)

        request_params = {
            "model": self.model,
            "messages": converted,
            "temperature": kwargs.get("temperature", self.temperature),
            "max_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        if system_prompt:
            request_params["system"] = system_prompt

        try:
            response = client.messages.create(**request_params)
        except Exception as exc:
            raise LLMError(f"Anthropic completion failed: {exc}", provider=self.provider, model=self.model) from exc

        content = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        return LLMResponse(
            content=content,
            model=response.model,
            usage={
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            },
            finish_reason=response.stop_reason,
            raw_response=response,
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

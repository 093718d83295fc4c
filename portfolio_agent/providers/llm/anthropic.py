import time
from typing import Any, Dict, List, Optional

import anthropic
from anthropic import AsyncAnthropic

from .base import LLMMessage, LLMProvider, LLMResponse, ProviderKind
from ...core.recovery.errors import (
    ProviderAuthError,
    ProviderCallFailed,
    ProviderRateLimitError,
)


class AnthropicProvider(LLMProvider):
    """Secondary provider: Anthropic Claude messages API"""

    kind = ProviderKind.SECONDARY
    display_name = "Anthropic"
    endpoint_path = "/v1/messages"

    def __init__(self, api_key: str, model: Optional[str] = None, **kwargs):
        if not model:
            raise ValueError("AnthropicProvider requires a model to be specified")

        super().__init__(api_key, model, **kwargs)

    def _setup_client(self, **kwargs) -> None:
        """Initialize the Anthropic client"""
        client_kwargs: Dict[str, Any] = {"api_key": self.api_key}
        if kwargs.get("timeout") is not None:
            client_kwargs["timeout"] = kwargs["timeout"]
        # The SDK retries on its own by default; retries belong to the backoff executor
        client_kwargs["max_retries"] = 0
        try:
            self.client = AsyncAnthropic(**client_kwargs)
        except Exception as e:
            self.logger.error(f"Failed to initialize Anthropic client: {e}")
            raise ProviderAuthError(f"Failed to initialize Anthropic client: {e}", provider=self.kind.value)

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate a response from Claude"""
        start_time = time.time()

        anthropic_messages = []
        system_message = None

        for msg in messages:
            if msg.role == "system":
                system_message = msg.content
            else:
                anthropic_messages.append({"role": msg.role, "content": msg.content})

        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": anthropic_messages,
            "max_tokens": max_tokens or 4000,
        }

        if system_message:
            request_params["system"] = system_message

        if temperature is not None:
            request_params["temperature"] = temperature

        request_params.update({k: v for k, v in kwargs.items() if v is not None})

        provider = self.kind.value
        try:
            response = await self.client.messages.create(**request_params)
        except anthropic.AuthenticationError as e:
            raise ProviderAuthError(f"Authentication failed: {e}", provider=provider) from e
        except anthropic.PermissionDeniedError as e:
            raise ProviderAuthError(f"Permission denied: {e}", provider=provider) from e
        except anthropic.RateLimitError as e:
            raise ProviderRateLimitError(f"Rate limit exceeded: {e}", provider=provider) from e
        except anthropic.APIError as e:
            raise ProviderCallFailed(f"API error: {e}", provider=provider) from e

        content = ""
        for block in response.content or []:
            if getattr(block, "type", None) == "text":
                content += block.text

        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=content,
            tokens_used=usage.output_tokens if usage else None,
            model=self.model,
            endpoint=self.endpoint_path,
            finish_reason=getattr(response, "stop_reason", None),
            response_time_ms=self._measure_time(start_time),
        )

    async def aclose(self) -> None:
        await self.client.close()

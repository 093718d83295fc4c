"""
Confidential-capable provider: Atoma.

Requests go through the ``atoma-sdk`` client. In private mode the SDK's
confidential chat endpoint performs the node key exchange and encrypts the
messages client-side, so prompts never travel as plaintext JSON.
"""

import time
from typing import Any, Dict, List, Optional

import httpx
from atoma_sdk import AtomaSDK, models

from .base import LLMMessage, LLMProvider, LLMResponse, ProviderKind
from .openai_compat import retry_after_seconds
from ...core.recovery.errors import (
    ProviderAuthError,
    ProviderCallFailed,
    ProviderRateLimitError,
)


class AtomaProvider(LLMProvider):
    """Atoma chat, standard or confidential compute"""

    kind = ProviderKind.CONFIDENTIAL_CAPABLE
    display_name = "Atoma"
    default_base_url = "https://api.atoma.network"
    chat_path = "/v1/chat/completions"
    confidential_chat_path = "/v1/confidential/chat/completions"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        private_mode: bool = False,
        base_url: Optional[str] = None,
        timeout: float = 40.0,
        **kwargs: Any,
    ) -> None:
        self.private_mode = private_mode
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        super().__init__(api_key, model, **kwargs)

    def _setup_client(self, **kwargs: Any) -> None:
        # The SDK leaves a caller-supplied async client open; aclose() owns it
        self._http = httpx.AsyncClient(timeout=self.timeout, transport=kwargs.get("transport"))
        self.client = kwargs.get("client") or AtomaSDK(
            bearer_auth=self.api_key,
            server_url=self.base_url,
            async_client=self._http,
        )

    @property
    def endpoint_path(self) -> str:
        if self.private_mode:
            return self.confidential_chat_path
        return self.chat_path

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        start_time = time.time()
        chat = self.client.confidential_chat if self.private_mode else self.client.chat

        request_params: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in messages],
        }
        if max_tokens is not None:
            request_params["max_tokens"] = max_tokens
        if temperature is not None:
            request_params["temperature"] = temperature
        request_params.update({k: v for k, v in kwargs.items() if v is not None})

        try:
            response = await chat.create_async(**request_params)
        except models.APIError as e:
            raise self._map_api_error(e) from e
        except httpx.RequestError as e:
            raise ProviderCallFailed(
                f"{self.display_name} request error: {e}", provider=self.kind.value
            ) from e

        choices = getattr(response, "choices", None) or []
        if not choices:
            raise ProviderCallFailed(
                f"{self.display_name} response missing choices", provider=self.kind.value
            )

        choice = choices[0]
        message = getattr(choice, "message", None)
        usage = getattr(response, "usage", None)
        return self._create_response(
            content=getattr(message, "content", None) or "",
            tokens_used=getattr(usage, "total_tokens", None),
            finish_reason=getattr(choice, "finish_reason", None),
            endpoint=self.endpoint_path,
            response_time_ms=self._measure_time(start_time),
        )

    def _map_api_error(self, error: Exception) -> Exception:
        raw_response = getattr(error, "raw_response", None)
        status = getattr(error, "status_code", None)
        if status is None and raw_response is not None:
            status = raw_response.status_code

        provider = self.kind.value
        if status in (401, 403):
            return ProviderAuthError(f"{self.display_name} authentication failed: {error}", provider=provider)
        if status == 429:
            return ProviderRateLimitError(
                f"{self.display_name} rate limit exceeded",
                provider=provider,
                retry_after=retry_after_seconds(raw_response) if raw_response is not None else None,
            )
        return ProviderCallFailed(f"{self.display_name} API error ({status}): {error}", provider=provider)

    async def aclose(self) -> None:
        await self._http.aclose()

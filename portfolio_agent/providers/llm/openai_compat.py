"""Async provider for OpenAI-compatible chat completion APIs."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx

from .base import LLMMessage, LLMProvider, LLMResponse, ProviderKind
from ...core.recovery.errors import (
    ProviderAuthError,
    ProviderCallFailed,
    ProviderRateLimitError,
)


class OpenAICompatibleProvider(LLMProvider):
    """Chat completion provider speaking the OpenAI wire format over httpx."""

    default_base_url: str = "https://api.openai.com"
    chat_completions_path: str = "/v1/chat/completions"

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str | None = None,
        timeout: float = 40.0,
        **kwargs: Any,
    ) -> None:
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        super().__init__(api_key, model, **kwargs)

    def _setup_client(self, **kwargs: Any) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            transport=kwargs.get("transport"),
        )

    @property
    def endpoint_path(self) -> str:
        return self.chat_completions_path

    async def _post(self, path: str, json: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(path, json=json)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            message = exc.response.text
            provider = self.kind.value
            if status in (401, 403):
                raise ProviderAuthError(
                    f"{self.display_name} authentication failed: {message}", provider=provider
                ) from exc
            if status == 429:
                raise ProviderRateLimitError(
                    f"{self.display_name} rate limit exceeded",
                    provider=provider,
                    retry_after=retry_after_seconds(exc.response),
                ) from exc
            raise ProviderCallFailed(
                f"{self.display_name} API error ({status}): {message}", provider=provider
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderCallFailed(
                f"{self.display_name} request error: {exc}", provider=self.kind.value
            ) from exc
        except ValueError as exc:
            raise ProviderCallFailed(
                f"{self.display_name} returned invalid JSON: {exc}", provider=self.kind.value
            ) from exc

    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        start_time = time.time()
        path = self.endpoint_path

        payload = self._build_payload(
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            extra=kwargs,
        )

        data = await self._post(path, json=payload)

        choices = data.get("choices") or []
        if not choices:
            raise ProviderCallFailed(
                f"{self.display_name} response missing choices", provider=self.kind.value
            )

        choice = choices[0]
        message = choice.get("message") or {}
        usage = data.get("usage") or {}
        return self._create_response(
            content=self._normalize_content(message.get("content")),
            tokens_used=usage.get("total_tokens"),
            finish_reason=choice.get("finish_reason"),
            endpoint=path,
            response_time_ms=self._measure_time(start_time),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _build_payload(
        self,
        *,
        messages: List[LLMMessage],
        max_tokens: Optional[int],
        temperature: Optional[float],
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": msg.role, "content": msg.content}
                for msg in messages
            ],
        }

        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature

        if extra:
            for key, value in extra.items():
                if value is not None:
                    payload[key] = value

        return payload

    def _normalize_content(self, content: Any) -> str:
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            parts: List[str] = []
            for item in content:
                if isinstance(item, str):
                    parts.append(item)
                elif isinstance(item, dict) and item.get("text") is not None:
                    parts.append(str(item["text"]))
            return "".join(parts)
        return str(content)


class OpenAIProvider(OpenAICompatibleProvider):
    """Primary provider: OpenAI chat completions."""

    kind = ProviderKind.PRIMARY
    display_name = "OpenAI"
    default_base_url = "https://api.openai.com"


def retry_after_seconds(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None

"""
Completion service: one uniform ``generate_completion`` call over whichever
provider the immutable ProviderSettings select.
"""

import logging
from typing import Optional, Sequence

from ..providers.llm import LLMMessage, LLMProvider, LLMProviderFactory, ProviderSettings
from ..providers.llm.base import LLMResponse, ProviderKind

logger = logging.getLogger(__name__)


class CompletionService:
    """
    Owns exactly one provider client, created at construction.

    Provider failures surface as ProviderCallFailed (or UnsupportedProvider for
    a bad configuration) and are not retried here; callers wrap calls in the
    backoff executor.
    """

    def __init__(
        self,
        provider_settings: ProviderSettings,
        *,
        provider: Optional[LLMProvider] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> None:
        self.settings = provider_settings
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.provider = provider or LLMProviderFactory.create_provider(provider_settings)
        logger.info(
            "Completion service ready: provider=%s model=%s private_mode=%s",
            provider_settings.provider.value,
            self.provider.model,
            self.private_mode,
        )

    @property
    def kind(self) -> ProviderKind:
        return self.settings.provider

    @property
    def private_mode(self) -> bool:
        return self.kind is ProviderKind.CONFIDENTIAL_CAPABLE and self.settings.private_mode_enabled

    async def generate_completion(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        history: Optional[Sequence[LLMMessage]] = None,
    ) -> str:
        """Return the raw completion text for ``prompt``."""

        response = await self.generate_response(prompt, system_prompt=system_prompt, history=history)
        return response.content

    async def generate_response(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        history: Optional[Sequence[LLMMessage]] = None,
    ) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append(LLMMessage(role="system", content=system_prompt))
        messages.extend(history or [])
        messages.append(LLMMessage(role="user", content=prompt))

        response = await self.provider.generate_response(
            messages=messages,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        logger.debug(
            "Completion from %s via %s in %.0fms",
            self.kind.value,
            response.endpoint,
            response.response_time_ms or 0.0,
        )
        return response

    async def health_check(self) -> dict:
        return await self.provider.health_check()

    async def aclose(self) -> None:
        await self.provider.aclose()


def build_completion_service(provider_name: Optional[str] = None) -> CompletionService:
    """Create a CompletionService from application settings."""

    from ..config import settings

    return CompletionService(
        settings.provider_settings(provider_name),
        max_tokens=settings.max_tokens,
        temperature=settings.temperature,
    )

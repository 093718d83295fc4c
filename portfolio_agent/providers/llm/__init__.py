from typing import Any, Dict, Optional, Type

from .base import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    PROVIDER_ALIAS_MAP,
    ProviderKind,
    ProviderSettings,
    resolve_provider_kind,
)
from .anthropic import AnthropicProvider
from .atoma import AtomaProvider
from .openai_compat import OpenAICompatibleProvider, OpenAIProvider
from ...core.recovery.errors import UnsupportedProvider

PROVIDER_DISPLAY_NAMES: Dict[ProviderKind, str] = {
    ProviderKind.PRIMARY: "OpenAI",
    ProviderKind.CONFIDENTIAL_CAPABLE: "Atoma (confidential compute capable)",
    ProviderKind.SECONDARY: "Anthropic Claude",
}

# One entry per ProviderKind member
PROVIDER_REGISTRY: Dict[ProviderKind, Type[LLMProvider]] = {
    ProviderKind.PRIMARY: OpenAIProvider,
    ProviderKind.CONFIDENTIAL_CAPABLE: AtomaProvider,
    ProviderKind.SECONDARY: AnthropicProvider,
}


class LLMProviderFactory:
    """Factory for creating completion provider instances."""

    @staticmethod
    def create_provider(provider_settings: ProviderSettings, **kwargs: Any) -> LLMProvider:
        """Create the single provider client described by ``provider_settings``."""

        kind = resolve_provider_kind(provider_settings.provider)
        provider_class = PROVIDER_REGISTRY.get(kind)
        if provider_class is None:
            raise UnsupportedProvider(kind.value, available=[k.value for k in PROVIDER_REGISTRY])

        if not provider_settings.model:
            raise ValueError(f"No model provided for provider '{kind.value}'.")

        if kind is ProviderKind.SECONDARY:
            return provider_class(
                api_key=provider_settings.credential,
                model=provider_settings.model,
                timeout=provider_settings.timeout_seconds,
                **kwargs,
            )

        provider_kwargs: Dict[str, Any] = {
            "base_url": provider_settings.base_url,
            "timeout": provider_settings.timeout_seconds,
        }
        if kind is ProviderKind.CONFIDENTIAL_CAPABLE:
            provider_kwargs["private_mode"] = provider_settings.private_mode_enabled
        return provider_class(
            api_key=provider_settings.credential,
            model=provider_settings.model,
            **provider_kwargs,
            **kwargs,
        )


def get_available_providers() -> Dict[str, Dict[str, Any]]:
    """Return metadata about supported completion providers."""

    from ...config import settings  # Local import to avoid circular dependency

    providers_info: Dict[str, Dict[str, Any]] = {}
    for kind in PROVIDER_REGISTRY:
        provider_settings = settings.provider_settings(kind.value)
        providers_info[kind.value] = {
            "status": "available" if provider_settings.credential else "unconfigured",
            "display_name": PROVIDER_DISPLAY_NAMES[kind],
            "default_model": provider_settings.model,
            "supports_private_mode": kind is ProviderKind.CONFIDENTIAL_CAPABLE,
            "aliases": sorted(alias for alias, target in PROVIDER_ALIAS_MAP.items() if target is kind),
        }
    return providers_info


def get_llm_provider(provider_name: Optional[str] = None, **kwargs: Any) -> LLMProvider:
    """Instantiate a provider according to configuration overrides."""

    from ...config import settings

    provider_settings = settings.provider_settings(provider_name)
    if not provider_settings.credential:
        raise ValueError(f"No API key configured for provider: {provider_settings.provider.value}")
    return LLMProviderFactory.create_provider(provider_settings, **kwargs)


__all__ = [
    "LLMProvider",
    "LLMMessage",
    "LLMResponse",
    "ProviderKind",
    "ProviderSettings",
    "AnthropicProvider",
    "AtomaProvider",
    "OpenAIProvider",
    "OpenAICompatibleProvider",
    "LLMProviderFactory",
    "get_available_providers",
    "get_llm_provider",
    "PROVIDER_REGISTRY",
    "resolve_provider_kind",
]

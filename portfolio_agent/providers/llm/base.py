from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional
import logging
import time

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...core.recovery.errors import UnsupportedProvider


# =============================================================================
# Provider selection
# =============================================================================

class ProviderKind(str, Enum):
    """Closed set of completion backends."""
    PRIMARY = "primary"                            # OpenAI chat completions
    CONFIDENTIAL_CAPABLE = "confidential_capable"  # Atoma, standard or confidential compute
    SECONDARY = "secondary"                        # Anthropic messages


PROVIDER_ALIAS_MAP: Dict[str, ProviderKind] = {
    "primary": ProviderKind.PRIMARY,
    "openai": ProviderKind.PRIMARY,
    "gpt": ProviderKind.PRIMARY,
    "confidential_capable": ProviderKind.CONFIDENTIAL_CAPABLE,
    "confidential-capable": ProviderKind.CONFIDENTIAL_CAPABLE,
    "atoma": ProviderKind.CONFIDENTIAL_CAPABLE,
    "secondary": ProviderKind.SECONDARY,
    "anthropic": ProviderKind.SECONDARY,
    "claude": ProviderKind.SECONDARY,
}


def resolve_provider_kind(name: Any) -> ProviderKind:
    """Normalize a provider name or alias to its ProviderKind."""

    if isinstance(name, ProviderKind):
        return name
    key = str(name or "").strip().lower()
    kind = PROVIDER_ALIAS_MAP.get(key)
    if kind is None:
        raise UnsupportedProvider(str(name), available=sorted(PROVIDER_ALIAS_MAP))
    return kind


class ProviderSettings(BaseModel):
    """Immutable provider selection owned by the completion service."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderKind
    credential: str = Field(default="", repr=False)
    private_mode_enabled: bool = False
    model: Optional[str] = None
    base_url: Optional[str] = None
    timeout_seconds: float = 40.0

    @field_validator("provider", mode="before")
    @classmethod
    def _resolve_provider(cls, value: Any) -> ProviderKind:
        return resolve_provider_kind(value)


# =============================================================================
# Message Models
# =============================================================================

class LLMMessage(BaseModel):
    """Standardized message format for LLM communication"""
    role: str  # "system", "user", "assistant"
    content: str = ""


class LLMResponse(BaseModel):
    """Standardized response from LLM providers"""
    content: str = ""
    tokens_used: Optional[int] = None
    model: Optional[str] = None
    endpoint: Optional[str] = None
    finish_reason: Optional[str] = None
    response_time_ms: Optional[float] = None


class LLMProvider(ABC):
    """Abstract base class for completion providers"""

    kind: ProviderKind
    display_name: str = "provider"

    def __init__(self, api_key: str, model: str, **kwargs):
        self.api_key = api_key
        self.model = model
        self.logger = logging.getLogger(f"{self.__class__.__name__}")
        self._setup_client(**kwargs)

    @abstractmethod
    def _setup_client(self, **kwargs) -> None:
        """Initialize the provider-specific client"""
        pass

    @abstractmethod
    async def generate_response(
        self,
        messages: List[LLMMessage],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate a response from the LLM

        Args:
            messages: List of messages in the conversation
            max_tokens: Maximum tokens in response
            temperature: Sampling temperature
            **kwargs: Additional provider-specific parameters

        Returns:
            LLMResponse with the completion text
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the client"""
        return None

    async def health_check(self) -> Dict[str, Any]:
        """Check if the provider is healthy and responding"""
        try:
            start_time = time.time()
            response = await self.generate_response(
                messages=[LLMMessage(role="user", content="ping")],
                max_tokens=10,
                temperature=0,
            )
            return {
                "status": "healthy",
                "provider": self.kind.value,
                "model": self.model,
                "response_time_ms": self._measure_time(start_time),
                "test_response_length": len(response.content),
            }
        except Exception as e:
            return {
                "status": "error",
                "provider": self.kind.value,
                "model": self.model,
                "error": str(e),
            }

    def _create_response(self, content: str, **metadata) -> LLMResponse:
        """Helper method to create standardized responses"""
        return LLMResponse(
            content=content,
            model=self.model,
            **metadata
        )

    def _measure_time(self, start_time: float) -> float:
        """Helper to measure response time in milliseconds"""
        return (time.time() - start_time) * 1000

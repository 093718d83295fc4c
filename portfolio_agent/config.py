import os

from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Ensure we pick up legacy environment variable aliases."""

        super().model_post_init(__context)

        if not self.atoma_api_key:
            fallback = os.getenv("ATOMA_BEARER_AUTH") or os.getenv("ATOMA_KEY")
            if fallback:
                object.__setattr__(self, "atoma_api_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # LLM Provider Settings
    llm_provider: str = Field(
        default="confidential_capable",
        description="Completion provider: primary (openai), confidential_capable (atoma), secondary (anthropic)",
    )
    private_mode_enabled: bool = Field(
        default=False,
        description="Route confidential-capable requests through the confidential compute endpoint",
    )
    openai_api_key: str = Field(default="", description="OpenAI API key")
    atoma_api_key: str = Field(default="", description="Atoma API key")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")

    openai_model: str = Field(default="gpt-4", description="Model used for the primary provider")
    atoma_model: str = Field(
        default="meta-llama/Llama-3.3-70B-Instruct",
        description="Model used for the confidential-capable provider",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for the secondary provider",
    )
    openai_base_url: str = Field(default="https://api.openai.com", description="OpenAI API base URL")
    atoma_base_url: str = Field(default="https://api.atoma.network", description="Atoma API base URL")

    max_tokens: int = Field(default=4000, description="Maximum tokens for LLM response")
    temperature: float = Field(default=0.7, description="LLM temperature setting")
    request_timeout_seconds: float = Field(default=40.0, description="Provider request timeout")
    agent_system_prompt: str = Field(
        default=(
            "You are a DeFi portfolio agent. Analyze wallet balances, compare yield "
            "opportunities and describe the concrete actions you would take."
        ),
        description="System prompt sent with every agent invocation",
    )

    # Retry Settings
    retry_max_attempts: int = Field(default=3, ge=1, description="Total attempts per provider call")
    retry_initial_delay_seconds: float = Field(default=0.5, ge=0, description="Delay before the first retry")
    retry_backoff_multiplier: float = Field(default=2.0, ge=1, description="Growth factor between retries")
    retry_max_delay_seconds: float = Field(default=30.0, gt=0, description="Upper bound on a single retry wait")
    retry_max_elapsed_seconds: Optional[float] = Field(
        default=120.0,
        description="Give up once retrying would run past this many seconds",
    )

    # Portfolio Scan Settings
    portfolio_wallet_address: str = Field(
        default="",
        description="Wallet analysed by the background yield scan",
        validation_alias=AliasChoices(
            "portfolio_wallet_address", "wallet_address", "NEXT_PUBLIC_WALLET_ADDRESS"
        ),
    )
    portfolio_chain_id: str = Field(default="43114", description="EVM chain id for balance lookups")
    glacier_api_key: str = Field(
        default="",
        description="AvaCloud Glacier API key",
        validation_alias=AliasChoices("glacier_api_key", "GLACIER_API_KEY", "NEXT_PUBLIC_GLACIER_API_KEY"),
    )
    glacier_base_url: str = Field(
        default="https://glacier-api.avax.network",
        description="AvaCloud Glacier API base URL",
    )
    glacier_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for Glacier balance requests")
    scan_interval_seconds: int = Field(default=300, ge=1, description="Minimum time between yield scans")
    scan_page_size: int = Field(default=100, ge=1, le=100, description="Balances fetched per page")
    scan_max_protocol_allocation_pct: int = Field(
        default=70, ge=1, le=100, description="Maximum allocation per protocol"
    )
    scan_min_pool_liquidity_usd: int = Field(default=1000, ge=0, description="Minimum liquidity per pool")
    scan_min_protocol_age_days: int = Field(default=30, ge=0, description="Avoid protocols younger than this")

    # Agent Runtime
    agent_runtime_enabled: bool = Field(
        default=True,
        description="Start the background agent runtime alongside FastAPI",
    )
    agent_runtime_default_interval_seconds: int = Field(
        default=60,
        description="Default tick interval for background strategies",
    )
    agent_runtime_max_concurrency: int = Field(
        default=4,
        ge=1,
        description="Maximum concurrent strategy tasks",
    )
    agent_runtime_tick_timeout_seconds: int = Field(
        default=120,
        ge=1,
        description="Max seconds to allow a strategy tick to run before timing out",
    )

    # Session Channel
    agent_ws_url: str = Field(default="ws://127.0.0.1:8000/ws", description="Chat WebSocket URL")
    session_connect_timeout_seconds: Optional[float] = Field(
        default=10.0,
        description="Give up on a session connect attempt after this many seconds",
    )

    @property
    def has_openai_key(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_atoma_key(self) -> bool:
        return bool(self.atoma_api_key)

    @property
    def has_anthropic_key(self) -> bool:
        return bool(self.anthropic_api_key)

    @property
    def has_llm_key(self) -> bool:
        """Check if we have an API key for the configured LLM provider"""
        return bool(self.credential_for(self.llm_provider))

    @property
    def scan_interval(self) -> timedelta:
        return timedelta(seconds=self.scan_interval_seconds)

    def credential_for(self, provider: str) -> str:
        from .providers.llm.base import ProviderKind, resolve_provider_kind
        from .core.recovery.errors import UnsupportedProvider

        try:
            kind = resolve_provider_kind(provider)
        except UnsupportedProvider:
            return ""
        if kind is ProviderKind.PRIMARY:
            return self.openai_api_key
        if kind is ProviderKind.CONFIDENTIAL_CAPABLE:
            return self.atoma_api_key
        return self.anthropic_api_key

    def provider_settings(self, provider: Optional[str] = None) -> Any:
        """Build immutable ProviderSettings for the configured (or given) provider."""

        from .providers.llm.base import ProviderKind, ProviderSettings, resolve_provider_kind

        kind = resolve_provider_kind(provider or self.llm_provider)
        models: Dict[ProviderKind, str] = {
            ProviderKind.PRIMARY: self.openai_model,
            ProviderKind.CONFIDENTIAL_CAPABLE: self.atoma_model,
            ProviderKind.SECONDARY: self.anthropic_model,
        }
        base_urls: Dict[ProviderKind, Optional[str]] = {
            ProviderKind.PRIMARY: self.openai_base_url,
            ProviderKind.CONFIDENTIAL_CAPABLE: self.atoma_base_url,
            ProviderKind.SECONDARY: None,
        }
        return ProviderSettings(
            provider=kind,
            credential=self.credential_for(kind.value),
            private_mode_enabled=self.private_mode_enabled,
            model=models[kind],
            base_url=base_urls[kind],
            timeout_seconds=self.request_timeout_seconds,
        )

    def default_retry_policy(self, on_failure_message: Optional[str] = None) -> Any:
        from .core.recovery.backoff import RetryPolicy

        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            initial_delay_seconds=self.retry_initial_delay_seconds,
            backoff_multiplier=self.retry_backoff_multiplier,
            on_failure_message=on_failure_message or "Operation failed after multiple retries",
            max_delay_seconds=self.retry_max_delay_seconds,
            max_elapsed_seconds=self.retry_max_elapsed_seconds,
        )

    def scan_tick_budget_seconds(self) -> float:
        """
        Worst-case wall time of one yield scan.

        A scan fetches balances and then makes two retried agent calls
        (analyze, execute), so a runtime tick driving it must allow at least
        this long.
        """
        agent_call = self.default_retry_policy().worst_case_seconds(self.request_timeout_seconds)
        return self.glacier_timeout_seconds + 2 * agent_call


# Global settings instance
settings = Settings()

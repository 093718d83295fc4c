from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..config import settings


class StrategyConfig(BaseModel):
    """Base configuration for strategies."""

    interval_seconds: Optional[float] = Field(
        default=None,
        description="How often to run on_tick; falls back to runtime defaults when unset.",
    )


class ExecutionContext:
    """What a strategy tick gets: a logger scoped to the strategy and the owning runtime."""

    def __init__(self, *, logger: logging.Logger, runtime: Any = None) -> None:
        self.logger = logger
        self.runtime = runtime

    def scanner(self) -> Any:
        """Shared portfolio scanner."""

        from ..core.portfolio import get_scanner

        return get_scanner()


class Strategy:
    """Base class for runtime strategies."""

    id: str = "strategy"
    description: str = "runtime strategy"
    default_interval_seconds: float = 60.0
    ConfigModel = StrategyConfig
    # Per-tick limit; None defers to the runtime-wide timeout
    tick_timeout_seconds: Optional[float] = None

    def __init__(self, config: StrategyConfig | None = None) -> None:
        self.config = config or self.ConfigModel()

    @property
    def interval_seconds(self) -> float:
        if self.config.interval_seconds and self.config.interval_seconds > 0:
            return float(self.config.interval_seconds)
        return float(self.default_interval_seconds or settings.agent_runtime_default_interval_seconds)

    async def on_start(self, ctx: ExecutionContext) -> None:
        """Called once when the runtime boots."""
        return None

    async def on_tick(self, ctx: ExecutionContext) -> None:
        """Called on every scheduled interval."""
        return None

    async def on_stop(self, ctx: ExecutionContext) -> None:
        """Called during graceful shutdown."""
        return None

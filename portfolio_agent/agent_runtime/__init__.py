"""Background runtime that keeps the yield scanner ticking."""

from __future__ import annotations

import logging
from typing import List

from .runtime import AgentRuntime
from .strategy import Strategy
from .strategies import YieldScanConfig, YieldScanStrategy
from ..config import settings


_runtime = AgentRuntime(logger=logging.getLogger("agent_runtime"))


def get_runtime() -> AgentRuntime:
    return _runtime


def builtin_strategies() -> List[Strategy]:
    """Strategies the server runs out of the box."""
    return [
        YieldScanStrategy(
            config=YieldScanConfig(interval_seconds=settings.agent_runtime_default_interval_seconds),
        ),
    ]


def register_builtin_strategies() -> None:
    """Register any built-in strategy the runtime does not know yet."""
    for strategy in builtin_strategies():
        if not _runtime.has_strategy(strategy.id):
            _runtime.register_strategy(strategy)


__all__ = ["AgentRuntime", "builtin_strategies", "get_runtime", "register_builtin_strategies"]

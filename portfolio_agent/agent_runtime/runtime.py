from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from .strategy import ExecutionContext, Strategy
from ..config import settings


MAX_ERROR_BACKOFF = 5


@dataclass(slots=True)
class StrategyState:
    status: str = "idle"
    run_count: int = 0
    consecutive_errors: int = 0
    last_started: Optional[datetime] = None
    last_completed: Optional[datetime] = None
    last_error: Optional[str] = None
    next_run: Optional[datetime] = None


class AgentRuntime:
    """Background timer that ticks registered strategies on their intervals."""

    def __init__(
        self,
        *,
        logger: Optional[logging.Logger] = None,
        max_concurrency: Optional[int] = None,
        tick_timeout_seconds: Optional[float] = None,
        poll_interval_seconds: float = 1.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.logger = logger or logging.getLogger("agent_runtime")
        self._strategies: Dict[str, Strategy] = {}
        self._state: Dict[str, StrategyState] = {}
        self._loop_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._running = False
        self._started_at: Optional[datetime] = None
        self._max_concurrency = max_concurrency or settings.agent_runtime_max_concurrency
        self._tick_timeout = tick_timeout_seconds or settings.agent_runtime_tick_timeout_seconds
        self._poll_interval = poll_interval_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def register_strategy(self, strategy: Strategy) -> None:
        if strategy.id in self._strategies:
            raise ValueError(f"Strategy '{strategy.id}' already registered")
        self._strategies[strategy.id] = strategy
        self._state[strategy.id] = StrategyState(next_run=self._clock())
        self.logger.info("Registered strategy %s", strategy.id)

    def has_strategy(self, strategy_id: str) -> bool:
        return strategy_id in self._strategies

    # Lifecycle

    async def ensure_started(self) -> None:
        async with self._lock:
            if self._running:
                return
            self._running = True
            self._started_at = self._clock()
            self.logger.info("Agent runtime starting with %d strategies", len(self._strategies))
            for strategy_id, strategy in self._strategies.items():
                try:
                    await strategy.on_start(self._make_context(strategy_id))
                except Exception as exc:
                    self.logger.warning("Strategy %s on_start failed: %s", strategy_id, exc, exc_info=True)
                self._state[strategy_id].next_run = self._clock()
            self._loop_task = asyncio.create_task(self._run_loop(), name="agent-runtime-loop")

    async def stop(self) -> None:
        async with self._lock:
            if not self._running:
                return
            self._running = False
            self.logger.info("Agent runtime stopping")

            if self._loop_task:
                self._loop_task.cancel()
                await asyncio.gather(self._loop_task, return_exceptions=True)
                self._loop_task = None

            pending = list(self._inflight)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._inflight.clear()

            for strategy_id, strategy in self._strategies.items():
                try:
                    await strategy.on_stop(self._make_context(strategy_id))
                except Exception as exc:
                    self.logger.warning("Strategy %s on_stop failed: %s", strategy_id, exc, exc_info=True)

    @property
    def is_running(self) -> bool:
        return self._running

    # Scheduling

    async def _run_loop(self) -> None:
        try:
            while self._running:
                self.schedule_due_ticks()
                await asyncio.sleep(self._poll_interval)
        except Exception as exc:
            self.logger.error("Runtime loop crashed: %s", exc, exc_info=True)
            self._running = False

    def schedule_due_ticks(self) -> int:
        """Start a tick task for every idle strategy whose next run has passed."""

        now = self._clock()
        started = 0
        for strategy_id, strategy in self._strategies.items():
            state = self._state[strategy_id]
            if state.status == "running":
                continue
            if state.next_run and state.next_run > now:
                continue
            if len(self._inflight) >= self._max_concurrency:
                break
            self._spawn_tick(strategy_id, strategy)
            started += 1
        return started

    def _spawn_tick(self, strategy_id: str, strategy: Strategy) -> asyncio.Task:
        # Marked before the task runs so the next poll cannot double-schedule it.
        self._state[strategy_id].status = "running"
        task = asyncio.create_task(self._run_strategy_tick(strategy_id, strategy), name=f"tick-{strategy_id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _run_strategy_tick(self, strategy_id: str, strategy: Strategy) -> None:
        state = self._state.get(strategy_id)
        if state is None:
            return
        state.status = "running"
        state.last_started = self._clock()
        timeout = self._timeout_for(strategy)
        try:
            await asyncio.wait_for(strategy.on_tick(self._make_context(strategy_id)), timeout=timeout)
            state.last_error = None
            state.consecutive_errors = 0
        except asyncio.TimeoutError:
            state.last_error = f"tick timed out after {timeout}s"
            state.consecutive_errors += 1
            self.logger.warning("Strategy %s timed out", strategy_id)
        except Exception as exc:
            state.last_error = str(exc)
            state.consecutive_errors += 1
            self.logger.warning("Strategy %s tick failed: %s", strategy_id, exc, exc_info=True)
        finally:
            state.run_count += 1
            state.last_completed = self._clock()
            multiplier = min(max(1, state.consecutive_errors), MAX_ERROR_BACKOFF)
            state.next_run = state.last_completed + timedelta(seconds=strategy.interval_seconds * multiplier)
            state.status = "idle"

    async def run_strategy_now(self, strategy_id: str) -> Optional[asyncio.Task]:
        """Queue an immediate tick; returns None when unknown or already running."""

        strategy = self._strategies.get(strategy_id)
        state = self._state.get(strategy_id)
        if strategy is None or state is None or state.status == "running":
            return None
        return self._spawn_tick(strategy_id, strategy)

    # Introspection

    def list_strategies(self) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for strategy_id, strategy in self._strategies.items():
            state = self._state[strategy_id]
            items.append(
                {
                    "id": strategy_id,
                    "description": strategy.description,
                    "interval_seconds": strategy.interval_seconds,
                    "tick_timeout_seconds": self._timeout_for(strategy),
                    "status": state.status,
                    "run_count": state.run_count,
                    "consecutive_errors": state.consecutive_errors,
                    "last_started": _iso(state.last_started),
                    "last_completed": _iso(state.last_completed),
                    "last_error": state.last_error,
                    "next_run": _iso(state.next_run),
                }
            )
        return items

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "started_at": _iso(self._started_at),
            "strategy_count": len(self._strategies),
            "inflight": len(self._inflight),
            "strategies": self.list_strategies(),
        }

    def _timeout_for(self, strategy: Strategy) -> float:
        return strategy.tick_timeout_seconds or self._tick_timeout

    def _make_context(self, strategy_id: str) -> ExecutionContext:
        return ExecutionContext(logger=self.logger.getChild(strategy_id), runtime=self)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.astimezone(timezone.utc).isoformat() if value else None

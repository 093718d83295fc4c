import asyncio
import logging
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from portfolio_agent.agent_runtime.runtime import AgentRuntime
from portfolio_agent.agent_runtime.strategy import Strategy, StrategyConfig
from portfolio_agent.agent_runtime.strategies import YieldScanConfig, YieldScanStrategy


class CountingStrategy(Strategy):
    id = "counting"
    description = "counts ticks"
    default_interval_seconds = 30.0

    def __init__(self, fail=False, hang=False, **kwargs):
        super().__init__(**kwargs)
        self.ticks = 0
        self.started = False
        self.stopped = False
        self.fail = fail
        self.hang = hang

    async def on_start(self, ctx):
        self.started = True

    async def on_tick(self, ctx):
        self.ticks += 1
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail:
            raise RuntimeError("tick exploded")

    async def on_stop(self, ctx):
        self.stopped = True


class FixedClock:
    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def make_runtime(**kwargs):
    return AgentRuntime(
        logger=logging.getLogger("test_runtime"),
        max_concurrency=2,
        tick_timeout_seconds=kwargs.pop("tick_timeout_seconds", 1),
        poll_interval_seconds=0.01,
        **kwargs,
    )


class TestAgentRuntime:
    """Tests for scheduling and introspection."""

    def test_duplicate_registration_rejected(self):
        runtime = make_runtime()
        runtime.register_strategy(CountingStrategy())

        with pytest.raises(ValueError):
            runtime.register_strategy(CountingStrategy())

    @pytest.mark.asyncio
    async def test_tick_success_schedules_next_run(self):
        clock = FixedClock()
        runtime = make_runtime(clock=clock)
        strategy = CountingStrategy()
        runtime.register_strategy(strategy)

        task = await runtime.run_strategy_now("counting")
        await task

        item = runtime.list_strategies()[0]
        assert strategy.ticks == 1
        assert item["run_count"] == 1
        assert item["last_error"] is None
        assert item["next_run"] == (clock.now + timedelta(seconds=30)).isoformat()

    @pytest.mark.asyncio
    async def test_tick_failure_backs_off(self):
        clock = FixedClock()
        runtime = make_runtime(clock=clock)
        runtime.register_strategy(CountingStrategy(fail=True))

        for _ in range(2):
            await (await runtime.run_strategy_now("counting"))

        item = runtime.list_strategies()[0]
        assert item["consecutive_errors"] == 2
        assert item["last_error"] == "tick exploded"
        assert item["next_run"] == (clock.now + timedelta(seconds=60)).isoformat()

    @pytest.mark.asyncio
    async def test_tick_timeout_recorded(self):
        runtime = make_runtime(tick_timeout_seconds=0.01)
        runtime.register_strategy(CountingStrategy(hang=True))

        await (await runtime.run_strategy_now("counting"))

        assert "timed out" in runtime.list_strategies()[0]["last_error"]

    @pytest.mark.asyncio
    async def test_strategy_tick_timeout_overrides_runtime_default(self):
        runtime = make_runtime(tick_timeout_seconds=30)
        strategy = CountingStrategy(hang=True)
        strategy.tick_timeout_seconds = 0.01
        runtime.register_strategy(strategy)

        await (await runtime.run_strategy_now("counting"))

        item = runtime.list_strategies()[0]
        assert item["last_error"] == "tick timed out after 0.01s"
        assert item["tick_timeout_seconds"] == 0.01

    @pytest.mark.asyncio
    async def test_running_strategy_not_double_scheduled(self):
        runtime = make_runtime()
        runtime.register_strategy(CountingStrategy(hang=True))

        first = await runtime.run_strategy_now("counting")
        second = await runtime.run_strategy_now("counting")

        assert first is not None
        assert second is None
        assert runtime.schedule_due_ticks() == 0
        first.cancel()
        await asyncio.gather(first, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_unknown_strategy(self):
        assert await make_runtime().run_strategy_now("nope") is None

    @pytest.mark.asyncio
    async def test_start_ticks_and_stop(self):
        runtime = make_runtime()
        strategy = CountingStrategy()
        runtime.register_strategy(strategy)

        await runtime.ensure_started()
        for _ in range(100):
            if strategy.ticks:
                break
            await asyncio.sleep(0.01)
        await runtime.stop()

        assert strategy.started and strategy.stopped
        assert strategy.ticks >= 1
        assert runtime.status()["running"] is False

    def test_config_interval_overrides_default(self):
        strategy = CountingStrategy(config=StrategyConfig(interval_seconds=5))
        assert strategy.interval_seconds == 5.0


class TestYieldScanStrategy:
    """Tests for the scan-driving strategy."""

    def make_scanner(self, report=None):
        scanner = MagicMock()
        scanner.scan_and_optimize = AsyncMock(return_value=report)
        scanner.last_error = None
        scanner.consecutive_failures = 0
        return scanner

    @pytest.mark.asyncio
    async def test_tick_triggers_scan(self):
        scanner = self.make_scanner()
        strategy = YieldScanStrategy(config=YieldScanConfig(interval_seconds=10), scanner=scanner)
        runtime = make_runtime()
        runtime.register_strategy(strategy)

        await (await runtime.run_strategy_now("yield_scan"))

        scanner.scan_and_optimize.assert_awaited_once()
        assert runtime.list_strategies()[0]["last_error"] is None

    @pytest.mark.asyncio
    async def test_skipped_scan_is_not_an_error(self):
        scanner = self.make_scanner(report=None)
        scanner.last_error = "agent unavailable"
        scanner.consecutive_failures = 1
        strategy = YieldScanStrategy(scanner=scanner)
        ctx = MagicMock()

        await strategy.on_tick(ctx)

        ctx.logger.warning.assert_called_once()

    def test_tick_timeout_outlasts_a_retried_scan(self, monkeypatch):
        from portfolio_agent.config import settings

        monkeypatch.setattr(settings, "request_timeout_seconds", 40.0)
        monkeypatch.setattr(settings, "glacier_timeout_seconds", 30.0)
        monkeypatch.setattr(settings, "agent_runtime_tick_timeout_seconds", 120)
        monkeypatch.setattr(settings, "retry_max_attempts", 3)
        monkeypatch.setattr(settings, "retry_max_delay_seconds", 30.0)
        monkeypatch.setattr(settings, "retry_max_elapsed_seconds", 120.0)
        strategy = YieldScanStrategy(scanner=self.make_scanner())

        assert strategy.tick_timeout_seconds == settings.scan_tick_budget_seconds() == 350
        runtime = make_runtime(tick_timeout_seconds=120)
        runtime.register_strategy(strategy)
        assert runtime.list_strategies()[0]["tick_timeout_seconds"] == 350


class TestBuiltinStrategies:
    """Tests for default strategy registration."""

    def test_registration_is_idempotent(self):
        from portfolio_agent.agent_runtime import get_runtime, register_builtin_strategies

        register_builtin_strategies()
        register_builtin_strategies()

        ids = [item["id"] for item in get_runtime().list_strategies()]
        assert ids.count("yield_scan") == 1

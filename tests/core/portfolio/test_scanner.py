"""
Tests for the Portfolio Scanner

Covers the interval guard, single-flight locking and failure handling.
"""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from portfolio_agent.core.agent import ExecutionOutcome
from portfolio_agent.core.portfolio import PortfolioScanner, ScanPolicy
from portfolio_agent.types.portfolio import BalanceSet, TokenBalance

WALLET = "0x1111111111111111111111111111111111111111"
START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeAgent:
    def __init__(self, fail=False, gate=None):
        self.instructions = []
        self.fail = fail
        self.gate = gate

    async def invoke(self, instruction, *, thread_id=None):
        self.instructions.append(instruction)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("agent unavailable")
        return ExecutionOutcome(instruction=instruction, output=f"ok {len(self.instructions)}", thread_id=thread_id)


def balances():
    return BalanceSet(
        address=WALLET,
        chain_id="43114",
        balances=[
            TokenBalance(symbol="USDC", name="USD Coin", decimals=6, balance_wei="1000000", balance_formatted="1"),
        ],
    )


def make_scanner(agent=None, clock=None, source=None):
    if source is None:
        source = AsyncMock()
        source.list_balances = AsyncMock(return_value=balances())
    return PortfolioScanner(
        agent if agent is not None else FakeAgent(),
        source,
        WALLET,
        min_interval=timedelta(minutes=5),
        clock=clock or FakeClock(),
    )


class TestScanGuard:
    """Tests for the interval guard."""

    @pytest.mark.asyncio
    async def test_first_scan_runs_pipeline(self):
        agent = FakeAgent()
        scanner = make_scanner(agent=agent)

        report = await scanner.scan_and_optimize()

        assert report is not None
        assert scanner.last_run_at == START
        scanner.balance_source.list_balances.assert_awaited_once_with(WALLET, page_size=100)
        assert len(agent.instructions) == 2
        assert agent.instructions[0].startswith("Analyze yield opportunities")
        assert WALLET in agent.instructions[0]
        assert report.execution.output == "ok 2"

    @pytest.mark.asyncio
    async def test_second_scan_within_interval_is_noop(self):
        clock = FakeClock()
        agent = FakeAgent()
        scanner = make_scanner(agent=agent, clock=clock)

        await scanner.scan_and_optimize()
        clock.advance(minutes=4)
        assert await scanner.scan_and_optimize() is None

        assert scanner.last_run_at == START
        assert len(agent.instructions) == 2
        assert scanner.skip_count == 1

    @pytest.mark.asyncio
    async def test_scan_runs_again_after_interval(self):
        clock = FakeClock()
        scanner = make_scanner(clock=clock)

        await scanner.scan_and_optimize()
        clock.advance(minutes=5)
        report = await scanner.scan_and_optimize()

        assert report is not None
        assert scanner.last_run_at == START + timedelta(minutes=5)
        assert scanner.run_count == 2

    @pytest.mark.asyncio
    async def test_last_run_never_decreases(self):
        clock = FakeClock()
        scanner = make_scanner(clock=clock)
        seen = []

        for step in (0, 6, -3, 10):
            clock.advance(minutes=step)
            await scanner.scan_and_optimize()
            seen.append(scanner.last_run_at)

        assert seen == sorted(seen)

    @pytest.mark.asyncio
    async def test_no_agent_returns_none(self):
        scanner = PortfolioScanner(None, AsyncMock(), WALLET, clock=FakeClock())

        assert await scanner.scan_and_optimize() is None
        assert scanner.last_run_at is None

    @pytest.mark.asyncio
    async def test_no_wallet_returns_none(self):
        agent = FakeAgent()
        scanner = PortfolioScanner(agent, AsyncMock(), "", clock=FakeClock())

        assert await scanner.scan_and_optimize() is None
        assert agent.instructions == []


class TestScanFailures:
    """Tests for failure handling."""

    @pytest.mark.asyncio
    async def test_agent_failure_leaves_last_run_unchanged(self):
        scanner = make_scanner(agent=FakeAgent(fail=True))

        assert await scanner.scan_and_optimize() is None

        assert scanner.last_run_at is None
        assert scanner.consecutive_failures == 1
        assert "agent unavailable" in scanner.last_error

    @pytest.mark.asyncio
    async def test_balance_failure_is_absorbed(self):
        source = AsyncMock()
        source.list_balances = AsyncMock(side_effect=RuntimeError("glacier down"))
        agent = FakeAgent()
        scanner = make_scanner(agent=agent, source=source)

        assert await scanner.scan_and_optimize() is None

        assert agent.instructions == []
        assert scanner.last_run_at is None

    @pytest.mark.asyncio
    async def test_failure_then_success_resets_counter(self):
        agent = FakeAgent(fail=True)
        scanner = make_scanner(agent=agent)

        await scanner.scan_and_optimize()
        agent.fail = False
        report = await scanner.scan_and_optimize()

        assert report is not None
        assert scanner.consecutive_failures == 0
        assert scanner.last_error is None


class TestSingleFlight:
    """Tests for overlapping triggers."""

    @pytest.mark.asyncio
    async def test_concurrent_scans_run_pipeline_once(self):
        gate = asyncio.Event()
        agent = FakeAgent(gate=gate)
        scanner = make_scanner(agent=agent)

        first = asyncio.create_task(scanner.scan_and_optimize())
        await asyncio.sleep(0)
        assert scanner.is_running

        others = await asyncio.gather(*(scanner.scan_and_optimize() for _ in range(3)))
        gate.set()
        report = await first

        assert others == [None, None, None]
        assert report is not None
        assert scanner.balance_source.list_balances.await_count == 1
        assert scanner.run_count == 1


class TestScanPolicy:
    """Tests for the instruction text."""

    def test_execution_instruction_lists_constraints(self):
        text = ScanPolicy().execution_instruction()

        assert text.startswith("Based on the analysis, execute the most profitable yield strategy")
        assert "Max 70% allocation per protocol" in text
        assert "Min $1000 liquidity per pool" in text
        assert "Avoid new protocols (<30 days)" in text

    def test_constraints_are_configurable(self):
        text = ScanPolicy(max_protocol_allocation_pct=40, min_protocol_age_days=90).execution_instruction()

        assert "Max 40% allocation" in text
        assert "(<90 days)" in text

    def test_analysis_instruction_embeds_balances(self):
        text = ScanPolicy().analysis_instruction(balances())

        assert '"symbol": "USDC"' in text

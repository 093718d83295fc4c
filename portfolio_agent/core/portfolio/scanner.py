"""
Portfolio Scanner

Rate-limited, single-flight yield scan: fetch balances, ask the agent to
analyze them, then ask it to execute the best strategy under fixed
allocation constraints.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

from ..agent.base import AgentInvoker, ExecutionOutcome
from ...types.portfolio import BalanceSet

SCAN_THREAD = "portfolio-scan"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ScanPolicy:
    """Constraints passed to the agent as plain instructions."""

    max_protocol_allocation_pct: int = 70
    min_pool_liquidity_usd: int = 1000
    min_protocol_age_days: int = 30
    chain_name: str = "Avalanche"

    def analysis_instruction(self, balances: BalanceSet) -> str:
        payload = json.dumps(balances.model_dump(mode="json"))
        return f"Analyze yield opportunities on {self.chain_name} with these balances: {payload}"

    def execution_instruction(self) -> str:
        return (
            "Based on the analysis, execute the most profitable yield strategy with:\n"
            f"- Max {self.max_protocol_allocation_pct}% allocation per protocol\n"
            f"- Min ${self.min_pool_liquidity_usd} liquidity per pool\n"
            f"- Avoid new protocols (<{self.min_protocol_age_days} days)"
        )


@dataclass
class ScanState:
    last_run_at: Optional[datetime]
    min_interval: timedelta


class ScanReport(BaseModel):
    """Outcome of a completed scan run"""

    started_at: datetime
    completed_at: datetime
    balances: BalanceSet
    analysis: ExecutionOutcome
    execution: ExecutionOutcome = Field(description="Outcome of the execute step")


class PortfolioScanner:
    """
    Idle -> Running -> Idle, at most once per ``min_interval``.

    ``_lock`` covers the guard check, the run and the ``last_run_at`` update,
    so overlapping triggers cannot both pass the guard.
    """

    def __init__(
        self,
        agent: Optional[AgentInvoker],
        balance_source: Any,
        wallet_address: str,
        *,
        min_interval: timedelta = timedelta(minutes=5),
        page_size: int = 100,
        policy: Optional[ScanPolicy] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.agent = agent
        self.balance_source = balance_source
        self.wallet_address = wallet_address
        self.page_size = page_size
        self.policy = policy or ScanPolicy()
        self.state = ScanState(last_run_at=None, min_interval=min_interval)
        self._clock = clock or _utcnow
        self._lock = asyncio.Lock()
        self.logger = logger or logging.getLogger(__name__)

        self.run_count = 0
        self.skip_count = 0
        self.consecutive_failures = 0
        self.last_error: Optional[str] = None
        self.last_report: Optional[ScanReport] = None

    @property
    def last_run_at(self) -> Optional[datetime]:
        return self.state.last_run_at

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def is_due(self, now: Optional[datetime] = None) -> bool:
        if self.state.last_run_at is None:
            return True
        now = now or self._clock()
        return now - self.state.last_run_at >= self.state.min_interval

    async def scan_and_optimize(self) -> Optional[ScanReport]:
        """Run one scan if allowed; ``None`` when skipped or failed."""
        if self.agent is None or self.balance_source is None or not self.wallet_address:
            self.skip_count += 1
            return None

        if self._lock.locked():
            self.logger.debug("Portfolio scan already in flight; skipping")
            self.skip_count += 1
            return None

        async with self._lock:
            now = self._clock()
            if not self.is_due(now):
                self.skip_count += 1
                return None

            self.logger.info("Starting portfolio scan for %s", self.wallet_address)
            try:
                report = await self._run(now)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                self.consecutive_failures += 1
                self.last_error = str(exc)
                self.logger.error("Portfolio optimization failed: %s", exc, exc_info=True)
                return None

            if self.state.last_run_at is None or now > self.state.last_run_at:
                self.state.last_run_at = now
            self.run_count += 1
            self.consecutive_failures = 0
            self.last_error = None
            self.last_report = report
            self.logger.info(
                "Portfolio scan finished: %d balances, execution %d chars",
                report.balances.token_count,
                len(report.execution.output),
            )
            return report

    async def _run(self, started_at: datetime) -> ScanReport:
        balances = await self.balance_source.list_balances(self.wallet_address, page_size=self.page_size)
        analysis = await self.agent.invoke(self.policy.analysis_instruction(balances), thread_id=SCAN_THREAD)
        execution = await self.agent.invoke(self.policy.execution_instruction(), thread_id=SCAN_THREAD)
        return ScanReport(
            started_at=started_at,
            completed_at=self._clock(),
            balances=balances,
            analysis=analysis,
            execution=execution,
        )

    def status(self) -> Dict[str, Any]:
        return {
            "configured": self.agent is not None and bool(self.wallet_address),
            "running": self.is_running,
            "wallet_address": self.wallet_address,
            "last_run_at": self.state.last_run_at.isoformat() if self.state.last_run_at else None,
            "min_interval_seconds": self.state.min_interval.total_seconds(),
            "run_count": self.run_count,
            "skip_count": self.skip_count,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }


_scanner: Optional[PortfolioScanner] = None


def get_scanner() -> PortfolioScanner:
    """Process-wide scanner built from settings."""
    global _scanner
    if _scanner is None:
        from ...config import settings
        from ...providers.balances import GlacierBalanceSource
        from ..agent import get_agent

        _scanner = PortfolioScanner(
            agent=get_agent(),
            balance_source=GlacierBalanceSource(),
            wallet_address=settings.portfolio_wallet_address,
            min_interval=settings.scan_interval,
            page_size=settings.scan_page_size,
            policy=ScanPolicy(
                max_protocol_allocation_pct=settings.scan_max_protocol_allocation_pct,
                min_pool_liquidity_usd=settings.scan_min_pool_liquidity_usd,
                min_protocol_age_days=settings.scan_min_protocol_age_days,
            ),
        )
    return _scanner


def set_scanner(scanner: Optional[PortfolioScanner]) -> None:
    global _scanner
    _scanner = scanner

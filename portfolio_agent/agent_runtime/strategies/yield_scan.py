from __future__ import annotations

from typing import Any, Optional

from pydantic import Field

from ...config import settings
from ..strategy import ExecutionContext, Strategy, StrategyConfig


class YieldScanConfig(StrategyConfig):
    interval_seconds: Optional[float] = Field(
        default=60.0,
        description="How often to poke the scanner; the scanner's own interval decides if a run happens.",
    )


class YieldScanStrategy(Strategy):
    """Drives the portfolio scanner from the runtime timer."""

    id = "yield_scan"
    description = "Periodically analyzes wallet balances and executes the best yield strategy."
    default_interval_seconds = 60.0
    ConfigModel = YieldScanConfig

    def __init__(self, config: Optional[YieldScanConfig] = None, scanner: Any = None) -> None:
        super().__init__(config=config)
        self._scanner = scanner

    @property
    def tick_timeout_seconds(self) -> float:
        # A tick must outlast a full scan, retries included
        return max(float(settings.agent_runtime_tick_timeout_seconds), settings.scan_tick_budget_seconds())

    def _resolve_scanner(self, ctx: ExecutionContext) -> Any:
        if self._scanner is None:
            self._scanner = ctx.scanner()
        return self._scanner

    async def on_start(self, ctx: ExecutionContext) -> None:
        scanner = self._resolve_scanner(ctx)
        ctx.logger.info(
            "Yield scan strategy online; tick=%ss scan_interval=%ss wallet=%s",
            self.interval_seconds,
            scanner.state.min_interval.total_seconds(),
            scanner.wallet_address or "<unset>",
        )

    async def on_tick(self, ctx: ExecutionContext) -> None:
        scanner = self._resolve_scanner(ctx)
        report = await scanner.scan_and_optimize()
        if report is None:
            if scanner.last_error and scanner.consecutive_failures:
                ctx.logger.warning(
                    "Yield scan failed (%d in a row): %s",
                    scanner.consecutive_failures,
                    scanner.last_error,
                )
            return
        ctx.logger.info(
            "Yield scan executed at %s: %s",
            report.completed_at.isoformat(),
            report.execution.output[:200],
        )

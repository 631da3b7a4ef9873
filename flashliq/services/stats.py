"""Running counters for the bot loop."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from ..models import ExecutionResult, ScanReport


@dataclass
class BotStats:
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    scans: int = 0
    opportunities: int = 0
    arbitrage_opportunities: int = 0
    decode_failures: int = 0
    scan_errors: int = 0
    executions: int = 0
    confirmed: int = 0
    failed: int = 0
    busy: int = 0
    estimated_profit: int = 0

    def record_scan(self, report: ScanReport, arbitrage_found: int = 0) -> None:
        self.scans += 1
        self.opportunities += len(report.opportunities)
        self.arbitrage_opportunities += arbitrage_found
        self.decode_failures += report.decode_failures
        self.scan_errors += len(report.task_errors)

    def record_execution(self, result: ExecutionResult) -> None:
        self.executions += 1
        if result.success:
            self.confirmed += 1
            self.estimated_profit += result.estimated_profit
        else:
            self.failed += 1

    @property
    def success_rate(self) -> float:
        if self.executions == 0:
            return 0.0
        return self.confirmed / self.executions * 100

    def summary(self) -> str:
        uptime = datetime.now(timezone.utc) - self.started_at
        return (
            f"Uptime: {str(uptime).split('.')[0]}\n"
            f"Scans: {self.scans} ({self.scan_errors} task errors)\n"
            f"Opportunities: {self.opportunities} liquidation, "
            f"{self.arbitrage_opportunities} arbitrage\n"
            f"Executions: {self.executions} "
            f"({self.confirmed} confirmed, {self.failed} failed, {self.busy} busy)\n"
            f"Success rate: {self.success_rate:.1f}%\n"
            f"Estimated profit: {self.estimated_profit} lamports "
            f"({self.estimated_profit / 1e9:.6f} SOL)"
        )

"""Scan orchestrator: concurrent per-protocol scans, ranked results."""
from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ..evaluation import rank_by_profit
from ..interfaces.protocol_adapter import ProtocolAdapter
from ..models import LiquidationOpportunity, ScanReport

logger = logging.getLogger(__name__)


class ScanOrchestrator:
    """Run one scan task per adapter; a failing task never cancels siblings."""

    def __init__(
        self, adapters: Sequence[ProtocolAdapter], min_profit_threshold: int = 0
    ) -> None:
        self._adapters = list(adapters)
        self.min_profit_threshold = min_profit_threshold

    @property
    def adapters(self) -> list[ProtocolAdapter]:
        return list(self._adapters)

    async def scan(self) -> ScanReport:
        results = await asyncio.gather(
            *(adapter.scan() for adapter in self._adapters),
            return_exceptions=True,
        )

        opportunities: list[LiquidationOpportunity] = []
        decode_failures = 0
        skipped = 0
        task_errors: dict[str, str] = {}

        for adapter, result in zip(self._adapters, results):
            label = adapter.protocol.label
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("%s scan failed: %s", label, result)
                task_errors[label] = str(result) or type(result).__name__
                continue

            decode_failures += result.decode_failures
            skipped += result.skipped
            for opportunity in result.opportunities:
                if opportunity.estimated_net_profit < self.min_profit_threshold:
                    skipped += 1
                    continue
                opportunities.append(opportunity)

        ranked = rank_by_profit(opportunities)
        logger.info(
            "Scan complete: %d opportunities, %d skipped, %d decode failures, %d task errors",
            len(ranked),
            skipped,
            decode_failures,
            len(task_errors),
        )
        return ScanReport(
            opportunities=tuple(ranked),
            decode_failures=decode_failures,
            skipped=skipped,
            task_errors=task_errors,
        )

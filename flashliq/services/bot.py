"""Bot orchestration: scan, execute and report in a poll loop."""
from __future__ import annotations

import asyncio
import html
import logging
from datetime import datetime, timezone
from typing import Any

from ..aggregators import JupiterClient
from ..chains.solana import SolanaClient
from ..config import AppConfig
from ..errors import BusyError, RpcError
from ..evaluation import rank_by_profit
from ..interfaces.chain import ChainClient
from ..interfaces.notifier import Notifier
from ..interfaces.protocol_adapter import ProtocolAdapter
from ..interfaces.quote_source import QuoteSource
from ..models import (
    ArbitrageOpportunity,
    ExecutionResult,
    LiquidationOpportunity,
    Protocol,
    ScanReport,
)
from ..notifications import TelegramNotifier
from ..protocols.kamino.adapter import KaminoAdapter
from ..protocols.marginfi.adapter import MarginfiAdapter
from ..resilience import RateLimiter
from .arbitrage import ArbitrageScanner
from .executor import ExecutionScheduler
from .scanner import ScanOrchestrator
from .stats import BotStats

logger = logging.getLogger(__name__)

# Registry of protocol adapter classes keyed by protocol.
_PROTOCOL_FACTORIES: dict[Protocol, Any] = {
    Protocol.KAMINO: KaminoAdapter,
    Protocol.MARGINFI: MarginfiAdapter,
}


class Bot:
    """Wires the scanner, arbitrage scanner, executor and notifiers together."""

    def __init__(
        self,
        config: AppConfig,
        dry_run: bool | None = None,
        chain_client: ChainClient | None = None,
        quote_source: QuoteSource | None = None,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._config = config
        self.dry_run = config.engine.dry_run if dry_run is None else dry_run
        self._chain = chain_client or SolanaClient(config.chain)
        self._keypair = config.wallet.keypair() if config.wallet.private_key else None
        self.stats = BotStats()

        # One rate limiter per scan pipeline.
        self._adapters: dict[Protocol, ProtocolAdapter] = {}
        for proto in config.enabled_protocols:
            factory = _PROTOCOL_FACTORIES.get(proto)
            if factory is None:
                logger.warning("No adapter for protocol '%s'", proto.value)
                continue
            self._adapters[proto] = factory(
                self._chain,
                config.protocols[proto],
                config.engine,
                config.flash_loan,
                RateLimiter(config.chain.requests_per_second),
            )

        self._scanner = ScanOrchestrator(
            list(self._adapters.values()), config.engine.min_profit_threshold
        )

        self._arbitrage: ArbitrageScanner | None = None
        if config.arbitrage.enabled:
            quote_source = quote_source or JupiterClient(config.arbitrage.quote_url)
            self._arbitrage = ArbitrageScanner(
                quote_source,
                config.arbitrage,
                max_attempts=config.engine.max_retries,
                retry_delay=config.engine.retry_delay_seconds,
            )

        self._executor = ExecutionScheduler(
            self._chain,
            self._adapters,
            keypair=self._keypair,
            quote_source=quote_source,
            flash_loan=config.flash_loan,
            dry_run=self.dry_run,
            fee_buffer_bps=config.engine.flash_fee_buffer_bps,
        )

        if notifiers is None:
            notifiers = []
            if config.notifications.telegram.enabled:
                notifiers.append(TelegramNotifier(config.notifications.telegram))
        self._notifiers = notifiers

    @property
    def executor(self) -> ExecutionScheduler:
        return self._executor

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    @staticmethod
    def _short(address: object) -> str:
        text = str(address)
        if len(text) > 16:
            return f"{text[:8]}...{text[-6:]}"
        return text

    def _build_report(
        self,
        result: ExecutionResult,
        opportunity: LiquidationOpportunity | ArbitrageOpportunity,
    ) -> str:
        mode = " [DRY-RUN]" if result.dry_run else ""
        if isinstance(opportunity, LiquidationOpportunity):
            target = (
                f"Account: {self._short(opportunity.account_address)} · "
                f"health {opportunity.health_ratio:.4f}"
            )
        else:
            route = " > ".join(h.venue_label for h in opportunity.route) or "—"
            target = f"Route: {html.escape(route)}"

        if result.success:
            header = f"✅ {result.protocol_label} executed{mode}"
            outcome = f"Signature: {html.escape(result.signature or '—')}"
        else:
            header = f"❌ {result.protocol_label} failed ({result.error_kind})"
            outcome = f"Reason: {html.escape(result.error or '')}"

        return (
            f"{header}\n"
            f"\n"
            f"{target}\n"
            f"Estimated profit: {result.estimated_profit} lamports "
            f"({result.estimated_profit / 1e9:.6f} SOL)\n"
            f"{outcome}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    async def _notify(self, message: str) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_report(message)
            except Exception as e:
                logger.error("Notifier send_report failed: %s", e)

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    async def preflight(self) -> None:
        """Check RPC reachability and log the wallet balance.

        Raises:
            RpcError: the RPC endpoint is unreachable or unhealthy.
        """
        if not await self._chain.get_health():
            raise RpcError("RPC endpoint is not healthy")
        if self._keypair is not None:
            lamports = await self._chain.get_balance(self._keypair.pubkey())
            logger.info(
                "Wallet %s balance: %.6f SOL", self._keypair.pubkey(), lamports / 1e9
            )
            if lamports < 10_000_000:
                logger.warning("Wallet balance is low; transaction fees may fail")

    async def scan_once(self) -> tuple[ScanReport, list[ArbitrageOpportunity]]:
        """One scan over all protocols and arbitrage routes, no execution."""
        report = await self._scanner.scan()
        arbitrage: list[ArbitrageOpportunity] = []
        if self._arbitrage is not None:
            try:
                arbitrage = await self._arbitrage.scan()
            except Exception as e:
                logger.error("Arbitrage scan failed: %s", e)
        self.stats.record_scan(report, len(arbitrage))

        for opp in report.opportunities:
            logger.info(
                "%s %s: health %.4f, repay %d, profit %d",
                opp.label,
                self._short(opp.account_address),
                opp.health_ratio,
                opp.max_repayable_debt,
                opp.estimated_net_profit,
            )
        return report, arbitrage

    async def _execute(
        self, opportunity: LiquidationOpportunity | ArbitrageOpportunity
    ) -> ExecutionResult | None:
        try:
            if isinstance(opportunity, LiquidationOpportunity):
                result = await self._executor.execute_liquidation(opportunity)
            else:
                result = await self._executor.execute_arbitrage(opportunity)
        except BusyError:
            self.stats.busy += 1
            logger.info("Execution in flight, deferring to next cycle")
            return None

        self.stats.record_execution(result)
        await self._notify(self._build_report(result, opportunity))
        return result

    async def run_cycle(self) -> list[ExecutionResult]:
        """Scan, then execute the most profitable opportunities in order."""
        report, arbitrage = await self.scan_once()

        candidates: list[LiquidationOpportunity | ArbitrageOpportunity] = rank_by_profit(
            [*report.opportunities, *arbitrage]
        )

        results: list[ExecutionResult] = []
        for opportunity in candidates[: self._config.engine.max_executions_per_cycle]:
            result = await self._execute(opportunity)
            if result is None:
                break
            results.append(result)
        return results

    async def run_forever(self, stop: asyncio.Event | None = None) -> None:
        """Run scan/execute cycles until ``stop`` is set."""
        interval = self._config.engine.poll_interval_seconds
        stop = stop or asyncio.Event()
        logger.info(
            "Starting bot (%s, polling every %ds)",
            "dry-run" if self.dry_run else "PRODUCTION",
            interval,
        )

        while not stop.is_set():
            try:
                await self.run_cycle()
            except Exception as e:
                logger.error("Error in bot loop: %s", e)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Bot stopped\n%s", self.stats.summary())

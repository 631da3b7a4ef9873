"""Execution scheduler: simulate-then-submit with a single in-flight guard.

Attempt lifecycle::

    Idle -> Building -> Simulating -> Submitting -> Confirmed | Failed
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from ..assembler import (
    DEFAULT_COMPUTE_UNITS,
    DEFAULT_FEE_BUFFER_BPS,
    assemble,
    compute_budget_preamble,
    extract_swap_instructions,
    plan_flash_loan,
)
from ..config import FlashLoanConfig
from ..errors import (
    BusyError,
    ConfigError,
    DerivationError,
    FlashLiqError,
    QuoteError,
    SimulationRejected,
)
from ..interfaces.chain import ChainClient
from ..interfaces.protocol_adapter import ProtocolAdapter
from ..interfaces.quote_source import QuoteSource
from ..models import (
    ArbitrageOpportunity,
    ExecutionResult,
    ExecutionStatus,
    LiquidationOpportunity,
    Protocol,
)

logger = logging.getLogger(__name__)

_LOG_TAIL = 5


class ExecutionGuard:
    """Non-blocking exclusive flag: at most one execution in flight."""

    def __init__(self) -> None:
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> bool:
        if self._held:
            return False
        self._held = True
        return True

    def release(self) -> None:
        self._held = False

    def __enter__(self) -> ExecutionGuard:
        if not self.acquire():
            raise BusyError("Another execution is in flight")
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()


def describe_rejection(err: Any, logs: list[str] | tuple[str, ...] = ()) -> str:
    """Human-readable reason for a simulation ``err`` value."""
    reason = str(err)
    if isinstance(err, dict) and "InstructionError" in err:
        index, detail = err["InstructionError"]
        if isinstance(detail, dict) and "Custom" in detail:
            code = detail["Custom"]
            reason = f"instruction {index} failed with custom program error {code} (0x{code:x})"
        else:
            reason = f"instruction {index} failed: {detail}"

    failures = [line for line in logs if "failed" in line or "Error" in line]
    if failures:
        reason = f"{reason}; {failures[-1]}"
    return reason


class ExecutionScheduler:
    """Builds, simulates and submits flash-loan transactions one at a time.

    Dry run is the default and performs no chain I/O at all.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        adapters: Mapping[Protocol, ProtocolAdapter],
        keypair: Keypair | None = None,
        quote_source: QuoteSource | None = None,
        flash_loan: FlashLoanConfig | None = None,
        dry_run: bool = True,
        guard: ExecutionGuard | None = None,
        compute_units: int = DEFAULT_COMPUTE_UNITS,
        fee_buffer_bps: int = DEFAULT_FEE_BUFFER_BPS,
    ) -> None:
        if not dry_run and keypair is None:
            raise ConfigError("A wallet keypair is required outside dry-run mode")
        self._chain = chain_client
        self._adapters = dict(adapters)
        self._keypair = keypair
        self._quotes = quote_source
        self._flash_loan = flash_loan or FlashLoanConfig()
        self.dry_run = dry_run
        self.guard = guard or ExecutionGuard()
        self._compute_units = compute_units
        self._fee_buffer_bps = fee_buffer_bps

    @property
    def payer(self) -> Pubkey:
        if self._keypair is None:
            raise ConfigError("No wallet keypair configured")
        return self._keypair.pubkey()

    # -- public API ----------------------------------------------------------

    async def execute_liquidation(
        self, opportunity: LiquidationOpportunity
    ) -> ExecutionResult:
        """Raises BusyError immediately if another execution holds the guard."""
        with self.guard:
            return await self._attempt(
                opportunity.label,
                opportunity.estimated_net_profit,
                lambda: self._build_liquidation(opportunity),
            )

    async def execute_arbitrage(
        self, opportunity: ArbitrageOpportunity
    ) -> ExecutionResult:
        """Raises BusyError immediately if another execution holds the guard."""
        with self.guard:
            return await self._attempt(
                opportunity.label,
                opportunity.expected_net_profit,
                lambda: self._build_arbitrage(opportunity),
            )

    # -- building ------------------------------------------------------------

    async def _build_liquidation(
        self, opportunity: LiquidationOpportunity
    ) -> list[Instruction]:
        adapter = self._adapters.get(opportunity.protocol)
        if adapter is None:
            raise DerivationError(f"No adapter for {opportunity.protocol.label}")
        payer = self.payer
        plan = await adapter.flash_loan_plan(opportunity, payer)
        actions = await adapter.liquidation_instructions(opportunity, payer)
        return assemble(plan, actions, compute_budget_preamble(self._compute_units))

    async def _build_arbitrage(
        self, opportunity: ArbitrageOpportunity
    ) -> list[Instruction]:
        if self._quotes is None:
            raise QuoteError("No quote source configured")
        reserve = self._flash_loan.reserves.get(opportunity.input_mint)
        if not reserve:
            raise DerivationError(
                f"No flash loan reserve configured for mint {opportunity.input_mint}"
            )

        payer = self.payer
        plan = plan_flash_loan(
            program_id=Pubkey.from_string(self._flash_loan.program_id),
            lending_market=Pubkey.from_string(self._flash_loan.lending_market),
            reserve=Pubkey.from_string(reserve),
            liquidity_mint=Pubkey.from_string(opportunity.input_mint),
            user=payer,
            principal=opportunity.amount_in,
            buffer_bps=self._fee_buffer_bps,
        )

        actions: list[Instruction] = []
        for quote in opportunity.quotes:
            payload = await self._quotes.get_swap_payload(quote, str(payer))
            actions.extend(extract_swap_instructions(payload))
        return assemble(plan, actions, compute_budget_preamble(self._compute_units))

    async def _sign(self, instructions: list[Instruction]) -> VersionedTransaction:
        payer = self.payer
        blockhash = await self._chain.get_latest_blockhash()
        message = MessageV0.try_compile(payer, instructions, [], blockhash)
        return VersionedTransaction(message, [self._keypair])

    # -- state machine -------------------------------------------------------

    async def _simulate(self, tx: VersionedTransaction) -> None:
        value = await self._chain.simulate_transaction(tx)
        err = value.get("err")
        if err:
            logs = tuple(value.get("logs") or ())
            raise SimulationRejected(describe_rejection(err, logs), logs[-_LOG_TAIL:])

    async def _attempt(
        self,
        label: str,
        estimate: int,
        build: Callable[[], Awaitable[list[Instruction]]],
    ) -> ExecutionResult:
        if self.dry_run:
            logger.info(
                "[DRY-RUN] %s: would execute, estimated profit %d lamports",
                label,
                estimate,
            )
            return ExecutionResult(
                status=ExecutionStatus.CONFIRMED,
                protocol_label=label,
                estimated_profit=estimate,
                dry_run=True,
            )

        logger.info("%s: executing, estimated profit %d lamports", label, estimate)
        try:
            instructions = await build()
            tx = await self._sign(instructions)
            await self._simulate(tx)
            signature = await self._chain.send_and_confirm_transaction(tx)
        except SimulationRejected as e:
            logger.error("%s: simulation rejected: %s", label, e.reason)
            return ExecutionResult(
                status=ExecutionStatus.FAILED,
                protocol_label=label,
                estimated_profit=estimate,
                error=e.reason,
                error_kind=type(e).__name__,
                simulation_logs=e.logs,
            )
        except FlashLiqError as e:
            logger.error("%s: execution failed (%s): %s", label, type(e).__name__, e)
            return ExecutionResult(
                status=ExecutionStatus.FAILED,
                protocol_label=label,
                estimated_profit=estimate,
                signature=getattr(e, "signature", None),
                error=str(e),
                error_kind=type(e).__name__,
            )
        except Exception as e:
            logger.exception("%s: unexpected execution failure", label)
            return ExecutionResult(
                status=ExecutionStatus.FAILED,
                protocol_label=label,
                estimated_profit=estimate,
                error=str(e),
                error_kind=type(e).__name__,
            )

        logger.info("%s: confirmed %s", label, signature)
        return ExecutionResult(
            status=ExecutionStatus.CONFIRMED,
            protocol_label=label,
            estimated_profit=estimate,
            signature=signature,
        )

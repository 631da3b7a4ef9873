"""Shared scan pipeline for lending program adapters."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ..config import EngineConfig, FlashLoanConfig, ProtocolConfig
from ..derivation import SEED_TABLES, register_seed_table
from ..errors import DecodeError
from ..evaluation import EvaluationParams, evaluate
from ..interfaces.chain import AccountFilter, ChainClient, ProgramAccount
from ..models import (
    DEFAULT_PUBKEY,
    FlashLoanPlan,
    LiquidationOpportunity,
    PositionRecord,
    Protocol,
    ProtocolScan,
)
from ..resilience import RateLimiter, retry_with_backoff

logger = logging.getLogger(__name__)


class LendingAdapter:
    """Fetch, decode and evaluate every borrower account of one program.

    Subclasses supply the account filters, the account decoder, the reserve
    mint decoder and the liquidation instructions.
    """

    protocol: Protocol
    # Program whose seed table applies when the configured id is a fork.
    canonical_program_id: Pubkey

    def __init__(
        self,
        chain_client: ChainClient,
        config: ProtocolConfig,
        engine: EngineConfig,
        flash_loan: FlashLoanConfig,
        limiter: RateLimiter | None = None,
    ) -> None:
        self._client = chain_client
        self._config = config
        self._engine = engine
        self._flash_loan = flash_loan
        self._limiter = limiter or RateLimiter()
        self._program_id = Pubkey.from_string(config.program_id)
        if self._program_id not in SEED_TABLES:
            logger.info(
                "%s: using %s seeds for program %s",
                self.protocol.label,
                self.canonical_program_id,
                self._program_id,
            )
            register_seed_table(
                self._program_id, SEED_TABLES[self.canonical_program_id]
            )
        self._mint_cache: dict[Pubkey, Pubkey] = {}
        self.params = EvaluationParams(
            bonus_basis_points=config.liquidation_bonus_bps,
            gas_estimate=engine.gas_estimate,
            slippage_basis_points=engine.slippage_basis_points,
        )

    @property
    def program_id(self) -> Pubkey:
        return self._program_id

    # -- per-program hooks ---------------------------------------------------

    def account_filters(self) -> list[AccountFilter]:
        raise NotImplementedError

    def decode(self, address: Pubkey, data: bytes) -> PositionRecord:
        raise NotImplementedError

    def decode_mint(self, data: bytes | None) -> Pubkey:
        raise NotImplementedError

    async def flash_loan_plan(
        self, opportunity: LiquidationOpportunity, liquidator: Pubkey
    ) -> FlashLoanPlan:
        raise NotImplementedError

    async def liquidation_instructions(
        self, opportunity: LiquidationOpportunity, liquidator: Pubkey
    ) -> list[Instruction]:
        raise NotImplementedError

    # -- I/O -----------------------------------------------------------------

    async def _fetch_accounts(self) -> list[ProgramAccount]:
        async def fetch() -> list[ProgramAccount]:
            async with self._limiter:
                return await self._client.get_program_accounts(
                    self._program_id, self.account_filters()
                )

        return await retry_with_backoff(
            fetch,
            max_attempts=self._engine.max_retries,
            initial_delay=self._engine.retry_delay_seconds,
        )

    async def mint_of(self, reserve: Pubkey) -> Pubkey:
        """Liquidity mint of a reserve/bank, cached; default address on failure."""
        if reserve == DEFAULT_PUBKEY:
            return DEFAULT_PUBKEY
        if reserve in self._mint_cache:
            return self._mint_cache[reserve]

        try:
            async with self._limiter:
                data = await self._client.get_account_data(reserve)
        except Exception as e:
            logger.warning("Could not fetch reserve %s: %s", reserve, e)
            return DEFAULT_PUBKEY

        mint = self.decode_mint(data)
        if mint != DEFAULT_PUBKEY:
            self._mint_cache[reserve] = mint
        return mint

    # -- pipeline ------------------------------------------------------------

    async def scan(self) -> ProtocolScan:
        """One full pass over the program's accounts.

        Fetch errors propagate; per-account decode errors are counted.
        """
        label = self.protocol.label
        accounts = await self._fetch_accounts()
        logger.info("%s: fetched %d accounts", label, len(accounts))

        opportunities: list[LiquidationOpportunity] = []
        decoded = 0
        failures = 0
        skipped = 0
        batch = max(self._engine.batch_size, 1)

        for start in range(0, len(accounts), batch):
            for account in accounts[start : start + batch]:
                try:
                    record = self.decode(account.address, account.data)
                except DecodeError as e:
                    failures += 1
                    logger.debug("%s: %s", label, e)
                    continue
                decoded += 1

                opportunity = evaluate(record, self.params)
                if opportunity is None:
                    skipped += 1
                    continue

                opportunities.append(
                    replace(
                        opportunity,
                        collateral_mint=await self.mint_of(record.primary_collateral_reserve),
                        debt_mint=await self.mint_of(record.primary_debt_reserve),
                    )
                )
            # Let sibling scans run between batches.
            await asyncio.sleep(0)

        logger.info(
            "%s: %d decoded, %d opportunities, %d skipped, %d decode failures",
            label,
            decoded,
            len(opportunities),
            skipped,
            failures,
        )
        return ProtocolScan(
            protocol=self.protocol,
            opportunities=tuple(opportunities),
            fetched=len(accounts),
            decoded=decoded,
            decode_failures=failures,
            skipped=skipped,
        )

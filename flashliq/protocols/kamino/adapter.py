"""Kamino Lending adapter: scans obligations and builds liquidations."""
from __future__ import annotations

import logging

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ...assembler import plan_flash_loan
from ...derivation import (
    KAMINO_PROGRAM_ID,
    associated_token_address,
    derive_program_address,
)
from ...interfaces.chain import AccountFilter
from ...models import FlashLoanPlan, LiquidationOpportunity, PositionRecord, Protocol
from ..base import LendingAdapter
from . import instructions, layout

logger = logging.getLogger(__name__)

# Offset of the lending market pubkey used by the RPC-side filter.
_MARKET_FILTER_OFFSET = 32


class KaminoAdapter(LendingAdapter):
    """Obligations of one Kamino lending market.

    Flash loans are drawn from the obligation's own debt reserve.
    """

    protocol = Protocol.KAMINO
    canonical_program_id = KAMINO_PROGRAM_ID

    @property
    def lending_market(self) -> Pubkey:
        return Pubkey.from_string(self._config.market)

    def account_filters(self) -> list[AccountFilter]:
        filters = [AccountFilter.data_size(self._config.account_size)]
        if self._config.market:
            filters.append(
                AccountFilter.memcmp(_MARKET_FILTER_OFFSET, bytes(self.lending_market))
            )
        return filters

    def decode(self, address: Pubkey, data: bytes) -> PositionRecord:
        return layout.decode_obligation(address, data)

    def decode_mint(self, data: bytes | None) -> Pubkey:
        return layout.decode_reserve_mint(data)

    async def flash_loan_plan(
        self, opportunity: LiquidationOpportunity, liquidator: Pubkey
    ) -> FlashLoanPlan:
        return plan_flash_loan(
            program_id=self.program_id,
            lending_market=self.lending_market,
            reserve=opportunity.debt_reserve,
            liquidity_mint=opportunity.debt_mint,
            user=liquidator,
            principal=opportunity.max_repayable_debt,
            buffer_bps=self._engine.flash_fee_buffer_bps,
        )

    async def liquidation_instructions(
        self, opportunity: LiquidationOpportunity, liquidator: Pubkey
    ) -> list[Instruction]:
        program = self.program_id
        market = self.lending_market
        repay_reserve = opportunity.debt_reserve
        withdraw_reserve = opportunity.collateral_reserve
        repay_ata = associated_token_address(liquidator, opportunity.debt_mint)
        collateral_ata = associated_token_address(liquidator, opportunity.collateral_mint)

        return [
            instructions.liquidate_obligation_and_redeem_reserve_collateral(
                liquidator=liquidator,
                obligation=opportunity.account_address,
                lending_market=market,
                lending_market_authority=derive_program_address("authority", market, program),
                repay_reserve=repay_reserve,
                repay_reserve_liquidity_mint=opportunity.debt_mint,
                repay_reserve_liquidity_supply=derive_program_address(
                    "liquidity", repay_reserve, program
                ),
                withdraw_reserve=withdraw_reserve,
                withdraw_reserve_collateral_mint=opportunity.collateral_mint,
                withdraw_reserve_collateral_supply=derive_program_address(
                    "collateral", withdraw_reserve, program
                ),
                withdraw_reserve_liquidity_supply=derive_program_address(
                    "liquidity", withdraw_reserve, program
                ),
                withdraw_reserve_liquidity_fee_receiver=derive_program_address(
                    "fee-receiver", withdraw_reserve, program
                ),
                user_source_liquidity=repay_ata,
                user_destination_collateral=collateral_ata,
                user_destination_liquidity=collateral_ata,
                liquidity_amount=opportunity.max_repayable_debt,
                program_id=program,
            )
        ]

"""marginfi v2 adapter: scans margin accounts and builds liquidations."""
from __future__ import annotations

import logging

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ...assembler import plan_flash_loan
from ...derivation import MARGINFI_PROGRAM_ID, derive_program_address
from ...errors import DerivationError
from ...interfaces.chain import AccountFilter
from ...models import FlashLoanPlan, LiquidationOpportunity, PositionRecord, Protocol
from ..base import LendingAdapter
from . import instructions, layout

logger = logging.getLogger(__name__)

_GROUP_OFFSET = 8


class MarginfiAdapter(LendingAdapter):
    """Margin accounts of one marginfi group.

    marginfi has no flash-borrow pair of the required shape, so the debt is
    borrowed from the Kamino reserve configured for the debt mint.
    """

    protocol = Protocol.MARGINFI
    canonical_program_id = MARGINFI_PROGRAM_ID

    @property
    def group(self) -> Pubkey:
        return Pubkey.from_string(self._config.market)

    def account_filters(self) -> list[AccountFilter]:
        filters = [AccountFilter.data_size(self._config.account_size)]
        if self._config.market:
            filters.append(AccountFilter.memcmp(_GROUP_OFFSET, bytes(self.group)))
        return filters

    def decode(self, address: Pubkey, data: bytes) -> PositionRecord:
        return layout.decode_margin_account(address, data)

    def decode_mint(self, data: bytes | None) -> Pubkey:
        return layout.decode_bank_mint(data)

    def _flash_reserve(self, mint: Pubkey) -> Pubkey:
        reserve = self._flash_loan.reserves.get(str(mint))
        if not reserve:
            raise DerivationError(f"No flash loan reserve configured for mint {mint}")
        return Pubkey.from_string(reserve)

    async def flash_loan_plan(
        self, opportunity: LiquidationOpportunity, liquidator: Pubkey
    ) -> FlashLoanPlan:
        return plan_flash_loan(
            program_id=Pubkey.from_string(self._flash_loan.program_id),
            lending_market=Pubkey.from_string(self._flash_loan.lending_market),
            reserve=self._flash_reserve(opportunity.debt_mint),
            liquidity_mint=opportunity.debt_mint,
            user=liquidator,
            principal=opportunity.max_repayable_debt,
            buffer_bps=self._engine.flash_fee_buffer_bps,
        )

    async def liquidation_instructions(
        self, opportunity: LiquidationOpportunity, liquidator: Pubkey
    ) -> list[Instruction]:
        if not self._config.liquidator_account:
            raise DerivationError("marginfi liquidator_account is not configured")

        program = self.program_id
        liab_bank = opportunity.debt_reserve
        return [
            instructions.lending_account_liquidate(
                group=self.group,
                asset_bank=opportunity.collateral_reserve,
                liab_bank=liab_bank,
                liquidator_marginfi_account=Pubkey.from_string(
                    self._config.liquidator_account
                ),
                signer=liquidator,
                liquidatee_marginfi_account=opportunity.account_address,
                bank_liquidity_vault_authority=derive_program_address(
                    "vault-authority", liab_bank, program
                ),
                bank_liquidity_vault=derive_program_address(
                    "liquidity-vault", liab_bank, program
                ),
                bank_insurance_vault=derive_program_address(
                    "insurance-vault", liab_bank, program
                ),
                asset_amount=opportunity.max_repayable_debt,
                program_id=program,
            )
        ]

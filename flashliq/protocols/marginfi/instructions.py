"""marginfi v2 instruction builders (pure, no I/O)."""
from __future__ import annotations

import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from ...derivation import MARGINFI_PROGRAM_ID, TOKEN_PROGRAM_ID

# sha256("global:lending_account_liquidate")[:8]
LIQUIDATE_DISCRIMINATOR = bytes.fromhex("d6a997d5fba756db")


def lending_account_liquidate(
    group: Pubkey,
    asset_bank: Pubkey,
    liab_bank: Pubkey,
    liquidator_marginfi_account: Pubkey,
    signer: Pubkey,
    liquidatee_marginfi_account: Pubkey,
    bank_liquidity_vault_authority: Pubkey,
    bank_liquidity_vault: Pubkey,
    bank_insurance_vault: Pubkey,
    asset_amount: int,
    program_id: Pubkey = MARGINFI_PROGRAM_ID,
) -> Instruction:
    """Seize ``asset_amount`` of the liquidatee's asset bank balance."""
    accounts = [
        AccountMeta(pubkey=group, is_signer=False, is_writable=False),
        AccountMeta(pubkey=asset_bank, is_signer=False, is_writable=True),
        AccountMeta(pubkey=liab_bank, is_signer=False, is_writable=True),
        AccountMeta(pubkey=liquidator_marginfi_account, is_signer=False, is_writable=True),
        AccountMeta(pubkey=signer, is_signer=True, is_writable=False),
        AccountMeta(pubkey=liquidatee_marginfi_account, is_signer=False, is_writable=True),
        AccountMeta(
            pubkey=bank_liquidity_vault_authority, is_signer=False, is_writable=False
        ),
        AccountMeta(pubkey=bank_liquidity_vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=bank_insurance_vault, is_signer=False, is_writable=True),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    data = LIQUIDATE_DISCRIMINATOR + struct.pack("<Q", asset_amount)
    return Instruction(program_id=program_id, accounts=accounts, data=data)

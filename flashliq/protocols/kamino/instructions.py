"""Kamino Lending instruction builders (pure, no I/O)."""
from __future__ import annotations

import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from ...derivation import KAMINO_PROGRAM_ID, SYSVAR_INSTRUCTIONS_ID, TOKEN_PROGRAM_ID

# sha256("global:<name>")[:8]
FLASH_BORROW_DISCRIMINATOR = bytes.fromhex("87e734a70734d4c1")
FLASH_REPAY_DISCRIMINATOR = bytes.fromhex("b97500cb60f5b4ba")
LIQUIDATE_DISCRIMINATOR = bytes.fromhex("b1479abce2854a37")


def _w(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=True)


def _r(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=False)


def flash_borrow_reserve_liquidity(
    lending_market: Pubkey,
    lending_market_authority: Pubkey,
    reserve: Pubkey,
    reserve_liquidity_mint: Pubkey,
    reserve_source_liquidity: Pubkey,
    user_destination_liquidity: Pubkey,
    amount: int,
    program_id: Pubkey = KAMINO_PROGRAM_ID,
) -> Instruction:
    accounts = [
        _r(lending_market),
        _r(lending_market_authority),
        _w(reserve),
        _r(reserve_liquidity_mint),
        _w(reserve_source_liquidity),
        _w(user_destination_liquidity),
        _r(SYSVAR_INSTRUCTIONS_ID),
        _r(TOKEN_PROGRAM_ID),
    ]
    data = FLASH_BORROW_DISCRIMINATOR + struct.pack("<Q", amount)
    return Instruction(program_id=program_id, accounts=accounts, data=data)


def flash_repay_reserve_liquidity(
    user_source_liquidity: Pubkey,
    reserve_destination_liquidity: Pubkey,
    reserve_liquidity_fee_receiver: Pubkey,
    reserve: Pubkey,
    lending_market: Pubkey,
    user_transfer_authority: Pubkey,
    amount: int,
    borrow_instruction_index: int,
    program_id: Pubkey = KAMINO_PROGRAM_ID,
) -> Instruction:
    """Repay ``amount`` borrowed by the instruction at ``borrow_instruction_index``."""
    accounts = [
        _w(user_source_liquidity),
        _w(reserve_destination_liquidity),
        _w(reserve_liquidity_fee_receiver),
        _w(reserve),
        _r(lending_market),
        AccountMeta(pubkey=user_transfer_authority, is_signer=True, is_writable=False),
        _r(SYSVAR_INSTRUCTIONS_ID),
        _r(TOKEN_PROGRAM_ID),
    ]
    data = FLASH_REPAY_DISCRIMINATOR + struct.pack("<QB", amount, borrow_instruction_index)
    return Instruction(program_id=program_id, accounts=accounts, data=data)


def liquidate_obligation_and_redeem_reserve_collateral(
    liquidator: Pubkey,
    obligation: Pubkey,
    lending_market: Pubkey,
    lending_market_authority: Pubkey,
    repay_reserve: Pubkey,
    repay_reserve_liquidity_mint: Pubkey,
    repay_reserve_liquidity_supply: Pubkey,
    withdraw_reserve: Pubkey,
    withdraw_reserve_collateral_mint: Pubkey,
    withdraw_reserve_collateral_supply: Pubkey,
    withdraw_reserve_liquidity_supply: Pubkey,
    withdraw_reserve_liquidity_fee_receiver: Pubkey,
    user_source_liquidity: Pubkey,
    user_destination_collateral: Pubkey,
    user_destination_liquidity: Pubkey,
    liquidity_amount: int,
    min_acceptable_received_collateral: int = 1,
    max_allowed_ltv_override_percent: int = 0,
    program_id: Pubkey = KAMINO_PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(pubkey=liquidator, is_signer=True, is_writable=True),
        _w(obligation),
        _r(lending_market),
        _r(lending_market_authority),
        _w(repay_reserve),
        _r(repay_reserve_liquidity_mint),
        _w(repay_reserve_liquidity_supply),
        _w(withdraw_reserve),
        _r(withdraw_reserve_collateral_mint),
        _w(withdraw_reserve_collateral_supply),
        _w(withdraw_reserve_liquidity_supply),
        _w(withdraw_reserve_liquidity_fee_receiver),
        _w(user_source_liquidity),
        _w(user_destination_collateral),
        _w(user_destination_liquidity),
        _r(TOKEN_PROGRAM_ID),
        _r(SYSVAR_INSTRUCTIONS_ID),
    ]
    data = LIQUIDATE_DISCRIMINATOR + struct.pack(
        "<QQQ",
        liquidity_amount,
        min_acceptable_received_collateral,
        max_allowed_ltv_override_percent,
    )
    return Instruction(program_id=program_id, accounts=accounts, data=data)

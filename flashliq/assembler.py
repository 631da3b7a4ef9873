"""Flash-loan transaction assembly. Pure, never signs or submits.

Every candidate transaction has the shape::

    [*preamble, flash_borrow, *actions, flash_repay]

and the repay instruction carries the index of the borrow instruction so the
lending program can match the pair.
"""
from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import replace
from typing import Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from .derivation import associated_token_address, derive_program_address
from .errors import QuoteError
from .evaluation import BPS_DENOMINATOR
from .models import FlashLoanPlan
from .protocols.kamino.instructions import (
    flash_borrow_reserve_liquidity,
    flash_repay_reserve_liquidity,
)

logger = logging.getLogger(__name__)

COMPUTE_BUDGET_PROGRAM_ID = Pubkey.from_string(
    "ComputeBudget111111111111111111111111111111"
)
DEFAULT_COMPUTE_UNITS = 1_000_000
DEFAULT_FEE_BUFFER_BPS = 10


def borrow_amount_with_buffer(principal: int, buffer_bps: int = DEFAULT_FEE_BUFFER_BPS) -> int:
    """Principal plus a fee buffer, rounded up."""
    return principal + -(-principal * buffer_bps // BPS_DENOMINATOR)


def plan_flash_loan(
    program_id: Pubkey,
    lending_market: Pubkey,
    reserve: Pubkey,
    liquidity_mint: Pubkey,
    user: Pubkey,
    principal: int,
    buffer_bps: int = DEFAULT_FEE_BUFFER_BPS,
) -> FlashLoanPlan:
    """Derive every address a flash borrow/repay pair on ``reserve`` needs.

    Raises:
        DerivationError: a seed is the default address or the program is unknown.
    """
    return FlashLoanPlan(
        program_id=program_id,
        lending_market=lending_market,
        lending_market_authority=derive_program_address(
            "authority", lending_market, program_id
        ),
        reserve=reserve,
        liquidity_mint=liquidity_mint,
        reserve_liquidity_supply=derive_program_address("liquidity", reserve, program_id),
        reserve_fee_receiver=derive_program_address("fee-receiver", reserve, program_id),
        user_token_account=associated_token_address(user, liquidity_mint),
        borrow_amount=borrow_amount_with_buffer(principal, buffer_bps),
        owner=user,
    )


def compute_budget_preamble(
    units: int = DEFAULT_COMPUTE_UNITS, micro_lamports: int = 0
) -> list[Instruction]:
    preamble = [set_compute_unit_limit(units)]
    if micro_lamports > 0:
        preamble.append(set_compute_unit_price(micro_lamports))
    return preamble


def assemble(
    plan: FlashLoanPlan,
    actions: Sequence[Instruction],
    preamble: Sequence[Instruction] = (),
) -> list[Instruction]:
    """Wrap ``actions`` between a flash borrow and its matching repay."""
    plan = replace(plan, borrow_instruction_index=len(preamble))

    borrow = flash_borrow_reserve_liquidity(
        lending_market=plan.lending_market,
        lending_market_authority=plan.lending_market_authority,
        reserve=plan.reserve,
        reserve_liquidity_mint=plan.liquidity_mint,
        reserve_source_liquidity=plan.reserve_liquidity_supply,
        user_destination_liquidity=plan.user_token_account,
        amount=plan.borrow_amount,
        program_id=plan.program_id,
    )
    repay = flash_repay_reserve_liquidity(
        user_source_liquidity=plan.user_token_account,
        reserve_destination_liquidity=plan.reserve_liquidity_supply,
        reserve_liquidity_fee_receiver=plan.reserve_fee_receiver,
        reserve=plan.reserve,
        lending_market=plan.lending_market,
        user_transfer_authority=plan.owner,
        amount=plan.borrow_amount,
        borrow_instruction_index=plan.borrow_instruction_index,
        program_id=plan.program_id,
    )

    instructions = [*preamble, borrow, *actions, repay]
    logger.debug(
        "Assembled %d instructions (borrow %d at index %d)",
        len(instructions),
        plan.borrow_amount,
        plan.borrow_instruction_index,
    )
    return instructions


def extract_swap_instructions(payload: str) -> list[Instruction]:
    """Decode a base64 swap transaction into standalone instructions.

    Compute-budget instructions are dropped. Payloads relying on address
    lookup tables are rejected with :class:`QuoteError`.
    """
    try:
        tx = VersionedTransaction.from_bytes(base64.b64decode(payload))
    except (binascii.Error, ValueError) as e:
        raise QuoteError(f"Undecodable swap transaction: {e}") from e

    message = tx.message
    if getattr(message, "address_table_lookups", None):
        raise QuoteError("Swap transaction uses address lookup tables")

    header = message.header
    keys = list(message.account_keys)
    n = len(keys)
    signed = header.num_required_signatures
    writable_signed = signed - header.num_readonly_signed_accounts
    writable_unsigned_end = n - header.num_readonly_unsigned_accounts

    def meta(index: int) -> AccountMeta:
        return AccountMeta(
            pubkey=keys[index],
            is_signer=index < signed,
            is_writable=index < writable_signed
            or signed <= index < writable_unsigned_end,
        )

    instructions: list[Instruction] = []
    for compiled in message.instructions:
        program_id = keys[compiled.program_id_index]
        if program_id == COMPUTE_BUDGET_PROGRAM_ID:
            continue
        instructions.append(
            Instruction(
                program_id=program_id,
                accounts=[meta(i) for i in bytes(compiled.accounts)],
                data=bytes(compiled.data),
            )
        )
    return instructions

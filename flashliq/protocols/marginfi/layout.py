"""Pure decoding functions for marginfi v2 accounts, no I/O.

Balances are stored as I80F48 fixed-point shares: a signed 128-bit
little-endian integer with 48 fractional bits.
"""
from __future__ import annotations

import hashlib
import logging

from solders.pubkey import Pubkey

from ...errors import DecodeError
from ...models import DEFAULT_PUBKEY, PositionRecord, Protocol

logger = logging.getLogger(__name__)

ACCOUNT_DISCRIMINATOR = hashlib.sha256(b"account:MarginfiAccount").digest()[:8]

VALUE_SCALE = 2**48

_GROUP = 8
_AUTHORITY = 40
BALANCES_OFFSET = 72
BALANCE_SIZE = 104
MAX_BALANCES = 16

_ACTIVE = 0
_BANK_PK = 1
_ASSET_SHARES = 40
_LIABILITY_SHARES = 56

ACCOUNT_MIN_SIZE = BALANCES_OFFSET + MAX_BALANCES * BALANCE_SIZE

# Bank account: mint pubkey directly after the discriminator.
BANK_MINT = 8


def read_i80f48(data: bytes, offset: int) -> int:
    """Raw signed I80F48 value (divide by ``VALUE_SCALE`` for units)."""
    return int.from_bytes(data[offset : offset + 16], "little", signed=True)


def decode_margin_account(address: Pubkey, data: bytes) -> PositionRecord:
    """Decode a marginfi account into a :class:`PositionRecord`.

    Collateral and debt are the sums of positive asset and liability shares
    over active balances. The unhealthy threshold equals the collateral, so
    the health ratio is assets over liabilities.
    """
    if len(data) < ACCOUNT_MIN_SIZE:
        raise DecodeError(
            f"Margin account {address} too short: {len(data)} < {ACCOUNT_MIN_SIZE}"
        )

    discriminator_ok = data[:8] == ACCOUNT_DISCRIMINATOR
    if not discriminator_ok:
        logger.warning(
            "Margin account %s has unexpected discriminator %s",
            address,
            data[:8].hex(),
        )

    collateral = 0
    debt = 0
    collateral_bank = DEFAULT_PUBKEY
    debt_bank = DEFAULT_PUBKEY
    collateral_shares = 0
    debt_shares = 0

    for i in range(MAX_BALANCES):
        start = BALANCES_OFFSET + i * BALANCE_SIZE
        if data[start + _ACTIVE] == 0:
            continue
        bank = Pubkey.from_bytes(data[start + _BANK_PK : start + _BANK_PK + 32])
        assets = read_i80f48(data, start + _ASSET_SHARES)
        liabilities = read_i80f48(data, start + _LIABILITY_SHARES)

        if assets > 0:
            collateral += assets
            if collateral_bank == DEFAULT_PUBKEY and bank != DEFAULT_PUBKEY:
                collateral_bank = bank
                collateral_shares = assets
        if liabilities > 0:
            debt += liabilities
            if debt_bank == DEFAULT_PUBKEY and bank != DEFAULT_PUBKEY:
                debt_bank = bank
                debt_shares = liabilities

    return PositionRecord(
        program=Protocol.MARGINFI,
        account_address=address,
        owner_address=Pubkey.from_bytes(data[_AUTHORITY : _AUTHORITY + 32]),
        collateral_value=collateral,
        debt_value=debt,
        unhealthy_threshold_value=collateral,
        value_scale=VALUE_SCALE,
        primary_collateral_reserve=collateral_bank,
        primary_debt_reserve=debt_bank,
        collateral_amount=collateral_shares // VALUE_SCALE,
        debt_amount=debt_shares // VALUE_SCALE,
        market_address=Pubkey.from_bytes(data[_GROUP : _GROUP + 32]),
        discriminator_ok=discriminator_ok,
    )


def decode_bank_mint(data: bytes | None) -> Pubkey:
    """Mint of a bank account; default address if unreadable."""
    if not data or len(data) < BANK_MINT + 32:
        return DEFAULT_PUBKEY
    return Pubkey.from_bytes(data[BANK_MINT : BANK_MINT + 32])

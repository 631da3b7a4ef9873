"""Pure decoding functions for Kamino Lending accounts, no I/O."""
from __future__ import annotations

import hashlib
import logging
import struct

from solders.pubkey import Pubkey

from ...errors import DecodeError
from ...models import DEFAULT_PUBKEY, PositionRecord, Protocol

logger = logging.getLogger(__name__)

OBLIGATION_DISCRIMINATOR = hashlib.sha256(b"account:Obligation").digest()[:8]

# Fixed-point divisor for *_sf market values.
VALUE_SCALE = 10**6

OBLIGATION_MIN_SIZE = 500

_LENDING_MARKET = 24
_OWNER = 56
_DEPOSITED_VALUE_SF = 88
_BORROWED_VALUE_SF = 104
_UNHEALTHY_BORROW_VALUE_SF = 136

DEPOSITS_OFFSET = 200
DEPOSIT_SIZE = 80
BORROWS_OFFSET = 850
BORROW_SIZE = 96
MAX_ENTRIES = 8

# Reserve account: liquidity mint pubkey.
RESERVE_LIQUIDITY_MINT = 128


def _pubkey(data: bytes, offset: int) -> Pubkey:
    return Pubkey.from_bytes(data[offset : offset + 32])


def _u64(data: bytes, offset: int) -> int:
    return struct.unpack_from("<Q", data, offset)[0]


def _u128(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset : offset + 16], "little")


def _first_entry(
    data: bytes, base: int, stride: int, amount_reader
) -> tuple[Pubkey, int]:
    """First slot whose reserve is set, or (default, 0)."""
    for i in range(MAX_ENTRIES):
        start = base + i * stride
        if start + stride > len(data):
            break
        reserve = _pubkey(data, start)
        if reserve != DEFAULT_PUBKEY:
            return reserve, amount_reader(data, start + 32)
    return DEFAULT_PUBKEY, 0


def decode_obligation(address: Pubkey, data: bytes) -> PositionRecord:
    """Decode a Kamino obligation account into a :class:`PositionRecord`.

    Raises:
        DecodeError: buffer shorter than ``OBLIGATION_MIN_SIZE``.
    """
    if len(data) < OBLIGATION_MIN_SIZE:
        raise DecodeError(
            f"Obligation {address} too short: {len(data)} < {OBLIGATION_MIN_SIZE}"
        )

    discriminator_ok = data[:8] == OBLIGATION_DISCRIMINATOR
    if not discriminator_ok:
        logger.warning(
            "Obligation %s has unexpected discriminator %s", address, data[:8].hex()
        )

    try:
        collateral_reserve, collateral_amount = _first_entry(
            data, DEPOSITS_OFFSET, DEPOSIT_SIZE, _u64
        )
        debt_reserve, borrowed_sf = _first_entry(
            data, BORROWS_OFFSET, BORROW_SIZE, _u128
        )

        return PositionRecord(
            program=Protocol.KAMINO,
            account_address=address,
            owner_address=_pubkey(data, _OWNER),
            collateral_value=_u128(data, _DEPOSITED_VALUE_SF),
            debt_value=_u128(data, _BORROWED_VALUE_SF),
            unhealthy_threshold_value=_u128(data, _UNHEALTHY_BORROW_VALUE_SF),
            value_scale=VALUE_SCALE,
            primary_collateral_reserve=collateral_reserve,
            primary_debt_reserve=debt_reserve,
            collateral_amount=collateral_amount,
            debt_amount=borrowed_sf // VALUE_SCALE,
            market_address=_pubkey(data, _LENDING_MARKET),
            discriminator_ok=discriminator_ok,
        )
    except (struct.error, ValueError) as e:
        raise DecodeError(f"Obligation {address} malformed: {e}") from e


def decode_reserve_mint(data: bytes | None) -> Pubkey:
    """Liquidity mint of a reserve account; default address if unreadable."""
    if not data or len(data) < RESERVE_LIQUIDITY_MINT + 32:
        return DEFAULT_PUBKEY
    return _pubkey(data, RESERVE_LIQUIDITY_MINT)

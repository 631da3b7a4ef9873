"""Unit tests for the Kamino obligation and reserve decoders."""
from __future__ import annotations

import logging
from typing import Callable

import pytest
from solders.pubkey import Pubkey

from flashliq.errors import DecodeError
from flashliq.models import DEFAULT_PUBKEY, Protocol
from flashliq.protocols.kamino.layout import (
    OBLIGATION_DISCRIMINATOR,
    OBLIGATION_MIN_SIZE,
    VALUE_SCALE,
    decode_obligation,
    decode_reserve_mint,
)


class TestDiscriminator:
    def test_matches_anchor_account_hash(self) -> None:
        assert OBLIGATION_DISCRIMINATOR == bytes([168, 206, 141, 106, 88, 76, 172, 167])


class TestDecodeObligation:
    def test_decodes_values_and_reserves(
        self, obligation_factory: Callable[..., bytes]
    ) -> None:
        owner, market = Pubkey.new_unique(), Pubkey.new_unique()
        deposit, borrow = Pubkey.new_unique(), Pubkey.new_unique()
        address = Pubkey.new_unique()
        data = obligation_factory(
            deposited_sf=3 * 10**12,
            borrowed_sf=2 * 10**12,
            unhealthy_sf=10**12,
            deposit_reserve=deposit,
            deposit_amount=42_000,
            borrow_reserve=borrow,
            borrow_entry_sf=7 * VALUE_SCALE,
            owner=owner,
            market=market,
        )

        record = decode_obligation(address, data)

        assert record.program is Protocol.KAMINO
        assert record.account_address == address
        assert record.owner_address == owner
        assert record.market_address == market
        assert record.collateral_value == 3 * 10**12
        assert record.debt_value == 2 * 10**12
        assert record.unhealthy_threshold_value == 10**12
        assert record.value_scale == VALUE_SCALE
        assert record.primary_collateral_reserve == deposit
        assert record.primary_debt_reserve == borrow
        assert record.collateral_amount == 42_000
        assert record.debt_amount == 7
        assert record.discriminator_ok is True
        assert record.is_actionable

    def test_short_buffer_raises(self) -> None:
        with pytest.raises(DecodeError, match="too short"):
            decode_obligation(Pubkey.new_unique(), bytes(OBLIGATION_MIN_SIZE - 1))

    def test_minimum_size_decodes_without_reserves(self) -> None:
        record = decode_obligation(Pubkey.new_unique(), bytes(OBLIGATION_MIN_SIZE))
        assert record.primary_collateral_reserve == DEFAULT_PUBKEY
        assert record.primary_debt_reserve == DEFAULT_PUBKEY
        assert not record.is_actionable

    def test_discriminator_mismatch_logs_but_decodes(
        self,
        obligation_factory: Callable[..., bytes],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        data = obligation_factory(borrowed_sf=5, discriminator=b"\x01" * 8)
        with caplog.at_level(logging.WARNING):
            record = decode_obligation(Pubkey.new_unique(), data)
        assert record.discriminator_ok is False
        assert record.debt_value == 5
        assert "unexpected discriminator" in caplog.text

    def test_first_non_default_reserve_wins(
        self, obligation_factory: Callable[..., bytes]
    ) -> None:
        expected = Pubkey.new_unique()
        data = bytearray(
            obligation_factory(deposit_reserve=expected, deposit_amount=9, deposit_slot=3)
        )
        off = 200 + 5 * 80
        data[off : off + 32] = bytes(Pubkey.new_unique())

        record = decode_obligation(Pubkey.new_unique(), bytes(data))

        assert record.primary_collateral_reserve == expected
        assert record.collateral_amount == 9

    def test_all_default_reserves_is_non_actionable(
        self, obligation_factory: Callable[..., bytes]
    ) -> None:
        record = decode_obligation(
            Pubkey.new_unique(), obligation_factory(borrowed_sf=10**12)
        )
        assert record.has_debt
        assert not record.is_actionable


class TestDecodeReserveMint:
    def test_reads_mint(self, reserve_factory: Callable[[Pubkey], bytes]) -> None:
        mint = Pubkey.new_unique()
        assert decode_reserve_mint(reserve_factory(mint)) == mint

    def test_missing_account_is_default(self) -> None:
        assert decode_reserve_mint(None) == DEFAULT_PUBKEY

    def test_short_account_is_default(self) -> None:
        assert decode_reserve_mint(bytes(100)) == DEFAULT_PUBKEY

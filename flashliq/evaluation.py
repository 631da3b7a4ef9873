"""Pure health and profit arithmetic, no I/O.

All amounts are integer base units; integer division truncates toward zero
for the non-negative values used here.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Iterable, TypeVar

from solders.pubkey import Pubkey

from .models import (
    DEFAULT_PUBKEY,
    ArbitrageOpportunity,
    LiquidationOpportunity,
    PositionRecord,
)

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000
FLASH_LOAN_FEE_BPS = 9
CLOSE_FACTOR_DIVISOR = 2

T = TypeVar("T", bound="LiquidationOpportunity | ArbitrageOpportunity")


@dataclass(frozen=True)
class EvaluationParams:
    bonus_basis_points: int
    gas_estimate: int = 5000
    slippage_basis_points: int = 300


def health_ratio(record: PositionRecord) -> float:
    """Threshold over debt; ``inf`` without debt, ``0.0`` without threshold.

    Computed exactly so that an eligible record always reports a ratio
    strictly below 1.0, even when float division of 128-bit values would
    round up to it.
    """
    if record.debt_value == 0:
        return math.inf
    if record.unhealthy_threshold_value == 0:
        return 0.0
    ratio = float(Fraction(record.unhealthy_threshold_value, record.debt_value))
    if record.debt_value > record.unhealthy_threshold_value:
        return min(ratio, math.nextafter(1.0, 0.0))
    return ratio


def is_eligible(record: PositionRecord) -> bool:
    return record.has_debt and record.debt_value > record.unhealthy_threshold_value


def max_repayable_debt(record: PositionRecord) -> int:
    """Half the debt in base units (50% close factor)."""
    return record.debt_base_units // CLOSE_FACTOR_DIVISOR


def estimate_net_profit(
    amount: int, bonus_bps: int, gas: int, slippage_bps: int
) -> int:
    bonus = amount * bonus_bps // BPS_DENOMINATOR
    slippage = amount * slippage_bps // BPS_DENOMINATOR
    return bonus - gas - slippage


def evaluate(
    record: PositionRecord,
    params: EvaluationParams,
    collateral_mint: Pubkey = DEFAULT_PUBKEY,
    debt_mint: Pubkey = DEFAULT_PUBKEY,
) -> LiquidationOpportunity | None:
    """Turn an eligible record into an opportunity, or ``None``.

    Records still pointing at default reserve addresses are never actionable.
    """
    if not record.is_actionable or not is_eligible(record):
        return None

    amount = max_repayable_debt(record)
    profit = estimate_net_profit(
        amount,
        params.bonus_basis_points,
        params.gas_estimate,
        params.slippage_basis_points,
    )
    if profit <= 0:
        logger.debug(
            "Skipping %s: repay %d yields non-positive profit %d",
            record.account_address,
            amount,
            profit,
        )
        return None

    return LiquidationOpportunity(
        protocol=record.program,
        account_address=record.account_address,
        owner_address=record.owner_address,
        collateral_reserve=record.primary_collateral_reserve,
        debt_reserve=record.primary_debt_reserve,
        health_ratio=health_ratio(record),
        max_repayable_debt=amount,
        bonus_basis_points=params.bonus_basis_points,
        estimated_net_profit=profit,
        collateral_mint=collateral_mint,
        debt_mint=debt_mint,
        collateral_amount=record.collateral_amount,
        debt_amount=record.debt_amount,
    )


def flash_loan_fee(amount: int) -> int:
    """Kamino flash loan fee: 0.09%."""
    return amount * FLASH_LOAN_FEE_BPS // BPS_DENOMINATOR


def roundtrip_profit(amount_in: int, amount_returned: int, gas: int) -> int:
    return amount_returned - amount_in - flash_loan_fee(amount_in) - gas


def _profit(item: LiquidationOpportunity | ArbitrageOpportunity) -> int:
    if isinstance(item, ArbitrageOpportunity):
        return item.expected_net_profit
    return item.estimated_net_profit


def rank_by_profit(items: Iterable[T]) -> list[T]:
    """Sort by descending net profit; ties keep their input order."""
    return sorted(items, key=_profit, reverse=True)

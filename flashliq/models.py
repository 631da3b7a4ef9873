"""Frozen data models shared across scanning and execution."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from solders.pubkey import Pubkey

DEFAULT_PUBKEY = Pubkey.default()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Protocol(Enum):
    """Lending programs the scanner understands."""

    KAMINO = "kamino"
    MARGINFI = "marginfi"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @classmethod
    def parse(cls, name: str) -> Protocol:
        """Parse a protocol name, case-insensitively."""
        key = name.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unsupported protocol: {name}")


class ExecutionStatus(Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class PositionRecord:
    """Decoded snapshot of one borrower account in one lending program.

    ``collateral_value``, ``debt_value`` and ``unhealthy_threshold_value`` are
    raw fixed-point integers; divide by ``value_scale`` for base units.
    """

    program: Protocol
    account_address: Pubkey
    owner_address: Pubkey
    collateral_value: int
    debt_value: int
    unhealthy_threshold_value: int
    value_scale: int
    primary_collateral_reserve: Pubkey = DEFAULT_PUBKEY
    primary_debt_reserve: Pubkey = DEFAULT_PUBKEY
    collateral_amount: int = 0
    debt_amount: int = 0
    market_address: Pubkey = DEFAULT_PUBKEY
    discriminator_ok: bool = True

    @property
    def has_debt(self) -> bool:
        return self.debt_value > 0

    @property
    def debt_base_units(self) -> int:
        return self.debt_value // self.value_scale

    @property
    def is_actionable(self) -> bool:
        """Both primary reserves were found in the account."""
        return (
            self.primary_collateral_reserve != DEFAULT_PUBKEY
            and self.primary_debt_reserve != DEFAULT_PUBKEY
        )


@dataclass(frozen=True)
class LiquidationOpportunity:
    """An unhealthy position enriched with liquidation economics."""

    protocol: Protocol
    account_address: Pubkey
    owner_address: Pubkey
    collateral_reserve: Pubkey
    debt_reserve: Pubkey
    health_ratio: float
    max_repayable_debt: int
    bonus_basis_points: int
    estimated_net_profit: int
    collateral_mint: Pubkey = DEFAULT_PUBKEY
    debt_mint: Pubkey = DEFAULT_PUBKEY
    collateral_amount: int = 0
    debt_amount: int = 0
    observed_at: datetime = field(default_factory=_utcnow)

    @property
    def label(self) -> str:
        return self.protocol.label


@dataclass(frozen=True)
class RouteHop:
    """One leg of a swap route: venue label and pool/AMM address."""

    venue_label: str
    pool_address: str


@dataclass(frozen=True)
class Quote:
    """Aggregator quote for a single swap leg."""

    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    price_impact_pct: float = 0.0
    route: tuple[RouteHop, ...] = ()
    raw: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """A round-trip (or longer closed path) price discrepancy."""

    input_mint: str
    output_mint: str
    amount_in: int
    amount_out: int
    expected_net_profit: int
    profit_percent: float
    flash_loan_fee: int
    route: tuple[RouteHop, ...] = ()
    quotes: tuple[Quote, ...] = ()
    observed_at: datetime = field(default_factory=_utcnow)

    @property
    def label(self) -> str:
        return "Arbitrage"


@dataclass(frozen=True)
class FlashLoanPlan:
    """Everything needed to emit one flash borrow/repay pair."""

    program_id: Pubkey
    lending_market: Pubkey
    lending_market_authority: Pubkey
    reserve: Pubkey
    liquidity_mint: Pubkey
    reserve_liquidity_supply: Pubkey
    reserve_fee_receiver: Pubkey
    user_token_account: Pubkey
    borrow_amount: int
    borrow_instruction_index: int = 0
    owner: Pubkey = DEFAULT_PUBKEY


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one execution attempt, successful or not."""

    status: ExecutionStatus
    protocol_label: str
    estimated_profit: int
    signature: str | None = None
    error: str | None = None
    error_kind: str | None = None
    dry_run: bool = False
    simulation_logs: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.status is ExecutionStatus.CONFIRMED


@dataclass(frozen=True)
class ProtocolScan:
    """Result of scanning a single protocol."""

    protocol: Protocol
    opportunities: tuple[LiquidationOpportunity, ...] = ()
    fetched: int = 0
    decoded: int = 0
    decode_failures: int = 0
    skipped: int = 0


@dataclass(frozen=True)
class ScanReport:
    """Aggregated result of one scan cycle across protocols."""

    opportunities: tuple[LiquidationOpportunity, ...] = ()
    decode_failures: int = 0
    skipped: int = 0
    task_errors: dict[str, str] = field(default_factory=dict)

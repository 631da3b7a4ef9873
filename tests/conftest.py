"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from flashliq.config import (
    AppConfig,
    ArbitrageConfig,
    ChainConfig,
    EngineConfig,
    FlashLoanConfig,
    NotificationsConfig,
    ProtocolConfig,
    TelegramConfig,
    WalletConfig,
    _default_protocols,
)
from flashliq.models import LiquidationOpportunity, PositionRecord, Protocol
from flashliq.protocols.kamino import layout as kamino_layout
from flashliq.protocols.marginfi import layout as marginfi_layout

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
SOL_MINT = "So11111111111111111111111111111111111111112"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
USDC_RESERVE = "D6q6wuQSrifJKZYpR1M8R4YawnLDtDsMmWM1NbBmgJ59"
SOL_RESERVE = "d4A2prbA2whesmvHaL88BH6Ewn5N4bTSU2Ze8P6Bc4Q"


# ---------------------------------------------------------------------------
# Raw account builders
# ---------------------------------------------------------------------------


def build_obligation(
    *,
    deposited_sf: int = 0,
    borrowed_sf: int = 0,
    unhealthy_sf: int = 0,
    deposit_reserve: Pubkey | None = None,
    deposit_amount: int = 0,
    deposit_slot: int = 0,
    borrow_reserve: Pubkey | None = None,
    borrow_entry_sf: int = 0,
    borrow_slot: int = 0,
    owner: Pubkey | None = None,
    market: Pubkey | None = None,
    discriminator: bytes = kamino_layout.OBLIGATION_DISCRIMINATOR,
    size: int = 1700,
) -> bytes:
    buf = bytearray(size)
    buf[0:8] = discriminator
    buf[8:16] = (123456).to_bytes(8, "little")
    if market is not None:
        buf[24:56] = bytes(market)
    if owner is not None:
        buf[56:88] = bytes(owner)
    buf[88:104] = deposited_sf.to_bytes(16, "little")
    buf[104:120] = borrowed_sf.to_bytes(16, "little")
    buf[136:152] = unhealthy_sf.to_bytes(16, "little")
    if deposit_reserve is not None:
        off = kamino_layout.DEPOSITS_OFFSET + deposit_slot * kamino_layout.DEPOSIT_SIZE
        buf[off : off + 32] = bytes(deposit_reserve)
        buf[off + 32 : off + 40] = deposit_amount.to_bytes(8, "little")
    if borrow_reserve is not None:
        off = kamino_layout.BORROWS_OFFSET + borrow_slot * kamino_layout.BORROW_SIZE
        buf[off : off + 32] = bytes(borrow_reserve)
        buf[off + 32 : off + 48] = borrow_entry_sf.to_bytes(16, "little")
    return bytes(buf)


def build_margin_account(
    balances: list[tuple[Pubkey, int, int]],
    *,
    group: Pubkey | None = None,
    authority: Pubkey | None = None,
    inactive: tuple[int, ...] = (),
    discriminator: bytes = marginfi_layout.ACCOUNT_DISCRIMINATOR,
) -> bytes:
    """Balances are (bank, raw asset shares, raw liability shares)."""
    buf = bytearray(marginfi_layout.ACCOUNT_MIN_SIZE)
    buf[0:8] = discriminator
    if group is not None:
        buf[8:40] = bytes(group)
    if authority is not None:
        buf[40:72] = bytes(authority)
    for i, (bank, assets, liabilities) in enumerate(balances):
        start = marginfi_layout.BALANCES_OFFSET + i * marginfi_layout.BALANCE_SIZE
        buf[start] = 0 if i in inactive else 1
        buf[start + 1 : start + 33] = bytes(bank)
        buf[start + 40 : start + 56] = assets.to_bytes(16, "little", signed=True)
        buf[start + 56 : start + 72] = liabilities.to_bytes(16, "little", signed=True)
    return bytes(buf)


def build_reserve(mint: Pubkey) -> bytes:
    buf = bytearray(600)
    buf[128:160] = bytes(mint)
    return bytes(buf)


def build_bank(mint: Pubkey) -> bytes:
    buf = bytearray(400)
    buf[8:40] = bytes(mint)
    return bytes(buf)


@pytest.fixture()
def obligation_factory() -> Callable[..., bytes]:
    return build_obligation


@pytest.fixture()
def margin_account_factory() -> Callable[..., bytes]:
    return build_margin_account


@pytest.fixture()
def reserve_factory() -> Callable[[Pubkey], bytes]:
    return build_reserve


@pytest.fixture()
def bank_factory() -> Callable[[Pubkey], bytes]:
    return build_bank


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def keypair() -> Keypair:
    return Keypair.from_seed(bytes(range(32)))


@pytest.fixture()
def sample_engine_config() -> EngineConfig:
    return EngineConfig(max_retries=1, retry_delay_seconds=0.0, batch_size=2)


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
        requests_per_second=100,
        confirm_timeout=2,
    )


@pytest.fixture()
def sample_flash_loan_config() -> FlashLoanConfig:
    return FlashLoanConfig(reserves={USDC_MINT: USDC_RESERVE, SOL_MINT: SOL_RESERVE})


@pytest.fixture()
def kamino_config() -> ProtocolConfig:
    return _default_protocols()[Protocol.KAMINO]


@pytest.fixture()
def marginfi_config() -> ProtocolConfig:
    base = _default_protocols()[Protocol.MARGINFI]
    return ProtocolConfig(
        enabled=True,
        program_id=base.program_id,
        market=base.market,
        liquidation_bonus_bps=base.liquidation_bonus_bps,
        account_size=base.account_size,
        liquidator_account=str(Pubkey.new_unique()),
    )


@pytest.fixture()
def sample_app_config(
    sample_engine_config: EngineConfig,
    sample_chain_config: ChainConfig,
    sample_flash_loan_config: FlashLoanConfig,
    kamino_config: ProtocolConfig,
    marginfi_config: ProtocolConfig,
    keypair: Keypair,
) -> AppConfig:
    return AppConfig(
        engine=sample_engine_config,
        chain=sample_chain_config,
        wallet=WalletConfig(private_key=str(keypair)),
        protocols={Protocol.KAMINO: kamino_config, Protocol.MARGINFI: marginfi_config},
        flash_loan=sample_flash_loan_config,
        arbitrage=ArbitrageConfig(
            enabled=True,
            pairs=((USDC_MINT, SOL_MINT),),
            trial_amounts=(1_000_000,),
            min_profit_percent=0.0,
        ),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(enabled=False, bot_token="tok", chat_id="1")
        ),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_record() -> PositionRecord:
    """Kamino position with 2,000,000 base units of debt, threshold half of it."""
    return PositionRecord(
        program=Protocol.KAMINO,
        account_address=Pubkey.new_unique(),
        owner_address=Pubkey.new_unique(),
        collateral_value=1_500_000_000_000,
        debt_value=2_000_000_000_000,
        unhealthy_threshold_value=1_000_000_000_000,
        value_scale=kamino_layout.VALUE_SCALE,
        primary_collateral_reserve=Pubkey.new_unique(),
        primary_debt_reserve=Pubkey.new_unique(),
    )


@pytest.fixture()
def kamino_opportunity() -> LiquidationOpportunity:
    return LiquidationOpportunity(
        protocol=Protocol.KAMINO,
        account_address=Pubkey.new_unique(),
        owner_address=Pubkey.new_unique(),
        collateral_reserve=Pubkey.from_string(SOL_RESERVE),
        debt_reserve=Pubkey.from_string(USDC_RESERVE),
        health_ratio=0.5,
        max_repayable_debt=1_000_000,
        bonus_basis_points=500,
        estimated_net_profit=15_000,
        collateral_mint=Pubkey.from_string(SOL_MINT),
        debt_mint=Pubkey.from_string(USDC_MINT),
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    engine:
      poll_interval_seconds: 30
      min_profit_threshold: 10000
      max_slippage_percent: 2
    chain:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
    wallet:
      private_key: ""
    protocols:
      kamino:
        enabled: true
        lending_market: "7u3HeHxYDLhnCoErrtycNokbQYbWGzLs6JSDqGAv5PfF"
      marginfi:
        enabled: false
    flash_loan:
      reserves:
        EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v: "D6q6wuQSrifJKZYpR1M8R4YawnLDtDsMmWM1NbBmgJ59"
    arbitrage:
      enabled: true
      pairs:
        - ["EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "So11111111111111111111111111111111111111112"]
    notifications:
      telegram:
        enabled: true
        bot_token: "tok1"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

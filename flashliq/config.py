"""Configuration loader for config.yaml with env var interpolation."""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import base58
import yaml
from dotenv import load_dotenv
from solders.keypair import Keypair

from .errors import ConfigError
from .models import Protocol

logger = logging.getLogger(__name__)

KAMINO_PROGRAM_ID = "KLend2g3cP87fffoy8q1mQqGKjrxjC8boSyAYavgmjD"
KAMINO_MAIN_MARKET = "7u3HeHxYDLhnCoErrtycNokbQYbWGzLs6JSDqGAv5PfF"
MARGINFI_PROGRAM_ID = "MFv2hWf31Z9kbCa1snEPYctwafyhdvnV7FZnsebVacA"
MARGINFI_MAIN_GROUP = "4qp6Fx6tnZkY5Wropq9wUYgtFxXKwE6viZxFHg3rdAG8"
JUPITER_QUOTE_URL = "https://quote-api.jup.ag/v6"

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    dry_run: bool = True
    poll_interval_seconds: int = 60
    min_profit_threshold: int = 5000
    max_slippage_percent: int = 3
    batch_size: int = 1000
    gas_estimate: int = 5000
    flash_fee_buffer_bps: int = 10
    max_retries: int = 3
    retry_delay_seconds: float = 0.5
    max_executions_per_cycle: int = 3

    @property
    def slippage_basis_points(self) -> int:
        return self.max_slippage_percent * 100


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ("https://api.mainnet-beta.solana.com",)
    rpc_timeout: int = 30
    requests_per_second: int = 8
    confirm_timeout: int = 60


@dataclass(frozen=True)
class WalletConfig:
    private_key: str = ""

    def keypair(self) -> Keypair:
        """Parse the secret key (base58 string or JSON byte array) into a keypair."""
        value = self.private_key.strip()
        if not value:
            raise ConfigError("Wallet private key is required")
        try:
            if value.startswith("["):
                raw = bytes(json.loads(value))
            else:
                raw = base58.b58decode(value)
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid wallet private key: {e}") from e
        if len(raw) != 64:
            raise ConfigError(f"Invalid wallet private key: expected 64 bytes, got {len(raw)}")
        try:
            return Keypair.from_bytes(raw)
        except (ValueError, TypeError) as e:
            raise ConfigError(f"Invalid wallet private key: {e}") from e


@dataclass(frozen=True)
class ProtocolConfig:
    enabled: bool = True
    program_id: str = ""
    market: str = ""
    liquidation_bonus_bps: int = 0
    account_size: int = 0
    liquidator_account: str = ""


@dataclass(frozen=True)
class FlashLoanConfig:
    program_id: str = KAMINO_PROGRAM_ID
    lending_market: str = KAMINO_MAIN_MARKET
    reserves: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ArbitrageConfig:
    enabled: bool = False
    quote_url: str = JUPITER_QUOTE_URL
    slippage_bps: int = 50
    trial_amounts: tuple[int, ...] = (
        1_000_000,
        10_000_000,
        100_000_000,
        1_000_000_000,
    )
    pairs: tuple[tuple[str, str], ...] = ()
    triangles: tuple[tuple[str, ...], ...] = ()
    min_profit_percent: float = 0.1
    gas_estimate: int = 10_000
    # Jupiter venue labels compared for cross-venue spreads.
    venues: tuple[str, ...] = ()
    min_spread_percent: float = 0.5


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


def _default_protocols() -> dict[Protocol, ProtocolConfig]:
    return {
        Protocol.KAMINO: ProtocolConfig(
            program_id=KAMINO_PROGRAM_ID,
            market=KAMINO_MAIN_MARKET,
            liquidation_bonus_bps=500,
            account_size=3344,
        ),
        Protocol.MARGINFI: ProtocolConfig(
            program_id=MARGINFI_PROGRAM_ID,
            market=MARGINFI_MAIN_GROUP,
            liquidation_bonus_bps=250,
            account_size=2304,
        ),
    }


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    protocols: dict[Protocol, ProtocolConfig] = field(default_factory=_default_protocols)
    flash_loan: FlashLoanConfig = field(default_factory=FlashLoanConfig)
    arbitrage: ArbitrageConfig = field(default_factory=ArbitrageConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)

    @property
    def enabled_protocols(self) -> tuple[Protocol, ...]:
        return tuple(p for p, cfg in self.protocols.items() if cfg.enabled)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    d = EngineConfig()
    return EngineConfig(
        dry_run=_as_bool(raw.get("dry_run", d.dry_run)),
        poll_interval_seconds=int(raw.get("poll_interval_seconds", d.poll_interval_seconds)),
        min_profit_threshold=int(raw.get("min_profit_threshold", d.min_profit_threshold)),
        max_slippage_percent=int(raw.get("max_slippage_percent", d.max_slippage_percent)),
        batch_size=int(raw.get("batch_size", d.batch_size)),
        gas_estimate=int(raw.get("gas_estimate", d.gas_estimate)),
        flash_fee_buffer_bps=int(raw.get("flash_fee_buffer_bps", d.flash_fee_buffer_bps)),
        max_retries=int(raw.get("max_retries", d.max_retries)),
        retry_delay_seconds=float(raw.get("retry_delay_seconds", d.retry_delay_seconds)),
        max_executions_per_cycle=int(
            raw.get("max_executions_per_cycle", d.max_executions_per_cycle)
        ),
    )


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    d = ChainConfig()
    endpoints = [e for e in raw.get("rpc_endpoints", d.rpc_endpoints) if e]
    return ChainConfig(
        rpc_endpoints=tuple(endpoints),
        rpc_timeout=int(raw.get("rpc_timeout", d.rpc_timeout)),
        requests_per_second=int(raw.get("requests_per_second", d.requests_per_second)),
        confirm_timeout=int(raw.get("confirm_timeout", d.confirm_timeout)),
    )


def _build_protocols(raw: dict[str, Any]) -> dict[Protocol, ProtocolConfig]:
    protocols = _default_protocols()
    for name, cfg in raw.items():
        try:
            proto = Protocol.parse(name)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        base = protocols[proto]
        cfg = cfg or {}
        protocols[proto] = ProtocolConfig(
            enabled=_as_bool(cfg.get("enabled", base.enabled)),
            program_id=cfg.get("program_id", base.program_id),
            market=cfg.get("lending_market", cfg.get("group", base.market)),
            liquidation_bonus_bps=int(
                cfg.get("liquidation_bonus_bps", base.liquidation_bonus_bps)
            ),
            account_size=int(cfg.get("account_size", base.account_size)),
            liquidator_account=cfg.get("liquidator_account", base.liquidator_account),
        )
    return protocols


def _build_flash_loan(raw: dict[str, Any]) -> FlashLoanConfig:
    d = FlashLoanConfig()
    return FlashLoanConfig(
        program_id=raw.get("program_id", d.program_id),
        lending_market=raw.get("lending_market", d.lending_market),
        reserves=dict(raw.get("reserves", {})),
    )


def _build_arbitrage(raw: dict[str, Any]) -> ArbitrageConfig:
    d = ArbitrageConfig()
    return ArbitrageConfig(
        enabled=_as_bool(raw.get("enabled", d.enabled)),
        quote_url=raw.get("quote_url", d.quote_url),
        slippage_bps=int(raw.get("slippage_bps", d.slippage_bps)),
        trial_amounts=tuple(int(a) for a in raw.get("trial_amounts", d.trial_amounts)),
        pairs=tuple(tuple(p) for p in raw.get("pairs", [])),
        triangles=tuple(tuple(t) for t in raw.get("triangles", [])),
        min_profit_percent=float(raw.get("min_profit_percent", d.min_profit_percent)),
        gas_estimate=int(raw.get("gas_estimate", d.gas_estimate)),
        venues=tuple(str(v) for v in raw.get("venues", [])),
        min_spread_percent=float(raw.get("min_spread_percent", d.min_spread_percent)),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=_as_bool(tg.get("enabled", False)),
            bot_token=tg.get("bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        engine=_build_engine(raw.get("engine", {})),
        chain=_build_chain(raw.get("chain", {})),
        wallet=WalletConfig(private_key=raw.get("wallet", {}).get("private_key", "")),
        protocols=_build_protocols(raw.get("protocols", {})),
        flash_loan=_build_flash_loan(raw.get("flash_loan", {})),
        arbitrage=_build_arbitrage(raw.get("arbitrage", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def validate(cfg: AppConfig, require_wallet: bool = False) -> None:
    """Raise ConfigError on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ConfigError("At least one RPC endpoint must be configured")
    if cfg.engine.poll_interval_seconds < 1:
        raise ConfigError("Poll interval must be at least 1 second")
    if cfg.engine.max_slippage_percent > 10:
        raise ConfigError("Maximum slippage is 10%")
    if cfg.engine.batch_size < 1:
        raise ConfigError("Batch size must be positive")
    if cfg.engine.max_retries < 1:
        raise ConfigError("Max retries must be at least 1")
    if cfg.engine.retry_delay_seconds < 0:
        raise ConfigError("Retry delay cannot be negative")
    if cfg.arbitrage.venues and len(cfg.arbitrage.venues) < 2:
        raise ConfigError("Cross-venue arbitrage needs at least two venues")

    for proto in cfg.enabled_protocols:
        if not cfg.protocols[proto].program_id:
            raise ConfigError(f"Protocol '{proto.value}' has no program_id")

    if require_wallet:
        cfg.wallet.keypair()


def describe(cfg: AppConfig) -> list[str]:
    """Human-readable configuration summary without secrets."""
    lines = [
        f"RPC endpoints: {len(cfg.chain.rpc_endpoints)} "
        f"(timeout {cfg.chain.rpc_timeout}s, {cfg.chain.requests_per_second} req/s)",
        f"Poll interval: {cfg.engine.poll_interval_seconds}s",
        f"Min profit: {cfg.engine.min_profit_threshold} lamports "
        f"({cfg.engine.min_profit_threshold / 1e9:.6f} SOL)",
        f"Max slippage: {cfg.engine.max_slippage_percent}%",
        f"Mode: {'DRY-RUN (simulation)' if cfg.engine.dry_run else 'PRODUCTION'}",
        "Protocols: " + (", ".join(p.label for p in cfg.enabled_protocols) or "none"),
        f"Arbitrage: {'enabled' if cfg.arbitrage.enabled else 'disabled'}",
    ]
    if cfg.wallet.private_key:
        try:
            lines.append(f"Wallet: {cfg.wallet.keypair().pubkey()}")
        except ConfigError:
            lines.append("Wallet: <invalid key>")
    return lines

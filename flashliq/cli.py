"""Command-line interface for the flash-loan liquidation engine."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import AppConfig, describe, load_config, validate
from .errors import ConfigError, RpcError
from .logging_setup import configure_logging
from .services import Bot

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="flashliq",
        description="Flash-loan liquidation and arbitrage engine for Solana lending",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    start_parser = sub.add_parser("start", help="Run the scan/execute loop")
    start_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulate executions without touching the chain (overrides config)",
    )
    sub.add_parser("scan", help="Run a single scan and print opportunities")
    sub.add_parser("test", help="Check wallet, RPC connectivity and balance")
    sub.add_parser("config", help="Show the effective configuration")

    return parser


async def _start(config: AppConfig, dry_run: bool) -> None:
    bot = Bot(config, dry_run=True if dry_run else None)
    await bot.preflight()
    await bot.run_forever()


async def _scan(config: AppConfig) -> None:
    bot = Bot(config, dry_run=True)
    report, arbitrage = await bot.scan_once()

    print(f"Liquidation opportunities: {len(report.opportunities)}")
    for opp in report.opportunities:
        print(
            f"  {opp.label:<9} {opp.account_address}  health={opp.health_ratio:.4f}  "
            f"repay={opp.max_repayable_debt}  profit={opp.estimated_net_profit}"
        )
    print(f"Arbitrage opportunities: {len(arbitrage)}")
    for arb in arbitrage:
        print(
            f"  {arb.input_mint[:6]}..->{arb.output_mint[:6]}..  in={arb.amount_in}  "
            f"out={arb.amount_out}  profit={arb.expected_net_profit} "
            f"({arb.profit_percent:.3f}%)"
        )
    print(f"Skipped: {report.skipped}  Decode failures: {report.decode_failures}")
    for label, error in report.task_errors.items():
        print(f"  {label} scan failed: {error}")


async def _test(config: AppConfig) -> None:
    validate(config, require_wallet=True)
    print(f"Wallet: {config.wallet.keypair().pubkey()}")
    bot = Bot(config, dry_run=True)
    await bot.preflight()
    print("RPC: healthy")


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    config = load_config(args.config)

    if args.command == "start":
        await _start(config, args.dry_run)
    elif args.command == "scan":
        await _scan(config)
    elif args.command == "test":
        await _test(config)
    elif args.command == "config":
        for line in describe(config):
            print(line)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except (ConfigError, FileNotFoundError, RpcError) as e:
        logger.error("Startup failed: %s", e)
        sys.exit(1)

"""Flash-loan liquidation and arbitrage engine for Solana lending protocols."""

__version__ = "0.1.0"

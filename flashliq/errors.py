"""Exception hierarchy shared by the scanner, assembler and executor."""
from __future__ import annotations


class FlashLiqError(RuntimeError):
    """Base class for engine errors."""


class DecodeError(FlashLiqError):
    """Raw account bytes could not be turned into a position record."""


class DerivationError(FlashLiqError):
    """A program address could not be derived for the given seed/program."""


class QuoteError(FlashLiqError):
    """The swap aggregator returned no usable quote or swap payload."""


class RpcError(FlashLiqError):
    """Every configured RPC endpoint failed for a call."""


class BusyError(FlashLiqError):
    """Another execution attempt currently holds the execution guard."""


class SimulationRejected(FlashLiqError):
    """The on-chain program declined the transaction during simulation.

    Nothing was broadcast, so no funds were at risk.
    """

    def __init__(self, reason: str, logs: tuple[str, ...] = ()) -> None:
        super().__init__(reason)
        self.reason = reason
        self.logs = logs


class SubmissionError(FlashLiqError):
    """Broadcast or confirmation failed after the transaction left the wallet.

    The outcome is uncertain: state may or may not have changed on-chain.
    """

    def __init__(self, message: str, signature: str | None = None) -> None:
        super().__init__(message)
        self.signature = signature


class ConfigError(ValueError):
    """Invalid or incomplete configuration."""

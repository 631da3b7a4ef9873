"""Structural interfaces for the flash-loan engine."""
from .chain import AccountFilter, ChainClient, ProgramAccount
from .notifier import Notifier
from .protocol_adapter import ProtocolAdapter
from .quote_source import QuoteSource

__all__ = [
    "AccountFilter",
    "ChainClient",
    "Notifier",
    "ProgramAccount",
    "ProtocolAdapter",
    "QuoteSource",
]

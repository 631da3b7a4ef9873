"""Swap aggregator abstraction."""
from typing import Protocol, Sequence

from ..models import Quote


class QuoteSource(Protocol):
    """Abstract interface for swap quotes and swap transaction payloads."""

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        dexes: Sequence[str] | None = None,
    ) -> Quote: ...

    async def get_swap_payload(self, quote: Quote, user_address: str) -> str: ...

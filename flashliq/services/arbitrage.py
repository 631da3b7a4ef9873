"""Round-trip, closed-route and cross-venue arbitrage detection over aggregator quotes."""
from __future__ import annotations

import logging
from typing import Sequence

from ..config import ArbitrageConfig
from ..errors import QuoteError
from ..evaluation import flash_loan_fee, rank_by_profit, roundtrip_profit
from ..interfaces.quote_source import QuoteSource
from ..models import ArbitrageOpportunity, Quote
from ..resilience import retry_with_backoff

logger = logging.getLogger(__name__)


def spread_percent(best_out: int, worst_out: int) -> float:
    """Relative gap between two venues' outputs for the same input."""
    if worst_out <= 0:
        return 0.0
    return (best_out - worst_out) / worst_out * 100


class ArbitrageScanner:
    """Quote every configured route at every trial amount."""

    def __init__(
        self,
        quote_source: QuoteSource,
        config: ArbitrageConfig,
        max_attempts: int = 2,
        retry_delay: float = 0.5,
    ) -> None:
        self._quotes = quote_source
        self._config = config
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    async def _quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        venue: str | None = None,
    ) -> Quote:
        async def fetch() -> Quote:
            if venue is None:
                return await self._quotes.get_quote(
                    input_mint, output_mint, amount, self._config.slippage_bps
                )
            return await self._quotes.get_quote(
                input_mint, output_mint, amount, self._config.slippage_bps, dexes=(venue,)
            )

        return await retry_with_backoff(
            fetch,
            max_attempts=self._max_attempts,
            initial_delay=self._retry_delay,
            retry_on=(QuoteError,),
        )

    def _opportunity(
        self, input_mint: str, output_mint: str, amount: int, quotes: Sequence[Quote]
    ) -> ArbitrageOpportunity | None:
        returned = quotes[-1].out_amount
        profit = roundtrip_profit(amount, returned, self._config.gas_estimate)
        if profit <= 0:
            logger.debug(
                "No arbitrage on %s->%s for %d: returned %d, net %d",
                input_mint[:6],
                output_mint[:6],
                amount,
                returned,
                profit,
            )
            return None

        return ArbitrageOpportunity(
            input_mint=input_mint,
            output_mint=output_mint,
            amount_in=amount,
            amount_out=returned,
            expected_net_profit=profit,
            profit_percent=profit / amount * 100,
            flash_loan_fee=flash_loan_fee(amount),
            route=tuple(hop for q in quotes for hop in q.route),
            quotes=tuple(quotes),
        )

    async def evaluate_route(
        self, mints: Sequence[str], amount: int
    ) -> ArbitrageOpportunity | None:
        """Swap ``amount`` along ``mints`` and back to the first mint.

        Returns None unless the final amount beats the input after the flash
        loan fee and gas.
        """
        if len(mints) < 2:
            raise ValueError("A route needs at least two mints")

        path = [*mints, mints[0]]
        current = amount
        quotes: list[Quote] = []
        for input_mint, output_mint in zip(path, path[1:]):
            quote = await self._quote(input_mint, output_mint, current)
            quotes.append(quote)
            current = quote.out_amount

        return self._opportunity(mints[0], mints[1], amount, quotes)

    async def evaluate_roundtrip(
        self, input_mint: str, output_mint: str, amount: int
    ) -> ArbitrageOpportunity | None:
        return await self.evaluate_route((input_mint, output_mint), amount)

    async def evaluate_cross_venue(
        self, input_mint: str, output_mint: str, amount: int
    ) -> ArbitrageOpportunity | None:
        """Buy on the venue giving the most ``output_mint``, sell on another.

        Each leg is quoted with routing pinned to a single venue. Venues that
        cannot quote the pair are left out; pairs whose buy-side spread is
        under ``min_spread_percent`` are not worth a second round of quotes.
        """
        venues = self._config.venues
        if len(venues) < 2:
            raise ValueError("Cross-venue arbitrage needs at least two venues")

        buys: dict[str, Quote] = {}
        for venue in venues:
            try:
                buys[venue] = await self._quote(input_mint, output_mint, amount, venue)
            except QuoteError as e:
                logger.debug(
                    "%s cannot quote %s->%s: %s", venue, input_mint[:6], output_mint[:6], e
                )
        if len(buys) < 2:
            return None

        buy_venue = max(buys, key=lambda v: buys[v].out_amount)
        bought = buys[buy_venue].out_amount
        spread = spread_percent(bought, min(q.out_amount for q in buys.values()))
        if spread < self._config.min_spread_percent:
            logger.debug(
                "Spread %.3f%% on %s->%s below %.3f%%",
                spread,
                input_mint[:6],
                output_mint[:6],
                self._config.min_spread_percent,
            )
            return None

        best_sell: Quote | None = None
        for venue in venues:
            if venue == buy_venue or venue not in buys:
                continue
            try:
                sell = await self._quote(output_mint, input_mint, bought, venue)
            except QuoteError as e:
                logger.debug(
                    "%s cannot quote %s->%s: %s", venue, output_mint[:6], input_mint[:6], e
                )
                continue
            if best_sell is None or sell.out_amount > best_sell.out_amount:
                best_sell = sell
        if best_sell is None:
            return None

        logger.info(
            "Cross-venue spread %.3f%% on %s->%s, buying on %s",
            spread,
            input_mint[:6],
            output_mint[:6],
            buy_venue,
        )
        return self._opportunity(input_mint, output_mint, amount, (buys[buy_venue], best_sell))

    async def _evaluate(
        self, kind: str, route: tuple[str, ...], amount: int
    ) -> ArbitrageOpportunity | None:
        if kind == "cross-venue":
            return await self.evaluate_cross_venue(route[0], route[1], amount)
        return await self.evaluate_route(route, amount)

    async def scan(self) -> list[ArbitrageOpportunity]:
        checks: list[tuple[str, tuple[str, ...]]] = [
            *(("route", tuple(p)) for p in self._config.pairs),
            *(("route", tuple(t)) for t in self._config.triangles),
        ]
        if len(self._config.venues) >= 2:
            checks.extend(("cross-venue", tuple(p)) for p in self._config.pairs)
        found: list[ArbitrageOpportunity] = []

        for kind, route in checks:
            for amount in self._config.trial_amounts:
                try:
                    opportunity = await self._evaluate(kind, route, amount)
                except QuoteError as e:
                    logger.warning("Quote failed for %s at %d: %s", route, amount, e)
                    continue
                if opportunity is None:
                    continue
                if opportunity.profit_percent < self._config.min_profit_percent:
                    logger.debug(
                        "Arbitrage %.4f%% below minimum %.4f%%",
                        opportunity.profit_percent,
                        self._config.min_profit_percent,
                    )
                    continue
                logger.info(
                    "Arbitrage found (%s): %d -> %d (+%d, %.3f%%)",
                    kind,
                    opportunity.amount_in,
                    opportunity.amount_out,
                    opportunity.expected_net_profit,
                    opportunity.profit_percent,
                )
                found.append(opportunity)

        return rank_by_profit(found)

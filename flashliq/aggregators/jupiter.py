"""Jupiter v6 quote and swap client."""
from __future__ import annotations

import logging
import ssl
from typing import Any, Sequence

import aiohttp
import certifi

from ..errors import QuoteError
from ..models import Quote, RouteHop

logger = logging.getLogger(__name__)


def parse_quote(data: dict[str, Any]) -> Quote:
    """Convert a Jupiter ``/quote`` response into a :class:`Quote`."""
    try:
        route = tuple(
            RouteHop(
                venue_label=step.get("swapInfo", {}).get("label", "unknown"),
                pool_address=step.get("swapInfo", {}).get("ammKey", ""),
            )
            for step in data.get("routePlan", [])
        )
        return Quote(
            input_mint=data["inputMint"],
            output_mint=data["outputMint"],
            in_amount=int(data["inAmount"]),
            out_amount=int(data["outAmount"]),
            price_impact_pct=float(data.get("priceImpactPct") or 0.0),
            route=route,
            raw=data,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise QuoteError(f"Malformed quote response: {e}") from e


class JupiterClient:
    """Fetch swap quotes and legacy swap transactions from Jupiter."""

    def __init__(self, base_url: str, timeout: int = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _request(
        self, method: str, path: str, **kwargs: Any
    ) -> dict[str, Any]:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)
        url = f"{self.base_url}{path}"

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.request(
                    method,
                    url,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    **kwargs,
                ) as response:
                    if response.status != 200:
                        text = await response.text()
                        raise QuoteError(
                            f"Jupiter {path} failed: HTTP {response.status} {text[:200]}"
                        )
                    return await response.json()
        except QuoteError:
            raise
        except Exception as e:
            raise QuoteError(f"Jupiter {path} request failed: {e}") from e

    async def get_quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        dexes: Sequence[str] | None = None,
    ) -> Quote:
        """Best-route quote for swapping ``amount`` of ``input_mint``.

        ``dexes`` restricts routing to the named venues (Jupiter labels).
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "asLegacyTransaction": "true",
        }
        if dexes:
            params["dexes"] = ",".join(dexes)
        data = await self._request("GET", "/quote", params=params)
        if "error" in data:
            raise QuoteError(f"Jupiter quote error: {data['error']}")

        quote = parse_quote(data)
        logger.debug(
            "Quote %s -> %s: %d -> %d via %s",
            input_mint[:6],
            output_mint[:6],
            quote.in_amount,
            quote.out_amount,
            " > ".join(h.venue_label for h in quote.route) or "direct",
        )
        return quote

    async def get_swap_payload(self, quote: Quote, user_address: str) -> str:
        """Base64 legacy swap transaction executing ``quote`` for ``user_address``."""
        data = await self._request(
            "POST",
            "/swap",
            json={
                "quoteResponse": quote.raw,
                "userPublicKey": user_address,
                "wrapAndUnwrapSol": True,
                "asLegacyTransaction": True,
            },
        )
        payload = data.get("swapTransaction")
        if not payload:
            raise QuoteError("Jupiter swap response has no transaction")
        return payload

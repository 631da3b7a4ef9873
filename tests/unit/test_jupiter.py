"""Unit tests for the Jupiter quote client."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import SOL_MINT, USDC_MINT
from flashliq.aggregators.jupiter import JupiterClient, parse_quote
from flashliq.errors import QuoteError

QUOTE_RESPONSE = {
    "inputMint": USDC_MINT,
    "outputMint": SOL_MINT,
    "inAmount": "1000000",
    "outAmount": "5000",
    "priceImpactPct": "0.0012",
    "routePlan": [
        {"swapInfo": {"label": "Orca", "ammKey": "pool1"}},
        {"swapInfo": {"label": "Raydium", "ammKey": "pool2"}},
    ],
}


def _mock_session(status: int, data: dict | None = None, text: str = "") -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=data or {})
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.request = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


@pytest.fixture()
def client() -> JupiterClient:
    return JupiterClient("https://quote-api.jup.ag/v6/")


class TestParseQuote:
    def test_parses_route(self) -> None:
        quote = parse_quote(QUOTE_RESPONSE)
        assert quote.in_amount == 1_000_000
        assert quote.out_amount == 5_000
        assert quote.price_impact_pct == pytest.approx(0.0012)
        assert [h.venue_label for h in quote.route] == ["Orca", "Raydium"]
        assert quote.route[1].pool_address == "pool2"
        assert quote.raw is QUOTE_RESPONSE

    def test_malformed(self) -> None:
        with pytest.raises(QuoteError, match="Malformed"):
            parse_quote({"inputMint": USDC_MINT})


class TestGetQuote:
    @pytest.mark.asyncio
    async def test_success(self, client: JupiterClient) -> None:
        mock_session = _mock_session(200, QUOTE_RESPONSE)

        with patch("flashliq.aggregators.jupiter.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashliq.aggregators.jupiter.aiohttp.TCPConnector"):
                quote = await client.get_quote(USDC_MINT, SOL_MINT, 1_000_000, 50)

        assert quote.out_amount == 5_000
        method, url = mock_session.request.call_args.args
        params = mock_session.request.call_args.kwargs["params"]
        assert method == "GET"
        assert url == "https://quote-api.jup.ag/v6/quote"
        assert params["amount"] == "1000000"
        assert params["slippageBps"] == "50"
        assert params["asLegacyTransaction"] == "true"
        assert "dexes" not in params

    @pytest.mark.asyncio
    async def test_restricted_to_venues(self, client: JupiterClient) -> None:
        mock_session = _mock_session(200, QUOTE_RESPONSE)

        with patch("flashliq.aggregators.jupiter.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashliq.aggregators.jupiter.aiohttp.TCPConnector"):
                await client.get_quote(
                    USDC_MINT, SOL_MINT, 1_000_000, 50, dexes=("Raydium", "Whirlpool")
                )

        params = mock_session.request.call_args.kwargs["params"]
        assert params["dexes"] == "Raydium,Whirlpool"

    @pytest.mark.asyncio
    async def test_http_error(self, client: JupiterClient) -> None:
        mock_session = _mock_session(429, text="rate limited")

        with patch("flashliq.aggregators.jupiter.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashliq.aggregators.jupiter.aiohttp.TCPConnector"):
                with pytest.raises(QuoteError, match="HTTP 429"):
                    await client.get_quote(USDC_MINT, SOL_MINT, 1, 50)

    @pytest.mark.asyncio
    async def test_error_body(self, client: JupiterClient) -> None:
        mock_session = _mock_session(200, {"error": "No routes found"})

        with patch("flashliq.aggregators.jupiter.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashliq.aggregators.jupiter.aiohttp.TCPConnector"):
                with pytest.raises(QuoteError, match="No routes found"):
                    await client.get_quote(USDC_MINT, SOL_MINT, 1, 50)

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self, client: JupiterClient) -> None:
        mock_session = _mock_session(200)
        mock_session.request = MagicMock(side_effect=ConnectionError("reset"))

        with patch("flashliq.aggregators.jupiter.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashliq.aggregators.jupiter.aiohttp.TCPConnector"):
                with pytest.raises(QuoteError, match="reset"):
                    await client.get_quote(USDC_MINT, SOL_MINT, 1, 50)


class TestSwapPayload:
    @pytest.mark.asyncio
    async def test_returns_transaction(self, client: JupiterClient) -> None:
        quote = parse_quote(QUOTE_RESPONSE)
        mock_session = _mock_session(200, {"swapTransaction": "AQID"})

        with patch("flashliq.aggregators.jupiter.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashliq.aggregators.jupiter.aiohttp.TCPConnector"):
                payload = await client.get_swap_payload(quote, "User1111")

        assert payload == "AQID"
        body = mock_session.request.call_args.kwargs["json"]
        assert body["quoteResponse"] == QUOTE_RESPONSE
        assert body["userPublicKey"] == "User1111"
        assert body["asLegacyTransaction"] is True

    @pytest.mark.asyncio
    async def test_missing_transaction(self, client: JupiterClient) -> None:
        quote = parse_quote(QUOTE_RESPONSE)
        mock_session = _mock_session(200, {})

        with patch("flashliq.aggregators.jupiter.aiohttp.ClientSession", return_value=mock_session):
            with patch("flashliq.aggregators.jupiter.aiohttp.TCPConnector"):
                with pytest.raises(QuoteError, match="no transaction"):
                    await client.get_swap_payload(quote, "User1111")

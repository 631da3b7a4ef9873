"""Solana JSON-RPC client with fallback support."""
from __future__ import annotations

import asyncio
import base64
import logging
import ssl
import time
from typing import Any

import aiohttp
import certifi
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from ...config import ChainConfig
from ...errors import RpcError, SubmissionError
from ...interfaces.chain import AccountFilter, ProgramAccount

logger = logging.getLogger(__name__)

_CONFIRMED_STATES = ("confirmed", "finalized")


class SolanaClient:
    """Solana RPC client with automatic endpoint fallback."""

    def __init__(self, config: ChainConfig, commitment: str = "confirmed") -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.confirm_timeout = config.confirm_timeout
        self.commitment = commitment
        self.poll_interval = 0.5
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise RpcError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed (%s): %s", rpc_url, method, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise RpcError(f"All RPC endpoints failed. Last error: {last_error}")

    # -- reads ---------------------------------------------------------------

    async def get_program_accounts(
        self, program_id: Pubkey, filters: list[AccountFilter]
    ) -> list[ProgramAccount]:
        """Fetch every account owned by ``program_id`` matching ``filters``."""
        result = await self.rpc_call(
            "getProgramAccounts",
            [
                str(program_id),
                {
                    "encoding": "base64",
                    "commitment": self.commitment,
                    "filters": [f.to_rpc() for f in filters],
                },
            ],
        )

        accounts: list[ProgramAccount] = []
        for item in result or []:
            try:
                accounts.append(
                    ProgramAccount(
                        address=Pubkey.from_string(item["pubkey"]),
                        data=base64.b64decode(item["account"]["data"][0]),
                    )
                )
            except (KeyError, IndexError, ValueError) as e:
                logger.debug("Skipping malformed program account entry: %s", e)
        logger.debug("Fetched %d accounts for program %s", len(accounts), program_id)
        return accounts

    async def get_account_data(self, address: Pubkey) -> bytes | None:
        """Raw account data, or None when the account does not exist."""
        result = await self.rpc_call(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": self.commitment}],
        )
        value = (result or {}).get("value")
        if not value:
            return None
        return base64.b64decode(value["data"][0])

    async def get_balance(self, address: Pubkey) -> int:
        """Lamport balance of ``address``."""
        result = await self.rpc_call(
            "getBalance", [str(address), {"commitment": self.commitment}]
        )
        return int((result or {}).get("value", 0))

    async def get_health(self) -> bool:
        try:
            return await self.rpc_call("getHealth", []) == "ok"
        except RpcError as e:
            logger.error("RPC health check failed: %s", e)
            return False

    async def get_latest_blockhash(self) -> Hash:
        result = await self.rpc_call(
            "getLatestBlockhash", [{"commitment": self.commitment}]
        )
        return Hash.from_string(result["value"]["blockhash"])

    # -- writes --------------------------------------------------------------

    async def simulate_transaction(self, tx: VersionedTransaction) -> dict[str, Any]:
        """Simulate a signed transaction; returns the RPC ``value`` object."""
        result = await self.rpc_call(
            "simulateTransaction",
            [
                base64.b64encode(bytes(tx)).decode(),
                {
                    "encoding": "base64",
                    "commitment": "processed",
                    "sigVerify": False,
                    "replaceRecentBlockhash": False,
                },
            ],
        )
        return (result or {}).get("value", {})

    async def send_transaction(self, tx: VersionedTransaction) -> str:
        return await self.rpc_call(
            "sendTransaction",
            [
                base64.b64encode(bytes(tx)).decode(),
                {"encoding": "base64", "skipPreflight": True, "maxRetries": 3},
            ],
        )

    async def confirm_transaction(self, signature: str) -> None:
        """Poll signature status until confirmed, failed or timed out."""
        deadline = time.monotonic() + self.confirm_timeout
        while time.monotonic() < deadline:
            result = await self.rpc_call(
                "getSignatureStatuses",
                [[signature], {"searchTransactionHistory": True}],
            )
            statuses = (result or {}).get("value") or [None]
            status = statuses[0]
            if status:
                if status.get("err"):
                    raise SubmissionError(
                        f"Transaction failed on-chain: {status['err']}", signature
                    )
                if status.get("confirmationStatus") in _CONFIRMED_STATES:
                    return
            await asyncio.sleep(self.poll_interval)

        raise SubmissionError(
            f"Confirmation timed out after {self.confirm_timeout}s", signature
        )

    async def send_and_confirm_transaction(self, tx: VersionedTransaction) -> str:
        """Broadcast ``tx`` and wait for confirmation; returns the signature."""
        try:
            signature = await self.send_transaction(tx)
        except RpcError as e:
            raise SubmissionError(f"Broadcast failed: {e}") from e

        logger.info("Transaction sent: %s", signature)
        try:
            await self.confirm_transaction(signature)
        except RpcError as e:
            raise SubmissionError(f"Confirmation failed: {e}", signature) from e
        return signature

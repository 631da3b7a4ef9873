"""Solana RPC abstraction used by adapters and the executor."""
from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Protocol

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction


@dataclass(frozen=True)
class AccountFilter:
    """One ``getProgramAccounts`` filter, either dataSize or memcmp."""

    size: int | None = None
    offset: int = 0
    data: bytes = b""

    @classmethod
    def data_size(cls, n: int) -> AccountFilter:
        return cls(size=n)

    @classmethod
    def memcmp(cls, offset: int, data: bytes) -> AccountFilter:
        return cls(offset=offset, data=data)

    def to_rpc(self) -> dict[str, Any]:
        if self.size is not None:
            return {"dataSize": self.size}
        return {
            "memcmp": {
                "offset": self.offset,
                "bytes": base64.b64encode(self.data).decode(),
                "encoding": "base64",
            }
        }


@dataclass(frozen=True)
class ProgramAccount:
    """Raw account returned by ``getProgramAccounts``."""

    address: Pubkey
    data: bytes


class ChainClient(Protocol):
    """Abstract interface for Solana RPC interactions."""

    async def get_program_accounts(
        self, program_id: Pubkey, filters: list[AccountFilter]
    ) -> list[ProgramAccount]: ...

    async def get_account_data(self, address: Pubkey) -> bytes | None: ...

    async def get_balance(self, address: Pubkey) -> int: ...

    async def get_health(self) -> bool: ...

    async def get_latest_blockhash(self) -> Hash: ...

    async def simulate_transaction(self, tx: VersionedTransaction) -> dict[str, Any]: ...

    async def send_and_confirm_transaction(self, tx: VersionedTransaction) -> str: ...

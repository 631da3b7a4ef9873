"""Protocol adapter interface: per-protocol account scanning and liquidation actions."""
from typing import Protocol as _Protocol

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from ..models import FlashLoanPlan, LiquidationOpportunity, Protocol, ProtocolScan


class ProtocolAdapter(_Protocol):
    """Abstract interface for one lending program."""

    @property
    def protocol(self) -> Protocol: ...

    async def scan(self) -> ProtocolScan: ...

    async def flash_loan_plan(
        self, opportunity: LiquidationOpportunity, liquidator: Pubkey
    ) -> FlashLoanPlan: ...

    async def liquidation_instructions(
        self, opportunity: LiquidationOpportunity, liquidator: Pubkey
    ) -> list[Instruction]: ...

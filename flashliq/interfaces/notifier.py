"""Notification channel abstraction."""
from typing import Protocol


class Notifier(Protocol):
    """Abstract interface for delivering execution reports."""

    async def send_report(self, message: str) -> bool: ...

"""Service modules"""
from .arbitrage import ArbitrageScanner
from .bot import Bot
from .executor import ExecutionGuard, ExecutionScheduler
from .scanner import ScanOrchestrator
from .stats import BotStats

__all__ = [
    "ArbitrageScanner",
    "Bot",
    "BotStats",
    "ExecutionGuard",
    "ExecutionScheduler",
    "ScanOrchestrator",
]

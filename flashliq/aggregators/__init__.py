"""Swap aggregator clients."""
from .jupiter import JupiterClient

__all__ = ["JupiterClient"]

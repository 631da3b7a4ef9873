"""Kamino Lending integration."""

"""marginfi v2 integration."""

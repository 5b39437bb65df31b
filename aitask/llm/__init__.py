"""Backend configuration, response parsing and provider adapters."""

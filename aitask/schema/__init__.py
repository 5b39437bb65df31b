"""Descriptor to JSON Schema compilation."""

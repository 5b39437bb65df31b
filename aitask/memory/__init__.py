"""Persistent response cache."""

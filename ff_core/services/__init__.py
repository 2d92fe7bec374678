"""Shared services (configuration loading)."""

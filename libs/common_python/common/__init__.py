"""Shared, dependency-light helpers used across services."""

"""
Daily Brew Errors.

Domain-specific exceptions shared by the engine and its persistence layer.
These errors are independent of the transport layer (CLI, presentation).
"""

from __future__ import annotations


class BrewError(Exception):
    """Base exception for Daily Brew operations."""

    pass


class PersistenceError(BrewError):
    """Raised when the key-value store cannot read or write a blob."""

    def __init__(self, key: str, operation: str, reason: str | None = None):
        self.key = key
        self.operation = operation
        self.reason = reason
        msg = f"Failed to {operation} '{key}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvalidTimeError(BrewError, ValueError):
    """Raised when a time-of-day string is not in HH:MM format."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid time of day (expected HH:MM): {value!r}")

"""Exception types raised by the statistics engine."""

from __future__ import annotations


class StatsError(Exception):
    """Base class for statistics engine errors."""


class StatsValidationError(StatsError, ValueError):
    """Raised when a caller asks for an unsupported setting (e.g. interval)."""


class StatsStorageError(StatsError):
    """Raised when persisted statistics state cannot be read or written."""

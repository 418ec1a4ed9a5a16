"""Error taxonomy for the segmentation engine.

Per-user errors (`DataSourceError`, `InvalidEventError` raised while
fetching) are recovered by the batch runner and recorded in the run
result. Range and configuration errors fail the call that received them.
"""
from __future__ import annotations

from typing import Optional


class TbaError(Exception):
    """Base class for engine errors."""


class InvalidEventError(TbaError, ValueError):
    """Malformed activity record; `field` names the offending attribute."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field


class InvalidRangeError(TbaError, ValueError):
    """Date range half specified, malformed or reversed."""


class ConfigurationError(TbaError, ValueError):
    """Threshold, day-start hour or family table outside its valid domain."""


class DataSourceError(TbaError):
    """Fetching records for a user failed."""

    def __init__(self, message: str, user_id: Optional[str] = None):
        super().__init__(message)
        self.user_id = user_id

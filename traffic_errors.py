"""Typed errors raised by the traffic feed pipeline."""
from __future__ import annotations

from typing import Optional


class TrafficDataError(Exception):
    """Base class for every error the pipeline surfaces to callers."""


class InvalidArgument(TrafficDataError, ValueError):
    """A caller-supplied argument violates a precondition."""


class TransportError(TrafficDataError):
    """A category fetch failed at the HTTP layer."""

    def __init__(
        self,
        category: str,
        status: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.category = category
        self.status = status
        self.cause = cause
        if status is not None:
            detail = f"HTTP error code: {status}"
        elif cause is not None:
            detail = f"{type(cause).__name__}: {cause}"
        else:
            detail = "transport failure"
        super().__init__(f"{category}: {detail}")


class ParseError(TrafficDataError):
    """A category payload is not a list of attribute mappings."""

    def __init__(self, category: str, reason: str) -> None:
        self.category = category
        self.reason = reason
        super().__init__(f"{category}: {reason}")


class RecordSkipped(TrafficDataError):
    """Diagnostic for a single malformed record.

    Never raised out of the normalizer; instances are handed to the
    ``on_skip`` hook so callers can log or count them.
    """

    def __init__(self, category: str, index: int, reason: str) -> None:
        self.category = category
        self.index = index
        self.reason = reason
        super().__init__(f"{category}[{index}]: {reason}")


class DecodeError(TrafficDataError, ValueError):
    """An encoded polyline is truncated or contains invalid characters."""

    def __init__(self, position: int, reason: str) -> None:
        self.position = position
        self.reason = reason
        super().__init__(f"{reason} at index {position}")


__all__ = [
    "DecodeError",
    "InvalidArgument",
    "ParseError",
    "RecordSkipped",
    "TrafficDataError",
    "TransportError",
]

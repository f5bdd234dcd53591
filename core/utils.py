"""
Core utility functions.

Timestamps are UTC with millisecond precision, matching what the
ExecutionStore persists, so in-memory and stored values compare equal.

Exports:
    utc_now: Current UTC instant truncated to milliseconds
    to_millis: Truncate a datetime to milliseconds (naive values read as UTC)
    generate_id: New opaque entity identifier
"""

import uuid
from datetime import datetime, timezone
from typing import Optional


def to_millis(value: Optional[datetime]) -> Optional[datetime]:
    """
    Truncate to millisecond precision in UTC.

    Example:
        >>> to_millis(datetime(2026, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)).microsecond
        123000
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utc_now() -> datetime:
    """Current UTC time with millisecond precision."""
    return to_millis(datetime.now(timezone.utc))


def generate_id() -> str:
    """New random identifier (32 hex chars)."""
    return uuid.uuid4().hex

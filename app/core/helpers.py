"""
Helper functions for common infrastructure operations.

External APIs (Stripe among them) exchange instants as Unix epoch seconds,
while the ORM stores timezone-aware datetimes. This helper converts
from the former to the latter.

Usage:
    from core.helpers import from_unix_timestamp

    period_end = from_unix_timestamp(1735689600)
"""

from __future__ import annotations

from datetime import datetime, timezone


def from_unix_timestamp(value: int | float | str | None) -> datetime | None:
    """
    Convert Unix epoch seconds to an aware UTC datetime.

    Args:
        value: Epoch seconds, a numeric string, or None

    Returns:
        Aware datetime, or None when value is None or empty

    Example:
        from_unix_timestamp(0)  # datetime(1970, 1, 1, tzinfo=timezone.utc)
    """
    if value is None or value == "":
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


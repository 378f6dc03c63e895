"""Utility functions."""

from serenity_rbac.utils.timezone import (
    UTC,
    day_of_week,
    from_utc,
    is_valid_timezone,
    to_utc,
    utc_now,
)

__all__ = [
    "UTC",
    "day_of_week",
    "from_utc",
    "is_valid_timezone",
    "to_utc",
    "utc_now",
]

"""Utility helpers."""

from planboard.utils.dates import as_utc, isoformat, parse_timestamp, utcnow

__all__ = ["as_utc", "isoformat", "parse_timestamp", "utcnow"]

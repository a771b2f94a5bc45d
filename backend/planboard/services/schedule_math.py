"""Schedule arithmetic over epoch-millisecond timestamps.

All helpers return None instead of raising when an input is missing or
not a finite number, so read paths can pass raw snapshot values through.
"""

import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from planboard.utils.dates import as_utc

MS_PER_MINUTE = 60_000


def _finite(value: float | int | None) -> float | int | None:
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return value


def end_from_duration(
    start: float | None, duration_minutes: float | None
) -> float | None:
    """End timestamp of a window starting at ``start`` lasting ``duration_minutes``."""
    start = _finite(start)
    duration_minutes = _finite(duration_minutes)
    if start is None or duration_minutes is None:
        return None
    return start + duration_minutes * MS_PER_MINUTE


def duration_from_end(start: float | None, end: float | None) -> float | None:
    """Inverse of :func:`end_from_duration`, in minutes.

    The round trip is exact for whole-millisecond starts. A start with a
    fractional millisecond can come back off by float rounding.
    """
    start = _finite(start)
    end = _finite(end)
    if start is None or end is None:
        return None
    return (end - start) / MS_PER_MINUTE


def slack_minutes(due_at: float | None, planned_end: float | None) -> int | None:
    """Whole minutes between the planned end and the due date.

    Positive means the plan finishes early; negative means it is late.
    """
    due_at = _finite(due_at)
    planned_end = _finite(planned_end)
    if due_at is None or planned_end is None:
        return None
    # JS Math.round semantics: halves round towards +inf
    return math.floor((due_at - planned_end) / MS_PER_MINUTE + 0.5)


def to_epoch_ms(value: datetime | None) -> float | None:
    """Convert a timestamp to epoch milliseconds."""
    if value is None:
        return None
    return as_utc(value).timestamp() * 1000


def from_epoch_ms(value: float | None) -> datetime | None:
    """Convert epoch milliseconds back to an aware UTC datetime."""
    value = _finite(value)
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class ScheduleWindow:
    """Earliest start and latest end over an item's scheduled blocks."""

    start: float | None = None
    end: float | None = None


def summarize_blocks(
    blocks: Iterable[tuple[UUID, datetime | None, int]],
) -> dict[UUID, ScheduleWindow]:
    """Fold ``(item_id, start_at, duration_minutes)`` rows into per-item windows.

    Blocks with no usable start are skipped.
    """
    windows: dict[UUID, ScheduleWindow] = {}
    for item_id, start_at, duration in blocks:
        start = to_epoch_ms(start_at)
        end = end_from_duration(start, duration)
        if start is None or end is None:
            continue
        current = windows.get(item_id)
        if current is None:
            windows[item_id] = ScheduleWindow(start=start, end=end)
        else:
            windows[item_id] = ScheduleWindow(
                start=min(current.start, start),
                end=max(current.end, end),
            )
    return windows

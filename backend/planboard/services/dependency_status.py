"""Timing evaluation for a single dependency edge."""

import math
from enum import Enum

from planboard.services.schedule_math import MS_PER_MINUTE


class DependencyStatus(str, Enum):
    """Outcome of checking one edge against the current schedule."""

    SATISFIED = "satisfied"
    VIOLATED = "violated"
    UNKNOWN = "unknown"


def _known(value: float | None) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return value


def evaluate_dependency_status(
    predecessor_start: float | None,
    predecessor_end: float | None,
    successor_start: float | None,
    successor_end: float | None,
    type: str,
    lag_minutes: float | None,
) -> DependencyStatus:
    """Score an edge whose timestamps are epoch milliseconds.

    The lag is added to the predecessor side. FS gates the successor's start
    on the predecessor's end, SS start on start, FF end on end, SF end on
    start. Missing timestamps for the type, a non-finite lag or an unknown
    type all yield ``UNKNOWN``.
    """
    lag = _known(lag_minutes)
    if lag is None:
        return DependencyStatus.UNKNOWN
    lag_ms = lag * MS_PER_MINUTE

    gates = {
        "FS": (predecessor_end, successor_start),
        "SS": (predecessor_start, successor_start),
        "FF": (predecessor_end, successor_end),
        "SF": (predecessor_start, successor_end),
    }
    if type not in gates:
        return DependencyStatus.UNKNOWN

    gate, gated = (_known(value) for value in gates[type])
    if gate is None or gated is None:
        return DependencyStatus.UNKNOWN
    if gated >= gate + lag_ms:
        return DependencyStatus.SATISFIED
    return DependencyStatus.VIOLATED


def describe_dependency(type: str, lag_minutes: int) -> str:
    """Short label used next to an edge's status, e.g. ``FS +15m``."""
    sign = "+" if lag_minutes >= 0 else "-"
    return f"{type} {sign}{abs(lag_minutes)}m"

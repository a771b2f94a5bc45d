"""Bottom-up aggregation of item metrics over the item tree.

Rollups are computed on read from an in-memory snapshot and never stored.
"""

from collections.abc import Hashable, Iterable, Mapping
from dataclasses import dataclass

from planboard.services.schedule_math import ScheduleWindow


@dataclass(frozen=True)
class RollupRow:
    """The slice of an item the aggregator needs."""

    id: Hashable
    parent_id: Hashable | None
    estimate_minutes: int = 0
    estimate_mode: str = "manual"


@dataclass(frozen=True)
class RollupTotals:
    """Aggregates for one item over itself and all of its descendants."""

    total_estimate: int = 0
    total_actual: int = 0
    rollup_start_at: float | None = None
    rollup_end_at: float | None = None
    rollup_blocked_count: int = 0
    rollup_overdue_count: int = 0


def _min_nullable(a: float | None, b: float | None) -> float | None:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def _max_nullable(a: float | None, b: float | None) -> float | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def compute_rollup_totals(
    rows: Iterable[RollupRow],
    schedule_map: Mapping[Hashable, ScheduleWindow] | None = None,
    blocked_map: Mapping[Hashable, bool] | None = None,
    overdue_map: Mapping[Hashable, bool] | None = None,
    time_map: Mapping[Hashable, int] | None = None,
) -> dict[Hashable, RollupTotals]:
    """Compute :class:`RollupTotals` for every row.

    - ``total_estimate``: own estimate in manual mode, otherwise the sum of
      the children's ``total_estimate``.
    - ``total_actual``: own tracked minutes plus every child's
      ``total_actual``, whatever the estimate mode.
    - ``rollup_start_at`` / ``rollup_end_at``: min start and max end over
      the item's own window and its descendants' windows.
    - ``rollup_blocked_count`` / ``rollup_overdue_count``: self plus
      descendants flagged blocked / overdue.

    Rows whose parent is not part of the snapshot are roots. Children are
    always finished before their parent, so input order does not matter.
    """
    schedule_map = schedule_map or {}
    blocked_map = blocked_map or {}
    overdue_map = overdue_map or {}
    time_map = time_map or {}

    rows = list(rows)
    row_map = {row.id: row for row in rows}
    children: dict[Hashable, list[Hashable]] = {row.id: [] for row in rows}
    for row in rows:
        if row.parent_id is not None and row.parent_id in children:
            children[row.parent_id].append(row.id)

    totals: dict[Hashable, RollupTotals] = {}

    def combine(node_id: Hashable) -> RollupTotals:
        row = row_map[node_id]
        window = schedule_map.get(node_id)
        manual = row.estimate_mode != "rollup"

        estimate = row.estimate_minutes if manual else 0
        actual = time_map.get(node_id, 0)
        start = window.start if window else None
        end = window.end if window else None
        blocked = 1 if blocked_map.get(node_id) else 0
        overdue = 1 if overdue_map.get(node_id) else 0

        for child_id in children[node_id]:
            # Only missing when malformed input loops back on itself
            child = totals.get(child_id)
            if child is None:
                continue
            if not manual:
                estimate += child.total_estimate
            actual += child.total_actual
            start = _min_nullable(start, child.rollup_start_at)
            end = _max_nullable(end, child.rollup_end_at)
            blocked += child.rollup_blocked_count
            overdue += child.rollup_overdue_count

        return RollupTotals(
            total_estimate=estimate,
            total_actual=actual,
            rollup_start_at=start,
            rollup_end_at=end,
            rollup_blocked_count=blocked,
            rollup_overdue_count=overdue,
        )

    roots = [
        row.id for row in rows if row.parent_id is None or row.parent_id not in row_map
    ]
    # Leftover rows are only reachable when parent links form a loop
    for start_id in roots + [row.id for row in rows]:
        if start_id in totals:
            continue
        visiting: set[Hashable] = set()
        stack: list[tuple[Hashable, bool]] = [(start_id, False)]
        while stack:
            node_id, expanded = stack.pop()
            if expanded:
                totals[node_id] = combine(node_id)
                visiting.discard(node_id)
                continue
            if node_id in totals or node_id in visiting:
                continue
            visiting.add(node_id)
            stack.append((node_id, True))
            for child_id in children[node_id]:
                if child_id not in totals and child_id not in visiting:
                    stack.append((child_id, False))

    return totals

"""Read-side project view: schedule windows, rollups and dependency health.

Everything here is derived on read from a :class:`ProjectSnapshot` loaded
in a handful of queries; nothing is written back.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planboard.exceptions import NotFoundError
from planboard.models.item import (
    CLOSED_STATUSES,
    Blocker,
    Dependency,
    Item,
    ScheduledBlock,
    TimeEntry,
)
from planboard.models.project import Project
from planboard.services.dependency_status import (
    DependencyStatus,
    describe_dependency,
    evaluate_dependency_status,
)
from planboard.services.rollup import RollupRow, compute_rollup_totals
from planboard.services.schedule_math import (
    ScheduleWindow,
    from_epoch_ms,
    slack_minutes,
    summarize_blocks,
    to_epoch_ms,
)
from planboard.utils.dates import as_utc, isoformat, utcnow

logger = structlog.get_logger()

MISSING_SCHEDULE = "Missing schedule data"
DAY = timedelta(days=1)


@dataclass(frozen=True)
class ProjectSnapshot:
    """Rows of one project as seen at ``now``."""

    project_id: UUID
    now: datetime
    items: tuple[Item, ...] = ()
    windows: dict[UUID, ScheduleWindow] = field(default_factory=dict)
    blocks: tuple[ScheduledBlock, ...] = ()
    dependencies: tuple[Dependency, ...] = ()
    active_blockers: dict[UUID, int] = field(default_factory=dict)
    tracked_minutes: dict[UUID, int] = field(default_factory=dict)

    def is_overdue(self, item: Item) -> bool:
        """Open, not archived, and past its due date."""
        due_at = as_utc(item.due_at)
        if due_at is None or item.archived_at is not None:
            return False
        return due_at < self.now and item.status not in CLOSED_STATUSES


async def load_project_snapshot(
    db: AsyncSession, project_id: UUID, now: datetime | None = None
) -> ProjectSnapshot:
    """Load everything the project view needs, archived items included."""
    result = await db.execute(select(Project.id).where(Project.id == project_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("project", project_id)

    result = await db.execute(
        select(Item)
        .where(Item.project_id == project_id)
        .order_by(Item.sequence_rank, Item.created_at)
    )
    items = tuple(result.scalars().all())

    result = await db.execute(
        select(ScheduledBlock)
        .join(Item, Item.id == ScheduledBlock.item_id)
        .where(Item.project_id == project_id)
        .order_by(ScheduledBlock.start_at)
    )
    blocks = tuple(result.scalars().all())
    windows = summarize_blocks(
        (block.item_id, block.start_at, block.duration_minutes) for block in blocks
    )

    result = await db.execute(
        select(Dependency)
        .join(Item, Item.id == Dependency.item_id)
        .where(Item.project_id == project_id)
    )
    dependencies = tuple(result.scalars().all())

    result = await db.execute(
        select(Blocker.item_id, func.count(Blocker.id))
        .join(Item, Item.id == Blocker.item_id)
        .where(Item.project_id == project_id, Blocker.cleared_at.is_(None))
        .group_by(Blocker.item_id)
    )
    active_blockers = {item_id: count for item_id, count in result.all()}

    # Running entries have no duration yet and do not count
    result = await db.execute(
        select(TimeEntry.item_id, func.sum(TimeEntry.duration_minutes))
        .join(Item, Item.id == TimeEntry.item_id)
        .where(Item.project_id == project_id, TimeEntry.end_at.is_not(None))
        .group_by(TimeEntry.item_id)
    )
    tracked_minutes = {item_id: int(total or 0) for item_id, total in result.all()}

    logger.debug(
        "project_snapshot_loaded",
        project_id=str(project_id),
        item_count=len(items),
        dependency_count=len(dependencies),
    )
    return ProjectSnapshot(
        project_id=project_id,
        now=as_utc(now) if now else utcnow(),
        items=items,
        windows=windows,
        blocks=blocks,
        dependencies=dependencies,
        active_blockers=active_blockers,
        tracked_minutes=tracked_minutes,
    )


def edge_status(
    dependency: Dependency, windows: dict[UUID, ScheduleWindow]
) -> tuple[DependencyStatus, str]:
    """Status of one edge plus a short reason label."""
    predecessor = windows.get(dependency.depends_on_id)
    successor = windows.get(dependency.item_id)
    if predecessor is None or successor is None:
        return DependencyStatus.UNKNOWN, MISSING_SCHEDULE
    status = evaluate_dependency_status(
        predecessor.start,
        predecessor.end,
        successor.start,
        successor.end,
        dependency.type,
        dependency.lag_minutes,
    )
    if status is DependencyStatus.UNKNOWN:
        return status, MISSING_SCHEDULE
    return status, describe_dependency(dependency.type, dependency.lag_minutes)


def build_project_view(snapshot: ProjectSnapshot) -> dict[str, Any]:
    """Per-item derived view of a snapshot.

    Each item carries its own schedule window, blocker and time figures,
    overdue flag, slack against the due date, rollup totals over its
    subtree, and the status of every edge it depends through.
    """
    overdue_map = {item.id: snapshot.is_overdue(item) for item in snapshot.items}
    blocked_map = {
        item.id: snapshot.active_blockers.get(item.id, 0) > 0 for item in snapshot.items
    }
    totals = compute_rollup_totals(
        (
            RollupRow(
                id=item.id,
                parent_id=item.parent_id,
                estimate_minutes=item.estimate_minutes,
                estimate_mode=item.estimate_mode,
            )
            for item in snapshot.items
        ),
        schedule_map=snapshot.windows,
        blocked_map=blocked_map,
        overdue_map=overdue_map,
        time_map=snapshot.tracked_minutes,
    )

    titles = {item.id: item.title for item in snapshot.items}
    edges_by_item: dict[UUID, list[dict[str, Any]]] = {}
    for dependency in snapshot.dependencies:
        status, reason = edge_status(dependency, snapshot.windows)
        edges_by_item.setdefault(dependency.item_id, []).append(
            {
                "id": str(dependency.id),
                "dependsOnId": str(dependency.depends_on_id),
                "title": titles.get(dependency.depends_on_id, ""),
                "type": dependency.type,
                "lagMinutes": dependency.lag_minutes,
                "status": status.value,
                "reason": reason,
            }
        )

    items = []
    for item in snapshot.items:
        window = snapshot.windows.get(item.id, ScheduleWindow())
        rollup = totals[item.id]
        items.append(
            {
                **item.to_dict(),
                "scheduleStartAt": isoformat(from_epoch_ms(window.start)),
                "scheduleEndAt": isoformat(from_epoch_ms(window.end)),
                "activeBlockerCount": snapshot.active_blockers.get(item.id, 0),
                "isBlocked": blocked_map[item.id],
                "trackedMinutes": snapshot.tracked_minutes.get(item.id, 0),
                "isOverdue": overdue_map[item.id],
                "slackMinutes": slack_minutes(to_epoch_ms(item.due_at), window.end),
                "rollup": {
                    "totalEstimate": rollup.total_estimate,
                    "totalActual": rollup.total_actual,
                    "startAt": isoformat(from_epoch_ms(rollup.rollup_start_at)),
                    "endAt": isoformat(from_epoch_ms(rollup.rollup_end_at)),
                    "blockedCount": rollup.rollup_blocked_count,
                    "overdueCount": rollup.rollup_overdue_count,
                },
                "dependencies": edges_by_item.get(item.id, []),
            }
        )

    return {
        "projectId": str(snapshot.project_id),
        "generatedAt": isoformat(snapshot.now),
        "items": items,
    }


def due_overdue(
    snapshot: ProjectSnapshot, now: datetime | None = None, days: int = 7
) -> dict[str, list[dict[str, Any]]]:
    """Split open items with a due date into overdue and due within ``days``.

    Archived and closed items are left out. ``daysUntilDue`` is the ceiling
    of the day difference, so it is zero or negative for overdue items.
    """
    now = as_utc(now) if now else snapshot.now
    cutoff = now + days * DAY
    overdue: list[dict[str, Any]] = []
    due_soon: list[dict[str, Any]] = []

    for item in sorted(
        snapshot.items, key=lambda i: as_utc(i.due_at) or now
    ):
        due_at = as_utc(item.due_at)
        if due_at is None or item.archived_at is not None:
            continue
        if item.status in CLOSED_STATUSES:
            continue
        entry = {
            "itemId": str(item.id),
            "title": item.title,
            "dueAt": isoformat(due_at),
            "daysUntilDue": math.ceil((due_at - now) / DAY),
        }
        if due_at < now:
            overdue.append(entry)
        elif due_at <= cutoff:
            due_soon.append(entry)

    return {"overdue": overdue, "dueSoon": due_soon}


UNRESOLVED_BLOCKERS = "Unresolved blockers"
DEPENDENCY_NOT_SATISFIED = "Dependency not satisfied"


def blocked_view(
    snapshot: ProjectSnapshot, now: datetime | None = None, days: int = 7
) -> dict[str, list[dict[str, Any]]]:
    """What is holding up the live (non-archived) items of a project.

    - ``blockedByDependencies``: one row per violated edge.
    - ``blockedByBlockers``: items with at least one active blocker.
    - ``scheduledButBlocked``: blocks starting within ``days`` whose item
      is held up by either of the above.

    Archived items drop out entirely, so an edge to an archived
    predecessor has no schedule on this view and is never violated.
    """
    now = as_utc(now) if now else snapshot.now
    cutoff = now + days * DAY
    live = {item.id: item for item in snapshot.items if item.archived_at is None}
    windows = {
        item_id: window for item_id, window in snapshot.windows.items() if item_id in live
    }

    by_dependencies: list[dict[str, Any]] = []
    held_by_dependencies: set[UUID] = set()
    for dependency in snapshot.dependencies:
        item = live.get(dependency.item_id)
        if item is None:
            continue
        status, reason = edge_status(dependency, windows)
        if status is not DependencyStatus.VIOLATED:
            continue
        held_by_dependencies.add(item.id)
        by_dependencies.append(
            {
                "itemId": str(item.id),
                "title": item.title,
                "dependencyId": str(dependency.id),
                "dependsOnId": str(dependency.depends_on_id),
                "status": status.value,
                "reason": reason,
            }
        )

    by_blockers = [
        {
            "itemId": str(item.id),
            "title": item.title,
            "activeBlockerCount": snapshot.active_blockers[item.id],
            "reason": UNRESOLVED_BLOCKERS,
        }
        for item in live.values()
        if snapshot.active_blockers.get(item.id, 0) > 0
    ]

    held_by_blockers = {
        item_id for item_id in live if snapshot.active_blockers.get(item_id, 0) > 0
    }
    scheduled: list[dict[str, Any]] = []
    for block in snapshot.blocks:
        item = live.get(block.item_id)
        start_at = as_utc(block.start_at)
        if item is None or start_at is None or not now <= start_at <= cutoff:
            continue
        if item.id in held_by_blockers:
            reason = UNRESOLVED_BLOCKERS
        elif item.id in held_by_dependencies:
            reason = DEPENDENCY_NOT_SATISFIED
        else:
            continue
        scheduled.append(
            {
                "itemId": str(item.id),
                "title": item.title,
                "blockId": str(block.id),
                "startAt": isoformat(start_at),
                "durationMinutes": block.duration_minutes,
                "reason": reason,
            }
        )

    if by_dependencies or by_blockers:
        logger.debug(
            "blocked_view_built",
            project_id=str(snapshot.project_id),
            blocked_by_dependencies=len(by_dependencies),
            blocked_by_blockers=len(by_blockers),
        )
    return {
        "blockedByDependencies": by_dependencies,
        "blockedByBlockers": by_blockers,
        "scheduledButBlocked": scheduled,
    }

"""Consistency audit over one project's rows.

Most lists come back empty on a healthy database because the mutation
engine rejects those states at write time. Two can fill up through normal
use: ``archivedDependencies`` after an edge endpoint is archived, and
``assigneesNotMembers`` after an assignee is removed from the project.
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from planboard.exceptions import NotFoundError
from planboard.models.item import Dependency, Item, ScheduledBlock
from planboard.models.project import Project, ProjectMember
from planboard.services.graph import find_dependency_cycles

logger = structlog.get_logger()


async def integrity_report(db: AsyncSession, project_id: UUID) -> dict[str, Any]:
    """Collect rows that break the tree, graph or membership rules.

    Orphan checks are global because an orphan has no project to scope by.
    """
    result = await db.execute(select(Project.id).where(Project.id == project_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError("project", project_id)

    result = await db.execute(
        select(Item.id, Item.archived_at).where(Item.project_id == project_id)
    )
    items = result.all()
    item_ids = [row.id for row in items]
    archived_ids = {row.id for row in items if row.archived_at is not None}

    result = await db.execute(
        select(ScheduledBlock.id, ScheduledBlock.item_id, ScheduledBlock.duration_minutes)
        .join(Item, Item.id == ScheduledBlock.item_id)
        .where(Item.project_id == project_id, ScheduledBlock.duration_minutes <= 0)
    )
    invalid_block_durations = [
        {"id": str(r.id), "itemId": str(r.item_id), "durationMinutes": r.duration_minutes}
        for r in result.all()
    ]

    result = await db.execute(
        select(ScheduledBlock.id, ScheduledBlock.item_id)
        .outerjoin(Item, Item.id == ScheduledBlock.item_id)
        .where(Item.id.is_(None))
    )
    orphan_blocks = [{"id": str(r.id), "itemId": str(r.item_id)} for r in result.all()]

    successor = aliased(Item)
    predecessor = aliased(Item)
    result = await db.execute(
        select(Dependency.id, Dependency.item_id, Dependency.depends_on_id)
        .outerjoin(successor, successor.id == Dependency.item_id)
        .outerjoin(predecessor, predecessor.id == Dependency.depends_on_id)
        .where(or_(successor.id.is_(None), predecessor.id.is_(None)))
    )
    orphan_dependencies = [_edge(r) for r in result.all()]

    scoped: list[Any] = []
    if item_ids:
        result = await db.execute(
            select(
                Dependency.id,
                Dependency.item_id,
                Dependency.depends_on_id,
                predecessor.project_id.label("depends_on_project_id"),
            )
            .join(predecessor, predecessor.id == Dependency.depends_on_id)
            .where(Dependency.item_id.in_(item_ids))
        )
        scoped = result.all()

    cross_project = [_edge(r) for r in scoped if r.depends_on_project_id != project_id]
    touching_archived = [
        _edge(r)
        for r in scoped
        if r.item_id in archived_ids or r.depends_on_id in archived_ids
    ]
    cycles = [
        [str(node) for node in cycle]
        for cycle in find_dependency_cycles((r.item_id, r.depends_on_id) for r in scoped)
    ]

    result = await db.execute(
        select(Item.id, Item.assignee_user_id)
        .outerjoin(
            ProjectMember,
            and_(
                ProjectMember.project_id == Item.project_id,
                ProjectMember.user_id == Item.assignee_user_id,
            ),
        )
        .where(
            Item.project_id == project_id,
            Item.assignee_user_id.is_not(None),
            ProjectMember.id.is_(None),
        )
    )
    assignees_not_members = [
        {"itemId": str(r.id), "assigneeUserId": str(r.assignee_user_id)}
        for r in result.all()
    ]

    counts = {
        "items": len(items),
        "archivedItems": len(archived_ids),
        "invalidBlockDurations": len(invalid_block_durations),
        "orphanBlocks": len(orphan_blocks),
        "orphanDependencies": len(orphan_dependencies),
        "crossProjectDependencies": len(cross_project),
        "archivedDependencies": len(touching_archived),
        "dependencyCycles": len(cycles),
        "assigneesNotMembers": len(assignees_not_members),
    }
    problems = sum(v for k, v in counts.items() if k not in ("items", "archivedItems"))
    if problems:
        logger.warning("integrity_problems_found", project_id=str(project_id), **counts)

    return {
        "projectId": str(project_id),
        "counts": counts,
        "invalidBlockDurations": invalid_block_durations,
        "orphanBlocks": orphan_blocks,
        "orphanDependencies": orphan_dependencies,
        "crossProjectDependencies": cross_project,
        "archivedDependencies": touching_archived,
        "dependencyCycles": cycles,
        "assigneesNotMembers": assignees_not_members,
    }


def _edge(row: Any) -> dict[str, str]:
    return {
        "id": str(row.id),
        "itemId": str(row.item_id),
        "dependsOnId": str(row.depends_on_id),
    }

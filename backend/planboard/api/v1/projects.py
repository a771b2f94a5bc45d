"""Read-only project views."""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query

from planboard.api.deps import CurrentUserId
from planboard.config import get_settings
from planboard.db.session import DBSession
from planboard.services.access_control import list_user_projects, role_of
from planboard.services.integrity import integrity_report
from planboard.services.snapshot import (
    blocked_view,
    build_project_view,
    due_overdue,
    load_project_snapshot,
)

router = APIRouter()


@router.get("")
async def list_projects(db: DBSession, user_id: CurrentUserId) -> dict[str, Any]:
    """Projects the caller is a member of."""
    return {"projects": await list_user_projects(db, user_id)}


@router.get("/{project_id}/rollups")
async def get_project_rollups(
    project_id: UUID,
    db: DBSession,
    user_id: CurrentUserId,
    now: datetime | None = Query(None),
) -> dict[str, Any]:
    """Items with schedule windows, rollup totals and dependency status."""
    await role_of(db, project_id, user_id)
    snapshot = await load_project_snapshot(db, project_id, now=now)
    return build_project_view(snapshot)


@router.get("/{project_id}/integrity")
async def get_project_integrity(
    project_id: UUID,
    db: DBSession,
    user_id: CurrentUserId,
) -> dict[str, Any]:
    """Rows that violate tree, graph or membership rules."""
    await role_of(db, project_id, user_id)
    return await integrity_report(db, project_id)


@router.get("/{project_id}/due")
async def get_project_due(
    project_id: UUID,
    db: DBSession,
    user_id: CurrentUserId,
    days: int | None = Query(None, ge=0, le=365),
    now: datetime | None = Query(None),
) -> dict[str, Any]:
    """Overdue items and items due within ``days``."""
    await role_of(db, project_id, user_id)
    snapshot = await load_project_snapshot(db, project_id, now=now)
    if days is None:
        days = get_settings().due_soon_days
    return due_overdue(snapshot, days=days)


@router.get("/{project_id}/blocked")
async def get_project_blocked(
    project_id: UUID,
    db: DBSession,
    user_id: CurrentUserId,
    days: int | None = Query(None, ge=0, le=365),
    now: datetime | None = Query(None),
) -> dict[str, Any]:
    """Items held up by blockers or violated dependencies."""
    await role_of(db, project_id, user_id)
    snapshot = await load_project_snapshot(db, project_id, now=now)
    if days is None:
        days = get_settings().due_soon_days
    return blocked_view(snapshot, days=days)

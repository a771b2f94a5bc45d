"""Project access control service.

Every mutation resolves the acting user's role through a direct
``project_members`` row:
- owner: edit content and manage membership
- editor: edit content
- viewer: read only
"""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planboard.exceptions import ForbiddenError, NotAMemberError, ValidationError
from planboard.models.project import Project, ProjectMember

logger = structlog.get_logger()


# Role hierarchy for permission checking (higher = more permissions)
ROLE_HIERARCHY = {"owner": 3, "editor": 2, "viewer": 1}


def has_sufficient_role(user_role: str, required_role: str) -> bool:
    """Check if user_role meets or exceeds required_role."""
    return ROLE_HIERARCHY.get(user_role, 0) >= ROLE_HIERARCHY.get(required_role, 0)


async def get_membership(
    db: AsyncSession, project_id: UUID, user_id: UUID
) -> ProjectMember | None:
    """Fetch the membership row for a user in a project, if any."""
    result = await db.execute(
        select(ProjectMember).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def role_of(db: AsyncSession, project_id: UUID, user_id: UUID) -> str:
    """Return the user's role in the project.

    Raises:
        NotAMemberError if the user has no membership row
    """
    result = await db.execute(
        select(ProjectMember.role).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    )
    role = result.scalar_one_or_none()
    if role is None:
        logger.info(
            "project_access_denied",
            project_id=str(project_id),
            user_id=str(user_id),
            reason="not_a_member",
        )
        raise NotAMemberError(project_id, user_id)
    return role


def require_editor(role: str) -> None:
    """Fail unless the role may edit project content."""
    if not has_sufficient_role(role, "editor"):
        raise ForbiddenError(f"editor role required (have {role})")


def require_owner(role: str) -> None:
    """Fail unless the role may manage membership."""
    if not has_sufficient_role(role, "owner"):
        raise ForbiddenError(f"owner role required (have {role})")


async def require_member(
    db: AsyncSession,
    project_id: UUID,
    user_id: UUID | None,
    field: str = "assigneeUserId",
) -> None:
    """Validate that a candidate assignee belongs to the project.

    This is an argument check, not an authorization check, so it fails
    with ValidationError rather than ForbiddenError. ``None`` passes.
    """
    if user_id is None:
        return
    if await get_membership(db, project_id, user_id) is None:
        raise ValidationError(field, "assignee must be a project member")



async def list_user_projects(db: AsyncSession, user_id: UUID) -> list[dict]:
    """Projects the user belongs to, most recently updated first."""
    result = await db.execute(
        select(Project.id, Project.title, ProjectMember.role)
        .join(ProjectMember, ProjectMember.project_id == Project.id)
        .where(ProjectMember.user_id == user_id)
        .order_by(Project.updated_at.desc(), Project.title)
    )
    return [
        {"id": str(project_id), "title": title, "role": role}
        for project_id, title, role in result.all()
    ]

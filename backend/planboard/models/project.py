"""Project and membership models - the root of access control."""

from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planboard.db.base import BaseModel

# Role hierarchy for permission checking (higher = more permissions)
PROJECT_ROLES = ("owner", "editor", "viewer")


class Project(BaseModel):
    """Project owning a tree of items."""

    __tablename__ = "projects"

    title: Mapped[str] = mapped_column(String(500), nullable=False)

    # User ids are opaque; authentication lives outside the core
    owner_user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )

    # Relationships
    members: Mapped[list["ProjectMember"]] = relationship(
        "ProjectMember",
        back_populates="project",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        try:
            return f"<Project {self.title[:30]}>"
        except Exception:
            try:
                return f"<Project id={self.id}>"
            except Exception:
                return "<Project detached>"


class ProjectMember(BaseModel):
    """Project membership with role-based access."""

    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        CheckConstraint(
            "role IN ('owner', 'editor', 'viewer')", name="ck_project_member_role"
        ),
    )

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(
        String(50), nullable=False, default="viewer"
    )  # owner, editor, viewer

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="members")

    def __repr__(self) -> str:
        return f"<ProjectMember project={self.project_id} user={self.user_id}>"

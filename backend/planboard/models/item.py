"""Item tree, dependency graph and the rows hanging off items."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from planboard.db.base import Base, BaseModel, CreatedAtMixin, UUIDMixin

ITEM_TYPES = ("milestone", "task", "subtask")
ESTIMATE_MODES = ("manual", "rollup")
DEPENDENCY_TYPES = ("FS", "SS", "FF", "SF")

# Statuses that count as finished for overdue checks
CLOSED_STATUSES = ("done", "canceled")
DONE_STATUS = "done"


class Item(BaseModel):
    """Milestone, task or subtask inside a project's item tree."""

    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint(
            "type IN ('milestone', 'task', 'subtask')", name="ck_item_type"
        ),
        CheckConstraint(
            "estimate_mode IN ('manual', 'rollup')", name="ck_item_estimate_mode"
        ),
        CheckConstraint("estimate_minutes >= 0", name="ck_item_estimate_minutes"),
    )

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Parent must live in the same project; validated on write, never derived
    parent_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("items.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Basic info
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="backlog")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    health: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sequence_rank: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timeline
    due_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Estimation
    estimate_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default="manual"
    )  # manual, rollup
    estimate_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Assignment (must be a project member)
    assignee_user_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        try:
            return f"<Item {self.type} {self.title[:30]}>"
        except Exception:
            try:
                return f"<Item id={self.id}>"
            except Exception:
                return "<Item detached>"


class Dependency(Base, UUIDMixin, CreatedAtMixin):
    """Precedence edge: ``item_id`` depends on ``depends_on_id``."""

    __tablename__ = "dependencies"
    __table_args__ = (
        UniqueConstraint("item_id", "depends_on_id", name="uq_dependency_pair"),
        CheckConstraint("type IN ('FS', 'SS', 'FF', 'SF')", name="ck_dependency_type"),
        CheckConstraint("item_id <> depends_on_id", name="ck_dependency_not_self"),
    )

    item_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    depends_on_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(2), nullable=False, default="FS")
    lag_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Dependency {self.item_id} -> {self.depends_on_id} {self.type}>"


class ScheduledBlock(BaseModel):
    """A planned working window for an item."""

    __tablename__ = "scheduled_blocks"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_scheduled_block_duration"),
    )

    item_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<ScheduledBlock item={self.item_id} {self.duration_minutes}m>"


class Blocker(Base, UUIDMixin, CreatedAtMixin):
    """Something holding an item up; active while ``cleared_at`` is null."""

    __tablename__ = "blockers"

    item_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cleared_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_active(self) -> bool:
        return self.cleared_at is None

    def __repr__(self) -> str:
        return f"<Blocker item={self.item_id} kind={self.kind}>"


class TimeEntry(Base, UUIDMixin, CreatedAtMixin):
    """Tracked time on an item; running while ``end_at`` is null."""

    __tablename__ = "time_entries"

    item_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def is_running(self) -> bool:
        return self.end_at is None

    def __repr__(self) -> str:
        return f"<TimeEntry item={self.item_id} running={self.is_running}>"

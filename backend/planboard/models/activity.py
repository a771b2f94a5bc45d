"""Audit trail of applied mutations."""

from typing import Any
from uuid import UUID

from sqlalchemy import JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from planboard.db.base import Base, CreatedAtMixin, UUIDMixin


class OpLogEntry(Base, UUIDMixin, CreatedAtMixin):
    """
    Append-only record of one applied operation.

    Written inside the batch transaction, so it exists iff the batch
    committed. The engine never reads it back; it feeds forensic and undo
    tooling.
    """

    __tablename__ = "op_log"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="Acting user",
    )
    project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
        comment="Project the operation touched, if any",
    )
    op_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Operation name (e.g., 'item.create')",
    )
    op_json: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="Full payload: {'opName': ..., 'args': ...}",
    )

    def __repr__(self) -> str:
        return f"<OpLogEntry {self.op_name} user={self.user_id}>"

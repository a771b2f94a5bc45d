"""SQLAlchemy models package."""

from planboard.models.activity import OpLogEntry
from planboard.models.item import (
    Blocker,
    Dependency,
    Item,
    ScheduledBlock,
    TimeEntry,
)
from planboard.models.project import Project, ProjectMember

__all__ = [
    "Blocker",
    "Dependency",
    "Item",
    "OpLogEntry",
    "Project",
    "ProjectMember",
    "ScheduledBlock",
    "TimeEntry",
]

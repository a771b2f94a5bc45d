"""Domain services: access control, graph traversal and read-path derivations."""

from planboard.services.access_control import (
    ROLE_HIERARCHY,
    has_sufficient_role,
    list_user_projects,
    require_editor,
    require_owner,
    role_of,
)
from planboard.services.dependency_status import (
    DependencyStatus,
    evaluate_dependency_status,
)
from planboard.services.integrity import integrity_report
from planboard.services.notification import Notifier, PubSub, get_notifier
from planboard.services.rollup import RollupRow, RollupTotals, compute_rollup_totals
from planboard.services.snapshot import (
    ProjectSnapshot,
    blocked_view,
    build_project_view,
    due_overdue,
    load_project_snapshot,
)

__all__ = [
    "DependencyStatus",
    "Notifier",
    "ProjectSnapshot",
    "PubSub",
    "ROLE_HIERARCHY",
    "RollupRow",
    "RollupTotals",
    "blocked_view",
    "build_project_view",
    "compute_rollup_totals",
    "due_overdue",
    "evaluate_dependency_status",
    "get_notifier",
    "has_sufficient_role",
    "integrity_report",
    "list_user_projects",
    "load_project_snapshot",
    "require_editor",
    "require_owner",
    "role_of",
]

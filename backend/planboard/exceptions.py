"""Mutation engine exceptions.

Every failure carries a ``kind`` the transport maps to a status code, and a
human-readable message. Raising any of these inside a batch aborts the
whole batch.
"""

from uuid import UUID


class PlanboardError(Exception):
    """Base exception for engine errors."""

    kind = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(PlanboardError):
    """Missing, malformed or out-of-range argument.

    The offending field is always named so callers can point at it.
    """

    kind = "validation"

    def __init__(self, field: str, message: str | None = None):
        self.field = field
        super().__init__(message or f"{field} is required")


class ForbiddenError(PlanboardError):
    """Acting user's role is below what the operation needs."""

    kind = "forbidden"

    def __init__(self, message: str = "forbidden"):
        super().__init__(message)


class NotAMemberError(ForbiddenError):
    """Acting user has no membership row in the project."""

    def __init__(self, project_id: UUID, user_id: UUID):
        self.project_id = project_id
        self.user_id = user_id
        super().__init__(f"user {user_id} is not a member of project {project_id}")


class NotFoundError(PlanboardError):
    """Referenced row does not exist.

    Raised for projects, items, dependencies, blockers, time entries,
    scheduled blocks and memberships.
    """

    kind = "not_found"

    def __init__(self, entity: str, entity_id: object | None = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            message = f"{entity} not found"
        else:
            message = f"{entity} {entity_id} not found"
        super().__init__(message)


class ConflictError(PlanboardError):
    """Request is well-formed but clashes with current state.

    Self-dependencies, dependency cycles, writes against archived items and
    double-stopping a time entry all land here.
    """

    kind = "conflict"


class UnknownOperationError(PlanboardError):
    """Operation name is not in the catalog."""

    kind = "unknown_operation"

    def __init__(self, op_name: str):
        self.op_name = op_name
        super().__init__(f"unknown op: {op_name}")

"""Request/response models and argument coercion for the ops endpoint."""

import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from planboard.exceptions import ValidationError
from planboard.models.item import ESTIMATE_MODES
from planboard.utils.dates import isoformat, parse_timestamp

# Marks "key not supplied" inside OpArgs lookups only; never escapes this module
_MISSING = object()


class OpEnvelope(BaseModel):
    """One operation in a batch."""

    model_config = ConfigDict(populate_by_name=True)

    op_name: str = Field(..., alias="opName", min_length=1)
    args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("args", mode="before")
    @classmethod
    def default_args(cls, v: Any) -> Any:
        return {} if v is None else v


class OpsRequest(BaseModel):
    """Batch request body."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID | None = Field(default=None, alias="userId")
    ops: list[OpEnvelope]


class OpResult(BaseModel):
    """Outcome of one applied operation."""

    model_config = ConfigDict(populate_by_name=True)

    op_name: str = Field(..., alias="opName")
    ok: Literal[True] = True
    result: Any = None


class OpsResponse(BaseModel):
    """Batch response body for a committed batch."""

    model_config = ConfigDict(populate_by_name=True)

    ok: Literal[True] = True
    results: list[OpResult]
    affected_project_ids: list[str] = Field(default_factory=list, alias="affectedProjectIds")
    affected_user_ids: list[str] = Field(default_factory=list, alias="affectedUserIds")


class ItemPatch(BaseModel):
    """Partial update for an item.

    Only fields in ``model_fields_set`` were supplied; a supplied field may
    be ``None`` to clear a nullable column.
    """

    title: str | None = None
    priority: int | None = None
    due_at: datetime | None = None
    estimate_mode: str | None = None
    estimate_minutes: int | None = None
    notes: str | None = None
    health: str | None = None
    parent_id: UUID | None = None
    assignee_user_id: UUID | None = None
    sequence_rank: int | None = None

    def supplied(self) -> dict[str, Any]:
        """The supplied fields and their values."""
        return {name: getattr(self, name) for name in self.model_fields_set}


def to_jsonable(value: Any) -> Any:
    """Deep-convert UUIDs and datetimes so a payload can go into a JSON column."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return isoformat(value)
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


class OpArgs:
    """Typed, validating reader over an operation's raw ``args`` mapping.

    Each accessor takes a primary key plus optional aliases. Empty strings
    count as absent. A present value of the wrong shape always raises
    ValidationError naming the primary key.
    """

    def __init__(self, raw: Mapping[str, Any] | None):
        self.raw = dict(raw or {})

    def has(self, key: str, *aliases: str) -> bool:
        return any(k in self.raw for k in (key, *aliases))

    def _lookup(self, key: str, aliases: tuple[str, ...]) -> Any:
        for k in (key, *aliases):
            if k in self.raw:
                return self.raw[k]
        return _MISSING

    def _absent(self, value: Any) -> bool:
        if value is _MISSING or value is None:
            return True
        return isinstance(value, str) and not value.strip()

    def text(self, key: str, *aliases: str, required: bool = False) -> str | None:
        value = self._lookup(key, aliases)
        if self._absent(value):
            if required:
                raise ValidationError(key)
            return None
        if not isinstance(value, str):
            raise ValidationError(key, f"{key} must be a string")
        return value.strip()

    def uuid(self, key: str, *aliases: str, required: bool = False) -> UUID | None:
        value = self._lookup(key, aliases)
        if self._absent(value):
            if required:
                raise ValidationError(key)
            return None
        if isinstance(value, UUID):
            return value
        if isinstance(value, str):
            try:
                return UUID(value.strip())
            except ValueError:
                pass
        raise ValidationError(key, f"{key} must be a UUID")

    def integer(self, key: str, *aliases: str, required: bool = False) -> int | None:
        value = self._lookup(key, aliases)
        if value is _MISSING or value is None:
            if required:
                raise ValidationError(key)
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(key, f"{key} must be a number")
        if isinstance(value, float):
            if not math.isfinite(value) or not value.is_integer():
                raise ValidationError(key, f"{key} must be an integer")
            value = int(value)
        return value

    def timestamp(
        self, key: str, *aliases: str, required: bool = False
    ) -> datetime | None:
        value = self._lookup(key, aliases)
        if self._absent(value):
            if required:
                raise ValidationError(key)
            return None
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValidationError(key, f"{key} must be an ISO-8601 timestamp")
        return parsed

    def uuid_list(self, key: str, required: bool = False) -> list[UUID]:
        value = self._lookup(key, ())
        if value is _MISSING or value is None:
            value = []
        if not isinstance(value, (list, tuple)):
            raise ValidationError(key, f"{key} must be a list")
        ids: list[UUID] = []
        for entry in value:
            if entry is None or (isinstance(entry, str) and not entry.strip()):
                continue
            try:
                ids.append(entry if isinstance(entry, UUID) else UUID(str(entry).strip()))
            except ValueError as exc:
                raise ValidationError(key, f"{key} must contain UUIDs") from exc
        if required and not ids:
            raise ValidationError(key, "item ids are required")
        return list(dict.fromkeys(ids))

    def mapping(self, key: str) -> "OpArgs":
        value = self._lookup(key, ())
        if value is _MISSING or value is None:
            return OpArgs({})
        if not isinstance(value, Mapping):
            raise ValidationError(key, f"{key} must be an object")
        return OpArgs(value)


ITEM_PATCH_FIELDS = {
    "title": ("title",),
    "priority": ("priority",),
    "due_at": ("dueAt", "due_at"),
    "estimate_mode": ("estimateMode", "estimate_mode"),
    "estimate_minutes": ("estimateMinutes", "estimate_minutes"),
    "notes": ("notes",),
    "health": ("health",),
    "parent_id": ("parentId", "parent_id"),
    "assignee_user_id": ("assigneeUserId", "assignee_user_id"),
    "sequence_rank": ("sequenceRank", "sequence_rank"),
}


def parse_item_patch(patch: OpArgs) -> ItemPatch:
    """Coerce the raw ``patch`` object of ``item.update`` into an ItemPatch.

    Field-level rules (non-empty title, estimate bounds, mode values) are
    enforced here so the executor only deals with typed values.
    """
    values: dict[str, Any] = {}
    for field, keys in ITEM_PATCH_FIELDS.items():
        if not patch.has(*keys):
            continue
        key, *aliases = keys
        if field == "title":
            values[field] = patch.text(key, required=True)
        elif field in ("priority", "sequence_rank"):
            values[field] = patch.integer(key, *aliases, required=True)
        elif field == "due_at":
            values[field] = patch.timestamp(key, *aliases)
        elif field == "estimate_mode":
            values[field] = validate_estimate_mode(
                patch.text(key, *aliases, required=True), key
            )
        elif field == "estimate_minutes":
            values[field] = validate_estimate_minutes(
                patch.integer(key, *aliases, required=True), key
            )
        elif field in ("parent_id", "assignee_user_id"):
            values[field] = patch.uuid(key, *aliases)
        else:
            values[field] = patch.text(key, *aliases)
    return ItemPatch.model_construct(**values)


def validate_estimate_mode(mode: str, field: str = "estimateMode") -> str:
    if mode not in ESTIMATE_MODES:
        raise ValidationError(field, f"{field} must be manual or rollup")
    return mode


def validate_estimate_minutes(minutes: int, field: str = "estimateMinutes") -> int:
    if minutes < 0:
        raise ValidationError(field, f"{field} must be zero or positive")
    return minutes


def validate_duration(minutes: int | None, field: str = "durationMinutes") -> int:
    if minutes is None:
        raise ValidationError(field)
    if minutes <= 0:
        raise ValidationError(field, f"{field} must be a positive integer")
    return minutes

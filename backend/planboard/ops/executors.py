"""Per-operation handlers for the mutation engine."""

from collections.abc import Awaitable, Callable
from typing import Any, Dict
from uuid import UUID

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from planboard.config import get_settings
from planboard.exceptions import (
    ConflictError,
    NotFoundError,
    UnknownOperationError,
    ValidationError,
)
from planboard.models.activity import OpLogEntry
from planboard.models.item import (
    DEPENDENCY_TYPES,
    DONE_STATUS,
    ITEM_TYPES,
    Blocker,
    Dependency,
    Item,
    ScheduledBlock,
    TimeEntry,
)
from planboard.models.project import PROJECT_ROLES, Project, ProjectMember
from planboard.ops.schemas import (
    OpArgs,
    parse_item_patch,
    to_jsonable,
    validate_duration,
    validate_estimate_minutes,
    validate_estimate_mode,
)
from planboard.services.access_control import (
    get_membership,
    require_editor,
    require_member,
    require_owner,
    role_of,
)
from planboard.services.graph import (
    dependency_creates_cycle,
    descendant_ids,
    would_create_parent_cycle,
)
from planboard.utils.dates import as_utc, utcnow

logger = structlog.get_logger()

Handler = Callable[[str, OpArgs], Awaitable[Dict[str, Any]]]


class OperationExecutor:
    """Applies single operations against the session's open transaction.

    The executor never commits; the dispatcher owns the transaction. Each
    handler flushes so later operations in the same batch observe its
    writes. Touched project and user ids accumulate on the instance.
    """

    def __init__(self, db: AsyncSession, user_id: UUID):
        self.db = db
        self.user_id = user_id
        self.affected_project_ids: set[UUID] = set()
        self.affected_user_ids: set[UUID] = set()

        # Route to appropriate executor
        self._executor_map: dict[str, Handler] = {
            "project.create": self._execute_project_create,
            "project.update": self._execute_project_update,
            "project.member_add": self._execute_member_add,
            "project.member_update": self._execute_member_update,
            "project.member_remove": self._execute_member_remove,
            "item.create": self._execute_item_create,
            "item.update": self._execute_item_update,
            "item.set_status": self._execute_item_set_status,
            "item.archive": self._execute_item_archive,
            "item.restore": self._execute_item_archive,
            "item.delete": self._execute_item_delete,
            "item.bulk_delete": self._execute_item_delete,
            "scheduled_block.create": self._execute_block_create,
            "scheduled_block.move": self._execute_block_change,
            "scheduled_block.resize": self._execute_block_change,
            "scheduled_block.delete": self._execute_block_change,
            "dependency.add": self._execute_dependency_add,
            "dependency.update": self._execute_dependency_update,
            "dependency.remove": self._execute_dependency_remove,
            "blocker.add": self._execute_blocker_add,
            "blocker.clear": self._execute_blocker_clear,
            "time_entry.start": self._execute_time_entry_start,
            "time_entry.stop": self._execute_time_entry_stop,
        }

    async def execute(self, op_name: str, args: Dict[str, Any] | None) -> Dict[str, Any]:
        """Validate, authorize and apply one operation; return its result."""
        executor = self._executor_map.get(op_name)
        if executor is None:
            raise UnknownOperationError(op_name)
        return await executor(op_name, OpArgs(args))

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def _touch(self, project_id: UUID | None, *user_ids: UUID | None) -> None:
        if project_id is not None:
            self.affected_project_ids.add(project_id)
        self.affected_user_ids.update(u for u in user_ids if u is not None)

    async def _record(
        self, op_name: str, project_id: UUID | None, args: Dict[str, Any]
    ) -> None:
        """Append the audit row and flush pending writes."""
        self.db.add(
            OpLogEntry(
                user_id=self.user_id,
                project_id=project_id,
                op_name=op_name,
                op_json={"opName": op_name, "args": to_jsonable(args)},
            )
        )
        await self.db.flush()

    async def _get_project(self, project_id: UUID) -> Project:
        result = await self.db.execute(select(Project).where(Project.id == project_id))
        project = result.scalar_one_or_none()
        if not project:
            raise NotFoundError("project", project_id)
        return project

    async def _get_item(self, item_id: UUID) -> Item:
        result = await self.db.execute(select(Item).where(Item.id == item_id))
        item = result.scalar_one_or_none()
        if not item:
            raise NotFoundError("item", item_id)
        return item

    async def _require_editor(self, project_id: UUID) -> str:
        role = await role_of(self.db, project_id, self.user_id)
        require_editor(role)
        return role

    def _require_active(self, item: Item, message: str) -> None:
        if item.archived_at is not None:
            logger.warning(
                "archived_item_rejected",
                item_id=str(item.id),
                user_id=str(self.user_id),
            )
            raise ConflictError(message)

    async def _validate_parent(
        self, project_id: UUID, parent_id: UUID, field: str = "parentId"
    ) -> Item:
        result = await self.db.execute(select(Item).where(Item.id == parent_id))
        parent = result.scalar_one_or_none()
        if not parent:
            raise NotFoundError("parent item", parent_id)
        if parent.project_id != project_id:
            raise ValidationError(field, "parent item must belong to the same project")
        return parent

    # =========================================================================
    # Projects and membership
    # =========================================================================

    async def _execute_project_create(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        title = args.text("title", required=True)

        project = Project(title=title, owner_user_id=self.user_id)
        self.db.add(project)
        await self.db.flush()
        self.db.add(
            ProjectMember(project_id=project.id, user_id=self.user_id, role="owner")
        )

        await self._record(op_name, project.id, args.raw)
        self._touch(project.id)
        return {"id": str(project.id), "title": project.title}

    async def _execute_project_update(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        project_id = args.uuid("projectId", required=True)
        title = args.text("title", required=True)

        project = await self._get_project(project_id)
        await self._require_editor(project_id)
        project.title = title

        await self._record(op_name, project_id, args.raw)
        self._touch(project_id)
        return {"id": str(project.id), "title": project.title}

    async def _member_target(self, args: OpArgs) -> tuple[UUID, UUID]:
        project_id = args.uuid("projectId", required=True)
        member_id = args.uuid("userId", required=True)
        await self._get_project(project_id)
        require_owner(await role_of(self.db, project_id, self.user_id))
        return project_id, member_id

    def _member_role(self, args: OpArgs, default: str | None = None) -> str:
        role = args.text("role") or default
        if role is None:
            raise ValidationError("role")
        if role not in PROJECT_ROLES:
            raise ValidationError("role", f"role must be one of {', '.join(PROJECT_ROLES)}")
        return role

    async def _execute_member_add(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        project_id, member_id = await self._member_target(args)
        role = self._member_role(args, default=get_settings().default_member_role)

        membership = await get_membership(self.db, project_id, member_id)
        if membership:
            membership.role = role
        else:
            self.db.add(ProjectMember(project_id=project_id, user_id=member_id, role=role))

        await self._record(op_name, project_id, args.raw)
        self._touch(project_id, member_id)
        return {"projectId": str(project_id), "userId": str(member_id), "role": role}

    async def _execute_member_update(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        project_id, member_id = await self._member_target(args)
        role = self._member_role(args)

        membership = await get_membership(self.db, project_id, member_id)
        if not membership:
            raise NotFoundError("project member", member_id)
        membership.role = role

        await self._record(op_name, project_id, args.raw)
        self._touch(project_id, member_id)
        return {"projectId": str(project_id), "userId": str(member_id), "role": role}

    async def _execute_member_remove(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        project_id, member_id = await self._member_target(args)

        await self.db.execute(
            delete(ProjectMember).where(
                ProjectMember.project_id == project_id,
                ProjectMember.user_id == member_id,
            )
        )

        await self._record(op_name, project_id, args.raw)
        self._touch(project_id, member_id)
        return {"projectId": str(project_id), "userId": str(member_id)}

    # =========================================================================
    # Items
    # =========================================================================

    async def _execute_item_create(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        project_id = args.uuid("projectId", required=True)
        title = args.text("title", required=True)
        item_type = args.text("type", required=True)
        if item_type not in ITEM_TYPES:
            raise ValidationError("type", f"type must be one of {', '.join(ITEM_TYPES)}")

        await self._get_project(project_id)
        await self._require_editor(project_id)

        parent_id = args.uuid("parentId", "parent_id")
        if parent_id:
            await self._validate_parent(project_id, parent_id)

        estimate_mode = validate_estimate_mode(
            args.text("estimateMode", "estimate_mode") or "manual"
        )
        estimate_minutes = validate_estimate_minutes(
            args.integer("estimateMinutes", "estimate_minutes") or 0
        )
        assignee_user_id = args.uuid("assigneeUserId", "assignee_user_id")
        await require_member(self.db, project_id, assignee_user_id)

        priority = args.integer("priority")
        sequence_rank = args.integer("sequenceRank", "sequence_rank")
        item = Item(
            project_id=project_id,
            parent_id=parent_id,
            type=item_type,
            title=title,
            status=args.text("status") or get_settings().default_item_status,
            priority=priority if priority is not None else 0,
            due_at=args.timestamp("dueAt", "due_at"),
            estimate_mode=estimate_mode,
            estimate_minutes=estimate_minutes,
            assignee_user_id=assignee_user_id,
            sequence_rank=sequence_rank if sequence_rank is not None else 0,
            notes=args.text("notes"),
            health=args.text("health"),
        )
        self.db.add(item)

        await self._record(op_name, project_id, args.raw)
        self._touch(project_id, assignee_user_id)
        return item.to_dict()

    async def _execute_item_update(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        item_id = args.uuid("itemId", required=True)
        patch = parse_item_patch(args.mapping("patch"))

        item = await self._get_item(item_id)
        await self._require_editor(item.project_id)
        previous_assignee = item.assignee_user_id

        changes = patch.supplied()
        if "parent_id" in changes and changes["parent_id"] is not None:
            await self._validate_parent(item.project_id, changes["parent_id"])
            if await would_create_parent_cycle(self.db, item.id, changes["parent_id"]):
                raise ConflictError("item cannot be moved under itself or a descendant")
        if "assignee_user_id" in changes:
            await require_member(self.db, item.project_id, changes["assignee_user_id"])

        for field, value in changes.items():
            setattr(item, field, value)

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, previous_assignee, item.assignee_user_id)
        return {"id": str(item.id), "updated": sorted(changes)}

    async def _execute_item_set_status(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        item_id = args.uuid("itemId", required=True)
        status = args.text("status", required=True)

        item = await self._get_item(item_id)
        await self._require_editor(item.project_id)

        if item.status != DONE_STATUS and status == DONE_STATUS:
            item.completed_at = utcnow()
        elif item.status == DONE_STATUS and status != DONE_STATUS:
            item.completed_at = None
        item.status = status

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return {"id": str(item.id), "status": status}

    async def _execute_item_archive(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        item_id = args.uuid("itemId", required=True)

        item = await self._get_item(item_id)
        await self._require_editor(item.project_id)

        if op_name == "item.archive":
            if item.archived_at is None:
                item.archived_at = utcnow()
        else:
            item.archived_at = None

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return {"id": str(item.id), "archived": item.archived_at is not None}

    async def _execute_item_delete(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        if op_name == "item.delete":
            ids = [args.uuid("itemId", required=True)]
        else:
            ids = args.uuid_list("ids", required=True)

        result = await self.db.execute(select(Item).where(Item.id.in_(ids)))
        roots = result.scalars().all()
        missing = set(ids) - {item.id for item in roots}
        if missing:
            raise NotFoundError("item", sorted(str(i) for i in missing)[0])

        for project_id in dict.fromkeys(item.project_id for item in roots):
            await self._require_editor(project_id)

        deleted_ids = await descendant_ids(self.db, ids)
        result = await self.db.execute(
            select(Item.id, Item.project_id, Item.assignee_user_id).where(
                Item.id.in_(deleted_ids)
            )
        )
        deleted_by_project: dict[UUID, list[UUID]] = {}
        for row in result.all():
            deleted_by_project.setdefault(row.project_id, []).append(row.id)
            self._touch(row.project_id, row.assignee_user_id)

        await self._delete_items(deleted_ids)

        for project_id, project_item_ids in deleted_by_project.items():
            await self._record(
                op_name, project_id, {**args.raw, "deletedIds": project_item_ids}
            )
        return {"deletedIds": [str(i) for i in deleted_ids]}

    async def _delete_items(self, ids: list[UUID]) -> None:
        """Delete items and every row that references them."""
        if not ids:
            return
        await self.db.execute(
            delete(Dependency).where(
                or_(Dependency.item_id.in_(ids), Dependency.depends_on_id.in_(ids))
            )
        )
        await self.db.execute(delete(Blocker).where(Blocker.item_id.in_(ids)))
        await self.db.execute(delete(ScheduledBlock).where(ScheduledBlock.item_id.in_(ids)))
        await self.db.execute(delete(TimeEntry).where(TimeEntry.item_id.in_(ids)))
        await self.db.execute(delete(Item).where(Item.id.in_(ids)))

    # =========================================================================
    # Scheduled blocks
    # =========================================================================

    async def _execute_block_create(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        item_id = args.uuid("itemId", required=True)
        start_at = args.timestamp("startAt", required=True)
        duration = validate_duration(args.integer("durationMinutes", required=True))

        item = await self._get_item(item_id)
        await self._require_editor(item.project_id)
        self._require_active(item, "cannot schedule archived item")

        block = ScheduledBlock(item_id=item.id, start_at=start_at, duration_minutes=duration)
        self.db.add(block)

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return block.to_dict()

    async def _execute_block_change(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        block_id = args.uuid("blockId", required=True)
        start_at = None
        duration = None
        if op_name == "scheduled_block.move":
            start_at = args.timestamp("startAt", required=True)
        elif op_name == "scheduled_block.resize":
            duration = validate_duration(args.integer("durationMinutes", required=True))

        result = await self.db.execute(
            select(ScheduledBlock).where(ScheduledBlock.id == block_id)
        )
        block = result.scalar_one_or_none()
        if not block:
            raise NotFoundError("scheduled block", block_id)
        item = await self._get_item(block.item_id)
        await self._require_editor(item.project_id)
        self._require_active(item, "cannot modify archived item blocks")

        if op_name == "scheduled_block.delete":
            await self.db.delete(block)
        elif start_at is not None:
            block.start_at = start_at
        else:
            block.duration_minutes = duration

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return {"id": str(block_id)}

    # =========================================================================
    # Dependencies
    # =========================================================================

    def _dependency_type(self, args: OpArgs, default: str | None = None) -> str | None:
        dep_type = args.text("type") or default
        if dep_type is not None and dep_type not in DEPENDENCY_TYPES:
            raise ValidationError(
                "type", f"type must be one of {', '.join(DEPENDENCY_TYPES)}"
            )
        return dep_type

    async def _execute_dependency_add(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        item_id = args.uuid("itemId", required=True)
        depends_on_id = args.uuid("dependsOnId", required=True)
        dep_type = self._dependency_type(args, default="FS")
        lag_minutes = args.integer("lagMinutes")
        lag_minutes = lag_minutes if lag_minutes is not None else 0
        if item_id == depends_on_id:
            raise ConflictError("cannot depend on itself")

        item = await self._get_item(item_id)
        depends_on = await self._get_item(depends_on_id)
        await self._require_editor(item.project_id)
        if item.project_id != depends_on.project_id:
            raise ValidationError(
                "dependsOnId", "dependencies must be within the same project"
            )
        self._require_active(item, "cannot depend on archived item")
        self._require_active(depends_on, "cannot depend on archived item")

        if await dependency_creates_cycle(self.db, item_id, depends_on_id):
            logger.warning(
                "dependency_cycle_rejected",
                item_id=str(item_id),
                depends_on_id=str(depends_on_id),
                user_id=str(self.user_id),
            )
            raise ConflictError("dependency cycle detected")

        result = await self.db.execute(
            select(Dependency).where(
                Dependency.item_id == item_id,
                Dependency.depends_on_id == depends_on_id,
            )
        )
        dependency = result.scalar_one_or_none()
        if dependency:
            dependency.type = dep_type
            dependency.lag_minutes = lag_minutes
        else:
            dependency = Dependency(
                item_id=item_id,
                depends_on_id=depends_on_id,
                type=dep_type,
                lag_minutes=lag_minutes,
            )
            self.db.add(dependency)

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return dependency.to_dict()

    async def _get_dependency(self, dependency_id: UUID) -> Dependency:
        result = await self.db.execute(
            select(Dependency).where(Dependency.id == dependency_id)
        )
        dependency = result.scalar_one_or_none()
        if not dependency:
            raise NotFoundError("dependency", dependency_id)
        return dependency

    async def _execute_dependency_update(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        dependency_id = args.uuid("dependencyId", required=True)
        dep_type = self._dependency_type(args)
        lag_minutes = args.integer("lagMinutes")

        dependency = await self._get_dependency(dependency_id)
        item = await self._get_item(dependency.item_id)
        await self._require_editor(item.project_id)

        if dep_type is not None:
            dependency.type = dep_type
        if lag_minutes is not None:
            dependency.lag_minutes = lag_minutes

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return {"id": str(dependency.id)}

    async def _execute_dependency_remove(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        dependency_id = args.uuid("dependencyId")
        if dependency_id:
            dependency = await self._get_dependency(dependency_id)
        else:
            if not args.has("itemId"):
                raise ValidationError("dependencyId", "dependency identifiers are required")
            item_id = args.uuid("itemId", required=True)
            depends_on_id = args.uuid("dependsOnId", required=True)
            result = await self.db.execute(
                select(Dependency).where(
                    Dependency.item_id == item_id,
                    Dependency.depends_on_id == depends_on_id,
                )
            )
            dependency = result.scalar_one_or_none()
            if not dependency:
                raise NotFoundError("dependency")

        item = await self._get_item(dependency.item_id)
        await self._require_editor(item.project_id)
        await self.db.delete(dependency)

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return {"id": str(dependency.id), "itemId": str(item.id)}

    # =========================================================================
    # Blockers
    # =========================================================================

    async def _execute_blocker_add(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        item_id = args.uuid("itemId", required=True)

        item = await self._get_item(item_id)
        await self._require_editor(item.project_id)
        self._require_active(item, "cannot add blocker to archived item")

        blocker = Blocker(
            item_id=item.id,
            kind=args.text("kind") or "general",
            reason=args.text("reason"),
        )
        self.db.add(blocker)

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return blocker.to_dict()

    async def _execute_blocker_clear(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        blocker_id = args.uuid("blockerId", required=True)

        result = await self.db.execute(select(Blocker).where(Blocker.id == blocker_id))
        blocker = result.scalar_one_or_none()
        if not blocker:
            raise NotFoundError("blocker", blocker_id)
        item = await self._get_item(blocker.item_id)
        await self._require_editor(item.project_id)

        if blocker.cleared_at is None:
            blocker.cleared_at = utcnow()

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return {"id": str(blocker.id)}

    # =========================================================================
    # Time tracking
    # =========================================================================

    async def _execute_time_entry_start(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        item_id = args.uuid("itemId", required=True)
        start_at = args.timestamp("startAt") or utcnow()

        item = await self._get_item(item_id)
        await self._require_editor(item.project_id)
        self._require_active(item, "cannot track time on archived item")

        entry = TimeEntry(item_id=item.id, user_id=self.user_id, start_at=start_at)
        self.db.add(entry)

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return entry.to_dict()

    async def _execute_time_entry_stop(self, op_name: str, args: OpArgs) -> Dict[str, Any]:
        entry_id = args.uuid("timeEntryId", required=True)
        end_at = args.timestamp("endAt") or utcnow()

        result = await self.db.execute(select(TimeEntry).where(TimeEntry.id == entry_id))
        entry = result.scalar_one_or_none()
        if not entry:
            raise NotFoundError("time entry", entry_id)
        item = await self._get_item(entry.item_id)
        await self._require_editor(item.project_id)
        if entry.end_at is not None:
            raise ConflictError("time entry already stopped")

        started = as_utc(entry.start_at)
        if end_at < started:
            raise ValidationError("endAt", "endAt must not be before the entry start")
        entry.end_at = end_at
        # Half-minutes round up, like a numeric-to-integer cast
        entry.duration_minutes = int((end_at - started).total_seconds() / 60 + 0.5)

        await self._record(op_name, item.project_id, args.raw)
        self._touch(item.project_id, item.assignee_user_id)
        return entry.to_dict()

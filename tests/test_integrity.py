"""Integrity audit of a project's rows."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest

from helpers import op, result_id
from planboard.exceptions import NotFoundError
from planboard.models import Dependency, ScheduledBlock
from planboard.services.integrity import integrity_report


async def report(session_factory, project_id):
    async with session_factory() as session:
        return await integrity_report(session, project_id)


class TestHealthyProject:

    async def test_everything_empty(self, apply, owner_id, create_item, session_factory, project_id) -> None:
        a = await create_item("A")
        b = await create_item("B")
        await apply(
            owner_id,
            op("dependency.add", itemId=str(a), dependsOnId=str(b)),
            op("scheduled_block.create", itemId=str(a), startAt="2024-06-03T09:00:00Z", durationMinutes=30),
            op("item.archive", itemId=str(b)),
        )

        result = await report(session_factory, project_id)
        counts = result["counts"]
        assert counts["items"] == 2
        assert counts["archivedItems"] == 1
        # archiving after linking is allowed; the audit only reports it
        assert counts["archivedDependencies"] == 1
        for key in (
            "invalidBlockDurations",
            "orphanBlocks",
            "orphanDependencies",
            "crossProjectDependencies",
            "dependencyCycles",
            "assigneesNotMembers",
        ):
            assert counts[key] == 0, key

    async def test_removed_assignee_is_reported(
        self, apply, owner_id, editor_id, create_item, session_factory, project_id
    ) -> None:
        item_id = await create_item("A", assigneeUserId=str(editor_id))
        await apply(
            owner_id,
            op("project.member_remove", projectId=str(project_id), userId=str(editor_id)),
        )

        result = await report(session_factory, project_id)
        assert result["assigneesNotMembers"] == [
            {"itemId": str(item_id), "assigneeUserId": str(editor_id)}
        ]
        assert result["counts"]["dependencyCycles"] == 0

    async def test_missing_project(self, session_factory) -> None:
        with pytest.raises(NotFoundError):
            await report(session_factory, uuid4())


class TestCorruptedRows:
    """Rows written around the engine, as a bad import or manual edit would."""

    async def test_detects_problems(
        self, apply, owner_id, viewer_id, create_item, session_factory, project_id
    ) -> None:
        a = await create_item("A", assigneeUserId=str(viewer_id))
        b = await create_item("B")
        other = result_id(await apply(owner_id, op("project.create", title="Other")))
        foreign = UUID(
            result_id(await apply(owner_id, op("item.create", projectId=other, title="F", type="task")))
        )
        await apply(
            owner_id,
            op("project.member_remove", projectId=str(project_id), userId=str(viewer_id)),
        )

        async with session_factory() as session:
            session.add_all(
                [
                    Dependency(item_id=a, depends_on_id=b),
                    Dependency(item_id=b, depends_on_id=a),
                    Dependency(item_id=a, depends_on_id=foreign),
                    Dependency(item_id=uuid4(), depends_on_id=b),
                    ScheduledBlock(
                        item_id=uuid4(),
                        start_at=datetime(2024, 6, 3, tzinfo=timezone.utc),
                        duration_minutes=15,
                    ),
                ]
            )
            await session.commit()

        result = await report(session_factory, project_id)
        counts = result["counts"]
        assert counts["dependencyCycles"] == 1
        assert set(result["dependencyCycles"][0]) == {str(a), str(b)}
        assert counts["crossProjectDependencies"] == 1
        assert result["crossProjectDependencies"][0]["dependsOnId"] == str(foreign)
        assert counts["orphanDependencies"] == 1
        assert counts["orphanBlocks"] == 1
        assert result["assigneesNotMembers"] == [
            {"itemId": str(a), "assigneeUserId": str(viewer_id)}
        ]

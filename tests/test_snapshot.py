"""Derived project view: windows, rollups, edge status and due dates."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from helpers import op, result_id
from planboard.exceptions import NotFoundError
from planboard.services.snapshot import (
    blocked_view,
    build_project_view,
    due_overdue,
    load_project_snapshot,
)

NOW = datetime(2024, 6, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
async def plan(apply, owner_id, create_item):
    """Milestone M (rollup) over A and B; B depends on A; C depends on A unscheduled."""
    m = await create_item("M", "milestone", estimateMode="rollup", estimateMinutes=500)
    a = await create_item("A", parentId=str(m), estimateMinutes=60, dueAt="2024-06-05T00:00:00Z")
    b = await create_item("B", parentId=str(m), estimateMinutes=30, dueAt="2024-06-01T00:00:00Z")
    c = await create_item("C")

    outcome = await apply(
        owner_id,
        op("scheduled_block.create", itemId=str(a), startAt="2024-06-03T09:00:00Z", durationMinutes=60),
        op("scheduled_block.create", itemId=str(b), startAt="2024-06-03T11:00:00Z", durationMinutes=30),
        op("dependency.add", itemId=str(b), dependsOnId=str(a)),
        op("dependency.add", itemId=str(c), dependsOnId=str(a), type="SS", lagMinutes=15),
        op("blocker.add", itemId=str(a), reason="waiting"),
        op("time_entry.start", itemId=str(b), startAt="2024-06-03T11:00:00Z"),
        op("time_entry.start", itemId=str(a), startAt="2024-06-03T09:00:00Z"),
        op("item.set_status", itemId=str(b), status="done"),
    )
    b_entry = result_id(outcome, 5)
    await apply(
        owner_id,
        op("time_entry.stop", timeEntryId=b_entry, endAt="2024-06-03T11:20:00Z"),
    )
    return {"M": m, "A": a, "B": b, "C": c}


def by_title(view):
    return {row["title"]: row for row in view["items"]}


class TestProjectView:

    async def test_item_metrics(self, db, project_id, plan) -> None:
        view = build_project_view(await load_project_snapshot(db, project_id, now=NOW))
        items = by_title(view)

        a = items["A"]
        assert a["scheduleStartAt"] == "2024-06-03T09:00:00+00:00"
        assert a["scheduleEndAt"] == "2024-06-03T10:00:00+00:00"
        assert a["activeBlockerCount"] == 1
        assert a["isBlocked"] is True
        # running entry does not count
        assert a["trackedMinutes"] == 0
        assert a["isOverdue"] is True
        assert a["slackMinutes"] == 38 * 60

        b = items["B"]
        assert b["trackedMinutes"] == 20
        assert b["isOverdue"] is False
        assert b["slackMinutes"] < 0

    async def test_rollups(self, db, project_id, plan) -> None:
        view = build_project_view(await load_project_snapshot(db, project_id, now=NOW))
        rollup = by_title(view)["M"]["rollup"]

        assert rollup["totalEstimate"] == 90
        assert rollup["totalActual"] == 20
        assert rollup["blockedCount"] == 1
        assert rollup["overdueCount"] == 1
        assert rollup["startAt"] == "2024-06-03T09:00:00+00:00"
        assert rollup["endAt"] == "2024-06-03T11:30:00+00:00"

    async def test_edge_status(self, db, project_id, plan) -> None:
        view = build_project_view(await load_project_snapshot(db, project_id, now=NOW))
        items = by_title(view)

        [edge] = items["B"]["dependencies"]
        assert edge["status"] == "satisfied"
        assert edge["reason"] == "FS +0m"
        assert edge["title"] == "A"

        [unscheduled] = items["C"]["dependencies"]
        assert unscheduled["status"] == "unknown"
        assert unscheduled["reason"] == "Missing schedule data"

    async def test_violated_edge(self, apply, session_factory, owner_id, project_id, plan) -> None:
        async with session_factory() as session:
            view = build_project_view(await load_project_snapshot(session, project_id, now=NOW))
        dep_id = by_title(view)["B"]["dependencies"][0]["id"]

        await apply(owner_id, op("dependency.update", dependencyId=dep_id, lagMinutes=90))

        async with session_factory() as session:
            view = build_project_view(await load_project_snapshot(session, project_id, now=NOW))
        [edge] = by_title(view)["B"]["dependencies"]
        assert edge["status"] == "violated"
        assert edge["reason"] == "FS +90m"

    async def test_archived_items_are_included(self, apply, owner_id, db, project_id, plan) -> None:
        await apply(owner_id, op("item.archive", itemId=str(plan["C"])))
        view = build_project_view(await load_project_snapshot(db, project_id, now=NOW))
        assert by_title(view)["C"]["archived_at"] is not None

    async def test_missing_project(self, db) -> None:
        with pytest.raises(NotFoundError):
            await load_project_snapshot(db, uuid4())


class TestDueOverdue:

    async def test_split(self, apply, owner_id, create_item, db, project_id, plan) -> None:
        await create_item("Soon", dueAt="2024-06-12T00:00:00Z")
        await create_item("Later", dueAt="2024-06-30T00:00:00Z")
        gone = await create_item("Gone", dueAt="2024-06-01T00:00:00Z")
        await apply(owner_id, op("item.archive", itemId=str(gone)))

        snapshot = await load_project_snapshot(db, project_id, now=NOW)
        listing = due_overdue(snapshot, days=7)

        assert [(r["title"], r["daysUntilDue"]) for r in listing["overdue"]] == [("A", -5)]
        assert [(r["title"], r["daysUntilDue"]) for r in listing["dueSoon"]] == [("Soon", 2)]

    async def test_wider_window(self, create_item, db, project_id, plan) -> None:
        await create_item("Later", dueAt="2024-06-30T00:00:00Z")
        snapshot = await load_project_snapshot(db, project_id, now=NOW)
        titles = [r["title"] for r in due_overdue(snapshot, days=30)["dueSoon"]]
        assert titles == ["Later"]

    async def test_explicit_now_overrides_snapshot(self, db, project_id, plan) -> None:
        snapshot = await load_project_snapshot(db, project_id, now=NOW)
        early = datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)
        listing = due_overdue(snapshot, now=early, days=7)
        assert listing["overdue"] == []
        assert [r["title"] for r in listing["dueSoon"]] == ["A"]


class TestReparentRollup:

    async def totals(self, session_factory, project_id) -> dict:
        async with session_factory() as session:
            view = build_project_view(await load_project_snapshot(session, project_id, now=NOW))
        return {title: row["rollup"]["totalEstimate"] for title, row in by_title(view).items()}

    async def test_contribution_moves_with_the_child(
        self, apply, owner_id, create_item, session_factory, project_id
    ) -> None:
        p1 = await create_item("P1", "milestone", estimateMode="rollup")
        p2 = await create_item("P2", "milestone", estimateMode="rollup")
        child = await create_item("Child", parentId=str(p1), estimateMinutes=30)

        before = await self.totals(session_factory, project_id)
        assert (before["P1"], before["P2"]) == (30, 0)

        await apply(owner_id, op("item.update", itemId=str(child), patch={"parentId": str(p2)}))

        after = await self.totals(session_factory, project_id)
        assert (after["P1"], after["P2"]) == (0, 30)
        assert after["Child"] == 30


class TestBlockedView:

    EARLY = datetime(2024, 6, 1, 0, 0, tzinfo=timezone.utc)

    async def view(self, session_factory, project_id, now=EARLY, days=7):
        async with session_factory() as session:
            snapshot = await load_project_snapshot(session, project_id, now=now)
        return blocked_view(snapshot, days=days)

    async def test_blockers_and_upcoming_blocks(self, session_factory, project_id, plan) -> None:
        view = await self.view(session_factory, project_id)

        assert view["blockedByDependencies"] == []
        assert [(r["title"], r["activeBlockerCount"]) for r in view["blockedByBlockers"]] == [("A", 1)]
        [row] = view["scheduledButBlocked"]
        assert (row["title"], row["reason"]) == ("A", "Unresolved blockers")
        assert row["startAt"] == "2024-06-03T09:00:00+00:00"
        assert row["durationMinutes"] == 60

    async def test_violated_dependency(self, apply, session_factory, owner_id, project_id, plan) -> None:
        async with session_factory() as session:
            view = build_project_view(await load_project_snapshot(session, project_id, now=NOW))
        dep_id = by_title(view)["B"]["dependencies"][0]["id"]
        await apply(owner_id, op("dependency.update", dependencyId=dep_id, lagMinutes=90))

        view = await self.view(session_factory, project_id)
        [edge] = view["blockedByDependencies"]
        assert (edge["title"], edge["dependencyId"], edge["reason"]) == ("B", dep_id, "FS +90m")
        reasons = {r["title"]: r["reason"] for r in view["scheduledButBlocked"]}
        assert reasons == {"A": "Unresolved blockers", "B": "Dependency not satisfied"}

    async def test_blocks_outside_window_are_skipped(self, session_factory, project_id, plan) -> None:
        view = await self.view(session_factory, project_id, now=NOW)
        assert view["scheduledButBlocked"] == []
        view = await self.view(session_factory, project_id, days=1)
        assert view["scheduledButBlocked"] == []

    async def test_archived_items_drop_out(self, apply, session_factory, owner_id, project_id, plan) -> None:
        await apply(owner_id, op("item.archive", itemId=str(plan["A"])))
        view = await self.view(session_factory, project_id)
        assert view == {
            "blockedByDependencies": [],
            "blockedByBlockers": [],
            "scheduledButBlocked": [],
        }

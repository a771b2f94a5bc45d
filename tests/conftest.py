"""Shared pytest fixtures for the planboard test suite.

- Every database fixture is SQLite in-memory through aiosqlite with a
  StaticPool, so all sessions of one test share one connection.
- Each ``apply`` call runs in a fresh session, the way the API does;
  assertions read back through another fresh session.
- Scope is "function" throughout for full isolation.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from helpers import op
from planboard.db.base import Base
from planboard.db.session import build_session_factory
from planboard.ops.dispatcher import apply_ops

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def editor_id() -> UUID:
    return uuid4()


@pytest.fixture
def viewer_id() -> UUID:
    return uuid4()


@pytest.fixture
def outsider_id() -> UUID:
    return uuid4()


# ---------------------------------------------------------------------------
# Operation helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def apply(session_factory):
    """Run one batch in its own session."""

    async def _apply(user_id: UUID, *ops: dict[str, Any]):
        async with session_factory() as session:
            return await apply_ops(session, user_id, list(ops))

    return _apply


@pytest.fixture
def fetch(session_factory):
    """Read rows of a model back through a fresh session."""

    async def _fetch(model, *criteria):
        async with session_factory() as session:
            result = await session.execute(select(model).where(*criteria))
            return list(result.scalars().all())

    return _fetch


@pytest.fixture
async def project_id(apply, owner_id, editor_id, viewer_id) -> UUID:
    """A project owned by ``owner_id`` with an editor and a viewer."""
    created = await apply(owner_id, op("project.create", title="Launch"))
    pid = created.results[0].result["id"]
    await apply(
        owner_id,
        op("project.member_add", projectId=pid, userId=str(editor_id), role="editor"),
        op("project.member_add", projectId=pid, userId=str(viewer_id), role="viewer"),
    )
    return UUID(pid)


@pytest.fixture
def create_item(apply, owner_id, project_id):
    """Create an item in the shared project and return its id."""

    async def _create(title: str = "Task", type: str = "task", **args: Any) -> UUID:
        outcome = await apply(
            owner_id,
            op("item.create", projectId=str(project_id), title=title, type=type, **args),
        )
        return UUID(outcome.results[0].result["id"])

    return _create

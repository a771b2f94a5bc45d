"""Traversal over the parent/child tree and the depends-on graph.

The database-backed helpers push the recursion into a recursive CTE so
they see exactly the rows visible inside the caller's transaction. The
in-memory helpers work on snapshots already loaded by read paths.
"""

from collections.abc import Hashable, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planboard.models.item import Dependency, Item


async def descendant_ids(db: AsyncSession, root_ids: Iterable[UUID]) -> list[UUID]:
    """Return the roots plus every item below them by ``parent_id``.

    Roots that do not exist are dropped.
    """
    roots = list(dict.fromkeys(root_ids))
    if not roots:
        return []

    descendants = (
        select(Item.id).where(Item.id.in_(roots)).cte("descendants", recursive=True)
    )
    # UNION (not UNION ALL) terminates even if the tree were ever corrupted
    descendants = descendants.union(
        select(Item.id).join(descendants, Item.parent_id == descendants.c.id)
    )
    result = await db.execute(select(descendants.c.id))
    return list(dict.fromkeys(result.scalars().all()))


async def dependency_creates_cycle(
    db: AsyncSession, item_id: UUID, depends_on_id: UUID
) -> bool:
    """Would adding ``item_id -> depends_on_id`` close a cycle?

    True for a self-loop, or when ``item_id`` is already reachable from
    ``depends_on_id`` by following existing depends-on edges forward.
    Only race-free under serializable isolation.
    """
    if item_id == depends_on_id:
        return True

    path = (
        select(Dependency.depends_on_id.label("id"))
        .where(Dependency.item_id == depends_on_id)
        .cte("dep_path", recursive=True)
    )
    path = path.union(
        select(Dependency.depends_on_id).join(path, Dependency.item_id == path.c.id)
    )
    result = await db.execute(select(path.c.id).where(path.c.id == item_id).limit(1))
    return result.first() is not None


async def would_create_parent_cycle(
    db: AsyncSession, item_id: UUID, new_parent_id: UUID
) -> bool:
    """Would re-parenting ``item_id`` under ``new_parent_id`` break the tree?"""
    if item_id == new_parent_id:
        return True
    return new_parent_id in await descendant_ids(db, [item_id])


def collect_descendants(
    children_by_parent: Mapping[Hashable, Iterable[Hashable]],
    root_ids: Iterable[Hashable],
) -> list[Hashable]:
    """In-memory descendant closure, roots included, in discovery order."""
    seen: dict[Hashable, None] = {}
    stack = list(root_ids)
    while stack:
        node = stack.pop()
        if node in seen:
            continue
        seen[node] = None
        stack.extend(children_by_parent.get(node, ()))
    return list(seen)


def find_dependency_cycles(
    edges: Iterable[tuple[Hashable, Hashable]],
) -> list[list[Hashable]]:
    """List the cycles reachable in a depends-on edge list.

    Each cycle is reported as the path of node ids that closes back on its
    first element. An acyclic graph yields an empty list.
    """
    graph: dict[Hashable, list[Hashable]] = {}
    for item_id, depends_on_id in edges:
        graph.setdefault(item_id, []).append(depends_on_id)

    visited: set[Hashable] = set()
    cycles: list[list[Hashable]] = []

    for start in list(graph):
        if start in visited:
            continue
        # Iterative DFS; ``path`` mirrors the active recursion stack
        path: list[Hashable] = [start]
        on_path = {start}
        iterators = [iter(graph.get(start, ()))]
        visited.add(start)
        while iterators:
            neighbor = next(iterators[-1], None)
            if neighbor is None:
                iterators.pop()
                on_path.discard(path.pop())
                continue
            if neighbor in on_path:
                cycles.append(path[path.index(neighbor):])
                continue
            if neighbor in visited:
                continue
            visited.add(neighbor)
            path.append(neighbor)
            on_path.add(neighbor)
            iterators.append(iter(graph.get(neighbor, ())))

    return cycles

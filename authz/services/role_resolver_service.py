from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from authz.domain.errors import InvalidArgumentError
from authz.domain.identifiers import parse_principal_id, parse_resource_id
from authz.infra.fanout import AUTHZ_TRAVERSAL_CONCURRENCY, FanOut, TaskMemo
from authz.infra.role_store import RoleStore
from authz.services.membership_index import MembershipIndex

logger = logging.getLogger(__name__)


class MembershipTraversal:
    """Breadth-first walk from a principal up through the groups containing it.

    ``levels`` yields each BFS level as a list of node ids. A node is yielded once
    per walk no matter how many paths lead to it, which is what makes the walk
    terminate on cyclic group graphs. Parent lookups are memoized on the instance,
    so walks that share an instance never fetch the same node's groups twice.
    Membership changes made while a walk is running may or may not be observed.
    """

    def __init__(self, index: MembershipIndex, fanout: FanOut) -> None:
        self._index = index
        self._fanout = fanout
        self._parents: TaskMemo[str, list[str]] = TaskMemo(self._sorted_groups_of, fanout)

    async def _sorted_groups_of(self, node_id: str) -> list[str]:
        return sorted(await self._index.direct_groups_of(node_id))

    @property
    def fanout(self) -> FanOut:
        return self._fanout

    @property
    def lookups(self) -> int:
        return len(self._parents)

    async def levels(self, start_id: str) -> AsyncIterator[list[str]]:
        visited: set[str] = set()
        frontier = [start_id]
        while frontier:
            level: list[str] = []
            for node_id in frontier:
                if node_id in visited:
                    continue
                visited.add(node_id)
                level.append(node_id)
            if not level:
                return
            yield level
            parents = await self._parents.get_many(level)
            frontier = [group_id for groups in parents for group_id in groups if group_id not in visited]

    async def walk(self, start_id: str) -> list[str]:
        return [node_id async for level in self.levels(start_id) for node_id in level]


class RoleResolver:
    def __init__(
        self,
        store: RoleStore,
        index: MembershipIndex,
        *,
        concurrency: int = AUTHZ_TRAVERSAL_CONCURRENCY,
    ) -> None:
        self._store = store
        self._index = index
        self._concurrency = concurrency

    def traversal(self) -> MembershipTraversal:
        return MembershipTraversal(self._index, FanOut(self._concurrency))

    async def get_all_roles(self, principal_id: Any, resource_id: Any) -> set[str]:
        principal = parse_principal_id(principal_id)
        resource = parse_resource_id(resource_id)
        roles: set[str] = set()
        visited = 0
        async for level in self.traversal().levels(principal.id):
            visited += len(level)
            direct = await self._store.get_direct_roles(resource.id, level)
            roles.update(direct.values())
        logger.debug(
            "authz.roles.resolved",
            extra={
                "principal_id": principal.id,
                "resource_id": resource.id,
                "visited": visited,
                "roles": len(roles),
            },
        )
        return roles

    async def has_role(self, principal_id: Any, resource_id: Any, role: Any) -> bool:
        if not isinstance(role, str) or not role:
            raise InvalidArgumentError("role must be a non-empty string")
        return role in await self.get_all_roles(principal_id, resource_id)

    async def has_any_role(self, principal_id: Any, resource_id: Any) -> bool:
        return bool(await self.get_all_roles(principal_id, resource_id))

    async def get_all_memberships(self, principal_id: Any) -> list[str]:
        principal = parse_principal_id(principal_id)
        return (await self.traversal().walk(principal.id))[1:]

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from authz.domain.errors import InvalidArgumentError
from authz.domain.graph import MembershipGraph
from authz.domain.identifiers import GROUP_PREFIX, parse_principal_id, parse_resource_id
from authz.infra.fanout import AUTHZ_TRAVERSAL_CONCURRENCY, FanOut
from authz.infra.role_store import RoleStore
from authz.services.membership_index import MembershipIndex

logger = logging.getLogger(__name__)


class MembershipGraphBuilder:
    """Loads membership edges into a MembershipGraph.

    Deletion and restoration workflows use the result to find every user below a
    group (``traverse_in``) or every group above a principal (``traverse_out``).
    """

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

    async def build_graph(self, resource_ids: Any) -> MembershipGraph:
        """Members of ``resource_ids``, following group members down to every level."""
        if isinstance(resource_ids, str) or not isinstance(resource_ids, Iterable):
            raise InvalidArgumentError("resource ids must be a non-empty collection")
        roots = list(dict.fromkeys(parse_resource_id(item).id for item in resource_ids))
        if not roots:
            raise InvalidArgumentError("resource ids must be a non-empty collection")

        graph = MembershipGraph()
        fanout = FanOut(self._concurrency)
        visited: set[str] = set()
        frontier = roots
        while frontier:
            level = self._next_level(frontier, visited)
            for node_id in level:
                graph.add_node(node_id)
            members_by_node = await fanout.map(self._store.get_members, level)
            frontier = []
            for node_id, members in zip(level, members_by_node, strict=True):
                for member_id in sorted(members):
                    graph.add_edge(member_id, node_id, members[member_id])
                    if member_id.startswith(GROUP_PREFIX) and member_id not in visited:
                        frontier.append(member_id)
        logger.debug("authz.graph.built", extra={"direction": "members", "roots": len(roots), "nodes": len(graph)})
        return graph

    async def build_memberships_graph(self, principal_id: Any) -> MembershipGraph:
        """Groups containing ``principal_id``, directly or through other groups."""
        principal = parse_principal_id(principal_id)
        graph = MembershipGraph()
        graph.add_node(principal.id)
        fanout = FanOut(self._concurrency)
        visited: set[str] = set()
        frontier = [principal.id]
        while frontier:
            level = self._next_level(frontier, visited)
            memberships_by_node = await fanout.map(self._index.direct_memberships_of, level)
            frontier = []
            for node_id, memberships in zip(level, memberships_by_node, strict=True):
                for group_id in sorted(memberships):
                    graph.add_edge(node_id, group_id, memberships[group_id])
                    if group_id not in visited:
                        frontier.append(group_id)
        logger.debug("authz.graph.built", extra={"direction": "memberships", "roots": 1, "nodes": len(graph)})
        return graph

    def _next_level(self, frontier: list[str], visited: set[str]) -> list[str]:
        level: list[str] = []
        for node_id in frontier:
            if node_id in visited:
                continue
            visited.add(node_id)
            level.append(node_id)
        return level

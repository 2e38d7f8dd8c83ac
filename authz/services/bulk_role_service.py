from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from authz.domain.errors import InvalidArgumentError
from authz.domain.identifiers import parse_principal_id, parse_resource_type
from authz.infra.fanout import TaskMemo, gather_or_cancel
from authz.infra.role_store import RoleStore
from authz.services.role_resolver_service import MembershipTraversal, RoleResolver

logger = logging.getLogger(__name__)


class BulkRoleAggregator:
    """Maps each principal to ``{resource_id: role}`` for one resource type.

    A resource reachable through several ancestors keeps the role found first in
    BFS order, so a principal's own direct role beats any inherited one. Parent
    groups and direct role maps are fetched at most once per call, shared by all
    principals.
    """

    def __init__(self, store: RoleStore, resolver: RoleResolver) -> None:
        self._store = store
        self._resolver = resolver

    def _validate_principal_ids(self, principal_ids: Any) -> list[str]:
        if isinstance(principal_ids, str) or not isinstance(principal_ids, Iterable):
            raise InvalidArgumentError("principal ids must be a non-empty collection")
        unique = list(dict.fromkeys(parse_principal_id(item).id for item in principal_ids))
        if not unique:
            raise InvalidArgumentError("principal ids must be a non-empty collection")
        return unique

    async def get_roles_for_principals_and_resource_type(
        self, principal_ids: Any, resource_type: Any
    ) -> dict[str, dict[str, str]]:
        unique_ids = self._validate_principal_ids(principal_ids)
        resource_type = parse_resource_type(resource_type)

        traversal = self._resolver.traversal()

        async def _direct_roles(node_id: str) -> dict[str, str]:
            return await self._store.get_roles_for_principal(node_id, resource_type)

        direct_roles: TaskMemo[str, dict[str, str]] = TaskMemo(_direct_roles, traversal.fanout)
        results = await gather_or_cancel(
            self._aggregate(traversal, direct_roles, principal_id) for principal_id in unique_ids
        )
        logger.debug(
            "authz.roles.bulk_resolved",
            extra={
                "principals": len(unique_ids),
                "resource_type": resource_type,
                "nodes": len(direct_roles),
            },
        )
        return dict(zip(unique_ids, results, strict=True))

    async def _aggregate(
        self,
        traversal: MembershipTraversal,
        direct_roles: TaskMemo[str, dict[str, str]],
        principal_id: str,
    ) -> dict[str, str]:
        entries: dict[str, str] = {}
        async for level in traversal.levels(principal_id):
            for node_roles in await direct_roles.get_many(level):
                for resource_id, role in node_roles.items():
                    entries.setdefault(resource_id, role)
        return entries

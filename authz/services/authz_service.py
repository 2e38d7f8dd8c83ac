from __future__ import annotations

from collections.abc import Iterable, Mapping
from functools import lru_cache
from typing import Any

from authz.domain.errors import InvalidArgumentError
from authz.domain.graph import MembershipGraph
from authz.domain.identifiers import parse_principal_id, parse_resource_id
from authz.infra.fanout import AUTHZ_TRAVERSAL_CONCURRENCY
from authz.infra.role_store import RoleStore
from authz.infra.stores import get_role_store
from authz.services.bulk_role_service import BulkRoleAggregator
from authz.services.membership_graph_service import MembershipGraphBuilder
from authz.services.membership_index import MembershipIndex
from authz.services.role_change_service import RoleChangeApplier
from authz.services.role_resolver_service import RoleResolver

MEMBERS_PAGE_DEFAULT = 10
MEMBERS_PAGE_MAX = 100


class AuthzService:
    def __init__(self, store: RoleStore, *, concurrency: int = AUTHZ_TRAVERSAL_CONCURRENCY) -> None:
        self.store = store
        self.index = MembershipIndex(store)
        self.applier = RoleChangeApplier(store)
        self.resolver = RoleResolver(store, self.index, concurrency=concurrency)
        self.aggregator = BulkRoleAggregator(store, self.resolver)
        self.graph_builder = MembershipGraphBuilder(store, self.index, concurrency=concurrency)

    async def apply_role_changes(self, resource_id: Any, changes: Mapping[str, Any] | Any) -> None:
        await self.applier.apply_role_changes(resource_id, changes)

    async def compute_member_roles_after_changes(
        self, resource_id: Any, changes: Mapping[str, Any] | Any
    ) -> dict[str, str]:
        return await self.applier.compute_member_roles_after_changes(resource_id, changes)

    async def get_all_roles(self, principal_id: Any, resource_id: Any) -> set[str]:
        return await self.resolver.get_all_roles(principal_id, resource_id)

    async def has_role(self, principal_id: Any, resource_id: Any, role: Any) -> bool:
        return await self.resolver.has_role(principal_id, resource_id, role)

    async def has_any_role(self, principal_id: Any, resource_id: Any) -> bool:
        return await self.resolver.has_any_role(principal_id, resource_id)

    async def get_roles_for_principals_and_resource_type(
        self, principal_ids: Any, resource_type: Any
    ) -> dict[str, dict[str, str]]:
        return await self.aggregator.get_roles_for_principals_and_resource_type(principal_ids, resource_type)

    async def build_membership_graph(self, resource_ids: Any) -> MembershipGraph:
        return await self.graph_builder.build_graph(resource_ids)

    async def build_principal_memberships_graph(self, principal_id: Any) -> MembershipGraph:
        return await self.graph_builder.build_memberships_graph(principal_id)

    async def get_direct_roles(self, principal_ids: Any, resource_id: Any) -> dict[str, str]:
        resource = parse_resource_id(resource_id)
        if isinstance(principal_ids, str) or not isinstance(principal_ids, Iterable):
            raise InvalidArgumentError("principal ids must be a collection")
        ids = [parse_principal_id(item).id for item in principal_ids]
        return await self.store.get_direct_roles(resource.id, ids)

    async def get_authz_members(
        self,
        resource_id: Any,
        start: str | None = None,
        limit: int = MEMBERS_PAGE_DEFAULT,
    ) -> tuple[list[tuple[str, str]], str | None]:
        """One page of ``(principal_id, role)`` sorted by principal id.

        ``start`` is exclusive; the returned token is None on the last page.
        """
        resource = parse_resource_id(resource_id)
        if start is not None and not isinstance(start, str):
            raise InvalidArgumentError("start must be a principal id string")
        try:
            limit = min(max(int(limit), 1), MEMBERS_PAGE_MAX)
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentError(f"limit must be a number, got {limit!r}") from exc
        members = await self.store.get_members(resource.id)
        ordered = sorted(item for item in members.items() if start is None or item[0] > start)
        page = ordered[:limit]
        next_token = page[-1][0] if len(ordered) > limit else None
        return page, next_token

    async def get_principal_memberships(self, principal_id: Any) -> dict[str, str]:
        principal = parse_principal_id(principal_id)
        return await self.index.direct_memberships_of(principal.id)

    async def get_all_principal_memberships(self, principal_id: Any) -> list[str]:
        return await self.resolver.get_all_memberships(principal_id)


@lru_cache(maxsize=1)
def get_authz_service() -> AuthzService:
    return AuthzService(get_role_store())

from __future__ import annotations

from authz.domain.identifiers import ResourceType
from authz.infra.role_store import RoleStore


class MembershipIndex:
    """Read view of the "is member of" adjacency.

    A membership edge is a role held by a principal on a group resource, so both
    directions are answered from the role store's two indexes.
    """

    def __init__(self, store: RoleStore) -> None:
        self._store = store

    async def direct_memberships_of(self, principal_id: str) -> dict[str, str]:
        return await self._store.get_roles_for_principal(principal_id, ResourceType.GROUP)

    async def direct_groups_of(self, principal_id: str) -> set[str]:
        return set(await self.direct_memberships_of(principal_id))

    async def direct_members_of(self, group_id: str) -> set[str]:
        return set(await self._store.get_members(group_id))

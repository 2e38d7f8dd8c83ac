from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping

from authz.domain.errors import PartialBatchFailureError, StorageUnavailableError
from authz.domain.identifiers import type_prefix
from authz.domain.models import RoleCell, RoleChangeBatch, RoleValue

logger = logging.getLogger(__name__)


class RoleStore(ABC):
    """Direct role assignments keyed by (resource id, principal id).

    Rows are indexed both by resource (its members) and by principal (what it holds).
    Each cell is written atomically in both indexes; a batch as a whole is not.
    """

    @abstractmethod
    async def get_direct_role(self, resource_id: str, principal_id: str) -> str | None: ...

    @abstractmethod
    async def get_direct_roles(
        self, resource_id: str, principal_ids: Iterable[str]
    ) -> dict[str, str]: ...

    @abstractmethod
    async def get_members(self, resource_id: str) -> dict[str, str]: ...

    @abstractmethod
    async def get_roles_for_principal(
        self, principal_id: str, resource_type: str | None = None
    ) -> dict[str, str]: ...

    @abstractmethod
    async def _write_cell(self, cell: RoleCell) -> None:
        """Upsert or delete one cell. Raise StorageUnavailableError on I/O failure."""

    async def set_direct_roles(self, resource_id: str, changes: Mapping[str, RoleValue]) -> None:
        """Write ``changes`` one cell at a time, in batch order.

        A ``StorageUnavailableError`` on the first cell propagates as is; on a later
        cell it becomes ``PartialBatchFailureError`` listing what was applied.
        Cancellation (e.g. a caller's ``asyncio.timeout``) is not translated: the
        ``CancelledError`` propagates, cells written before it stay written and the
        in-flight cell may or may not have landed. Callers that cancel must re-read
        or re-apply the batch.
        """
        cells = RoleChangeBatch.from_mapping(resource_id, changes).cells()
        applied: list[RoleCell] = []
        for index, cell in enumerate(cells):
            try:
                await self._write_cell(cell)
            except StorageUnavailableError as exc:
                if not applied:
                    raise
                logger.warning(
                    "authz.role_changes.partial_failure",
                    extra={
                        "resource_id": resource_id,
                        "applied": len(applied),
                        "failed_principal_id": cell.principal_id,
                    },
                )
                raise PartialBatchFailureError(
                    resource_id,
                    applied=applied,
                    failed=cell,
                    skipped=cells[index + 1 :],
                ) from exc
            applied.append(cell)

    async def close(self) -> None:
        return None


class InMemoryRoleStore(RoleStore):
    def __init__(self) -> None:
        self._members: dict[str, dict[str, str]] = {}
        self._roles: dict[str, dict[str, str]] = {}

    async def get_direct_role(self, resource_id: str, principal_id: str) -> str | None:
        return self._members.get(resource_id, {}).get(principal_id)

    async def get_direct_roles(
        self, resource_id: str, principal_ids: Iterable[str]
    ) -> dict[str, str]:
        members = self._members.get(resource_id, {})
        return {
            principal_id: members[principal_id]
            for principal_id in principal_ids
            if principal_id in members
        }

    async def get_members(self, resource_id: str) -> dict[str, str]:
        return dict(self._members.get(resource_id, {}))

    async def get_roles_for_principal(
        self, principal_id: str, resource_type: str | None = None
    ) -> dict[str, str]:
        roles = self._roles.get(principal_id, {})
        if resource_type is None:
            return dict(roles)
        prefix = type_prefix(resource_type)
        return {
            resource_id: role
            for resource_id, role in roles.items()
            if resource_id.startswith(prefix)
        }

    async def _write_cell(self, cell: RoleCell) -> None:
        if cell.role is None:
            self._members.get(cell.resource_id, {}).pop(cell.principal_id, None)
            self._roles.get(cell.principal_id, {}).pop(cell.resource_id, None)
            return
        self._members.setdefault(cell.resource_id, {})[cell.principal_id] = cell.role
        self._roles.setdefault(cell.principal_id, {})[cell.resource_id] = cell.role

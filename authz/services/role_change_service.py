from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from authz.domain.models import RoleChangeBatch
from authz.infra.role_store import RoleStore

logger = logging.getLogger(__name__)


class RoleChangeApplier:
    """Validates and applies batches of direct role grants and revocations.

    Nothing is recomputed after a write; effective roles are resolved at query time.
    """

    def __init__(self, store: RoleStore) -> None:
        self._store = store

    async def apply_role_changes(self, resource_id: Any, changes: Mapping[str, Any] | Any) -> None:
        batch = RoleChangeBatch.from_mapping(resource_id, changes)
        await self._store.set_direct_roles(batch.resource_id, batch.changes)
        cells = batch.cells()
        logger.info(
            "authz.role_changes.applied",
            extra={
                "resource_id": batch.resource_id,
                "cells": len(cells),
                "removals": sum(1 for cell in cells if cell.is_removal),
            },
        )

    async def compute_member_roles_after_changes(
        self, resource_id: Any, changes: Mapping[str, Any] | Any
    ) -> dict[str, str]:
        batch = RoleChangeBatch.from_mapping(resource_id, changes)
        members = await self._store.get_members(batch.resource_id)
        for cell in batch.cells():
            if cell.role is None:
                members.pop(cell.principal_id, None)
            else:
                members[cell.principal_id] = cell.role
        return members

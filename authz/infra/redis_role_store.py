from __future__ import annotations

import logging
import os
from collections.abc import Iterable

from redis.asyncio import Redis
from redis.exceptions import RedisError

from authz.domain.errors import StorageUnavailableError
from authz.domain.identifiers import type_prefix
from authz.domain.models import RoleCell
from authz.infra.role_store import RoleStore

logger = logging.getLogger(__name__)

AUTHZ_REDIS_PREFIX = os.getenv("AUTHZ_REDIS_PREFIX", "authz")


class RedisRoleStore(RoleStore):
    """Role rows kept as two families of hashes.

    ``{prefix}:members:{resource_id}`` maps principal id -> role and
    ``{prefix}:roles:{principal_id}`` maps resource id -> role.
    """

    def __init__(self, client: Redis, *, prefix: str = AUTHZ_REDIS_PREFIX) -> None:
        self._client = client
        self._prefix = prefix

    def _members_key(self, resource_id: str) -> str:
        return f"{self._prefix}:members:{resource_id}"

    def _roles_key(self, principal_id: str) -> str:
        return f"{self._prefix}:roles:{principal_id}"

    def _unavailable(self, operation: str, exc: RedisError) -> StorageUnavailableError:
        logger.warning("authz.store.unavailable", extra={"backend": "redis", "operation": operation})
        return StorageUnavailableError(f"redis {operation} failed: {exc}")

    async def get_direct_role(self, resource_id: str, principal_id: str) -> str | None:
        try:
            return await self._client.hget(self._members_key(resource_id), principal_id)
        except RedisError as exc:
            raise self._unavailable("hget", exc) from exc

    async def get_direct_roles(
        self, resource_id: str, principal_ids: Iterable[str]
    ) -> dict[str, str]:
        principal_ids = list(principal_ids)
        if not principal_ids:
            return {}
        try:
            values = await self._client.hmget(self._members_key(resource_id), principal_ids)
        except RedisError as exc:
            raise self._unavailable("hmget", exc) from exc
        return {
            principal_id: role
            for principal_id, role in zip(principal_ids, values, strict=True)
            if role is not None
        }

    async def get_members(self, resource_id: str) -> dict[str, str]:
        try:
            return await self._client.hgetall(self._members_key(resource_id))
        except RedisError as exc:
            raise self._unavailable("hgetall", exc) from exc

    async def get_roles_for_principal(
        self, principal_id: str, resource_type: str | None = None
    ) -> dict[str, str]:
        key = self._roles_key(principal_id)
        try:
            if resource_type is None:
                return await self._client.hgetall(key)
            match = f"{type_prefix(resource_type)}*"
            return {
                resource_id: role
                async for resource_id, role in self._client.hscan_iter(key, match=match)
            }
        except RedisError as exc:
            raise self._unavailable("hscan", exc) from exc

    async def _write_cell(self, cell: RoleCell) -> None:
        members_key = self._members_key(cell.resource_id)
        roles_key = self._roles_key(cell.principal_id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                if cell.role is None:
                    pipe.hdel(members_key, cell.principal_id)
                    pipe.hdel(roles_key, cell.resource_id)
                else:
                    pipe.hset(members_key, cell.principal_id, cell.role)
                    pipe.hset(roles_key, cell.resource_id, cell.role)
                await pipe.execute()
        except RedisError as exc:
            raise self._unavailable("multi", exc) from exc

    async def close(self) -> None:
        await self._client.aclose()

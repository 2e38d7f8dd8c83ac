from __future__ import annotations

import os
from functools import lru_cache

from authz.domain.errors import InvalidArgumentError
from authz.infra import db, redis_state
from authz.infra.redis_role_store import RedisRoleStore
from authz.infra.role_store import InMemoryRoleStore, RoleStore
from authz.infra.sql_role_store import SqlRoleStore

AUTHZ_STORE_BACKEND = os.getenv("AUTHZ_STORE_BACKEND", "redis")
STORE_BACKENDS = ("memory", "redis", "sql")


def create_role_store(backend: str) -> RoleStore:
    if backend == "memory":
        return InMemoryRoleStore()
    if backend == "redis":
        return RedisRoleStore(redis_state.get_redis())
    if backend == "sql":
        return SqlRoleStore(db.get_engine())
    raise InvalidArgumentError(
        f"unknown role store backend {backend!r}, expected one of {', '.join(STORE_BACKENDS)}"
    )


@lru_cache(maxsize=1)
def get_role_store() -> RoleStore:
    return create_role_store(AUTHZ_STORE_BACKEND)

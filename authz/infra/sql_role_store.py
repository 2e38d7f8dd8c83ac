from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from typing import TypeVar

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, col, select

from authz.domain.errors import StorageUnavailableError
from authz.domain.identifiers import ID_SEPARATOR
from authz.domain.models import AuthzRoleRecord, RoleCell, now_utc
from authz.infra.role_store import RoleStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SqlRoleStore(RoleStore):
    """Role rows in the ``authz_roles`` table, one transaction per cell.

    The SQLAlchemy session API is blocking, so every call runs in a worker thread.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _session(self) -> Session:
        return Session(self._engine, expire_on_commit=False)

    async def _run(self, operation: str, fn: Callable[..., T], *args: object) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as exc:
            logger.warning("authz.store.unavailable", extra={"backend": "sql", "operation": operation})
            raise StorageUnavailableError(f"sql {operation} failed: {exc}") from exc

    async def get_direct_role(self, resource_id: str, principal_id: str) -> str | None:
        return await self._run("get_direct_role", self._get_direct_role, resource_id, principal_id)

    def _get_direct_role(self, resource_id: str, principal_id: str) -> str | None:
        with self._session() as session:
            record = session.get(AuthzRoleRecord, (resource_id, principal_id))
            return record.role if record is not None else None

    async def get_direct_roles(
        self, resource_id: str, principal_ids: Iterable[str]
    ) -> dict[str, str]:
        principal_ids = list(principal_ids)
        if not principal_ids:
            return {}
        return await self._run("get_direct_roles", self._get_direct_roles, resource_id, principal_ids)

    def _get_direct_roles(self, resource_id: str, principal_ids: list[str]) -> dict[str, str]:
        statement = (
            select(AuthzRoleRecord)
            .where(AuthzRoleRecord.resource_id == resource_id)
            .where(col(AuthzRoleRecord.principal_id).in_(principal_ids))
        )
        with self._session() as session:
            return {row.principal_id: row.role for row in session.exec(statement)}

    async def get_members(self, resource_id: str) -> dict[str, str]:
        return await self._run("get_members", self._get_members, resource_id)

    def _get_members(self, resource_id: str) -> dict[str, str]:
        statement = select(AuthzRoleRecord).where(AuthzRoleRecord.resource_id == resource_id)
        with self._session() as session:
            return {row.principal_id: row.role for row in session.exec(statement)}

    async def get_roles_for_principal(
        self, principal_id: str, resource_type: str | None = None
    ) -> dict[str, str]:
        return await self._run(
            "get_roles_for_principal", self._get_roles_for_principal, principal_id, resource_type
        )

    def _get_roles_for_principal(self, principal_id: str, resource_type: str | None) -> dict[str, str]:
        statement = select(AuthzRoleRecord).where(AuthzRoleRecord.principal_id == principal_id)
        if resource_type is not None:
            statement = statement.where(AuthzRoleRecord.resource_type == resource_type)
        with self._session() as session:
            return {row.resource_id: row.role for row in session.exec(statement)}

    async def _write_cell(self, cell: RoleCell) -> None:
        await self._run("write_cell", self._write_cell_sync, cell)

    def _write_cell_sync(self, cell: RoleCell) -> None:
        if cell.role is None:
            with self._session() as session:
                session.execute(
                    sa.delete(AuthzRoleRecord)
                    .where(col(AuthzRoleRecord.resource_id) == cell.resource_id)
                    .where(col(AuthzRoleRecord.principal_id) == cell.principal_id)
                )
                session.commit()
            return
        try:
            self._upsert(cell)
        except IntegrityError:
            # A concurrent writer inserted the row first; overwrite it.
            self._upsert(cell)

    def _upsert(self, cell: RoleCell) -> None:
        with self._session() as session:
            record = session.get(AuthzRoleRecord, (cell.resource_id, cell.principal_id))
            if record is None:
                record = AuthzRoleRecord(
                    resource_id=cell.resource_id,
                    principal_id=cell.principal_id,
                    resource_type=cell.resource_id.split(ID_SEPARATOR, 1)[0],
                    role=cell.role,
                )
            else:
                record.role = cell.role
                record.updated_at = now_utc()
            session.add(record)
            session.commit()

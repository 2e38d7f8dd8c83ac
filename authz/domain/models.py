from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from authz.domain.errors import InvalidArgumentError
from authz.domain.identifiers import parse_principal_id, parse_resource_id

RoleValue = str | Literal[False]


def now_utc() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class RoleCell:
    """One (resource, principal) cell of a batch; ``role`` is None for a removal."""

    resource_id: str
    principal_id: str
    role: str | None

    @property
    def is_removal(self) -> bool:
        return self.role is None


class RoleChangeBatch(BaseModel):
    model_config = ConfigDict(strict=True, frozen=True)

    resource_id: str
    changes: dict[str, str | bool]

    @field_validator("resource_id")
    @classmethod
    def _check_resource_id(cls, value: str) -> str:
        try:
            parse_resource_id(value)
        except InvalidArgumentError as exc:
            raise ValueError(str(exc)) from exc
        return value

    @field_validator("changes")
    @classmethod
    def _check_changes(cls, value: dict[str, str | bool]) -> dict[str, str | bool]:
        if not value:
            raise ValueError("role changes must not be empty")
        for principal_id, role in value.items():
            try:
                parse_principal_id(principal_id)
            except InvalidArgumentError as exc:
                raise ValueError(str(exc)) from exc
            if role is True or (isinstance(role, str) and not role.strip()):
                raise ValueError(f"invalid role for {principal_id}: {role!r}")
        return value

    @classmethod
    def from_mapping(cls, resource_id: Any, changes: Any) -> RoleChangeBatch:
        if isinstance(changes, Mapping):
            changes = dict(changes)
        try:
            return cls(resource_id=resource_id, changes=changes)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise InvalidArgumentError(f"{location}: {first['msg']}") from exc

    def cells(self) -> list[RoleCell]:
        return [
            RoleCell(
                resource_id=self.resource_id,
                principal_id=principal_id,
                role=role if isinstance(role, str) else None,
            )
            for principal_id, role in self.changes.items()
        ]


class AuthzRoleRecord(SQLModel, table=True):
    __tablename__ = "authz_roles"
    __table_args__ = (Index("ix_authz_roles_principal_type", "principal_id", "resource_type"),)

    resource_id: str = Field(primary_key=True)
    principal_id: str = Field(primary_key=True, index=True)
    resource_type: str = Field(index=True)
    role: str
    updated_at: datetime = Field(default_factory=now_utc)

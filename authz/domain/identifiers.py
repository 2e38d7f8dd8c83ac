from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from authz.domain.errors import InvalidArgumentError

ID_SEPARATOR = ":"
_SEGMENT_RE = re.compile(r"[A-Za-z0-9_.-]+")


class PrincipalType(StrEnum):
    USER = "u"
    GROUP = "g"


class ResourceType(StrEnum):
    CONTENT = "c"
    GROUP = "g"


PRINCIPAL_TYPES = frozenset(item.value for item in PrincipalType)


@dataclass(frozen=True)
class Identifier:
    type: str
    tenant_alias: str
    name: str

    @property
    def id(self) -> str:
        return ID_SEPARATOR.join((self.type, self.tenant_alias, self.name))

    @property
    def is_principal(self) -> bool:
        return self.type in PRINCIPAL_TYPES

    @property
    def is_user(self) -> bool:
        return self.type == PrincipalType.USER

    @property
    def is_group(self) -> bool:
        return self.type == PrincipalType.GROUP

    def __str__(self) -> str:
        return self.id


def to_id(type_: str, tenant_alias: str, name: str) -> str:
    for label, segment in (("type", type_), ("tenant alias", tenant_alias)):
        if not isinstance(segment, str) or not _SEGMENT_RE.fullmatch(segment):
            raise InvalidArgumentError(f"invalid identifier {label}: {segment!r}")
    if not isinstance(name, str) or not name:
        raise InvalidArgumentError("identifier name must be a non-empty string")
    return ID_SEPARATOR.join((type_, tenant_alias, name))


def parse_id(value: Any) -> Identifier:
    if not isinstance(value, str):
        raise InvalidArgumentError(f"identifier must be a string, got {type(value).__name__}")
    parts = value.split(ID_SEPARATOR, 2)
    if len(parts) != 3:
        raise InvalidArgumentError(f"malformed identifier: {value!r}")
    type_, tenant_alias, name = parts
    if not _SEGMENT_RE.fullmatch(type_) or not _SEGMENT_RE.fullmatch(tenant_alias) or not name:
        raise InvalidArgumentError(f"malformed identifier: {value!r}")
    return Identifier(type=type_, tenant_alias=tenant_alias, name=name)


def parse_resource_id(value: Any) -> Identifier:
    return parse_id(value)


def parse_principal_id(value: Any) -> Identifier:
    identifier = parse_id(value)
    if not identifier.is_principal:
        raise InvalidArgumentError(f"not a principal identifier: {value!r}")
    return identifier


def _safe_parse(value: Any) -> Identifier | None:
    try:
        return parse_id(value)
    except InvalidArgumentError:
        return None


def is_resource_id(value: Any) -> bool:
    return _safe_parse(value) is not None


def is_principal_id(value: Any) -> bool:
    identifier = _safe_parse(value)
    return identifier is not None and identifier.is_principal


def is_user_id(value: Any) -> bool:
    identifier = _safe_parse(value)
    return identifier is not None and identifier.is_user


def is_group_id(value: Any) -> bool:
    identifier = _safe_parse(value)
    return identifier is not None and identifier.is_group


def type_prefix(resource_type: str) -> str:
    """Leading ``"{type}:"`` shared by every identifier of ``resource_type``."""
    return f"{resource_type}{ID_SEPARATOR}"


def parse_resource_type(value: Any) -> str:
    if not isinstance(value, str) or not _SEGMENT_RE.fullmatch(value):
        raise InvalidArgumentError(f"invalid resource type: {value!r}")
    return value


GROUP_PREFIX = type_prefix(PrincipalType.GROUP)

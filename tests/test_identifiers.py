from __future__ import annotations

import pytest

from authz.domain.errors import InvalidArgumentError
from authz.domain.identifiers import (
    Identifier,
    PrincipalType,
    ResourceType,
    is_group_id,
    is_principal_id,
    is_resource_id,
    is_user_id,
    parse_id,
    parse_principal_id,
    parse_resource_id,
    parse_resource_type,
    to_id,
)


def test_to_id_and_parse_id_agree() -> None:
    value = to_id(PrincipalType.USER, "cam", "mrvisser")
    assert value == "u:cam:mrvisser"
    parsed = parse_id(value)
    assert parsed == Identifier(type="u", tenant_alias="cam", name="mrvisser")
    assert parsed.id == value
    assert str(parsed) == value
    assert parsed.is_user
    assert parsed.is_principal
    assert not parsed.is_group


def test_name_segment_may_contain_separator() -> None:
    parsed = parse_resource_id("c:cam:folder:Foo.docx")
    assert parsed.type == ResourceType.CONTENT
    assert parsed.tenant_alias == "cam"
    assert parsed.name == "folder:Foo.docx"


@pytest.mark.parametrize(
    "value",
    [
        None,
        42,
        "",
        "not an id",
        "c:cam",
        "c::Foo.docx",
        ":cam:Foo.docx",
        "c:cam:",
        "c d:cam:x",
        "u:cam\n:mrvisser",
        "u\n:cam:mrvisser",
    ],
)
def test_parse_id_rejects_malformed_values(value: object) -> None:
    with pytest.raises(InvalidArgumentError) as exc_info:
        parse_id(value)
    assert exc_info.value.code == 400


def test_parse_principal_id_rejects_non_principal_types() -> None:
    with pytest.raises(InvalidArgumentError):
        parse_principal_id("c:cam:mrvisser")
    assert parse_principal_id("g:cam:oae-team").is_group


def test_to_id_validates_segments() -> None:
    with pytest.raises(InvalidArgumentError):
        to_id("u", "cam:oxford", "mrvisser")
    with pytest.raises(InvalidArgumentError):
        to_id("u", "cam", "")


def test_predicates_never_raise() -> None:
    assert is_user_id("u:cam:mrvisser")
    assert not is_user_id("g:cam:oae-team")
    assert is_group_id("g:cam:oae-team")
    assert is_principal_id("g:cam:oae-team")
    assert not is_principal_id("c:cam:Foo.docx")
    assert is_resource_id("c:cam:Foo.docx")
    assert not is_resource_id(None)
    assert not is_user_id("not an id")


def test_parse_resource_type() -> None:
    assert parse_resource_type("c") == "c"
    for value in (None, "", "c:", "c\n"):
        with pytest.raises(InvalidArgumentError):
            parse_resource_type(value)


def test_to_id_rejects_trailing_newline_in_segments() -> None:
    with pytest.raises(InvalidArgumentError):
        to_id("u", "cam\n", "mrvisser")
    with pytest.raises(InvalidArgumentError):
        to_id("u\n", "cam", "mrvisser")
    assert not is_principal_id("u:cam\n:mrvisser")

from __future__ import annotations

import asyncio

import pytest
from redis.asyncio import Redis

from authz.domain.errors import InvalidArgumentError
from authz.infra.redis_state import check_redis_ready
from authz.infra.role_store import InMemoryRoleStore
from authz.infra.stores import create_role_store
from authz.services.authz_service import MEMBERS_PAGE_MAX, AuthzService

TENANT = "service"
GROUP = f"g:{TENANT}:oae-team"
PARENT = f"g:{TENANT}:oae-parent"
USER = f"u:{TENANT}:mrvisser"
OTHER = f"u:{TENANT}:simong"
CONTENT = f"c:{TENANT}:Foo.docx"


@pytest.fixture()
def service() -> AuthzService:
    return AuthzService(InMemoryRoleStore(), concurrency=4)


def _seed(service: AuthzService) -> None:
    async def _run() -> None:
        await service.apply_role_changes(GROUP, {USER: "member", OTHER: "manager"})
        await service.apply_role_changes(PARENT, {GROUP: "member"})
        await service.apply_role_changes(CONTENT, {PARENT: "viewer", OTHER: "editor"})

    asyncio.run(_run())


def test_facade_resolves_roles_through_groups(service: AuthzService) -> None:
    _seed(service)

    async def _run() -> tuple[set[str], set[str], bool, bool, dict[str, dict[str, str]]]:
        return (
            await service.get_all_roles(USER, CONTENT),
            await service.get_all_roles(OTHER, CONTENT),
            await service.has_role(USER, CONTENT, "viewer"),
            await service.has_any_role(f"u:{TENANT}:stranger", CONTENT),
            await service.get_roles_for_principals_and_resource_type([USER, OTHER], "c"),
        )

    user_roles, other_roles, user_is_viewer, stranger_has_any, bulk = asyncio.run(_run())
    assert user_roles == {"viewer"}
    assert other_roles == {"viewer", "editor"}
    assert user_is_viewer is True
    assert stranger_has_any is False
    assert bulk == {USER: {CONTENT: "viewer"}, OTHER: {CONTENT: "editor"}}


def test_facade_memberships(service: AuthzService) -> None:
    _seed(service)

    async def _run() -> tuple[dict[str, str], list[str], list[str]]:
        return (
            await service.get_principal_memberships(OTHER),
            await service.get_all_principal_memberships(USER),
            list((await service.build_principal_memberships_graph(USER)).traverse_out(USER)),
        )

    direct, indirect, upward = asyncio.run(_run())
    assert direct == {GROUP: "manager"}
    assert indirect == [GROUP, PARENT]
    assert upward == [USER, GROUP, PARENT]


def test_facade_membership_graph_and_preview(service: AuthzService) -> None:
    _seed(service)

    async def _run() -> tuple[list[str], dict[str, str]]:
        graph = await service.build_membership_graph([CONTENT])
        preview = await service.compute_member_roles_after_changes(CONTENT, {OTHER: False, USER: "manager"})
        return list(graph.traverse_in(CONTENT)), preview

    members, preview = asyncio.run(_run())
    assert set(members) == {CONTENT, PARENT, OTHER, GROUP, USER}
    assert preview == {PARENT: "viewer", USER: "manager"}


def test_get_direct_roles_ignores_inherited_roles(service: AuthzService) -> None:
    _seed(service)
    result = asyncio.run(service.get_direct_roles([USER, OTHER, PARENT], CONTENT))
    assert result == {OTHER: "editor", PARENT: "viewer"}


@pytest.mark.parametrize(
    ("principal_ids", "resource_id"),
    [(USER, CONTENT), (None, CONTENT), ([CONTENT], CONTENT), ([USER], "not an id")],
)
def test_get_direct_roles_validation(service: AuthzService, principal_ids: object, resource_id: object) -> None:
    with pytest.raises(InvalidArgumentError):
        asyncio.run(service.get_direct_roles(principal_ids, resource_id))


def test_get_authz_members_pages_in_principal_order(service: AuthzService) -> None:
    users = [f"u:{TENANT}:user-{index:02d}" for index in range(25)]
    asyncio.run(service.apply_role_changes(CONTENT, dict.fromkeys(users, "viewer")))

    async def _collect() -> list[tuple[list[tuple[str, str]], str | None]]:
        pages = []
        start = None
        while True:
            page, start = await service.get_authz_members(CONTENT, start=start, limit=10)
            pages.append((page, start))
            if start is None:
                return pages

    pages = asyncio.run(_collect())
    assert [len(page) for page, _ in pages] == [10, 10, 5]
    assert [token for _, token in pages] == [users[9], users[19], None]
    assert [principal_id for page, _ in pages for principal_id, _ in page] == users
    assert all(role == "viewer" for page, _ in pages for _, role in page)


def test_get_authz_members_clamps_limit(service: AuthzService) -> None:
    users = [f"u:{TENANT}:user-{index:03d}" for index in range(MEMBERS_PAGE_MAX + 5)]
    asyncio.run(service.apply_role_changes(CONTENT, dict.fromkeys(users, "viewer")))

    smallest, smallest_token = asyncio.run(service.get_authz_members(CONTENT, limit=0))
    largest, largest_token = asyncio.run(service.get_authz_members(CONTENT, limit=1000))

    assert smallest == [(users[0], "viewer")]
    assert smallest_token == users[0]
    assert len(largest) == MEMBERS_PAGE_MAX
    assert largest_token == users[MEMBERS_PAGE_MAX - 1]


def test_get_authz_members_last_full_page_has_no_token(service: AuthzService) -> None:
    asyncio.run(service.apply_role_changes(CONTENT, {USER: "viewer", OTHER: "manager"}))
    page, token = asyncio.run(service.get_authz_members(CONTENT, limit=2))
    assert page == [(USER, "viewer"), (OTHER, "manager")]
    assert token is None


def test_get_authz_members_of_unknown_resource_is_empty(service: AuthzService) -> None:
    assert asyncio.run(service.get_authz_members(f"c:{TENANT}:nothing")) == ([], None)
    with pytest.raises(InvalidArgumentError):
        asyncio.run(service.get_authz_members("not an id"))


def test_create_role_store_backends() -> None:
    assert isinstance(create_role_store("memory"), InMemoryRoleStore)
    with pytest.raises(InvalidArgumentError) as exc_info:
        create_role_store("cassandra")
    assert "cassandra" in str(exc_info.value)


def test_check_redis_ready_reports_unreachable_server() -> None:
    async def _run() -> bool:
        client = Redis.from_url("redis://127.0.0.1:1/0", socket_connect_timeout=0.5)
        try:
            return await check_redis_ready(client)
        finally:
            await client.aclose()

    assert asyncio.run(_run()) is False


@pytest.mark.parametrize(
    ("start", "limit"),
    [(None, "x"), (None, None), (None, [10]), (42, 10), ([USER], 10)],
)
def test_get_authz_members_rejects_bad_paging_arguments(
    service: AuthzService, start: object, limit: object
) -> None:
    asyncio.run(service.apply_role_changes(CONTENT, {USER: "viewer"}))
    with pytest.raises(InvalidArgumentError) as exc_info:
        asyncio.run(service.get_authz_members(CONTENT, start=start, limit=limit))  # type: ignore[arg-type]
    assert exc_info.value.code == 400


def test_get_authz_members_accepts_numeric_string_limit(service: AuthzService) -> None:
    asyncio.run(service.apply_role_changes(CONTENT, {USER: "viewer", OTHER: "manager"}))
    page, token = asyncio.run(service.get_authz_members(CONTENT, limit="1"))  # type: ignore[arg-type]
    assert page == [(USER, "viewer")]
    assert token == USER

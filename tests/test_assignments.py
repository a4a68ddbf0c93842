import pytest
from sqlalchemy import select

from app.features.permissions.assignments import RolePermissionAssignment
from app.features.permissions.exceptions import NotFound
from app.features.permissions.models import Role
from app.features.permissions.repository import PermissionRepository
from app.features.permissions.roles import RoleRegistry


async def _ids(db, *names: str) -> list[str]:
    repository = PermissionRepository(db)
    return [(await repository.get_by_name(name)).id for name in names]


@pytest.mark.asyncio
async def test_replace_overwrites_previous_grants(seeded_db) -> None:
    assignments = RolePermissionAssignment(seeded_db)
    first = await _ids(seeded_db, "deals_read-only_own", "contacts_read-only_team")
    second = await _ids(seeded_db, "contacts_read-only_team", "tasks_read-edit_own")

    await assignments.replace_for_role("sales", first)
    granted = await assignments.replace_for_role("sales", second)

    assert sorted(p.name for p in granted) == ["contacts_read-only_team", "tasks_read-edit_own"]
    assert sorted(p.id for p in await assignments.for_role("sales")) == sorted(second)


@pytest.mark.asyncio
async def test_replace_collapses_duplicate_ids(seeded_db) -> None:
    assignments = RolePermissionAssignment(seeded_db)
    (permission_id,) = await _ids(seeded_db, "deals_full-access_all")

    granted = await assignments.replace_for_role("super_admin", [permission_id, permission_id])

    assert [p.id for p in granted] == [permission_id]


@pytest.mark.asyncio
async def test_replace_with_empty_list_revokes_everything(seeded_db) -> None:
    assignments = RolePermissionAssignment(seeded_db)
    await assignments.replace_for_role("sales", await _ids(seeded_db, "deals_read-only_own"))

    assert await assignments.replace_for_role("sales", []) == []


@pytest.mark.asyncio
async def test_replace_rejects_unknown_ids_without_writing(seeded_db) -> None:
    assignments = RolePermissionAssignment(seeded_db)
    before = await _ids(seeded_db, "deals_read-only_own")
    await assignments.replace_for_role("sales", before)

    with pytest.raises(NotFound):
        await assignments.replace_for_role("sales", before + ["missing"])

    assert [p.id for p in await assignments.for_role("sales")] == before


@pytest.mark.asyncio
async def test_replace_for_unknown_role(seeded_db) -> None:
    assignments = RolePermissionAssignment(seeded_db)

    with pytest.raises(NotFound):
        await assignments.replace_for_role("ghost", await _ids(seeded_db, "deals_read-only_own"))
    with pytest.raises(NotFound):
        await assignments.for_role("ghost")


@pytest.mark.asyncio
async def test_replace_stores_system_role_on_first_grant(db) -> None:
    await PermissionRepository(db).seed_catalog()
    assignments = RolePermissionAssignment(db)

    assert await assignments.for_role("technical_support") == []
    await assignments.replace_for_role("technical_support", await _ids(db, "tickets_full-access_own"))

    stored = (await db.execute(select(Role).where(Role.id == "technical_support"))).scalar_one()
    assert stored.is_system
    assert [r.id for r in await RoleRegistry(db).list()].count("technical_support") == 1


@pytest.mark.asyncio
async def test_for_roles_merges_grants(seeded_db) -> None:
    assignments = RolePermissionAssignment(seeded_db)
    shared, extra = await _ids(seeded_db, "deals_read-only_own", "deals_read-only_all")
    await assignments.replace_for_role("sales", [shared])
    await assignments.replace_for_role("team_manager", [shared, extra])

    merged = await assignments.for_roles(["sales", "team_manager"])

    assert sorted(p.id for p in merged) == sorted([shared, extra])
    assert await assignments.for_roles([]) == []

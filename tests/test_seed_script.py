import pytest

from app.features.permissions.assignments import RolePermissionAssignment
from app.features.permissions.catalog import DEFAULT_CATALOG, PermissionAtom
from app.features.permissions.repository import PermissionRepository
from app.features.permissions.roles import SYSTEM_ROLES
from scripts.seed_permissions import DEFAULT_MATRICES, seed_default_grants


def test_default_matrices_only_name_catalog_cells() -> None:
    assert set(DEFAULT_MATRICES) == set(SYSTEM_ROLES)
    for rows in DEFAULT_MATRICES.values():
        for row in rows:
            for level, scope in row.levels.items():
                if scope is not None:
                    assert scope in DEFAULT_CATALOG.scopes_for(row.object, level), (row.object, level, scope)


@pytest.mark.asyncio
async def test_seed_default_grants(seeded_db) -> None:
    assignments = RolePermissionAssignment(seeded_db)

    await seed_default_grants(seeded_db)

    admin_grants = {p.name for p in await assignments.for_role("super_admin")}
    assert "roles_full-access_all" in admin_grants
    sales_grants = {p.atom for p in await assignments.for_role("sales")}
    assert PermissionAtom.parse("deals_read-edit_own") in sales_grants


@pytest.mark.asyncio
async def test_seed_default_grants_keeps_existing_grants(seeded_db) -> None:
    assignments = RolePermissionAssignment(seeded_db)
    await seed_default_grants(seeded_db)
    custom = await PermissionRepository(seeded_db).get_by_name("calls_read-only_all")
    await assignments.replace_for_role("sales", [custom.id])

    await seed_default_grants(seeded_db)

    assert [p.name for p in await assignments.for_role("sales")] == ["calls_read-only_all"]

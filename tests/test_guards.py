import pytest
from fastapi import HTTPException

from app.features.permissions.assignments import RolePermissionAssignment
from app.features.permissions.catalog import PermissionLevel
from app.features.permissions.dependencies import ensure_access, require_grant
from app.features.permissions.evaluator import Resource
from app.features.permissions.repository import PermissionRepository


@pytest.mark.asyncio
async def test_ensure_access_raises_403_outside_scope(seeded_db, make_user) -> None:
    permission = await PermissionRepository(seeded_db).get_by_name("deals_read-edit_own")
    await RolePermissionAssignment(seeded_db).replace_for_role("sales", [permission.id])
    rep = await make_user("rep", role_id="sales")
    other = await make_user("other", role_id="sales")

    await ensure_access(seeded_db, rep, "deals", PermissionLevel.READ_EDIT, Resource("D1", rep.id))
    with pytest.raises(HTTPException) as exc_info:
        await ensure_access(seeded_db, rep, "deals", PermissionLevel.READ_EDIT, Resource("D2", other.id))

    assert exc_info.value.status_code == 403
    assert "read-edit on deals" in exc_info.value.detail


@pytest.mark.asyncio
async def test_require_grant_checks_any_scope(seeded_db, make_user) -> None:
    permission = await PermissionRepository(seeded_db).get_by_name("tickets_read-only_team")
    await RolePermissionAssignment(seeded_db).replace_for_role("technical_support", [permission.id])
    tech = await make_user("tech", role_id="technical_support")

    allowed = require_grant("tickets", PermissionLevel.READ_ONLY)
    denied = require_grant("tickets", PermissionLevel.FULL_ACCESS)

    assert await allowed(db=seeded_db, current_user=tech) is tech
    with pytest.raises(HTTPException) as exc_info:
        await denied(db=seeded_db, current_user=tech)
    assert exc_info.value.status_code == 403

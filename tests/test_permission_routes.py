from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest
import pytest_asyncio
from httpx import AsyncClient

from app.features.permissions.repository import PermissionRepository
from app.features.permissions.roles import RoleRegistry


@pytest_asyncio.fixture()
async def identities(db, make_user) -> dict[str, Any]:
    """System roles stored, catalog not yet seeded, an admin and a sales user."""

    await RoleRegistry(db).ensure_system_roles()
    admin = await make_user("admin", role_id="super_admin")
    seller = await make_user("seller", role_id="sales")
    return {"admin": admin.id, "seller": seller.id}


@pytest_asyncio.fixture()
async def seeded(db, identities) -> dict[str, Any]:
    await PermissionRepository(db).seed_catalog()
    return identities


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient) -> None:
    response = await async_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_requests_with_unknown_subject_are_rejected(async_client: AsyncClient, auth_headers) -> None:
    response = await async_client.get("/permissions/catalog", headers=auth_headers("stranger"))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_expired_token_is_rejected(async_client: AsyncClient, identities, auth_headers) -> None:
    headers = auth_headers("admin", expires_in=timedelta(minutes=-1))

    response = await async_client.get("/permissions/catalog", headers=headers)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_catalog_listing(async_client: AsyncClient, identities, auth_headers) -> None:
    response = await async_client.get("/permissions/catalog", headers=auth_headers("seller"))

    assert response.status_code == 200
    objects = {entry["name"]: entry for entry in response.json()}
    assert len(objects) == 15
    assert [level["level"] for level in objects["settings"]["levels"]] == ["read-only", "read-edit"]
    assert objects["deals"]["levels"][0]["scopes"] == ["own", "team", "all", "unassigned"]


@pytest.mark.asyncio
async def test_seed_endpoint_is_admin_only_and_idempotent(
    async_client: AsyncClient, identities, auth_headers
) -> None:
    refused = await async_client.post("/permissions/catalog/seed", headers=auth_headers("seller"))
    first = await async_client.post("/permissions/catalog/seed", headers=auth_headers("admin"))
    second = await async_client.post("/permissions/catalog/seed", headers=auth_headers("admin"))

    assert refused.status_code == 403
    assert first.json() == {"permissions_created": 128, "roles_created": 0}
    assert second.json() == {"permissions_created": 0, "roles_created": 0}


@pytest.mark.asyncio
async def test_permission_listing_by_object(async_client: AsyncClient, seeded, auth_headers) -> None:
    response = await async_client.get(
        "/permissions/permissions", params={"object": "reports"}, headers=auth_headers("seller")
    )

    assert response.status_code == 200
    payload = response.json()
    assert [p["name"] for p in payload] == [
        "reports_read-only_all",
        "reports_read-only_own",
        "reports_read-only_team",
    ]
    assert {p["level"] for p in payload} == {"read-only"}


@pytest.mark.asyncio
async def test_create_permission_errors(async_client: AsyncClient, seeded, auth_headers) -> None:
    headers = auth_headers("admin")

    duplicate = await async_client.post(
        "/permissions/permissions", json={"name": "deals_read-only_own"}, headers=headers
    )
    malformed = await async_client.post(
        "/permissions/permissions", json={"name": "deals-read"}, headers=headers
    )

    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "duplicate_name"
    assert malformed.status_code == 400
    assert "name" in malformed.json()


@pytest.mark.asyncio
async def test_role_crud(async_client: AsyncClient, seeded, auth_headers) -> None:
    headers = auth_headers("admin")

    created = await async_client.post(
        "/permissions/roles", json={"name": "partner", "description": "Partner access"}, headers=headers
    )
    assert created.status_code == 201
    role_id = created.json()["id"]

    duplicate = await async_client.post("/permissions/roles", json={"name": "partner"}, headers=headers)
    assert duplicate.status_code == 409
    assert duplicate.json() == {"error": "duplicate_name", "detail": "Role 'partner' already exists"}

    renamed = await async_client.put(
        f"/permissions/roles/{role_id}", json={"name": "channel_partner"}, headers=headers
    )
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "channel_partner"

    listed = await async_client.get("/permissions/roles", headers=headers)
    names = {role["name"] for role in listed.json()}
    assert {"channel_partner", "super_admin", "sales"} <= names

    deleted = await async_client.delete(f"/permissions/roles/{role_id}", headers=headers)
    assert deleted.status_code == 204

    missing = await async_client.get(f"/permissions/roles/{role_id}", headers=headers)
    assert missing.status_code == 404
    assert missing.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_system_roles_are_frozen(async_client: AsyncClient, seeded, auth_headers) -> None:
    headers = auth_headers("admin")

    updated = await async_client.put("/permissions/roles/sales", json={"description": "x"}, headers=headers)
    deleted = await async_client.delete("/permissions/roles/super_admin", headers=headers)

    assert updated.status_code == 403
    assert updated.json()["error"] == "forbidden"
    assert deleted.status_code == 403


@pytest.mark.asyncio
async def test_role_in_use_cannot_be_deleted(async_client: AsyncClient, seeded, auth_headers) -> None:
    headers = auth_headers("admin")
    role_id = (await async_client.post("/permissions/roles", json={"name": "partner"}, headers=headers)).json()["id"]
    assigned = await async_client.put(
        f"/users/{seeded['seller']}/role", json={"role_id": role_id}, headers=headers
    )
    assert assigned.status_code == 200

    response = await async_client.delete(f"/permissions/roles/{role_id}", headers=headers)

    assert response.status_code == 409
    assert response.json()["error"] == "in_use"


@pytest.mark.asyncio
async def test_matrix_put_then_get(async_client: AsyncClient, seeded, auth_headers) -> None:
    headers = auth_headers("admin")
    matrix = [
        {"object": "deals", "levels": {"read-only": "team", "read-edit": "own"}},
        {"object": "reports", "levels": {"read-edit": "own"}},
    ]

    put = await async_client.put("/permissions/roles/sales/matrix", json={"matrix": matrix}, headers=headers)
    got = await async_client.get("/permissions/roles/sales/matrix", headers=headers)

    expected = [{"object": "deals", "levels": {"read-only": "team", "read-edit": "own", "full-access": None}}]
    assert put.status_code == 200
    assert put.json() == {"role_id": "sales", "matrix": expected}
    assert got.json() == {"role_id": "sales", "matrix": expected}

    role = await async_client.get("/permissions/roles/sales", headers=headers)
    assert sorted(p["name"] for p in role.json()["permissions"]) == [
        "deals_read-edit_own",
        "deals_read-only_team",
    ]


@pytest.mark.asyncio
async def test_replace_role_permissions_rejects_unknown_ids(
    async_client: AsyncClient, seeded, auth_headers
) -> None:
    response = await async_client.put(
        "/permissions/roles/sales/permissions", json={"permission_ids": ["missing"]}, headers=auth_headers("admin")
    )

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_granted_permission_cannot_be_deleted(async_client: AsyncClient, seeded, auth_headers) -> None:
    headers = auth_headers("admin")
    listed = await async_client.get("/permissions/permissions", params={"object": "deals"}, headers=headers)
    permission_id = next(p["id"] for p in listed.json() if p["name"] == "deals_read-only_own")
    await async_client.put(
        "/permissions/roles/sales/permissions", json={"permission_ids": [permission_id]}, headers=headers
    )

    refused = await async_client.delete(f"/permissions/permissions/{permission_id}", headers=headers)
    await async_client.put("/permissions/roles/sales/permissions", json={"permission_ids": []}, headers=headers)
    accepted = await async_client.delete(f"/permissions/permissions/{permission_id}", headers=headers)

    assert refused.status_code == 409
    assert refused.json()["error"] == "in_use"
    assert accepted.status_code == 204


@pytest.mark.asyncio
async def test_access_check_for_current_user(async_client: AsyncClient, seeded, auth_headers) -> None:
    admin_headers = auth_headers("admin")
    matrix = [{"object": "deals", "levels": {"read-only": "own"}}]
    await async_client.put("/permissions/roles/sales/matrix", json={"matrix": matrix}, headers=admin_headers)
    seller_headers = auth_headers("seller")

    own = await async_client.post(
        "/permissions/check",
        json={"object": "deals", "level": "read-only", "resource_id": "R1", "owner_id": seeded["seller"]},
        headers=seller_headers,
    )
    other = await async_client.post(
        "/permissions/check",
        json={"object": "deals", "level": "read-only", "resource_id": "R2", "owner_id": seeded["admin"]},
        headers=seller_headers,
    )
    ungranted = await async_client.post(
        "/permissions/check",
        json={"object": "contacts", "level": "full-access", "owner_id": seeded["seller"]},
        headers=seller_headers,
    )

    assert own.json() == {"decision": "allow", "allowed": True, "granted_scopes": ["own"]}
    assert other.json()["decision"] == "deny"
    assert ungranted.json() == {"decision": "deny", "allowed": False, "granted_scopes": []}

    mine = await async_client.get("/permissions/me", headers=seller_headers)
    assert [p["name"] for p in mine.json()] == ["deals_read-only_own"]


@pytest.mark.asyncio
async def test_access_check_rejects_unknown_level(async_client: AsyncClient, seeded, auth_headers) -> None:
    response = await async_client.post(
        "/permissions/check", json={"object": "deals", "level": "write-only"}, headers=auth_headers("seller")
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_admin_changes_are_audited(async_client: AsyncClient, seeded, auth_headers) -> None:
    headers = auth_headers("admin")
    created = await async_client.post("/permissions/roles", json={"name": "auditor"}, headers=headers)

    response = await async_client.get(
        "/permissions/audit-logs", params={"resource_type": "role"}, headers=headers
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 1
    entry = payload["items"][0]
    assert entry["action"] == "create"
    assert entry["resource_id"] == created.json()["id"]
    assert entry["user_id"] == seeded["admin"]


@pytest.mark.asyncio
async def test_audit_log_is_admin_only(async_client: AsyncClient, seeded, auth_headers) -> None:
    response = await async_client.get("/permissions/audit-logs", headers=auth_headers("seller"))

    assert response.status_code == 403

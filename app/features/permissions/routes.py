"""
Permission management API routes.

Provides endpoints for the object catalog, permission definitions, roles,
role permission assignment (flat and matrix form), access checks and the
audit log. Service errors are translated to HTTP responses by the handler
registered in app.main.
"""
import math
from typing import List, Optional
from fastapi import APIRouter, Depends, status, Request, BackgroundTasks
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user, get_current_admin_user
from app.features.users.models import User
from app.features.permissions.assignments import RolePermissionAssignment
from app.features.permissions.catalog import DEFAULT_CATALOG
from app.features.permissions.dependencies import create_audit_log, get_current_principal
from app.features.permissions.evaluator import AccessDecisionEvaluator, Decision, Principal, Resource
from app.features.permissions.matrix import PermissionMatrixCodec
from app.features.permissions.models import AuditLog
from app.features.permissions.repository import PermissionRepository
from app.features.permissions.roles import RoleRegistry
from app.features.permissions.schemas import (
    AccessCheckRequest,
    AccessCheckResponse,
    AuditLogListResponse,
    AuditLogResponse,
    LevelSpecResponse,
    PermissionCreate,
    PermissionResponse,
    PermissionUpdate,
    RoleCreate,
    RoleMatrix,
    RoleMatrixUpdate,
    RolePermissionsUpdate,
    RoleResponse,
    RoleUpdate,
    RoleWithPermissions,
    SeedResponse,
    SystemObjectResponse,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


def _audit(
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession,
    user: User,
    action: str,
    resource_type: str,
    resource_id: Optional[str],
    details: Optional[dict] = None,
) -> None:
    background_tasks.add_task(
        create_audit_log,
        db=db,
        user_id=user.id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )


# ============================================================================
# Catalog Routes
# ============================================================================

@router.get("/catalog", response_model=List[SystemObjectResponse])
async def list_catalog(
    current_user: User = Depends(get_current_user)
):
    """List protected objects with their levels and allowed scopes."""
    return [
        SystemObjectResponse(
            name=spec.name,
            label=spec.label,
            levels=[LevelSpecResponse(level=ls.level, scopes=list(ls.scopes)) for ls in spec.level_specs],
        )
        for spec in DEFAULT_CATALOG.list_objects()
    ]


@router.post("/catalog/seed", response_model=SeedResponse)
async def seed_catalog(
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Seed permission definitions and system roles (admin only). No-op once seeded."""
    created = await PermissionRepository(db).seed_catalog()
    roles_created = await RoleRegistry(db).ensure_system_roles()
    if created or roles_created:
        _audit(background_tasks, request, db, current_user, "seed", "permission", None,
               {"permissions_created": created, "roles_created": roles_created})
    return SeedResponse(permissions_created=created, roles_created=roles_created)


# ============================================================================
# Permission Routes
# ============================================================================

@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)  # Only admins can create permissions
):
    """Create a new permission (admin only)."""
    db_permission = await PermissionRepository(db).create(permission.name, permission.description)
    _audit(background_tasks, request, db, current_user, "create", "permission",
           db_permission.id, permission.model_dump())
    return db_permission


@router.get("/permissions", response_model=List[PermissionResponse])
async def list_permissions(
    object: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List all permissions, optionally for one object."""
    return await PermissionRepository(db).list(object)


@router.get("/permissions/{permission_id}", response_model=PermissionResponse)
async def get_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a specific permission by ID."""
    return await PermissionRepository(db).get_by_id(permission_id)


@router.put("/permissions/{permission_id}", response_model=PermissionResponse)
async def update_permission(
    permission_id: str,
    permission_update: PermissionUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Update a permission's description (admin only)."""
    db_permission = await PermissionRepository(db).update(permission_id, permission_update.description)
    _audit(background_tasks, request, db, current_user, "update", "permission",
           permission_id, permission_update.model_dump(exclude_unset=True))
    return db_permission


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a permission no role grants (admin only)."""
    deleted = await PermissionRepository(db).delete(permission_id)
    _audit(background_tasks, request, db, current_user, "delete", "permission",
           permission_id, {"name": deleted.name})
    return None


# ============================================================================
# Role Routes
# ============================================================================

@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Create a custom role (admin only)."""
    db_role = await RoleRegistry(db).create(role.name, role.description)
    _audit(background_tasks, request, db, current_user, "create", "role", db_role.id, role.model_dump())
    return db_role


@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List system and custom roles."""
    return await RoleRegistry(db).list()


@router.get("/roles/{role_id}", response_model=RoleWithPermissions)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a specific role with its permissions."""
    role = await RoleRegistry(db).get(role_id)
    permissions = await RolePermissionAssignment(db).for_role(role_id)
    return RoleWithPermissions(
        **RoleResponse.model_validate(role).model_dump(),
        permissions=[PermissionResponse.model_validate(p) for p in permissions],
    )


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Update a custom role (admin only). System roles are frozen."""
    db_role = await RoleRegistry(db).update(role_id, role_update.name, role_update.description)
    _audit(background_tasks, request, db, current_user, "update", "role",
           role_id, role_update.model_dump(exclude_unset=True))
    return db_role


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Delete a custom role no user holds (admin only)."""
    deleted = await RoleRegistry(db).delete(role_id)
    _audit(background_tasks, request, db, current_user, "delete", "role", role_id, {"name": deleted.name})
    return None


@router.get("/roles/{role_id}/permissions", response_model=List[PermissionResponse])
async def list_role_permissions(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the permissions granted to a role."""
    return await RolePermissionAssignment(db).for_role(role_id)


@router.put("/roles/{role_id}/permissions", response_model=List[PermissionResponse])
async def replace_role_permissions(
    role_id: str,
    update: RolePermissionsUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Replace a role's whole permission set (admin only)."""
    permissions = await RolePermissionAssignment(db).replace_for_role(role_id, update.permission_ids)
    _audit(background_tasks, request, db, current_user, "replace_permissions", "role",
           role_id, {"permission_ids": [p.id for p in permissions]})
    return permissions


@router.get("/roles/{role_id}/matrix", response_model=RoleMatrix)
async def get_role_matrix(
    role_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Get a role's permissions as a matrix of one scope per object/level."""
    granted = await RolePermissionAssignment(db).for_role(role_id)
    codec = PermissionMatrixCodec(granted)
    return RoleMatrix(role_id=role_id, matrix=codec.decode(p.id for p in granted))


@router.put("/roles/{role_id}/matrix", response_model=RoleMatrix)
async def replace_role_matrix(
    role_id: str,
    update: RoleMatrixUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """Replace a role's permissions from a matrix (admin only). Unknown cells are dropped."""
    codec = PermissionMatrixCodec(await PermissionRepository(db).list())
    permission_ids = codec.encode(update.matrix)
    await RolePermissionAssignment(db).replace_for_role(role_id, permission_ids)
    _audit(background_tasks, request, db, current_user, "replace_permissions", "role",
           role_id, {"permission_ids": permission_ids})
    return RoleMatrix(role_id=role_id, matrix=codec.decode(permission_ids))


# ============================================================================
# Access Check Routes
# ============================================================================

@router.post("/check", response_model=AccessCheckResponse)
async def check_access(
    check: AccessCheckRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """Decide whether the current user may act on a resource."""
    evaluator = AccessDecisionEvaluator(db)
    scopes = await evaluator.granted_scopes(principal, check.object, check.level)
    decision = await evaluator.decide(
        principal, check.object, check.level, Resource(id=check.resource_id, owner_id=check.owner_id)
    )
    return AccessCheckResponse(
        decision=decision.value,
        allowed=decision is Decision.ALLOW,
        granted_scopes=sorted(scopes, key=lambda s: s.value),
    )


@router.get("/me", response_model=List[PermissionResponse])
async def my_permissions(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal)
):
    """List the permissions the current user's role grants."""
    return await RolePermissionAssignment(db).for_roles(principal.role_ids)


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    page: int = 1,
    page_size: int = 50,
    resource_type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user)
):
    """List audit log entries, newest first (admin only)."""
    page = max(page, 1)
    page_size = min(max(page_size, 1), 200)

    stmt = select(AuditLog)
    count_stmt = select(func.count()).select_from(AuditLog)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)
        count_stmt = count_stmt.where(AuditLog.resource_type == resource_type)

    total = (await db.execute(count_stmt)).scalar_one()
    result = await db.execute(
        stmt.order_by(AuditLog.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(item) for item in result.scalars().all()],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total else 0,
    )

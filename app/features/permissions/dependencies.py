"""
Permission checking dependencies for FastAPI routes.

Implements:
- Resolving the current user as an authorization principal
- Per-resource access checks and route-level grant requirements
- Audit logging helpers
"""
from typing import Dict, Any, Optional
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.catalog import PermissionLevel
from app.features.permissions.evaluator import AccessDecisionEvaluator, Decision, Principal, Resource
from app.features.permissions.models import AuditLog
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Access Checks
# ============================================================================

async def get_current_principal(
    current_user: User = Depends(get_current_user)
) -> Principal:
    return Principal.from_user(current_user)


async def ensure_access(
    db: AsyncSession,
    user: User,
    object_name: str,
    level: PermissionLevel,
    resource: Resource,
) -> None:
    """
    Raise 403 unless ``user`` may act at ``level`` on ``resource``.

    Usage in a deals route:
        deal = await load_deal(db, deal_id)
        await ensure_access(db, user, "deals", PermissionLevel.READ_EDIT,
                            Resource(id=deal.id, owner_id=deal.owner_id))
    """
    decision = await AccessDecisionEvaluator(db).decide(
        Principal.from_user(user), object_name, level, resource
    )
    if decision is Decision.DENY:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied: {PermissionLevel(level).value} on {object_name}"
        )


def require_grant(object_name: str, level: PermissionLevel):
    """
    FastAPI dependency requiring any scope on (object, level).

    Used on list endpoints where rows are filtered later; per-record checks
    still go through ``ensure_access``.

    Usage:
        @router.get("/deals")
        async def list_deals(
            user: User = Depends(require_grant("deals", PermissionLevel.READ_ONLY))
        ):
            pass
    """
    async def grant_dependency(
        db: AsyncSession = Depends(get_db),
        current_user: User = Depends(get_current_user)
    ) -> User:
        scopes = await AccessDecisionEvaluator(db).granted_scopes(
            Principal.from_user(current_user), object_name, level
        )
        if not scopes:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {PermissionLevel(level).value} on {object_name}"
            )
        return current_user

    return grant_dependency


# ============================================================================
# Audit Logging
# ============================================================================

async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> AuditLog:
    """
    Create an audit log entry.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "create", "update", "delete", "replace_permissions")
        resource_type: Type of resource (e.g., "role", "permission", "user")
        resource_id: ID of the resource
        details: Additional details
        ip_address: Client IP address
        user_agent: Client user agent

    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    log.info(
        f"Audit: user={user_id} action={action} resource={resource_type}:{resource_id}"
    )

    return audit_log

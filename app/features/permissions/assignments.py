"""
Role <-> permission assignment.

A role's permission set is always replaced as a whole: the old grants are
deleted and the new ones inserted inside one transaction, so a failed insert
never leaves the role without permissions.
"""
from collections.abc import Iterable, Sequence
from sqlalchemy import select, delete, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.exceptions import AuthorizationServiceError, NotFound, StoreError
from app.features.permissions.models import Permission, role_permissions
from app.features.permissions.repository import PermissionRepository
from app.features.permissions.roles import RoleRegistry
from app.utils import get_logger


log = get_logger(__name__)


class RolePermissionAssignment:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.roles = RoleRegistry(db)
        self.permissions = PermissionRepository(db)

    async def replace_for_role(self, role_id: str, permission_ids: Iterable[str]) -> list[Permission]:
        """
        Replace every grant of ``role_id`` with ``permission_ids``.

        Duplicate ids collapse to one grant. Unknown ids raise NotFound before
        anything is written. Concurrent callers race; the last commit wins.
        """
        wanted = list(dict.fromkeys(permission_ids))
        found = await self.permissions.get_many(wanted)
        missing = set(wanted) - {permission.id for permission in found}
        if missing:
            raise NotFound(f"Unknown permission id(s): {', '.join(sorted(missing))}")

        try:
            await self.roles.materialize(role_id)
            await self.db.execute(
                delete(role_permissions).where(role_permissions.c.role_id == role_id)
            )
            if wanted:
                await self.db.execute(
                    insert(role_permissions),
                    [{"role_id": role_id, "permission_id": permission_id} for permission_id in wanted],
                )
            await self.db.commit()
        except AuthorizationServiceError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Replacing permissions of role %s failed", role_id)
            raise StoreError("Failed to update role permissions") from e

        log.info("Role %s now holds %d permission(s)", role_id, len(wanted))
        return await self.for_role(role_id)

    async def for_role(self, role_id: str) -> list[Permission]:
        if not await self.roles.exists(role_id):
            raise NotFound("Role not found")
        return await self.for_roles([role_id])

    async def for_roles(self, role_ids: Sequence[str]) -> list[Permission]:
        """Distinct permissions granted to any of ``role_ids``."""
        if not role_ids:
            return []
        result = await self.db.execute(
            select(Permission)
            .join(role_permissions, role_permissions.c.permission_id == Permission.id)
            .where(role_permissions.c.role_id.in_(list(role_ids)))
            .distinct()
            .order_by(Permission.name)
        )
        return list(result.scalars().all())

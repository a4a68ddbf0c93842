"""
Role registry.

Five system roles are built in and immutable; admins add custom roles on top.
System roles that have not been written to the roles table yet are
synthesized on read with ``id == name``.
"""
from __future__ import annotations

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.exceptions import DuplicateName, Forbidden, InUse, NotFound, StoreError
from app.features.permissions.models import Role
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


SYSTEM_ROLES: dict[str, str] = {
    "super_admin": "System administrator with full access",
    "team_manager": "Team manager",
    "sales": "Sales representative",
    "customer_service": "Customer service agent",
    "technical_support": "Technical support agent",
}

SUPER_ADMIN = "super_admin"


def is_system_role(role_id: str) -> bool:
    return role_id in SYSTEM_ROLES


def system_role(name: str) -> Role:
    """Unsaved Role row for a built-in role."""
    return Role(id=name, name=name, description=SYSTEM_ROLES[name], is_system=True)


class RoleRegistry:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self) -> list[Role]:
        result = await self.db.execute(select(Role).order_by(Role.name))
        roles = list(result.scalars().all())

        stored_names = {role.name for role in roles}
        for name in SYSTEM_ROLES:
            if name not in stored_names:
                roles.append(system_role(name))
        return roles

    async def get(self, role_id: str) -> Role:
        role = await self.db.get(Role, role_id)
        if role is not None:
            return role
        if is_system_role(role_id):
            return system_role(role_id)
        raise NotFound("Role not found")

    async def exists(self, role_id: str) -> bool:
        return is_system_role(role_id) or await self.db.get(Role, role_id) is not None

    async def ensure_system_roles(self) -> int:
        """Write any missing system roles to the table. Returns how many were added."""
        result = await self.db.execute(select(Role.id).where(Role.id.in_(list(SYSTEM_ROLES))))
        present = set(result.scalars().all())
        missing = [name for name in SYSTEM_ROLES if name not in present]
        if not missing:
            return 0

        self.db.add_all(system_role(name) for name in missing)
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Materializing system roles failed")
            raise StoreError("Failed to create system roles") from e
        log.info("Materialized system roles: %s", ", ".join(missing))
        return len(missing)

    async def materialize(self, role_id: str) -> Role:
        """
        Return the stored row for a role, writing a system role first if needed.

        The caller commits; the row is only flushed here so it can take part
        in the caller's transaction.
        """
        role = await self.db.get(Role, role_id)
        if role is not None:
            return role
        if not is_system_role(role_id):
            raise NotFound("Role not found")
        role = system_role(role_id)
        self.db.add(role)
        await self.db.flush()
        return role

    async def create(self, name: str, description: str | None = None) -> Role:
        if is_system_role(name):
            raise DuplicateName(f"Role '{name}' already exists")

        role = Role(name=name, description=description, is_system=False)
        self.db.add(role)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateName(f"Role '{name}' already exists")
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Creating role %s failed", name)
            raise StoreError("Failed to create role") from e

        await self.db.refresh(role)
        log.info("Created role %s (%s)", role.name, role.id)
        return role

    async def update(self, role_id: str, name: str | None = None, description: str | None = None) -> Role:
        if is_system_role(role_id):
            raise Forbidden("System roles cannot be modified")

        role = await self.db.get(Role, role_id)
        if role is None:
            raise NotFound("Role not found")

        if name is not None and name != role.name:
            if is_system_role(name):
                raise DuplicateName(f"Role '{name}' already exists")
            role.name = name
        if description is not None:
            role.description = description

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateName(f"Role '{name}' already exists")
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Updating role %s failed", role_id)
            raise StoreError("Failed to update role") from e

        await self.db.refresh(role)
        return role

    async def count_principals_with_role(self, role_id: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(User).where(User.role_id == role_id)
        )
        return result.scalar_one()

    async def delete(self, role_id: str) -> Role:
        if is_system_role(role_id):
            raise Forbidden("System roles cannot be deleted")

        role = await self.db.get(Role, role_id)
        if role is None:
            raise NotFound("Role not found")

        holders = await self.count_principals_with_role(role_id)
        if holders:
            raise InUse(f"Role '{role.name}' is assigned to {holders} user(s)")

        name = role.name
        await self.db.delete(role)
        try:
            await self.db.commit()
        except IntegrityError:
            # A user was given the role between the check and the delete
            await self.db.rollback()
            raise InUse(f"Role '{name}' is assigned to a user")
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Deleting role %s failed", role_id)
            raise StoreError("Failed to delete role") from e

        log.info("Deleted role %s (%s)", name, role_id)
        return role

"""
Permission definition storage.

Seeds the permission table from the system object catalog and guards
permission CRUD (unique names, no deletion while a role still grants it).
"""
from __future__ import annotations

from collections.abc import Iterable
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.catalog import (
    DEFAULT_CATALOG,
    PermissionAtom,
    PermissionScope,
    SystemObjectCatalog,
)
from app.features.permissions.exceptions import DuplicateName, InUse, InvalidName, NotFound, StoreError
from app.features.permissions.models import Permission, role_permissions
from app.utils import get_logger


log = get_logger(__name__)

_SCOPE_DESCRIPTIONS = {
    PermissionScope.OWN: "records owned by the user",
    PermissionScope.TEAM: "records owned by the user's teams",
    PermissionScope.ALL: "all records",
    PermissionScope.UNASSIGNED: "records without an owner",
}


def describe_atom(atom: PermissionAtom, catalog: SystemObjectCatalog = DEFAULT_CATALOG) -> str:
    label = catalog.label_for(atom.object)
    return f"{label}: {atom.level.value} ({_SCOPE_DESCRIPTIONS[atom.scope]})"


class PermissionRepository:
    def __init__(self, db: AsyncSession, catalog: SystemObjectCatalog = DEFAULT_CATALOG):
        self.db = db
        self.catalog = catalog

    async def count(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(Permission))
        return result.scalar_one()

    async def seed_catalog(self) -> int:
        """
        Materialize one permission per catalog atom.

        Only runs against an empty table; returns the number of rows created
        (0 when the table already holds permissions).
        """
        if await self.count() > 0:
            log.debug("Permission table not empty, skipping catalog seed")
            return 0

        atoms = self.catalog.atoms()
        self.db.add_all(
            Permission(name=atom.canonical_name(), description=describe_atom(atom, self.catalog))
            for atom in atoms
        )
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Seeding the permission catalog failed")
            raise StoreError("Failed to seed permission catalog") from e

        log.info("Seeded %d permissions from the catalog", len(atoms))
        return len(atoms)

    async def create(self, name: str, description: str | None = None) -> Permission:
        try:
            PermissionAtom.parse(name)
        except ValueError as e:
            raise InvalidName(str(e)) from e

        permission = Permission(name=name, description=description)
        self.db.add(permission)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateName(f"Permission '{name}' already exists")
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Creating permission %s failed", name)
            raise StoreError("Failed to create permission") from e

        await self.db.refresh(permission)
        log.info("Created permission %s (%s)", permission.name, permission.id)
        return permission

    async def update(self, permission_id: str, description: str | None) -> Permission:
        """Update the description. The name is the atom's identity and stays frozen."""
        permission = await self.get_by_id(permission_id)
        permission.description = description
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Updating permission %s failed", permission_id)
            raise StoreError("Failed to update permission") from e
        await self.db.refresh(permission)
        return permission

    async def usage_count(self, permission_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(role_permissions)
            .where(role_permissions.c.permission_id == permission_id)
        )
        return result.scalar_one()

    async def delete(self, permission_id: str) -> Permission:
        permission = await self.get_by_id(permission_id)

        usage = await self.usage_count(permission_id)
        if usage:
            raise InUse(f"Permission '{permission.name}' is granted to {usage} role(s)")

        name = permission.name
        await self.db.delete(permission)
        try:
            await self.db.commit()
        except IntegrityError:
            # A grant was added between the check and the delete
            await self.db.rollback()
            raise InUse(f"Permission '{name}' is granted to a role")
        except SQLAlchemyError as e:
            await self.db.rollback()
            log.exception("Deleting permission %s failed", permission_id)
            raise StoreError("Failed to delete permission") from e

        log.info("Deleted permission %s (%s)", name, permission_id)
        return permission

    async def list(self, object_name: str | None = None) -> list[Permission]:
        stmt = select(Permission).order_by(Permission.name)
        if object_name:
            stmt = stmt.where(Permission.name.startswith(f"{object_name}_", autoescape=True))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_by_id(self, permission_id: str) -> Permission:
        permission = await self.db.get(Permission, permission_id)
        if permission is None:
            raise NotFound("Permission not found")
        return permission

    async def get_by_name(self, name: str) -> Permission | None:
        result = await self.db.execute(select(Permission).where(Permission.name == name))
        return result.scalar_one_or_none()

    async def get_many(self, permission_ids: Iterable[str]) -> list[Permission]:
        ids = list(dict.fromkeys(permission_ids))
        if not ids:
            return []
        result = await self.db.execute(select(Permission).where(Permission.id.in_(ids)))
        return list(result.scalars().all())

    async def grouped_by_object(self) -> dict[str, list[Permission]]:
        """Permissions keyed by object; rows with a malformed name are skipped."""
        grouped: dict[str, list[Permission]] = {}
        for permission in await self.list():
            try:
                atom = permission.atom
            except ValueError:
                log.warning("Skipping permission with malformed name %r", permission.name)
                continue
            grouped.setdefault(atom.object, []).append(permission)
        return grouped

"""
Seed script to populate the permission catalog and system roles.

Run this script after database initialization to create:
- One permission definition per catalog (object, level, scope) atom
- The five built-in system roles
- Default grants for the system roles (only when a role has none yet)
- The initial administrator named by INITIAL_ADMIN_SUBJECT / INITIAL_ADMIN_EMAIL

Usage:
    python -m scripts.seed_permissions
"""
import asyncio

from app.core import config
from app.core.database.engine import get_db, init_db
from app.features.permissions.assignments import RolePermissionAssignment
from app.features.permissions.catalog import PermissionLevel, PermissionScope
from app.features.permissions.matrix import PermissionMatrixCodec
from app.features.permissions.repository import PermissionRepository
from app.features.permissions.roles import SYSTEM_ROLES, RoleRegistry
from app.features.permissions.schemas import ObjectPermission
from app.features.users.service import ensure_initial_admin
from app.utils import get_logger


log = get_logger(__name__)

_RECORDS = ("contacts", "companies", "deals", "tickets", "tasks", "emails", "meetings", "calls")


def _rows(objects, **levels) -> list[ObjectPermission]:
    cells = {PermissionLevel(level.replace("_", "-")): scope for level, scope in levels.items()}
    return [ObjectPermission(object=name, levels=cells) for name in objects]


# Starting matrices for system roles; admins refine them afterwards
DEFAULT_MATRICES: dict[str, list[ObjectPermission]] = {
    "super_admin": _rows(
        _RECORDS + ("leads", "invoices", "products", "users", "roles"),
        full_access=PermissionScope.ALL,
    ),
    "team_manager": _rows(
        _RECORDS + ("leads", "invoices"),
        read_only=PermissionScope.ALL,
        read_edit=PermissionScope.TEAM,
        full_access=PermissionScope.TEAM,
    ),
    "sales": _rows(
        ("contacts", "companies", "deals", "leads", "tasks", "meetings", "calls", "emails"),
        read_only=PermissionScope.TEAM,
        read_edit=PermissionScope.OWN,
    ),
    "customer_service": _rows(
        ("contacts", "companies", "tickets", "calls", "emails"),
        read_only=PermissionScope.ALL,
        read_edit=PermissionScope.OWN,
    ),
    "technical_support": _rows(
        ("tickets", "tasks"),
        read_only=PermissionScope.TEAM,
        full_access=PermissionScope.OWN,
    ),
}


async def seed_default_grants(db) -> None:
    """Give each system role its default matrix unless it already has grants."""
    assignments = RolePermissionAssignment(db)
    codec = PermissionMatrixCodec(await PermissionRepository(db).list())

    for role_name, matrix in DEFAULT_MATRICES.items():
        if await assignments.for_role(role_name):
            log.debug(f"Role '{role_name}' already has permissions, skipping")
            continue
        permission_ids = codec.encode(matrix)
        await assignments.replace_for_role(role_name, permission_ids)
        log.info(f"Granted {len(permission_ids)} permissions to role '{role_name}'")


async def main():
    """Main function to seed permissions and roles."""
    log.info("Starting permission seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    # Get database session
    async for db in get_db():
        try:
            created = await PermissionRepository(db).seed_catalog()
            log.info(f"Created {created} permission definitions")

            await RoleRegistry(db).ensure_system_roles()
            await seed_default_grants(db)

            admin = await ensure_initial_admin(
                db, config.INITIAL_ADMIN_SUBJECT, config.INITIAL_ADMIN_EMAIL, config.INITIAL_ADMIN_NAME
            )
            if admin is not None:
                log.info(f"Initial administrator: {admin.subject} ({admin.id})")

            log.info("Permission seeding completed successfully!")
            log.info("")
            log.info("System roles:")
            for role_name, description in SYSTEM_ROLES.items():
                log.info(f"  - {role_name}: {description}")

        except Exception as e:
            log.error(f"Error seeding permissions: {e}", exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())

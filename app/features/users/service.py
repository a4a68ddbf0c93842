"""
User profile bootstrap.

Every admin route requires a super_admin caller, so the very first
administrator has to be written outside the HTTP surface: on startup or by
the seed script, from the INITIAL_ADMIN_* settings.
"""
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.exceptions import DuplicateName
from app.features.permissions.roles import SUPER_ADMIN, RoleRegistry
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


async def grant_super_admin(db: AsyncSession, user: User) -> User:
    """Move an existing profile onto the super_admin role and reactivate it."""
    await RoleRegistry(db).materialize(SUPER_ADMIN)
    user.role_id = SUPER_ADMIN
    user.is_active = True
    await db.commit()
    await db.refresh(user)
    log.info("Granted %s to user %s", SUPER_ADMIN, user.id)
    return user


async def ensure_initial_admin(
    db: AsyncSession,
    subject: str | None,
    email: str | None,
    name: str | None = None,
) -> User | None:
    """
    Make sure the configured subject exists as a super_admin.

    Creates the profile when the subject is unknown and upgrades it otherwise.
    Returns None when no subject or email is configured.
    """
    if not subject or not email:
        return None

    result = await db.execute(select(User).where(User.subject == subject))
    user = result.scalar_one_or_none()
    if user is not None:
        if user.role_id == SUPER_ADMIN and user.is_active:
            return user
        return await grant_super_admin(db, user)

    await RoleRegistry(db).materialize(SUPER_ADMIN)
    user = User(subject=subject, email=email, name=name or email, role_id=SUPER_ADMIN)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateName(f"A user with email '{email}' already exists")
    await db.refresh(user)
    log.info("Created initial administrator %s (%s)", subject, user.id)
    return user

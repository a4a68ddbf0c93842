"""
Permission, Role and audit models for the CRM role/permission system.

This module implements:
- Permission definitions, one row per (object, level, scope) atom
- Roles, five of which are built-in system roles
- The role <-> permission join table
- An audit log of administrative changes
"""
from typing import Any, Dict
from sqlalchemy import Boolean, String, ForeignKey, Table, Column, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.features.permissions.catalog import (
    PermissionAtom,
    PermissionLevel,
    PermissionScope,
)


# ============================================================================
# Association Tables
# ============================================================================

# Role-Permission relationship. Deleting a role drops its grants; deleting a
# permission that is still granted is refused by the store.
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", String(26), ForeignKey("permissions.id", ondelete="RESTRICT"), primary_key=True),
)


# ============================================================================
# Core Models
# ============================================================================

class Permission(Base, TimestampMixin):
    """
    Permission definition for one (object, level, scope) atom.

    The canonical ``name`` ("deals_read-only_own") is the only stored
    identity; ``object``, ``level`` and ``scope`` are derived from it.
    """
    __tablename__ = "permissions"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def atom(self) -> PermissionAtom:
        return PermissionAtom.parse(self.name)

    @property
    def object(self) -> str:
        return self.atom.object

    @property
    def level(self) -> PermissionLevel:
        return self.atom.level

    @property
    def scope(self) -> PermissionScope:
        return self.atom.scope

    def __repr__(self) -> str:
        return f"<Permission(id={self.id}, name={self.name!r})>"


class Role(Base, TimestampMixin):
    """
    Role model bundling permissions.

    System roles (super_admin, team_manager, sales, customer_service,
    technical_support) use their name as id and are never edited or deleted.
    """
    __tablename__ = "roles"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, system={self.is_system})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for tracking permission-related actions.

    Tracks who did what, when, and from where.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)

    # Context
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"

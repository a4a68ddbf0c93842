"""
User profile model.

A profile is the principal the authorization system reasons about: it holds
the role the user acts under and, through team_members, the teams it sits in.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


class User(Base, TimestampMixin):
    """
    User model representing authenticated users.
    
    ``subject`` is the ``sub`` claim of the identity provider's token.
    """
    __tablename__ = "users"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    # Identity provider subject (for linking with the bearer token)
    subject: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    
    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    
    # Role the user acts under; a role cannot be deleted while referenced
    role_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=True,
        index=True
    )
    
    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(nullable=True)
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role_id})>"

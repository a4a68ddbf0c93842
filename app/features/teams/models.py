"""
Team models.

Teams group users; the "team" permission scope covers records owned by anyone
sharing a team with the acting user.
"""
from datetime import datetime
from sqlalchemy import String, ForeignKey, Table, Column, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid


# A user may belong to several teams
team_members = Table(
    "team_members",
    Base.metadata,
    Column("team_id", String(26), ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True),
    Column("joined_at", DateTime(timezone=True), nullable=False, default=datetime.now),
)


class Team(Base, TimestampMixin):
    __tablename__ = "teams"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    def __repr__(self) -> str:
        return f"<Team(id={self.id}, name={self.name!r})>"

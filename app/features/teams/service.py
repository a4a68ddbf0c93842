"""
Team membership lookups and edits.
"""
from typing import Protocol
from sqlalchemy import select, delete, insert, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.exceptions import DuplicateName, NotFound
from app.features.teams.models import Team, team_members
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


class TeamMembership(Protocol):
    """Resolves the teams a user belongs to."""

    async def team_ids_for(self, user_id: str) -> list[str]:
        ...


class SqlTeamMembership:
    """TeamMembership backed by the team_members table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def team_ids_for(self, user_id: str) -> list[str]:
        result = await self.db.execute(
            select(team_members.c.team_id).where(team_members.c.user_id == user_id)
        )
        return list(result.scalars().all())


async def create_team(db: AsyncSession, name: str, description: str | None = None) -> Team:
    team = Team(name=name, description=description)
    db.add(team)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateName(f"Team '{name}' already exists")
    await db.refresh(team)
    log.info("Created team %s (%s)", team.name, team.id)
    return team


async def list_teams(db: AsyncSession) -> list[Team]:
    result = await db.execute(select(Team).order_by(Team.name))
    return list(result.scalars().all())


async def get_team(db: AsyncSession, team_id: str) -> Team:
    team = await db.get(Team, team_id)
    if team is None:
        raise NotFound("Team not found")
    return team


async def list_member_ids(db: AsyncSession, team_id: str) -> list[str]:
    await get_team(db, team_id)
    result = await db.execute(
        select(team_members.c.user_id).where(team_members.c.team_id == team_id)
    )
    return list(result.scalars().all())


async def add_member(db: AsyncSession, team_id: str, user_id: str) -> bool:
    """Add a user to a team. Returns False if it was already a member."""
    await get_team(db, team_id)
    if await db.get(User, user_id) is None:
        raise NotFound("User not found")

    existing = await db.execute(
        select(team_members).where(
            and_(team_members.c.team_id == team_id, team_members.c.user_id == user_id)
        )
    )
    if existing.first():
        return False

    await db.execute(insert(team_members).values(team_id=team_id, user_id=user_id))
    await db.commit()
    log.info("Added user %s to team %s", user_id, team_id)
    return True


async def remove_member(db: AsyncSession, team_id: str, user_id: str) -> None:
    result = await db.execute(
        delete(team_members).where(
            and_(team_members.c.team_id == team_id, team_members.c.user_id == user_id)
        )
    )
    if result.rowcount == 0:
        raise NotFound("Team membership not found")
    await db.commit()
    log.info("Removed user %s from team %s", user_id, team_id)

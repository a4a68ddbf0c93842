"""
Team routes. Membership feeds the "team" permission scope.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.dependencies import get_current_user, get_current_admin_user
from app.features.teams import service
from app.features.teams.schemas import AddTeamMember, TeamCreate, TeamMembers, TeamResponse


router = APIRouter(tags=["teams"])


@router.post("/", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team(
    team_data: TeamCreate,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a team (admin only)."""
    return await service.create_team(db, team_data.name, team_data.description)


@router.get("/", response_model=list[TeamResponse])
async def list_teams(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List all teams."""
    return await service.list_teams(db)


@router.get("/{team_id}/members", response_model=TeamMembers)
async def list_members(
    team_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List the users in a team."""
    return TeamMembers(team_id=team_id, user_ids=await service.list_member_ids(db, team_id))


@router.post("/{team_id}/members", response_model=TeamMembers)
async def add_member(
    team_id: str,
    member: AddTeamMember,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add a user to a team (admin only)."""
    await service.add_member(db, team_id, member.user_id)
    return TeamMembers(team_id=team_id, user_ids=await service.list_member_ids(db, team_id))


@router.delete("/{team_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    team_id: str,
    user_id: str,
    admin: Annotated[User, Depends(get_current_admin_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove a user from a team (admin only)."""
    await service.remove_member(db, team_id, user_id)
    return None

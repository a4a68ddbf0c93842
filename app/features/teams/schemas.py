"""
Pydantic schemas for teams.
"""
from datetime import datetime
from pydantic import BaseModel, Field


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=1000)


class TeamResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    created_at: datetime
    updated_at: datetime
    
    model_config = {"from_attributes": True}


class TeamMembers(BaseModel):
    team_id: str
    user_ids: list[str]


class AddTeamMember(BaseModel):
    user_id: str

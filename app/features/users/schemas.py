"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """Schema for registering a user profile."""
    subject: str = Field(..., min_length=1, max_length=255, description="Token subject from the identity provider")
    role_id: str | None = Field(None, description="Role the user acts under")


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    name: str | None = Field(None, min_length=1, max_length=255)


class AssignRole(BaseModel):
    """Schema for assigning a role to a user."""
    role_id: str | None = Field(..., description="Role ID, or null to remove the role")


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    role_id: str | None = None
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    
    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str
    role_id: str | None = None
    
    model_config = {"from_attributes": True}

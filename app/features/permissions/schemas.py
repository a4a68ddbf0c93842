"""
Pydantic schemas for permission management.

Request and response models for the catalog, permissions, roles, the
permission matrix, access checks and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.features.permissions.catalog import PermissionAtom, PermissionLevel, PermissionScope


# ============================================================================
# Catalog Schemas
# ============================================================================

class LevelSpecResponse(BaseModel):
    level: PermissionLevel
    scopes: List[PermissionScope]


class SystemObjectResponse(BaseModel):
    """A protected object with the levels and scopes it supports."""
    name: str
    label: str
    levels: List[LevelSpecResponse]


class SeedResponse(BaseModel):
    permissions_created: int
    roles_created: int


# ============================================================================
# Permission Schemas
# ============================================================================

class PermissionCreate(BaseModel):
    """Schema for creating a new permission."""
    name: str = Field(..., min_length=1, max_length=100, description="Canonical name, e.g. 'deals_read-only_own'")
    description: Optional[str] = Field(None, max_length=1000, description="Permission description")

    @field_validator('name')
    @classmethod
    def name_is_canonical(cls, v: str) -> str:
        """Validate that the name decomposes into object, level and scope."""
        PermissionAtom.parse(v)
        return v


class PermissionUpdate(BaseModel):
    """Schema for updating a permission."""
    description: Optional[str] = Field(None, max_length=1000)


class PermissionResponse(BaseModel):
    """Schema for permission response."""
    id: str
    name: str
    description: Optional[str] = None
    object: str
    level: PermissionLevel
    scope: PermissionScope
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Role Schemas
# ============================================================================

class RoleCreate(BaseModel):
    """Schema for creating a new role."""
    name: str = Field(..., min_length=1, max_length=50, description="Unique role name")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")

    @field_validator('name')
    @classmethod
    def name_alphanumeric_underscore(cls, v: str) -> str:
        """Validate role name format."""
        if not v.replace('_', '').replace('-', '').isalnum():
            raise ValueError('Role name must contain only alphanumeric characters, underscores, and hyphens')
        return v


class RoleUpdate(BaseModel):
    """Schema for updating a role."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=1000)


class RoleResponse(BaseModel):
    """Schema for role response. Unsaved system roles carry no timestamps."""
    id: str
    name: str
    description: Optional[str] = None
    is_system: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RoleWithPermissions(RoleResponse):
    """Schema for role with permissions."""
    permissions: List[PermissionResponse] = []


class RolePermissionsUpdate(BaseModel):
    """Full replacement of a role's permission set."""
    permission_ids: List[str] = Field(default_factory=list)


# ============================================================================
# Matrix Schemas
# ============================================================================

def _empty_levels() -> Dict[PermissionLevel, Optional[PermissionScope]]:
    return {level: None for level in PermissionLevel}


class ObjectPermission(BaseModel):
    """
    One matrix row: at most one scope per level, None meaning no access.

    Every level key is always present.
    """
    object: str = Field(..., min_length=1)
    levels: Dict[PermissionLevel, Optional[PermissionScope]] = Field(default_factory=_empty_levels)

    @field_validator('levels')
    @classmethod
    def fill_missing_levels(
        cls, v: Dict[PermissionLevel, Optional[PermissionScope]]
    ) -> Dict[PermissionLevel, Optional[PermissionScope]]:
        return {level: v.get(level) for level in PermissionLevel}


class RoleMatrix(BaseModel):
    role_id: str
    matrix: List[ObjectPermission] = []


class RoleMatrixUpdate(BaseModel):
    matrix: List[ObjectPermission] = Field(default_factory=list)


# ============================================================================
# Access Check Schemas
# ============================================================================

class AccessCheckRequest(BaseModel):
    """Check whether the current user may act on a resource."""
    object: str = Field(..., description="Protected object, e.g. 'deals'")
    level: PermissionLevel
    resource_id: Optional[str] = Field(None, description="Resource being accessed")
    owner_id: Optional[str] = Field(None, description="Owner of the resource; null for unassigned records")


class AccessCheckResponse(BaseModel):
    decision: str
    allowed: bool
    granted_scopes: List[PermissionScope] = []


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int

"""Pydantic schemas for the authorization engine.

These schemas are the value objects crossing the engine boundary:
access contexts, role/permission definitions, and decision results.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .professions import Profession, PermissionScope


class ConditionSchema(BaseModel):
    """A field/operator/value predicate narrowing when a permission applies."""
    field: str = Field(..., min_length=1, description="Context field, e.g. user_id or a key of additional_context")
    operator: str = Field(..., description="equals, not_equals, in, not_in, contains, starts_with, ends_with")
    value: Any = Field(None, description="Operand compared with the context value")


class PermissionDefinition(BaseModel):
    """Permission requested for a role; matched to an existing permission by resource+scope+actions."""
    resource: str = Field(..., min_length=1)
    actions: List[str] = Field(..., min_length=1)
    scope: PermissionScope
    conditions: Optional[List[ConditionSchema]] = None


class RoleDefinition(BaseModel):
    """Custom role to create inside an organization."""
    name: str = Field(..., min_length=1, max_length=255)
    profession: Profession
    description: Optional[str] = None
    permissions: List[PermissionDefinition] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Avocat Associé",
                "profession": "avocat",
                "description": "Partner with read access to every dossier of the firm",
                "permissions": [
                    {"resource": "dossier", "actions": ["read"], "scope": "organization"},
                    {
                        "resource": "invoice",
                        "actions": ["read", "update"],
                        "scope": "personal",
                        "conditions": [{"field": "department", "operator": "equals", "value": "contentieux"}],
                    },
                ],
            }
        }
    )


class OrganizationContext(BaseModel):
    """Organization under which a role is assigned."""
    organization_id: UUID
    organization_type: Optional[str] = None
    region: Optional[str] = None


class AccessContext(BaseModel):
    """Per-request access context.

    Callers may pass a partial context; the evaluator fills user_id and a
    missing active_role before evaluation.
    """
    model_config = ConfigDict(frozen=True)

    user_id: Optional[UUID] = None
    active_role: Optional[Profession] = None
    organization_id: Optional[UUID] = None
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    additional_context: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("resource_id", mode="before")
    @classmethod
    def stringify_resource_id(cls, value):
        if value is None:
            return None
        return str(value)


class Principal(BaseModel):
    """Authenticated caller as carried by a bearer token."""
    user_id: UUID
    organization_id: Optional[UUID] = None
    active_role: Optional[Profession] = None


class EffectivePermission(BaseModel):
    """A permission reachable by a principal, with the conditions that apply to it."""
    id: UUID
    resource: str
    actions: List[str]
    scope: str
    conditions: Optional[Any] = None
    description: Optional[str] = None


class PermissionCheckResult(BaseModel):
    """Explained access decision."""
    has_permission: bool
    scope: PermissionScope = PermissionScope.PERSONAL
    conditions: Optional[List[Dict[str, Any]]] = None
    reason: Optional[str] = None


class RoleSchema(BaseModel):
    """Role as returned by the management API."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    profession: Profession
    description: Optional[str] = None
    organization_id: Optional[UUID] = None
    is_custom: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
    permissions: List[EffectivePermission] = Field(default_factory=list)


class RoleAssignmentView(BaseModel):
    """A role as held by a user through one active assignment."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Role ID")
    name: str
    profession: Profession
    description: Optional[str] = None
    organization_id: Optional[UUID] = Field(None, description="Organization of the assignment")
    is_custom: bool
    is_active: bool
    assigned_at: datetime
    expires_at: Optional[datetime] = None

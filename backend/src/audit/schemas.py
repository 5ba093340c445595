"""Pydantic schemas for audit entries and access audit reports.

Audit entries are append-only. Reports are read-only aggregates over a
tenant's entries for a time window.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuditEventType(str, Enum):
    ACCESS_CHECK = "ACCESS_CHECK"
    RESOURCE_ACCESS = "RESOURCE_ACCESS"
    ISOLATION_VIOLATION = "ISOLATION_VIOLATION"
    DECRYPTION_FAILURE = "DECRYPTION_FAILURE"


SECURITY_EVENT_TYPES = (AuditEventType.ISOLATION_VIOLATION, AuditEventType.DECRYPTION_FAILURE)


class AuditEntry(BaseModel):
    """One audit record as written to and read from an AuditSink."""
    model_config = ConfigDict(use_enum_values=False)

    id: Optional[UUID] = Field(None, description="Assigned by the sink on write")
    event_type: AuditEventType
    user_id: Optional[UUID] = Field(None, description="Principal (None for anonymous/system events)")
    organization_id: Optional[UUID] = None
    tenant_id: Optional[str] = Field(None, description="Opaque tenant id derived from the organization")
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    action: str
    success: bool
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, description="Additional context as JSON")
    created_at: datetime


class PrincipalCount(BaseModel):
    user_id: UUID
    count: int


class ResourceTypeCount(BaseModel):
    resource_type: str
    count: int


class SuspiciousPrincipal(BaseModel):
    """Principal whose failures exceeded the threshold inside one sliding hour."""
    user_id: UUID
    failure_count: int = Field(..., description="Most failures observed in any one-hour window")
    window_start: datetime = Field(..., description="First failure of the densest window")


class AccessAuditReport(BaseModel):
    """Access statistics and security findings for one tenant and period."""
    tenant_id: Optional[str] = Field(None, description="None reports across every tenant")
    period_start: datetime
    period_end: datetime
    total_access_attempts: int
    successful_accesses: int
    failed_accesses: int
    top_users: List[PrincipalCount] = Field(default_factory=list, description="At most 10, most active first")
    top_resources: List[ResourceTypeCount] = Field(default_factory=list, description="At most 10")
    security_events: List[AuditEntry] = Field(default_factory=list, description="Failures and violations")
    suspicious_principals: List[SuspiciousPrincipal] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "tenant_id": "3f9a1c0d5e7b2a48",
                "period_start": "2025-01-01T00:00:00",
                "period_end": "2025-01-31T23:59:59",
                "total_access_attempts": 1280,
                "successful_accesses": 1251,
                "failed_accesses": 29,
                "top_users": [{"user_id": "123e4567-e89b-12d3-a456-426614174000", "count": 412}],
                "top_resources": [{"resource_type": "dossier", "count": 733}],
                "security_events": [],
                "suspicious_principals": [
                    {
                        "user_id": "123e4567-e89b-12d3-a456-426614174000",
                        "failure_count": 6,
                        "window_start": "2025-01-12T09:14:00",
                    }
                ],
            }
        }
    )

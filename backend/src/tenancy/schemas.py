"""Pydantic schemas for tenant integrity checks."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, Field


class TenantIntegrityReport(BaseModel):
    """Result of a tenant integrity validation.

    A tenant is valid when no violation was found. Recommendations alone
    (such as a due key rotation) do not make it invalid.
    """
    tenant_id: str = Field(..., description="Opaque tenant identifier")
    is_valid: bool
    violations: List[str] = Field(default_factory=list, description="Findings that need investigation")
    recommendations: List[str] = Field(default_factory=list, description="Maintenance actions to schedule")
    checked_at: datetime

    class Config:
        json_schema_extra = {
            "example": {
                "tenant_id": "3f9a1c0d5e7b2a48",
                "is_valid": False,
                "violations": ["Detected 1 suspicious access pattern(s) in the last 24 hours"],
                "recommendations": ["Rotate the tenant encryption key", "Review the access logs"],
                "checked_at": "2025-01-04T12:00:00",
            }
        }

"""Audit module - append-only record of access decisions and isolation events.

This module provides:
- Audit entry schemas and event types
- Access audit reports with suspicious-access detection
"""

from .schemas import (
    AuditEventType,
    AuditEntry,
    AccessAuditReport,
    SuspiciousPrincipal,
)

# The service is imported lazily to avoid circular dependencies
# Use: from audit.service import AuditLogger, DatabaseAuditSink

__all__ = [
    "AuditEventType",
    "AuditEntry",
    "AccessAuditReport",
    "SuspiciousPrincipal",
]

"""Audit logging service for access decisions and tenant-boundary events.

Every access check, resource access validation, isolation violation and
decryption failure is recorded through AuditLogger. Recording is
best-effort: a failing sink is logged locally and never changes the
decision being audited.

Audit Events:
- ACCESS_CHECK: evaluator decisions (granted, denied, failed)
- RESOURCE_ACCESS: tenant resource access validation outcomes
- ISOLATION_VIOLATION: any attempt to cross a tenant boundary
- DECRYPTION_FAILURE: tenant payloads that failed authentication
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from config import settings
from database import session_scope
from models.audit_log import AuditLog
from models.base import utcnow
from tenancy.context import TenantContext, derive_tenant_id

from .schemas import (
    SECURITY_EVENT_TYPES,
    AccessAuditReport,
    AuditEntry,
    AuditEventType,
    PrincipalCount,
    ResourceTypeCount,
    SuspiciousPrincipal,
)

logger = logging.getLogger(__name__)

SUSPICIOUS_WINDOW = timedelta(hours=1)
TOP_N = 10
MAX_REPORT_ENTRIES = 50_000


class AuditSink(ABC):
    """Append-only store of audit entries."""

    @abstractmethod
    def write(self, entry: AuditEntry) -> None:
        ...

    @abstractmethod
    def query(
        self,
        tenant_id: Optional[str],
        start: datetime,
        end: datetime,
        success: Optional[bool] = None,
        limit: int = MAX_REPORT_ENTRIES,
    ) -> List[AuditEntry]:
        """Entries in [start, end] oldest first; tenant_id None means every tenant."""

    @abstractmethod
    def prune(self, older_than: datetime) -> int:
        ...


class DatabaseAuditSink(AuditSink):
    """Audit sink backed by the audit_log table.

    Each write runs in its own short transaction, independent of whatever
    transaction the audited operation is using, so a rolled back operation
    still leaves its audit trail.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def write(self, entry: AuditEntry) -> None:
        with session_scope(self._session_factory) as session:
            session.add(AuditLog(
                event_type=entry.event_type.value,
                user_id=entry.user_id,
                organization_id=entry.organization_id,
                tenant_id=entry.tenant_id,
                resource_type=entry.resource_type,
                resource_id=entry.resource_id,
                action=entry.action,
                success=entry.success,
                error_message=entry.error_message,
                metadata_json=entry.metadata,
                created_at=entry.created_at,
            ))

    def query(self, tenant_id, start, end, success=None, limit=MAX_REPORT_ENTRIES):
        stmt = select(AuditLog).where(AuditLog.created_at >= start, AuditLog.created_at <= end)
        if tenant_id is not None:
            stmt = stmt.where(AuditLog.tenant_id == tenant_id)
        if success is not None:
            stmt = stmt.where(AuditLog.success.is_(success))
        stmt = stmt.order_by(AuditLog.created_at).limit(limit)

        with session_scope(self._session_factory) as session:
            return [_to_entry(row) for row in session.execute(stmt).scalars()]

    def prune(self, older_than: datetime) -> int:
        with session_scope(self._session_factory) as session:
            result = session.execute(delete(AuditLog).where(AuditLog.created_at < older_than))
            return result.rowcount or 0


def _to_entry(row: AuditLog) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        event_type=AuditEventType(row.event_type),
        user_id=row.user_id,
        organization_id=row.organization_id,
        tenant_id=row.tenant_id,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        action=row.action,
        success=row.success,
        error_message=row.error_message,
        metadata=row.metadata_json,
        created_at=row.created_at,
    )


def find_suspicious_principals(
    failures: Iterable[AuditEntry],
    threshold: int,
    window: timedelta = SUSPICIOUS_WINDOW,
) -> List[SuspiciousPrincipal]:
    """Principals with more than `threshold` failures inside any sliding window.

    Example:
        Six denials for one user between 09:00 and 09:50 with threshold 5
        flag that user with failure_count=6 and window_start=09:00.
    """
    by_user: Dict[UUID, List[datetime]] = defaultdict(list)
    for entry in failures:
        if entry.user_id is not None and not entry.success:
            by_user[entry.user_id].append(entry.created_at)

    suspicious = []
    for user_id, timestamps in by_user.items():
        timestamps.sort()
        best_count, best_start = 0, None
        left = 0
        for right, current in enumerate(timestamps):
            while current - timestamps[left] >= window:
                left += 1
            count = right - left + 1
            if count > best_count:
                best_count, best_start = count, timestamps[left]
        if best_count > threshold:
            suspicious.append(SuspiciousPrincipal(
                user_id=user_id, failure_count=best_count, window_start=best_start,
            ))

    suspicious.sort(key=lambda principal: principal.failure_count, reverse=True)
    return suspicious


class AuditLogger:
    """Records audit events and builds access audit reports."""

    def __init__(
        self,
        sink: AuditSink,
        clock: Callable[[], datetime] = utcnow,
        suspicious_threshold: Optional[int] = None,
    ):
        self.sink = sink
        self._clock = clock
        self.suspicious_threshold = (
            suspicious_threshold if suspicious_threshold is not None else settings.SUSPICIOUS_FAILURE_THRESHOLD
        )

    def _record(self, entry: AuditEntry) -> None:
        try:
            self.sink.write(entry)
        except Exception as e:
            logger.error(
                f"Failed to write {entry.event_type.value} audit entry: {e}",
                extra={"user_id": entry.user_id, "tenant_id": entry.tenant_id},
            )

    def log_access(
        self,
        user_id: Optional[UUID],
        resource: str,
        action: str,
        success: bool,
        organization_id: Optional[UUID] = None,
        resource_id: Optional[str] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record an access check decision."""
        self._record(AuditEntry(
            event_type=AuditEventType.ACCESS_CHECK,
            user_id=user_id,
            organization_id=organization_id,
            tenant_id=derive_tenant_id(organization_id) if organization_id else None,
            resource_type=resource,
            resource_id=resource_id,
            action=action,
            success=success,
            error_message=error_message,
            metadata=metadata,
            created_at=self._clock(),
        ))

    def log_resource_access(
        self,
        context: TenantContext,
        resource_type: str,
        resource_id: Any,
        action: str,
        success: bool,
        reason: Optional[str] = None,
    ) -> None:
        self._record(AuditEntry(
            event_type=AuditEventType.RESOURCE_ACCESS,
            user_id=context.user_id,
            organization_id=context.organization_id,
            tenant_id=context.tenant_id,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            action=action,
            success=success,
            error_message=reason,
            metadata={"user_role": context.user_role},
            created_at=self._clock(),
        ))

    def log_isolation_violation(
        self,
        context: TenantContext,
        attempted_tenant_id: Optional[str],
        action: str,
        reason: str,
        resource_type: Optional[str] = None,
        resource_id: Any = None,
    ) -> None:
        """Record an attempt to cross a tenant boundary. Always a failure."""
        logger.warning(
            f"Tenant isolation violation: {reason}",
            extra={"user_id": context.user_id, "org_id": context.organization_id, "tenant_id": context.tenant_id},
        )
        self._record(AuditEntry(
            event_type=AuditEventType.ISOLATION_VIOLATION,
            user_id=context.user_id,
            organization_id=context.organization_id,
            tenant_id=context.tenant_id,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            action=action,
            success=False,
            error_message=reason,
            metadata={"attempted_tenant_id": attempted_tenant_id, "user_role": context.user_role},
            created_at=self._clock(),
        ))

    def log_decryption_failure(self, context: TenantContext, key_id: Optional[str], reason: str) -> None:
        self._record(AuditEntry(
            event_type=AuditEventType.DECRYPTION_FAILURE,
            user_id=context.user_id,
            organization_id=context.organization_id,
            tenant_id=context.tenant_id,
            action="decrypt",
            success=False,
            error_message=reason,
            metadata={"key_id": key_id},
            created_at=self._clock(),
        ))

    def detect_suspicious_access(
        self,
        tenant_id: Optional[str],
        since: datetime,
        until: Optional[datetime] = None,
    ) -> List[SuspiciousPrincipal]:
        failures = self.sink.query(tenant_id, since, until or self._clock(), success=False)
        return find_suspicious_principals(failures, self.suspicious_threshold)

    def generate_access_audit_report(
        self,
        tenant_id: Optional[str],
        start: datetime,
        end: datetime,
    ) -> AccessAuditReport:
        """Aggregate a tenant's audit entries for [start, end].

        Raises:
            ValueError: If start is after end
        """
        if start > end:
            raise ValueError("Report start must not be after its end")

        entries = self.sink.query(tenant_id, start, end)
        if len(entries) >= MAX_REPORT_ENTRIES:
            logger.warning(f"Audit report for tenant {tenant_id} truncated at {MAX_REPORT_ENTRIES} entries")

        successful = sum(1 for entry in entries if entry.success)
        users = Counter(entry.user_id for entry in entries if entry.user_id is not None)
        resources = Counter(entry.resource_type for entry in entries if entry.resource_type)
        security_events = [
            entry for entry in entries
            if not entry.success or entry.event_type in SECURITY_EVENT_TYPES
        ]

        return AccessAuditReport(
            tenant_id=tenant_id,
            period_start=start,
            period_end=end,
            total_access_attempts=len(entries),
            successful_accesses=successful,
            failed_accesses=len(entries) - successful,
            top_users=[PrincipalCount(user_id=u, count=c) for u, c in users.most_common(TOP_N)],
            top_resources=[ResourceTypeCount(resource_type=r, count=c) for r, c in resources.most_common(TOP_N)],
            security_events=security_events,
            suspicious_principals=find_suspicious_principals(security_events, self.suspicious_threshold),
        )

    def prune(self, older_than: datetime) -> int:
        """Delete entries created before older_than. Returns the number removed."""
        removed = self.sink.prune(older_than)
        logger.info(f"Pruned {removed} audit entries older than {older_than.isoformat()}")
        return removed

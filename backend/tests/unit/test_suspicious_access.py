"""Unit tests for suspicious access detection over audit failures"""

from datetime import datetime, timedelta
from uuid import uuid4

from audit.schemas import AuditEntry, AuditEventType
from audit.service import find_suspicious_principals

T0 = datetime(2025, 1, 15, 9, 0, 0)


def failure(user_id, at, success=False):
    return AuditEntry(
        event_type=AuditEventType.ACCESS_CHECK,
        user_id=user_id,
        resource_type="dossier",
        action="read",
        success=success,
        created_at=at,
    )


class TestFindSuspiciousPrincipals:

    def test_six_failures_within_an_hour_are_suspicious(self):
        user_id = uuid4()
        entries = [failure(user_id, T0 + timedelta(minutes=10 * i)) for i in range(6)]

        [principal] = find_suspicious_principals(entries, threshold=5)

        assert principal.user_id == user_id
        assert principal.failure_count == 6
        assert principal.window_start == T0

    def test_five_failures_are_not_suspicious(self):
        user_id = uuid4()
        entries = [failure(user_id, T0 + timedelta(minutes=i)) for i in range(5)]
        assert find_suspicious_principals(entries, threshold=5) == []

    def test_failures_spread_over_more_than_an_hour_are_not_suspicious(self):
        user_id = uuid4()
        entries = [failure(user_id, T0 + timedelta(minutes=15 * i)) for i in range(6)]
        assert find_suspicious_principals(entries, threshold=5) == []

    def test_window_slides(self):
        user_id = uuid4()
        # Two early failures, then six packed into 09:30-10:20
        times = [T0, T0 + timedelta(minutes=5)] + [T0 + timedelta(minutes=30 + 10 * i) for i in range(6)]
        entries = [failure(user_id, at) for at in reversed(times)]

        [principal] = find_suspicious_principals(entries, threshold=5)

        assert principal.failure_count == 6
        assert principal.window_start == T0 + timedelta(minutes=30)

    def test_successes_and_anonymous_entries_are_ignored(self):
        user_id = uuid4()
        entries = [failure(user_id, T0 + timedelta(minutes=i), success=True) for i in range(10)]
        entries += [failure(None, T0 + timedelta(minutes=i)) for i in range(10)]
        assert find_suspicious_principals(entries, threshold=5) == []

    def test_principals_counted_separately(self):
        first, second = uuid4(), uuid4()
        entries = [failure(first, T0 + timedelta(minutes=i)) for i in range(3)]
        entries += [failure(second, T0 + timedelta(minutes=i)) for i in range(3)]
        assert find_suspicious_principals(entries, threshold=5) == []

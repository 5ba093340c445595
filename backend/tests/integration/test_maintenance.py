"""Integration tests for expired data cleanup"""

import os
import subprocess
import sys
from pathlib import Path
from uuid import uuid4

import maintenance.tasks
from authz.professions import Profession
from authz.schemas import AccessContext
from maintenance.tasks import cleanup_expired_data_task


def record_activity(evaluator, org_id):
    context = AccessContext(active_role=Profession.AVOCAT, organization_id=org_id)
    evaluator.check_permission(uuid4(), "dossier", "read", context)


class TestCleanupExpiredData:

    def test_purges_expired_cache_and_old_audit(self, evaluator, seeded_catalog, clock, org_a, audit_entries):
        record_activity(evaluator, org_a)
        clock.advance(days=400)
        record_activity(evaluator, org_a)

        result = evaluator.cleanup_expired_data(retention_days=365)

        assert result == {"cache_entries_removed": 1, "audit_entries_removed": 1, "errors": []}
        assert len(audit_entries()) == 1

    def test_second_run_removes_nothing(self, evaluator, seeded_catalog, clock, org_a):
        record_activity(evaluator, org_a)
        clock.advance(days=400)
        evaluator.cleanup_expired_data(retention_days=365)

        assert evaluator.cleanup_expired_data(retention_days=365) == {
            "cache_entries_removed": 0, "audit_entries_removed": 0, "errors": [],
        }

    def test_failure_is_reported_not_raised(self, evaluator, cache, monkeypatch):
        def broken():
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(cache, "purge_expired", broken)

        result = evaluator.cleanup_expired_data(retention_days=365)

        assert result["cache_entries_removed"] == 0
        assert result["errors"] == ["cache: store unavailable"]


class TestCleanupTask:

    def test_task_reports_completion(self, evaluator, clock, org_a, monkeypatch):
        monkeypatch.setattr(maintenance.tasks, "get_access_evaluator", lambda: evaluator)
        record_activity(evaluator, org_a)
        clock.advance(hours=1)

        result = cleanup_expired_data_task()

        assert result["status"] == "completed"
        assert result["cache_entries_removed"] == 1

    def test_task_reports_failure(self, evaluator, cache, monkeypatch):
        def broken():
            raise RuntimeError("store unavailable")

        monkeypatch.setattr(maintenance.tasks, "get_access_evaluator", lambda: evaluator)
        monkeypatch.setattr(cache, "purge_expired", broken)

        assert cleanup_expired_data_task()["status"] == "failed"


class TestWorkerImports:

    def test_task_shares_the_http_wiring(self):
        import authz.dependencies
        import authz.wiring

        assert maintenance.tasks.get_access_evaluator is authz.wiring.get_access_evaluator
        assert authz.dependencies.get_access_evaluator is authz.wiring.get_access_evaluator

    def test_worker_does_not_load_the_web_stack(self):
        src = Path(maintenance.tasks.__file__).parent.parent
        env = {**os.environ, "PYTHONPATH": str(src)}
        result = subprocess.run(
            [sys.executable, "-c", "import sys, maintenance.tasks; print('fastapi' in sys.modules)"],
            capture_output=True,
            text=True,
            env=env,
            check=True,
        )
        assert result.stdout.strip() == "False"

"""Pytest fixtures for the authorization and tenant isolation engine.

Provides reusable test fixtures for:
- In-memory SQLite database with all engine tables
- A controllable clock shared by every component
- Role catalog, permission cache, audit logger and access evaluator
- Tenant key provider and tenant isolation service

Usage:
    def test_lawyer_reads_dossier(evaluator, seeded_catalog, system_role_id):
        ...
"""

import sys
import os
from datetime import datetime, timedelta
from pathlib import Path

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-256-bits-minimum-length-required-for-security")
os.environ.setdefault("TENANT_ID_SECRET", "test-tenant-id-secret")
os.environ.setdefault("TENANT_MASTER_KEY", "00112233445566778899aabbccddeeff" * 2)

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))
sys.path.insert(0, str(Path(__file__).parent))

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from audit.service import AuditLogger, DatabaseAuditSink
from authz.cache import PermissionCache
from authz.catalog import RoleCatalog
from authz.evaluator import AccessEvaluator
from authz.professions import SYSTEM_ROLE_NAMES, Profession
from database import init_db, session_scope
from models.audit_log import AuditLog
from models.base import Base
from models.role import Role
from tenancy.keys import DerivedTenantKeyProvider
from tenancy.service import TenantIsolationService

from fixtures.multi_org import (  # noqa: F401
    InMemoryOwnership,
    org_a,
    org_b,
    ownership,
    tenant_a,
    tenant_b,
)

TEST_MASTER_KEY = "00112233445566778899aabbccddeeff" * 2
START = datetime(2025, 1, 15, 9, 0, 0)


class FakeClock:
    """Naive-UTC clock that only moves when a test advances it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="function")
def engine():
    """Fresh in-memory database per test, shared across threads."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture(scope="function")
def cache(session_factory, clock) -> PermissionCache:
    return PermissionCache(session_factory, ttl_minutes=15, clock=clock)


@pytest.fixture(scope="function")
def catalog(session_factory, cache, clock) -> RoleCatalog:
    return RoleCatalog(session_factory, cache=cache, clock=clock)


@pytest.fixture(scope="function")
def seeded_catalog(catalog) -> RoleCatalog:
    catalog.initialize_default_roles()
    return catalog


@pytest.fixture(scope="function")
def audit_logger(session_factory, clock) -> AuditLogger:
    return AuditLogger(DatabaseAuditSink(session_factory), clock=clock, suspicious_threshold=5)


@pytest.fixture(scope="function")
def evaluator(catalog, cache, audit_logger, clock) -> AccessEvaluator:
    return AccessEvaluator(catalog, cache, audit_logger, clock=clock)


@pytest.fixture(scope="function")
def system_role_id(session_factory):
    """Look up the id of a seeded standard role by profession."""

    def lookup(profession: Profession):
        with session_scope(session_factory) as session:
            return session.execute(
                select(Role.id).where(
                    Role.name == SYSTEM_ROLE_NAMES[profession],
                    Role.organization_id.is_(None),
                )
            ).scalar_one()

    return lookup


@pytest.fixture(scope="function")
def audit_entries(session_factory):
    """Return every audit row, oldest first, as dicts."""

    def fetch():
        with session_scope(session_factory) as session:
            rows = session.execute(select(AuditLog).order_by(AuditLog.created_at)).scalars().all()
            return [row.to_dict() for row in rows]

    return fetch


@pytest.fixture(scope="function")
def key_provider(session_factory, clock) -> DerivedTenantKeyProvider:
    return DerivedTenantKeyProvider(session_factory, master_key=TEST_MASTER_KEY, rotation_days=90, clock=clock)


@pytest.fixture(scope="function")
def isolation_service(key_provider, audit_logger, ownership, clock) -> TenantIsolationService:
    return TenantIsolationService(key_provider, audit_logger, ownership, clock=clock)

"""Process-wide wiring of the authorization services.

Shared by the HTTP dependencies and the Celery worker, so the worker never
imports FastAPI.
"""

from functools import lru_cache

from audit.service import AuditLogger, DatabaseAuditSink
from config import settings
from database import SessionLocal

from .cache import PermissionCache
from .catalog import RoleCatalog
from .evaluator import AccessEvaluator


@lru_cache()
def get_access_evaluator() -> AccessEvaluator:
    """Process-wide evaluator bound to the application database."""
    cache = PermissionCache(SessionLocal, ttl_minutes=settings.PERMISSION_CACHE_TTL_MINUTES)
    catalog = RoleCatalog(SessionLocal, cache=cache)
    audit = AuditLogger(DatabaseAuditSink(SessionLocal))
    return AccessEvaluator(catalog, cache, audit)

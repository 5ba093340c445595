"""Database session factory and configuration.

Provides database connectivity and transaction scoping for the
authorization engine. Every role or permission mutation runs inside one
session_scope so a partially linked role graph is never committed.
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config import settings
from models.base import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    """Create an engine with pooling and a store timeout.

    Pool settings and the statement timeout only apply to PostgreSQL
    (not SQLite). A timed out statement surfaces as a store error, which
    the evaluator treats as a denial.
    """
    url = database_url or settings.DATABASE_URL
    engine_kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": False,
    }

    if url.startswith("postgresql"):
        timeout_ms = int(settings.STORE_TIMEOUT_SECONDS * 1000)
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10
        engine_kwargs["connect_args"] = {"options": f"-c statement_timeout={timeout_ms}"}

    engine_kwargs.update(kwargs)
    return create_engine(url, **engine_kwargs)


engine = build_engine()

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all engine tables that do not exist yet."""
    import models  # noqa: F401  (registers every table on Base.metadata)

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def session_scope(session_factory: sessionmaker = SessionLocal) -> Generator[Session, None, None]:
    """Transactional scope around a series of operations.

    Usage:
        with session_scope(factory) as session:
            session.add(role)

    Commits on success, rolls back on exception and re-raises.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

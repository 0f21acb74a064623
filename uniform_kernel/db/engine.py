"""
Module: uniform_kernel.db.engine
Responsibility: SQLAlchemy engine construction, schema creation, and
    transactional scope utilities.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except create_tables which imports models).

Invariants enforced:
    - In-memory SQLite uses a single shared connection (StaticPool) so every
      session sees the same database.
    - File and server databases use a connection pool with pre-ping.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from uniform_kernel.logging_config import get_logger

logger = get_logger("db.engine")


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``database_url``.

    SQLite URLs get ``check_same_thread=False``; in-memory SQLite also gets
    a StaticPool.  Everything else uses the default pool with pre-ping.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
    else:
        engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
    logger.info(
        "engine_initialized",
        extra={"dialect": engine.dialect.name, "echo": echo},
    )
    return engine


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Commits on normal exit; rolls back and re-raises on exception; always
    closes the session.

    Usage:
        with session_scope(factory) as session:
            session.add(entity)
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine) -> None:
    """Create all tables defined in the models."""
    from uniform_kernel.db.base import Base
    import uniform_kernel.models  # noqa: F401

    Base.metadata.create_all(engine)

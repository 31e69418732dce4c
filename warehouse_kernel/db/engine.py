"""
Module: warehouse_kernel.db.engine
Responsibility: Build SQLAlchemy engines for the stock database, hold the
    process-wide engine used by ``InventoryEngine.from_config``, and provide
    the commit-or-rollback ``session_scope`` every unit of work runs in.
Architecture position: Kernel > DB.  Imports db/base.py (and models/ inside
    create_tables, to fill the metadata).  Nothing above the kernel.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED.  Batch rows are protected by
      SELECT ... FOR UPDATE plus the version counter, not by isolation level.
    - An in-memory SQLite URL gets one shared connection (StaticPool);
      otherwise every session would open its own empty database.
    - A movement is never committed without its lines and batch effects:
      session_scope commits once at the end or rolls everything back.

Failure modes:
    - RuntimeError from get_engine / get_session_factory before
      init_engine_from_url().
    - Pool exhaustion (TimeoutError) beyond pool_size + max_overflow.
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from warehouse_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Engine with pooling suited to the URL's backend.

    Leaves the module-level engine alone; tests and one-off tools that own
    their engine call this directly.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        in_memory = url.database in (None, "", ":memory:") or "mode=memory" in database_url
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            **({"poolclass": StaticPool} if in_memory else {}),
        )

    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=pool_pre_ping,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """
    Install the process-wide engine and session factory.

    A second call replaces the first (the old engine is disposed).
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = build_engine(
        database_url, echo=echo, pool_size=pool_size, max_overflow=max_overflow
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={
        "dialect": _engine.dialect.name,
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "echo": echo,
    })
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """The factory InventoryEngine opens one session per unit of work from."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    One transaction: commit on normal exit, roll back and re-raise otherwise.

    Usage:
        with session_scope(factory) as session:
            MovementRecorder(session).record(...)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every warehouse table that does not exist yet."""
    from warehouse_kernel.db.base import Base
    import warehouse_kernel.models  # noqa: F401  (fills Base.metadata)

    Base.metadata.create_all(engine or get_engine())
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every warehouse table.  Tests and local resets only."""
    from warehouse_kernel.db.base import Base
    import warehouse_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose and forget the process-wide engine."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()

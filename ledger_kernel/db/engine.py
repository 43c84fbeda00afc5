"""
Engine and session factory for the ledger database.

``build_engine(url)`` returns a configured engine without registering it;
tests use it directly with a throwaway SQLite file.  Long-running callers
(the operator script) go through ``init_engine_from_url(url)``, which keeps
one engine and one ``sessionmaker`` for the process.

PostgreSQL runs at READ COMMITTED behind a pre-pinged pool.  On SQLite,
pysqlite's implicit transactions break SAVEPOINT, so BEGIN is emitted by
SQLAlchemy instead (the recipe from the SQLAlchemy SQLite dialect docs).
The run ledger claims occurrences inside SAVEPOINTs and needs this.
"""

from importlib import import_module
from typing import Iterable

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.logging_config import get_logger

logger = get_logger("db.engine")

POSTGRES_POOL_DEFAULTS = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _use_explicit_begin(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Create an engine for ``database_url``.

    ``pool_options`` override POSTGRES_POOL_DEFAULTS and are ignored for
    SQLite.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, echo=echo)
        _use_explicit_begin(engine)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        isolation_level="READ COMMITTED",
        **{**POSTGRES_POOL_DEFAULTS, **pool_options},
    )


def init_engine_from_url(database_url: str, echo: bool = False, **pool_options) -> Engine:
    """Build the process-wide engine and session factory, replacing any previous one."""
    global _engine, _session_factory

    reset_engine()
    _engine = build_engine(database_url, echo=echo, **pool_options)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


KERNEL_MODEL_PACKAGE = "ledger_kernel.models"


def create_tables(engine: Engine | None = None, model_packages: Iterable[str] = ()) -> None:
    """Create missing tables on ``engine`` (default: the process-wide engine).

    The kernel's own models are always loaded.  Packages built on the kernel
    pass their model packages by name, e.g. ``["ledger_recurring.models"]``.
    """
    from ledger_kernel.db.base import Base

    for package in (KERNEL_MODEL_PACKAGE, *model_packages):
        import_module(package)
    Base.metadata.create_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the process-wide engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None

"""
Module: textile_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management
    and schema creation.  Single point of database connection
    configuration for the kernel and the modules.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/ or selectors/ (create_tables pulls in the ORM
    registry lazily).

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED.  Stronger guarantees come from
      explicit SELECT ... FOR UPDATE on InventoryValue, DocNumberConfig and
      the parent document of a rollup.
    - SQLite (test fallback only) is switched to manual BEGIN so SAVEPOINT
      and rollback behave like a real transaction.
    - Initializing an engine installs the append-only listeners on
      StockMovement and AuditLog.

Failure modes:
    - RuntimeError if get_engine/get_session_factory is called before an
      engine is initialized.
"""

import atexit
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import Session, sessionmaker

from textile_kernel.db.immutability import register_immutability_listeners
from textile_kernel.logging_config import configure_logging, get_logger

if TYPE_CHECKING:
    from textile_kernel.config import KernelSettings

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_transaction_hooks(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so savepoints work."""

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level _engine and _SessionFactory are initialized
        and the ledger immutability listeners are registered.  A second call
        replaces the engine.

    Args:
        database_url: postgresql:// URL in production; sqlite:/// for tests.
        echo: If True, log all SQL statements.
        pool_size: Number of connections to keep in the pool (PostgreSQL).
        max_overflow: Max connections beyond pool_size (PostgreSQL).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    dialect = make_url(database_url).get_backend_name()

    if dialect == "sqlite":
        _engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_transaction_hooks(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    register_immutability_listeners()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": dialect,
            "pool_size": pool_size if dialect != "sqlite" else None,
            "echo": echo,
        },
    )

    return _engine


def init_engine_from_settings(settings: "KernelSettings", **pool_overrides) -> Engine:
    """Application bootstrap: logging at the configured level, then the engine."""
    configure_logging(level=settings.log_level.upper())
    options = {
        "echo": settings.echo,
        "pool_size": settings.pool_size,
        "max_overflow": settings.max_overflow,
    }
    options.update(pool_overrides)
    return init_engine_from_url(settings.database_url, **options)


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory, e.g. one session per worker thread.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def create_tables() -> None:
    """
    Create every kernel and module table.

    Preconditions: Engine must be initialized via init_engine_from_url().
    """
    from textile_kernel.db.base import Base
    from textile_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from textile_kernel.db.base import Base
    from textile_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    """Dispose the engine on process exit to release all pooled connections."""
    if _engine is not None:
        _engine.dispose()


atexit.register(_atexit_dispose)

"""Database configuration and session management."""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from schemaforge.settings import settings


def get_engine_kwargs(database_url: str) -> dict:
    """Return SQLAlchemy engine kwargs with safe defaults for long-running migrations."""
    kwargs = {
        "pool_pre_ping": settings.db_pool_pre_ping,
    }

    # QueuePool sizing only applies to non-sqlite engines.
    if not database_url.startswith("sqlite"):
        kwargs["pool_recycle"] = settings.db_pool_recycle
        kwargs["pool_timeout"] = settings.db_pool_timeout
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_max_overflow

    if database_url.startswith("postgresql"):
        connect_args = {"connect_timeout": settings.db_connect_timeout}
        if settings.db_statement_timeout_ms:
            connect_args["options"] = f"-c statement_timeout={int(settings.db_statement_timeout_ms)}"
        kwargs["connect_args"] = connect_args

    return kwargs


def enable_sqlite_transactional_ddl(engine: Engine) -> Engine:
    """Make pysqlite run DDL inside the session transaction.

    pysqlite commits implicitly before DDL statements, so a failed migration
    would leave its earlier statements applied. Taking over BEGIN restores
    the all-or-nothing behaviour PostgreSQL gives for free.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_autobegin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def build_engine(database_url: str | None = None, **overrides) -> Engine:
    """Build a database engine using configured pool and connectivity options."""
    url = database_url or settings.sqlalchemy_url
    kwargs = get_engine_kwargs(url)
    if "poolclass" in overrides:
        # Sizing options belong to QueuePool only.
        for key in ("pool_size", "max_overflow", "pool_timeout", "pool_recycle"):
            kwargs.pop(key, None)
    kwargs.update(overrides)
    engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        enable_sqlite_transactional_ddl(engine)
    return engine


# Create database engine
engine = build_engine()

# Create session factory
SessionLocal = sessionmaker(bind=engine)


def get_db():
    """Get database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

"""
SQLAlchemy engine singleton with production-ready connection pooling.

PostgreSQL is the production database. SQLite is accepted for development and
tests; its connections open every transaction with BEGIN IMMEDIATE so that the
booking transaction's calendar lock serialises writers the same way a row lock
does on PostgreSQL.
"""

from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url

from stay_reservations.config import DATABASE_URL

if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set.")


def _enable_sqlite_immediate_transactions(sqlite_engine: Engine) -> None:
    """
    Let SQLAlchemy, not pysqlite, control transaction boundaries.

    pysqlite defers BEGIN until the first DML statement and never emits
    BEGIN IMMEDIATE, which lets two writers both read before either holds the
    write lock.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL with settings suited to its backend.

    Args:
        url: SQLAlchemy database URL
        echo: Log emitted SQL (development only)

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    if make_url(url).get_backend_name() == "sqlite":
        sqlite_engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )
        _enable_sqlite_immediate_transactions(sqlite_engine)
        return sqlite_engine

    return create_engine(
        url,
        # Connection pool settings
        pool_size=10,  # Number of connections to maintain in the pool
        max_overflow=20,  # Additional connections when pool is exhausted
        pool_pre_ping=True,  # Verify connections before using (detect stale connections)
        pool_recycle=3600,  # Recycle connections after 1 hour (prevents stale connections)
        echo=echo,
    )


engine: Engine = create_db_engine(DATABASE_URL)


def check_engine_health(db_engine: Engine = engine) -> bool:
    """
    Check if database engine is healthy and connections are working.

    This function is used by the /ready endpoint to verify database
    connectivity before allowing traffic to the service.

    Returns:
        bool: True if database is reachable and healthy, False otherwise
    """
    try:
        with db_engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False

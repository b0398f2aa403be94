"""
Database base, mixins and session helpers for the preference store.
"""

import uuid

from sqlalchemy import Column, DateTime, create_engine, event, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def generate_uuid() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    """created_at / updated_at maintained by the database."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


def create_db_engine(database_url: str, *, echo: bool = False) -> Engine:
    """
    Create an engine for the preference store.

    In-memory SQLite shares one connection across sessions so that tests and
    local runs see a single database.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, echo=echo, pool_pre_ping=True)

    if database_url == "sqlite://" or ":memory:" in database_url:
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, echo=echo)
    _enable_sqlite_savepoints(engine)
    return engine


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT
    # inside a transaction. Let SQLAlchemy emit BEGIN itself.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_session_factory(engine: Engine, *, create_tables: bool = False) -> sessionmaker:
    if create_tables:
        # Import so Base.metadata knows about the table
        import notification_preferences.store  # noqa: F401

        Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def session_factory_from_url(database_url: str, *, create_tables: bool = False, echo: bool = False) -> sessionmaker:
    return create_session_factory(
        create_db_engine(database_url, echo=echo),
        create_tables=create_tables,
    )

"""Database engine, session and schema helpers backed by SQLAlchemy."""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TypeAlias

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from user_notifications.store.tables import TrackingBase

SessionFactory: TypeAlias = sessionmaker[Session]


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection configuration for the notification store."""

    url: str
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int | None = 1800
    pool_pre_ping: bool = True


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _register_unicode_lower(dbapi_connection, connection_record):
    # SQLite's built-in lower() only folds ASCII.
    dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


def create_sqlalchemy_engine(config: DatabaseConfig) -> Engine:
    """Create an engine; pool sizing only applies to server databases."""
    url = make_url(config.url)

    if url.get_backend_name() == "sqlite":
        # Retention cleanup may run on a worker thread.
        engine = create_engine(url, echo=config.echo, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _register_unicode_lower)
        return engine

    return create_engine(
        url,
        echo=config.echo,
        pool_size=config.pool_size,
        pool_timeout=config.pool_timeout,
        max_overflow=config.max_overflow,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=config.pool_pre_ping,
    )


def create_session_factory(engine: Engine) -> SessionFactory:
    """Produce the session factory bound to ``engine``."""
    return sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: SessionFactory) -> Iterator[Session]:
    """One transaction: commit on success, roll back and re-raise on failure."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dialect_insert(session: Session, table):
    """Return the dialect's INSERT construct, which supports ON CONFLICT clauses."""
    dialect = session.get_bind().dialect.name

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise NotImplementedError(f"Upserts are not supported on {dialect}")

    return insert(table)


def setup_db(engine: Engine):
    """Create notification tables and indexes"""
    TrackingBase.metadata.create_all(engine)


def drop_db(engine: Engine):
    """Drop notification tables"""
    TrackingBase.metadata.drop_all(engine)

# restaurant_verification/db/session.py
import logging
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import event
from sqlalchemy.exc import DBAPIError, SQLAlchemyError, TimeoutError as PoolTimeoutError
from sqlmodel import Session, SQLModel, create_engine

from restaurant_verification.core.config import settings
from restaurant_verification.core.errors import InternalError, UpstreamTimeout, VerificationError

logger = logging.getLogger(__name__)

# Markers the drivers use for statement / lock timeouts
_TIMEOUT_MARKERS = ("statement timeout", "lock timeout", "canceling statement", "database is locked")


def build_engine(database_url: str):
    """Create the engine with bounded pool acquisition and store-side timeouts."""
    # hide_parameters keeps bound values (codes) out of error messages and logs
    kwargs = {"pool_pre_ping": True, "echo": False, "hide_parameters": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.DB_STATEMENT_TIMEOUT_SECONDS,
        }
    else:
        timeout_ms = int(settings.DB_STATEMENT_TIMEOUT_SECONDS * 1000)
        kwargs.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
            connect_args={
                "connect_timeout": max(1, int(settings.DB_STATEMENT_TIMEOUT_SECONDS)),
                "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
            },
        )
    new_engine = create_engine(database_url, **kwargs)

    if database_url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def _on_sqlite_connect(dbapi_connection, connection_record):
            # pysqlite must not issue its own BEGIN; the "begin" hook below does
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(new_engine, "begin")
        def _on_sqlite_begin(conn):
            # Take the write lock on the first statement so read-modify-write is serialized
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return new_engine


engine = build_engine(settings.DATABASE_URL)


def init_db(bind=None) -> None:
    """Create tables directly (local development and tests; production uses Alembic)."""
    # Import models so they register on SQLModel.metadata
    from restaurant_verification.db import models  # noqa: F401
    SQLModel.metadata.create_all(bind or engine)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency yielding a request-scoped session."""
    with Session(engine) as session:
        yield session


def is_timeout_error(exc: BaseException) -> bool:
    if isinstance(exc, PoolTimeoutError):
        return True
    if isinstance(exc, DBAPIError):
        text = str(exc.orig).lower() if exc.orig is not None else str(exc).lower()
        return any(marker in text for marker in _TIMEOUT_MARKERS)
    return False


@contextmanager
def store_errors(session: Session) -> Iterator[Session]:
    """Roll back and translate store failures into the service error taxonomy."""
    try:
        yield session
    except VerificationError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        if is_timeout_error(e):
            logger.error("Relational store timed out: %s", type(e).__name__)
            raise UpstreamTimeout("database") from e
        logger.error("Relational store error: %s", e, exc_info=True)
        raise InternalError() from e

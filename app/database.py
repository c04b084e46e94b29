import logging
from contextlib import contextmanager
from typing import Optional, Type

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.config import Settings
from app.errors import LibraryError, StorageFailure

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_db_engine(settings: Settings) -> Engine:
    """Build the engine shared by every request of one application.

    SQLite has no row-level locks, so its transactions are opened with
    ``BEGIN IMMEDIATE``: writers then serialize on the database lock and
    ``with_for_update()`` queries keep their meaning. The driver timeout bounds
    how long a request waits for that lock.
    """
    is_sqlite = settings.database_url.startswith("sqlite")
    connect_args = {}
    if is_sqlite:
        connect_args = {"check_same_thread": False, "timeout": settings.database_lock_timeout}

    engine = create_engine(
        settings.database_url,
        echo=settings.database_echo,
        connect_args=connect_args,
        pool_pre_ping=not is_sqlite,
    )

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, connection_record):
            # Let SQLAlchemy emit BEGIN itself instead of pysqlite
            dbapi_connection.isolation_level = None
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    # Objects stay loaded after commit
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    # Registers the mapped classes on Base.metadata
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready")


@contextmanager
def transaction(db: Session, action: str, integrity_error: Optional[Type[LibraryError]] = None):
    """Commit the work done in the block, or roll all of it back.

    Typed library errors pass through unchanged. Constraint violations become
    ``integrity_error`` when given; any other database error is logged and
    surfaced as ``StorageFailure``.
    """
    try:
        yield db
        db.commit()
    except LibraryError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        if integrity_error is not None:
            raise integrity_error() from exc
        logger.exception(f"Constraint violation during {action}")
        raise StorageFailure(f"An error occurred during {action}.") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(f"Database error during {action}")
        raise StorageFailure(f"An error occurred during {action}.") from exc


def get_db(request: Request):
    """Yield one session per request and close it on every exit path."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()

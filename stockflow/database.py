import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import Engine
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

# Create Base class
Base = declarative_base()


def _ensure_sqlite_parent(db_url: str) -> str:
    """Expand ``~`` in SQLite paths and create the parent directory."""

    url = make_url(db_url)
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return db_url

    path = Path(url.database).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        # sqlite reports the same problem on first connect
        logger.error(f"Cannot create database directory {path.parent}: {e}")
    return url.set(database=str(path)).render_as_string(hide_password=False)


def make_engine(db_url: str, **kwargs) -> Engine:
    """Create a SQLAlchemy engine with the given URL and options.

    Args:
        db_url: Database connection URL
        **kwargs: Additional arguments for create_engine

    Returns:
        A SQLAlchemy Engine instance
    """
    connect_args = kwargs.pop("connect_args", {})
    if "sqlite" in db_url:
        db_url = _ensure_sqlite_parent(db_url)
        if "check_same_thread" not in connect_args:
            connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30

    return create_engine(db_url, connect_args=connect_args, **kwargs)


def make_sessionmaker(engine: Engine) -> sessionmaker:
    """Create a sessionmaker bound to the given engine.

    ``expire_on_commit=False`` keeps row attributes readable after the
    ``db_session`` helper commits and closes.
    """
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def initialize_database(engine: Engine) -> None:
    """Create all tables registered on :data:`Base` (idempotent)."""

    # Register models with Base before create_all
    from stockflow.models import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@contextmanager
def db_session(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Database session context manager.

    1. Auto-commit on success
    2. Auto-rollback on error
    3. Always close session
    """
    session = session_factory()

    try:
        yield session
        session.commit()
        logger.debug("Database session committed successfully")

    except Exception as e:
        session.rollback()
        logger.error(f"Database session rolled back due to error: {e}")
        raise

    finally:
        session.close()

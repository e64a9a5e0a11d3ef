# slashy/core_app/database/session.py
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from slashy.core_app.config import get_settings
from slashy.core_app.errors import PersistenceError
from slashy.core_app.tools.setup_logger import setup_logger
from .base import Base
from . import models  # noqa: F401

logger = setup_logger(__name__.upper())


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(database_url, pool_pre_ping=True)


@lru_cache()
def get_engine() -> Engine:
    return create_db_engine(get_settings().database_url)


@lru_cache()
def get_session_factory() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def init_db(engine: Engine = None) -> None:
    Base.metadata.create_all(bind=engine or get_engine())


def get_db() -> Generator[Session, None, None]:
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_operation(db: Session, description: str, commit: bool = True) -> Iterator[Session]:
    """Run a store operation; SQLAlchemy failures are rolled back and raised as PersistenceError."""
    try:
        yield db
        if commit:
            db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Store operation failed ({description}): {e}")
        raise PersistenceError(f"Failed to {description}", details=str(e.__class__.__name__)) from e

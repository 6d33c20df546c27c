"""Database session management with connection pooling"""

from contextlib import contextmanager
from typing import Generator, Iterator
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError
from furby_gateway.config import settings
from furby_gateway.domain.exceptions import InvalidStateTransition


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 10,
        "pool_recycle": 3600,
    }


engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Commit on success, roll back and re-raise on any failure.

    A versioned row changed by another session since it was loaded surfaces
    as InvalidStateTransition.
    """
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise InvalidStateTransition("Record was modified concurrently, reload and retry") from e
    except Exception:
        db.rollback()
        raise


def check_database_connection() -> None:
    """Open a connection and run a trivial query; raises on failure"""
    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from backend.app.core.settings import settings
from backend.app.db.models import Base


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"future": True, "echo": False, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        # Writers queue on the database lock instead of failing immediately.
        options["connect_args"] = {"timeout": 30, "check_same_thread": False}
    return options


ENGINE = create_engine(settings.database_url, **_engine_options(settings.database_url))

SessionLocal = sessionmaker(bind=ENGINE, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Unit of work: commit on success, roll back and re-raise on any error."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def create_schema(engine: Engine = ENGINE) -> None:
    """Create every table from ORM metadata (tests and local seeding; production uses Alembic)."""
    Base.metadata.create_all(engine)

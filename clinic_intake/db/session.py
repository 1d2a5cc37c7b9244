import logging
from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from clinic_intake.core.config import settings
from clinic_intake.exceptions import PersistenceError

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict[str, Any]:
    if not url.startswith("sqlite"):
        return {}
    options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if ":memory:" in url or url.rstrip("/").endswith("sqlite:"):
        options["poolclass"] = StaticPool
    return options


engine = create_engine(settings.database_url, future=True, **_engine_options(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def get_db() -> Generator[Session, None, None]:
    """Provide a session per request.

    Mutating routes commit through ``commit_or_raise`` before responding; the
    commit here only closes read-only units of work.
    """

    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def commit_or_raise(db: Session) -> None:
    """Commit the request's unit of work before anything is reported about it."""

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("commit failed")
        raise PersistenceError("Failed to save changes") from exc

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.config import settings
from app.core.errors import UnexpectedStateError

engine = create_engine(
    settings.APP_DATABASE_DSN,
    connect_args=({"check_same_thread": False} if "sqlite" in settings.APP_DATABASE_DSN else {}),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def enable_sqlite_foreign_keys(target_engine: Any) -> None:
    """Turn on FK enforcement for SQLite connections so cascades apply."""
    if target_engine.dialect.name != "sqlite":
        return

    @event.listens_for(target_engine, "connect")
    def _set_pragma(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


enable_sqlite_foreign_keys(engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit the enclosed writes together or roll all of them back.

    Persistence failures surface as UnexpectedStateError; other errors are
    re-raised unchanged after the rollback.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise UnexpectedStateError(f"Database write failed: {exc}") from exc
    except BaseException:
        db.rollback()
        raise


def init_db() -> None:
    """Initialize database tables."""
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)

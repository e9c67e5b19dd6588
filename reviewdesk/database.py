"""Engine, session factory and the request-scoped session dependency."""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from reviewdesk.config import settings


class Base(DeclarativeBase):
    pass


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Sessions cross threads under uvicorn's threadpool
        return {"connect_args": {"check_same_thread": False}}
    # Managed Postgres drops idle connections
    return {"pool_pre_ping": True, "pool_recycle": 1800}


engine = create_engine(settings.database_url, echo=False, **_engine_kwargs(settings.database_url))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts: commits on success, rolls back on error."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """Create tables for every registered model."""
    import reviewdesk.models  # noqa: F401

    Base.metadata.create_all(bind=engine)

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from .settings import settings


class Base(DeclarativeBase):
    pass


_engine: Engine | None = None
_SessionFactory: sessionmaker | None = None


def _connect_args(url: str) -> dict:
    # SQLite connections are handed across the threadpool FastAPI runs sync routes on
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def init_engine(database_url: str | None = None) -> Engine:
    global _engine, _SessionFactory
    url = database_url or settings.database_url
    _engine = create_engine(url, pool_pre_ping=True, connect_args=_connect_args(url))
    _SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    return _engine


def session_factory() -> sessionmaker:
    if _SessionFactory is None:
        init_engine()
    return _SessionFactory


def create_schema(engine: Engine | None = None) -> None:
    """Create all tables directly (dev / tests). Production uses alembic."""
    from . import models  # noqa: F401  registers mappers on Base

    Base.metadata.create_all(bind=engine or get_engine())


def get_db():
    db = session_factory()()
    try:
        yield db
    finally:
        db.close()

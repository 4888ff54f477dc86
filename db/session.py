"""
db/session.py

SQLAlchemy engine and session factory for the record sink.
"""

from __future__ import annotations

import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.base import Base
from db.config import resolve_database_url


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def create_db_engine(database_url: str | None = None) -> Engine:
    """
    Engine for ``database_url`` (resolved from the environment when omitted).
    SQLite URLs skip the connection pool sizing used for PostgreSQL.
    """

    url = database_url or resolve_database_url()
    echo = _get_bool_env("SQL_ECHO", default=False)
    if url.startswith("sqlite"):
        return create_engine(url, echo=echo)
    if not url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL and SQLite URLs are supported.")

    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=_get_int_env("DB_POOL_RECYCLE", 1800),
        pool_size=_get_int_env("DB_POOL_SIZE", 5),
        max_overflow=_get_int_env("DB_MAX_OVERFLOW", 10),
    )


def create_session_factory(engine: Engine, *, create_tables: bool = True) -> sessionmaker:
    if create_tables:
        import db.models  # noqa: F401  registers tables on Base.metadata

        Base.metadata.create_all(engine)
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

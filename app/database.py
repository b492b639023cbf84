"""
Database engine, session factory and declarative base.

``get_db`` is the FastAPI dependency used by every router; it yields one
``Session`` per request and always closes it.  Services own commit/rollback.

``TZDateTime`` stores every instant as UTC and hands back an aware
``datetime`` on read, so PostgreSQL (``timestamptz``) and SQLite (test env,
which drops tzinfo) behave the same.
"""

from __future__ import annotations

import datetime
from collections.abc import Generator

from sqlalchemy import DateTime, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.types import TypeDecorator

from app.config import get_settings

settings = get_settings()

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


class TZDateTime(TypeDecorator):
    """Timezone-aware timestamp normalised to UTC."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetime tidak diizinkan; gunakan datetime dengan zona waktu.")
        return value.astimezone(datetime.timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped session and close it afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

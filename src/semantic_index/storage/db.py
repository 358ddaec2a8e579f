"""SQLAlchemy declarative base, mixins, and engine / session factories."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from semantic_index.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base every ORM model registers with."""


class TimestampMixin:
    """``created_at`` set once on insert; ``updated_at`` refreshed on every update."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )


def create_db_engine(database_url: str | None = None, *, echo: bool | None = None) -> Engine:
    """Create an engine for *database_url* (defaults to ``settings.database_url``)."""
    return create_engine(
        database_url or settings.database_url,
        echo=settings.database_echo if echo is None else echo,
        pool_pre_ping=True,
    )


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Session factory with explicit transaction control.

    ``expire_on_commit=False`` keeps loaded rows usable after their session
    closes, which the repository relies on when handing models to callers.
    """
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    """Create every table registered on :class:`Base` (idempotent)."""
    from semantic_index.storage import models  # noqa: F401  (registers tables)

    Base.metadata.create_all(engine)

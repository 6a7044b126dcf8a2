"""
Database base configuration.

Provides the declarative base with timestamp columns, the shared async
engine and session factory, and the FastAPI session dependency.
"""

from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, MetaData, func
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.core.config import DatabaseSettings, settings

# Naming convention keeps constraint names stable across backends
metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)


class Base(DeclarativeBase):
    """Base class for all models, with creation and update timestamps."""

    metadata = metadata

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def build_engine(database: DatabaseSettings, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the configured database."""
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not database.is_sqlite:
        kwargs["pool_size"] = database.pool_size
        kwargs["max_overflow"] = database.max_overflow
    return create_async_engine(database.url, **kwargs)


engine = build_engine(settings.database, echo=settings.debug)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request handlers."""
    async with async_session_maker() as session:
        yield session

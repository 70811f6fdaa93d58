"""Database engine and session configuration."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


def create_db_engine(url: str, *, echo: bool = False) -> Engine:
    """Build an engine for the configured database URL.

    In-memory SQLite needs a single shared connection, otherwise every
    session would see its own empty database.
    """
    if url in {"sqlite://", "sqlite:///:memory:"}:
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, pool_pre_ping=True, echo=echo, connect_args=connect_args)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory bound to ``engine``."""
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def create_tables(engine: Engine) -> None:
    """Create all database tables."""
    # Ensure model modules are imported so that metadata is populated.
    import replied.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def drop_tables(engine: Engine) -> None:
    """Drop all database tables."""
    Base.metadata.drop_all(bind=engine)

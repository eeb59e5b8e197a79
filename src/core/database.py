"""Database connection and session management.

This module handles the database connection using SQLAlchemy. SQLite is the
default store; any URL SQLAlchemy accepts can be supplied via DATABASE_URL.
"""

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import DATA_DIR, DATABASE_URL
from models.base import Base
# Import models to ensure they are registered with Base.metadata
import models  # noqa: F401


def build_engine(url: str):
    """Create an engine with the connection arguments SQLite needs.

    Args:
        url: SQLAlchemy database URL.

    Returns:
        SQLAlchemy Engine.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)

    connect_args = {"check_same_thread": False, "timeout": 30}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, connect_args=connect_args)


if DATABASE_URL.startswith(f"sqlite:///{DATA_DIR}"):
    DATA_DIR.mkdir(parents=True, exist_ok=True)

engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Create tables that do not exist yet."""
    Base.metadata.create_all(bind=bind or engine)


def get_session_factory() -> sessionmaker:
    """Dependency returning the session factory.

    Streaming responses open their own session from this factory because they
    outlive the request-scoped session.
    """
    return SessionLocal


def get_db(session_factory: sessionmaker = Depends(get_session_factory)):
    """Dependency for getting a database session."""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()

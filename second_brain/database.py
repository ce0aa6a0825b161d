"""
Central SQLAlchemy models and session utilities.

These definitions power both Alembic migrations and runtime ORM queries.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.sql import func

logger = logging.getLogger(__name__)

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionFactory: Optional[sessionmaker] = None


class User(Base):
    """
    Registered account. Email is unique; only the password hash is stored.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())

    folders = relationship("Folder", back_populates="author", cascade="all, delete-orphan", passive_deletes=True)
    notes = relationship("Note", back_populates="author", cascade="all, delete-orphan", passive_deletes=True)


class Folder(Base):
    """
    Folder owned by exactly one user.

    Deleting a folder deletes every note inside it (FK cascade in the
    database plus ORM cascade for the session).
    """
    __tablename__ = "folders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)

    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    author = relationship("User", back_populates="folders")
    notes = relationship("Note", back_populates="folder", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_folders_author_id", "author_id"),
        Index("idx_folders_author_name", "author_id", "name"),
    )


class Note(Base):
    """
    Notes table with user isolation.

    Content is the editor's HTML and is stored verbatim.
    """
    __tablename__ = "notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False, default="")

    # Timestamps
    created_at = Column(TIMESTAMP, nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP, nullable=False, server_default=func.now(), onupdate=func.now())

    author = relationship("User", back_populates="notes")
    folder = relationship("Folder", back_populates="notes")

    # Indexes
    __table_args__ = (
        Index("idx_notes_author_id", "author_id"),
        Index("idx_notes_author_folder", "author_id", "folder_id"),
        Index("idx_notes_author_updated", "author_id", "updated_at"),
    )


def get_database_url() -> str:
    """
    Get database URL from environment, defaulting to SQLite.

    Returns:
        Database connection string
    """
    database_url = os.getenv("DATABASE_URL")

    if database_url:
        # PostgreSQL
        return database_url

    flask_env = os.getenv("FLASK_ENV", "development")
    if flask_env == "production":
        # In production, we must have DATABASE_URL. Do not fallback to SQLite.
        raise ValueError("DATABASE_URL environment variable is not set in production environment!")

    # SQLite (development)
    db_path = Path(__file__).parent.parent / ".second_brain.db"
    logger.warning("Using SQLite database at %s", db_path)
    return f"sqlite:///{db_path}"


def get_engine():
    """Get (and lazily create) the shared SQLAlchemy engine."""
    global _engine
    if _engine is None:
        _engine = create_engine_for_url()
    return _engine


def get_session_factory() -> sessionmaker:
    """Return the configured session factory."""
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(
            bind=get_engine(),
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            future=True,
        )
    return _SessionFactory


def create_engine_for_url(database_url: Optional[str] = None) -> Engine:
    """Build a SQLAlchemy engine for the given URL (or default environment)."""
    url = database_url or get_database_url()
    engine = create_engine(
        url,
        future=True,
        echo=False,
        pool_pre_ping=True,
    )

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _set_sqlite_pragmas)

    return engine


def _set_sqlite_pragmas(dbapi_connection, connection_record):
    """
    Apply SQLite pragmas (WAL, foreign keys).

    Foreign keys must be on for folder deletes to cascade to notes.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()

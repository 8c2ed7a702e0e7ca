"""
Database setup and the key-value store used for persistence
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import create_engine, Column, String, Text, DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from lifesync.config import DATABASE_URL

logger = logging.getLogger(__name__)

Base = declarative_base()


class KeyValueEntry(Base):
    """Database model for one stored key"""
    __tablename__ = "key_values"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def make_engine(url: str = DATABASE_URL):
    """Create an engine; in-memory SQLite shares one connection."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


# Create engine and session
engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Initialize the database - create all tables"""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("[Database] Tables ready")


class KeyValueStore:
    """
    String key-value store backed by SQLAlchemy.
    Methods are coroutines so callers treat persistence as a suspension point.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    async def get(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            entry = db.get(KeyValueEntry, key)
            return entry.value if entry else None
        finally:
            db.close()

    async def set(self, key: str, value: str) -> None:
        db = self.session_factory()
        try:
            entry = db.get(KeyValueEntry, key)
            if entry:
                entry.value = value
            else:
                db.add(KeyValueEntry(key=key, value=value))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

    async def remove(self, key: str) -> None:
        db = self.session_factory()
        try:
            db.query(KeyValueEntry).filter(KeyValueEntry.key == key).delete()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

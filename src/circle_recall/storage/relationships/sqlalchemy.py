"""
SQLAlchemy-based relationship settings storage.

Works with any SQLAlchemy-compatible database (PostgreSQL, SQLite, MySQL,
etc.). One row per directed relationship edge.
"""

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Engine, Index, String
from sqlalchemy.orm import Session

from circle_recall.models import DATA_CATEGORIES, RelationshipPrivacySettings
from circle_recall.privacy import default_relationship_settings
from circle_recall.storage.base import Base

logger = logging.getLogger(__name__)


class RelationshipDB(Base):
    """SQLAlchemy model for per-relationship privacy settings."""

    __tablename__ = "relationships"

    owner_id = Column(String, primary_key=True)
    counterpart_id = Column(String, primary_key=True)

    share_health = Column(Boolean, nullable=False, default=True)
    share_location = Column(Boolean, nullable=False, default=True)
    share_activities = Column(Boolean, nullable=False, default=True)
    share_diary = Column(Boolean, nullable=False, default=True)
    share_voice_notes = Column(Boolean, nullable=False, default=True)
    share_photos = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (Index("idx_relationships_counterpart", "counterpart_id"),)

    def to_settings(self) -> RelationshipPrivacySettings:
        return RelationshipPrivacySettings(
            **{category: getattr(self, f"share_{category}") for category in DATA_CATEGORIES}
        )

    def apply(self, settings: RelationshipPrivacySettings) -> None:
        for category in DATA_CATEGORIES:
            setattr(self, f"share_{category}", getattr(settings, category))
        self.updated_at = datetime.now()


class SQLAlchemyRelationshipStore:
    """
    SQLAlchemy implementation of the RelationshipSettingsStore protocol.

    Example:
        from sqlalchemy import create_engine
        engine = create_engine("sqlite:///circle_recall.db")
        store = SQLAlchemyRelationshipStore(engine)
        store.create_tables()
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        logger.info(f"SQLAlchemyRelationshipStore initialized (engine={engine.url})")

    @contextmanager
    def _session(self):
        """Context manager for database sessions with automatic commit/rollback."""
        session = Session(self.engine)
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            session.close()

    def create_tables(self):
        """Create database tables if they don't exist."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables created/verified")

    # Session work blocks; the async methods below run it in a worker thread.

    def _get_settings(
        self, owner_id: str, counterpart_id: str
    ) -> Optional[RelationshipPrivacySettings]:
        with self._session() as session:
            row = session.get(RelationshipDB, (owner_id, counterpart_id))
            if row is None:
                return None
            return row.to_settings()

    def _save_settings(
        self, owner_id: str, counterpart_id: str, settings: RelationshipPrivacySettings
    ) -> None:
        with self._session() as session:
            row = session.get(RelationshipDB, (owner_id, counterpart_id))
            if row is None:
                row = RelationshipDB(owner_id=owner_id, counterpart_id=counterpart_id)
                session.add(row)
            row.apply(settings)

    def _create_relationship(self, owner_id: str, counterpart_id: str) -> None:
        defaults = default_relationship_settings()
        with self._session() as session:
            for owner, counterpart in ((owner_id, counterpart_id), (counterpart_id, owner_id)):
                if session.get(RelationshipDB, (owner, counterpart)) is None:
                    row = RelationshipDB(owner_id=owner, counterpart_id=counterpart)
                    row.apply(defaults)
                    session.add(row)

    def _delete_relationship(self, owner_id: str, counterpart_id: str) -> int:
        with self._session() as session:
            count = 0
            for owner, counterpart in ((owner_id, counterpart_id), (counterpart_id, owner_id)):
                row = session.get(RelationshipDB, (owner, counterpart))
                if row is not None:
                    session.delete(row)
                    count += 1
            return count

    async def get_settings(
        self, owner_id: str, counterpart_id: str
    ) -> Optional[RelationshipPrivacySettings]:
        return await asyncio.to_thread(self._get_settings, owner_id, counterpart_id)

    async def save_settings(
        self, owner_id: str, counterpart_id: str, settings: RelationshipPrivacySettings
    ) -> None:
        await asyncio.to_thread(self._save_settings, owner_id, counterpart_id, settings)
        logger.info(f"Saved privacy settings {owner_id} -> {counterpart_id}")

    async def create_relationship(self, owner_id: str, counterpart_id: str) -> None:
        """Create both directions of a relationship with the default (all open) settings."""
        await asyncio.to_thread(self._create_relationship, owner_id, counterpart_id)
        logger.info(f"Created relationship {owner_id} <-> {counterpart_id}")

    async def delete_relationship(self, owner_id: str, counterpart_id: str) -> int:
        """Delete both directions of a relationship. Returns the number of rows removed."""
        count = await asyncio.to_thread(self._delete_relationship, owner_id, counterpart_id)
        logger.info(f"Deleted relationship {owner_id} <-> {counterpart_id} ({count} rows)")
        return count

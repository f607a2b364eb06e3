"""
SQLAlchemy-based usage event storage.

Events are append-only; aggregation into daily or monthly totals is left to
whoever reads the table.
"""

import asyncio
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Engine, Float, Index, Integer, String, func, select
from sqlalchemy.orm import Session

from circle_recall.models import UsageEvent
from circle_recall.storage.base import Base

logger = logging.getLogger(__name__)


class UsageEventDB(Base):
    """SQLAlchemy model for usage events."""

    __tablename__ = "usage_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    operation = Column(String, nullable=False)
    provider = Column(String, nullable=False)
    model = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False)
    endpoint = Column(String, nullable=False)
    estimated_cost_usd = Column(Float, nullable=False, default=0.0)
    timestamp = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (Index("idx_usage_user_timestamp", "user_id", "timestamp"),)


class SQLAlchemyUsageSink:
    """SQLAlchemy implementation of the UsageSink protocol."""

    def __init__(self, engine: Engine):
        self.engine = engine
        logger.info(f"SQLAlchemyUsageSink initialized (engine={engine.url})")

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

    async def record(self, event: UsageEvent) -> None:
        await asyncio.to_thread(self._record, event)

    def _record(self, event: UsageEvent) -> None:
        with self._session() as session:
            session.add(
                UsageEventDB(
                    user_id=event.user_id,
                    operation=event.operation,
                    provider=event.provider,
                    model=event.model,
                    quantity=event.quantity,
                    endpoint=event.endpoint,
                    estimated_cost_usd=event.estimated_cost_usd,
                    timestamp=event.timestamp,
                )
            )

    def total_cost(self, user_id: str, since: Optional[datetime] = None) -> float:
        """Sum estimated cost for a user, optionally from a point in time onward."""
        with self._session() as session:
            query = select(func.coalesce(func.sum(UsageEventDB.estimated_cost_usd), 0.0)).where(
                UsageEventDB.user_id == user_id
            )
            if since is not None:
                query = query.where(UsageEventDB.timestamp >= since)
            return float(session.execute(query).scalar_one())

    def count_events(self, user_id: str, operation: Optional[str] = None) -> int:
        with self._session() as session:
            query = select(func.count()).select_from(UsageEventDB).where(
                UsageEventDB.user_id == user_id
            )
            if operation is not None:
                query = query.where(UsageEventDB.operation == operation)
            return int(session.execute(query).scalar_one())

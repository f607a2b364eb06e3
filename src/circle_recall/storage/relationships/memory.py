"""
In-memory relationship settings storage.

Suitable for testing and single-instance deployments. For production, use
the SQLAlchemy implementation.
"""

import logging
from typing import Dict, Optional, Tuple

from circle_recall.models import RelationshipPrivacySettings
from circle_recall.privacy import default_relationship_settings

logger = logging.getLogger(__name__)


class InMemoryRelationshipStore:
    """
    In-memory implementation of the RelationshipSettingsStore protocol.

    Stores settings keyed by (owner_id, counterpart_id). Data is lost on restart.
    """

    def __init__(self):
        self._settings: Dict[Tuple[str, str], RelationshipPrivacySettings] = {}

        logger.info("InMemoryRelationshipStore initialized")

    async def get_settings(
        self, owner_id: str, counterpart_id: str
    ) -> Optional[RelationshipPrivacySettings]:
        settings = self._settings.get((owner_id, counterpart_id))
        return settings.model_copy() if settings is not None else None

    async def save_settings(
        self, owner_id: str, counterpart_id: str, settings: RelationshipPrivacySettings
    ) -> None:
        self._settings[(owner_id, counterpart_id)] = settings.model_copy()
        logger.debug(f"Saved privacy settings {owner_id} -> {counterpart_id}")

    async def create_relationship(self, owner_id: str, counterpart_id: str) -> None:
        """Create both directions of a relationship with the default (all open) settings."""
        for owner, counterpart in ((owner_id, counterpart_id), (counterpart_id, owner_id)):
            if (owner, counterpart) not in self._settings:
                self._settings[(owner, counterpart)] = default_relationship_settings()
        logger.info(f"Created relationship {owner_id} <-> {counterpart_id}")

    def clear(self):
        """Clear ALL relationships from the store."""
        count = len(self._settings)
        self._settings.clear()
        logger.info(f"Cleared all relationship settings ({count} total)")

"""
Storage protocol definitions for circle-recall.

These protocols define the raw interface each backend provides. Validation,
chunking and privacy scoping live above them (see ``DualIndexVectorStore``
and ``RelationshipSettingsGateway``), so implementations stay thin wrappers
around the provider.
"""

from typing import Dict, List, Optional, Protocol, Sequence

from circle_recall.models import RelationshipPrivacySettings, UsageEvent, VectorMatch, VectorRecord
from circle_recall.storage.vector.filters import Condition


class VectorIndexBackend(Protocol):
    """
    Protocol for a vector provider hosting named namespaces (collections).

    Each namespace has a fixed dimension. Implementations raise
    ``RemoteCallError`` for provider failures and never retry.
    """

    async def ensure_namespace(self, name: str, dimension: int) -> None:
        """
        Create the namespace if missing.

        Raises:
            ConfigurationError: If the namespace exists with another dimension
        """
        ...

    async def upsert(self, name: str, records: Sequence[VectorRecord]) -> None:
        """Write records in a single provider call. Idempotent on record id."""
        ...

    async def query(
        self,
        name: str,
        vector: List[float],
        top_k: int,
        conditions: Sequence[Condition],
    ) -> List[VectorMatch]:
        """
        Similarity search restricted to records matching every condition.

        Returns:
            Up to top_k matches, highest score first
        """
        ...

    async def fetch(self, name: str, ids: Sequence[str]) -> Dict[str, VectorRecord]:
        """Fetch stored records by id. Unknown ids are absent from the result."""
        ...

    async def delete_ids(self, name: str, ids: Sequence[str]) -> None:
        """Delete records by id."""
        ...

    async def delete_where(self, name: str, conditions: Sequence[Condition]) -> None:
        """Delete every record matching all conditions."""
        ...


class RelationshipSettingsStore(Protocol):
    """
    Protocol for the two privacy-settings accessors of the document store.

    A relationship is directed: ``owner_id`` decides what ``counterpart_id``
    may see of the owner's data.
    """

    async def get_settings(
        self, owner_id: str, counterpart_id: str
    ) -> Optional[RelationshipPrivacySettings]:
        """
        Returns:
            The stored settings, or None if no relationship exists
        """
        ...

    async def save_settings(
        self, owner_id: str, counterpart_id: str, settings: RelationshipPrivacySettings
    ) -> None:
        """Create or replace the settings for a relationship."""
        ...


class UsageSink(Protocol):
    """Protocol for recording usage events. Callers treat it as fire-and-forget."""

    async def record(self, event: UsageEvent) -> None:
        ...

"""
Relationship settings gateway.

Fetches per-relationship privacy settings for many counterparts at once.
A relationship is directed: the owner's settings decide what the
counterpart may see. Absence is never treated as permission; counterparts
with no settings, or whose lookup failed, are left out of the result.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from circle_recall.models import RelationshipFetchReport, RelationshipPrivacySettings
from circle_recall.storage.protocols import RelationshipSettingsStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 50


class RelationshipSettingsGateway:
    """
    Bounded, concurrent fan-out over a RelationshipSettingsStore.

    Example:
        >>> gateway = RelationshipSettingsGateway(InMemoryRelationshipStore())
        >>> report = await gateway.fetch_report_toward("bob", ["alice", "carol"])
        >>> report.settings["alice"].health
        False
    """

    def __init__(
        self,
        store: RelationshipSettingsStore,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        timeout: Optional[float] = None,
    ):
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be positive")
        self.store = store
        self.max_concurrency = max_concurrency
        self.timeout = timeout

    async def _fetch_one(
        self, semaphore: asyncio.Semaphore, owner_id: str, counterpart_id: str
    ) -> Optional[RelationshipPrivacySettings]:
        async with semaphore:
            lookup = self.store.get_settings(owner_id, counterpart_id)
            if self.timeout is None:
                return await lookup
            return await asyncio.wait_for(lookup, self.timeout)

    async def _fan_out(
        self, pairs: List[Tuple[str, str]], key_index: int
    ) -> RelationshipFetchReport:
        semaphore = asyncio.Semaphore(self.max_concurrency)
        results = await asyncio.gather(
            *(self._fetch_one(semaphore, owner, counterpart) for owner, counterpart in pairs),
            return_exceptions=True,
        )

        report = RelationshipFetchReport()
        for pair, result in zip(pairs, results):
            key = pair[key_index]
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                detail = str(result) or type(result).__name__
                report.failed[key] = detail
                logger.warning(
                    f"Relationship settings lookup {pair[0]} -> {pair[1]} failed, "
                    f"excluding {key}: {detail}"
                )
            elif result is None:
                report.not_configured.append(key)
                logger.warning(
                    f"No relationship settings {pair[0]} -> {pair[1]}, excluding {key}"
                )
            else:
                report.settings[key] = result

        logger.debug(
            f"Fetched {len(report.settings)} relationship settings "
            f"({len(report.not_configured)} not configured, {len(report.failed)} failed)"
        )
        return report

    async def fetch_report_for(
        self, owner_id: str, counterpart_ids: Iterable[str]
    ) -> RelationshipFetchReport:
        """Settings ``owner_id`` holds for each counterpart, keyed by counterpart."""
        counterparts = [c for c in dict.fromkeys(counterpart_ids) if c != owner_id]
        return await self._fan_out([(owner_id, c) for c in counterparts], key_index=1)

    async def fetch_report_toward(
        self, viewer_id: str, owner_ids: Iterable[str]
    ) -> RelationshipFetchReport:
        """Settings each owner holds for ``viewer_id``, keyed by owner.

        This is the direction that decides what the viewer may retrieve.
        """
        owners = [o for o in dict.fromkeys(owner_ids) if o != viewer_id]
        return await self._fan_out([(o, viewer_id) for o in owners], key_index=0)

    async def fetch_settings_for(
        self, owner_id: str, counterpart_ids: Iterable[str]
    ) -> Dict[str, RelationshipPrivacySettings]:
        """
        Fetch the settings ``owner_id`` holds for each counterpart.

        Returns:
            Map of counterpart -> settings. Counterparts with no settings
            or a failed lookup are absent.
        """
        report = await self.fetch_report_for(owner_id, counterpart_ids)
        return report.settings

    async def fetch_settings_toward(
        self, viewer_id: str, owner_ids: Iterable[str]
    ) -> Dict[str, RelationshipPrivacySettings]:
        report = await self.fetch_report_toward(viewer_id, owner_ids)
        return report.settings

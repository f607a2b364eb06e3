"""In-memory usage event sink, for tests and local development."""

import logging
from typing import List, Optional

from circle_recall.models import UsageEvent

logger = logging.getLogger(__name__)


class InMemoryUsageSink:
    """In-memory implementation of the UsageSink protocol."""

    def __init__(self):
        self.events: List[UsageEvent] = []

    async def record(self, event: UsageEvent) -> None:
        self.events.append(event)

    def total_cost(self, user_id: Optional[str] = None) -> float:
        return sum(
            e.estimated_cost_usd for e in self.events if user_id is None or e.user_id == user_id
        )

    def clear(self):
        self.events.clear()

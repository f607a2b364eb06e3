import logging
from typing import Optional

from circle_recall.models import UsageEvent
from circle_recall.storage.protocols import UsageSink
from circle_recall.usage.pricing import embedding_cost, vector_query_cost, vector_write_cost

logger = logging.getLogger(__name__)


class UsageTracker:
    """
    Records usage and estimated cost of provider calls.

    Metering is a side channel: a failing sink is logged and never breaks
    the operation being metered. Calls without a user_id are not metered.
    """

    def __init__(self, sink: Optional[UsageSink] = None, vector_provider: str = "qdrant"):
        self.sink = sink
        self.vector_provider = vector_provider

    async def _log_usage_event(self, event: UsageEvent) -> None:
        if self.sink is None:
            return
        try:
            await self.sink.record(event)
            logger.debug(
                f"Logged usage event: {event.operation} x{event.quantity} "
                f"for user {event.user_id} ({event.endpoint})"
            )
        except Exception as e:
            logger.warning(f"Failed to record usage event {event.operation} ({event.endpoint}): {e}")

    async def track_embedding(
        self,
        user_id: Optional[str],
        tokens: int,
        endpoint: str,
        model: str = "text-embedding-3-small",
        provider: str = "openai",
    ) -> None:
        if not user_id:
            return
        cost = embedding_cost(tokens, model)
        await self._log_usage_event(
            UsageEvent(
                user_id=user_id,
                operation="embedding",
                provider=provider,
                model=model,
                quantity=tokens,
                endpoint=endpoint,
                estimated_cost_usd=cost,
            )
        )
        logger.info(f"Embedding: {tokens} tokens, ${cost:.6f} for user {user_id}")

    async def track_vector_query(self, user_id: Optional[str], count: int, endpoint: str) -> None:
        if not user_id:
            return
        await self._log_usage_event(
            UsageEvent(
                user_id=user_id,
                operation="vector_query",
                provider=self.vector_provider,
                quantity=count,
                endpoint=endpoint,
                estimated_cost_usd=vector_query_cost(count),
            )
        )

    async def track_vector_upsert(self, user_id: Optional[str], count: int, endpoint: str) -> None:
        if not user_id:
            return
        await self._log_usage_event(
            UsageEvent(
                user_id=user_id,
                operation="vector_upsert",
                provider=self.vector_provider,
                quantity=count,
                endpoint=endpoint,
                estimated_cost_usd=vector_write_cost(count),
            )
        )

    async def track_vector_delete(self, user_id: Optional[str], count: int, endpoint: str) -> None:
        if not user_id:
            return
        await self._log_usage_event(
            UsageEvent(
                user_id=user_id,
                operation="vector_delete",
                provider=self.vector_provider,
                quantity=count,
                endpoint=endpoint,
                estimated_cost_usd=vector_write_cost(count),
            )
        )

"""
Error taxonomy for circle-recall.

Validation problems are raised before any remote call is made. Remote
failures are wrapped once at the provider boundary, with the provider's own
exception chained as ``__cause__``, and are never retried below the
retrieval service.
"""

from typing import Optional


class CircleRecallError(Exception):
    """Base class for all circle-recall errors."""


class ConfigurationError(CircleRecallError):
    """Missing credentials or an index that does not match its declared shape."""


class ValidationError(CircleRecallError, ValueError):
    """Caller error: bad dimension, empty text, malformed filter or owner scope."""


class RemoteCallError(CircleRecallError):
    """A call to the embedding or vector provider failed or timed out."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class PartialBatchError(RemoteCallError):
    """A batch upsert stopped part way through.

    Records ``[0, committed)`` were written; the chunk at ``failed_chunk``
    and everything after it were not.
    """

    def __init__(
        self,
        message: str,
        committed: int,
        failed_chunk: int,
        chunk_size: int,
        total: int,
        retryable: Optional[bool] = None,
    ):
        super().__init__(message, retryable=True if retryable is None else retryable)
        self.committed = committed
        self.failed_chunk = failed_chunk
        self.chunk_size = chunk_size
        self.total = total

    @property
    def remaining(self) -> int:
        return self.total - self.committed

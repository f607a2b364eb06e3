import hashlib
import logging
import threading
from collections import OrderedDict
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 1000


def cache_key(text: str) -> str:
    """Digest of the exact text. No normalisation: only identical strings share a key."""
    return hashlib.blake2b(text.encode("utf-8"), digest_size=16).hexdigest()


class EmbeddingCache:
    """
    Bounded, process-local embedding cache.

    Eviction is by insertion order, not access recency: once the cache holds
    more than ``capacity`` entries, the oldest inserted entry is dropped.
    Safe to share between tasks and threads.
    """

    def __init__(self, capacity: int = DEFAULT_CACHE_SIZE):
        if capacity <= 0:
            raise ValueError("Cache capacity must be positive")
        self.capacity = capacity
        self._entries: "OrderedDict[str, Tuple[float, ...]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, text: str) -> Optional[List[float]]:
        key = cache_key(text)
        with self._lock:
            vector = self._entries.get(key)
            if vector is None:
                self.misses += 1
                return None
            self.hits += 1
            return list(vector)

    def put(self, text: str, vector: List[float]) -> None:
        key = cache_key(text)
        vector = tuple(vector)
        with self._lock:
            if key in self._entries:
                # Keep the original insertion position
                self._entries[key] = vector
                return
            self._entries[key] = vector
            if len(self._entries) > self.capacity:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
        logger.debug("Embedding cache cleared")

    def __contains__(self, text: str) -> bool:
        with self._lock:
            return cache_key(text) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

"""
    In-memory result cache (bounded LRU with optional TTL)
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from receipt_pipeline.config import CACHE_MAX_ENTRIES
from receipt_pipeline.receipt_schemas import ReceiptRecord


logger = logging.getLogger(__name__)

class ResultCache:
    """Image identity -> ReceiptRecord; entries are never mutated"""

    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES, ttl_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")

        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, ReceiptRecord]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[ReceiptRecord]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        stored_at, record = entry
        if self.ttl_seconds is not None and self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            logger.info(f"Cache entry {key} expired")
            return None

        self._entries.move_to_end(key)
        return record

    def put(self, key: str, record: ReceiptRecord) -> None:
        self._entries[key] = (self._clock(), record)
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.info(f"Cache full, evicted {evicted}")

    def clear(self) -> None:
        self._entries.clear()

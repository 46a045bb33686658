"""
Shared fixtures for the receipt pipeline tests.
"""

import threading
import time
from typing import Callable, Dict, List, Optional

import pytest

from receipt_pipeline.exceptions import ExtractorError
from receipt_pipeline.providers.provider_interfaces import ExtractionResult, OfflineStore, TextExtractor


SAMPLE_RECEIPT = """CHECKERS HYPER
Shop 12 Canal Walk
12/03/2024 14:32
MILK 2L  1 x 25.99
BREAD  15.50
Subtotal: 120.00
VAT 15.65
Total: 135.50
"""


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExtractor(TextExtractor):
    """Scripted extractor that records every call.

    `behaviour` is either an ExtractionResult, an exception instance to
    raise, or a callable taking the image bytes.
    """

    def __init__(self, name: str, priority: int, behaviour, delay: float = 0.0,
                 tracker: Optional["OverlapTracker"] = None):
        self.name = name
        self.priority = priority
        self.behaviour = behaviour
        self.delay = delay
        self.tracker = tracker
        self.calls: List[bytes] = []
        self.closed = False

    def extract(self, image_data: bytes) -> ExtractionResult:
        self.calls.append(image_data)
        if self.tracker:
            self.tracker.enter(self.name)
        try:
            if self.delay:
                time.sleep(self.delay)
            if isinstance(self.behaviour, Exception):
                raise self.behaviour
            if callable(self.behaviour):
                return self.behaviour(image_data)
            return self.behaviour
        finally:
            if self.tracker:
                self.tracker.exit()

    def close(self) -> None:
        self.closed = True


class OverlapTracker:
    """Counts concurrently running extractor calls."""

    def __init__(self):
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.order: List[str] = []

    def enter(self, name: str) -> None:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.order.append(name)

    def exit(self) -> None:
        with self._lock:
            self.active -= 1


class MemoryStore(OfflineStore):
    """In-memory OfflineStore."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    def put(self, key: str, data: bytes) -> bool:
        self.blobs[key] = data
        return True

    def get(self, key: str) -> Optional[bytes]:
        return self.blobs.get(key)

    def keys(self, prefix: str = '') -> List[str]:
        return sorted(key for key in self.blobs if key.startswith(prefix))

    def delete_prefix(self, prefix: str) -> int:
        doomed = self.keys(prefix)
        for key in doomed:
            del self.blobs[key]
        return len(doomed)


def failing(name: str, message: str = "service unavailable") -> ExtractorError:
    return ExtractorError(name, message)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_image(tmp_path) -> Callable[..., str]:
    """Write a fake image file; distinct sizes give distinct cache keys."""
    counter = {'n': 0}

    def _make(size: int = 1024, name: Optional[str] = None) -> str:
        counter['n'] += 1
        path = tmp_path / (name or f"receipt_{counter['n']}.jpg")
        path.write_bytes((b'\xff\xd8' + b'x' * size)[:size])
        return str(path)

    return _make

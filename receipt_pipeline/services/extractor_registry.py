"""
    Extractor Registry module

    Holds the configured extractors in priority order and owns their
    availability state machine:

        Available --(failed call)--> CoolingDown(until)
        CoolingDown --(clock >= until, checked on read)--> Available
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Union

from receipt_pipeline.config import COOLDOWN_SECONDS
from receipt_pipeline.providers.provider_interfaces import TextExtractor


logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class Available:
    def describe(self, now: float) -> str:
        return "available"


@dataclass(frozen=True)
class CoolingDown:
    until: float

    def describe(self, now: float) -> str:
        return f"cooling_down ({max(0.0, self.until - now):.0f}s left)"


ExtractorState = Union[Available, CoolingDown]

AVAILABLE = Available()


class ExtractorRegistry:
    """Priority-ordered extractors with per-extractor cool-down"""

    def __init__(self, extractors: Iterable[TextExtractor], cooldown_seconds: float = COOLDOWN_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        # sorted() is stable: equal priorities keep registration order
        self._extractors = sorted(extractors, key=lambda extractor: extractor.priority)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._states: Dict[str, ExtractorState] = {}

        for extractor in self._extractors:
            if extractor.name in self._states:
                raise ValueError(f"Duplicate extractor name '{extractor.name}'")
            self._states[extractor.name] = AVAILABLE

        logger.info(f"Extractor registry: {', '.join(e.name for e in self._extractors) or 'empty'}")

    def __len__(self) -> int:
        return len(self._extractors)

    def list(self) -> List[TextExtractor]:
        """All registered extractors, ascending priority"""
        return list(self._extractors)

    def state(self, extractor: TextExtractor) -> ExtractorState:
        """Current state, expiring an elapsed cool-down on read"""
        current = self._states[extractor.name]

        if isinstance(current, CoolingDown) and self._clock() >= current.until:
            logger.info(f"Extractor {extractor.name} cool-down elapsed, available again")
            current = AVAILABLE
            self._states[extractor.name] = current

        return current

    def is_available(self, extractor: TextExtractor) -> bool:
        return isinstance(self.state(extractor), Available)

    def available(self) -> List[TextExtractor]:
        """list() filtered to available extractors"""
        return [extractor for extractor in self._extractors if self.is_available(extractor)]

    def mark_failed(self, extractor: TextExtractor) -> CoolingDown:
        """Exclude the extractor for the cool-down window"""
        if extractor.name not in self._states:
            raise KeyError(f"Extractor '{extractor.name}' is not registered")

        state = CoolingDown(until=self._clock() + self.cooldown_seconds)
        self._states[extractor.name] = state

        logger.warning(f"Extractor {extractor.name} cooling down for {self.cooldown_seconds:.0f}s")
        return state

    def snapshot(self) -> Dict[str, str]:
        """Name -> human-readable state, for stats"""
        now = self._clock()
        return {extractor.name: self.state(extractor).describe(now) for extractor in self._extractors}

    def close(self) -> None:
        for extractor in self._extractors:
            try:
                extractor.close()
            except Exception as e:
                logger.warning(f"Extractor {extractor.name} cleanup error: {e}")

"""
    Provider Interfaces for text extractors and offline storage
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class ExtractionResult:
    """Raw output of one extractor, never persisted"""
    text: str
    confidence: float

    def __post_init__(self):
        object.__setattr__(self, 'confidence', max(0.0, min(100.0, float(self.confidence))))


class TextExtractor(ABC):
    """Base text extractor interface

    Implementations receive raw image bytes and return the normalized
    ExtractionResult, raising ExtractorError on any failure. Calls are
    blocking; the pipeline runs them off the event loop.
    """

    name: str = ''
    priority: int = 100

    @abstractmethod
    def extract(self, image_data: bytes) -> ExtractionResult:
        """Extract raw text plus a 0..100 confidence score"""
        pass

    def close(self) -> None:
        """Release clients/workers held by the extractor"""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, priority={self.priority})"


class OfflineStore(ABC):
    """Interface for durable key -> blob persistence"""

    @abstractmethod
    def put(self, key: str, data: bytes) -> bool:
        """Store blob under key"""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Retrieve blob by key"""
        pass

    @abstractmethod
    def keys(self, prefix: str = '') -> List[str]:
        """Enumerate stored keys starting with prefix"""
        pass

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with prefix, return deleted count"""
        pass

"""
    Receipt Pipeline Service module
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from receipt_pipeline.config import (
    EXTRACTOR_TIMEOUT_SECONDS,
    HIGH_CONFIDENCE_THRESHOLD,
    QUEUE_MAX_SIZE,
    SCAN_TIMEOUT_SECONDS,
)
from receipt_pipeline.exceptions import AllExtractorsFailedError, ExtractorError
from receipt_pipeline.providers.image_preprocessor.pillow_preprocessor import ImagePreprocessorPillow
from receipt_pipeline.providers.provider_interfaces import ExtractionResult, TextExtractor
from receipt_pipeline.receipt_schemas import ReceiptRecord
from receipt_pipeline.services.extractor_registry import ExtractorRegistry
from receipt_pipeline.services.processing_queue import ProcessingQueue
from receipt_pipeline.services.quality_service import QualityAssessor
from receipt_pipeline.services.receipt_parser import ReceiptParser
from receipt_pipeline.services.result_cache import ResultCache
from receipt_pipeline.services.storage_service import StorageService
from receipt_pipeline.utils.helpers import ImageRef, generate_cache_key, read_image_bytes, validate_image


logger = logging.getLogger(__name__)


@dataclass
class ScanAttempt:
    """Progress of one scan, readable after a deadline cancels it"""
    image: ImageRef
    start_time: float
    failures: Dict[str, str] = field(default_factory=dict)
    cache_key: Optional[str] = None
    image_quality: int = 0
    best_result: Optional[ReceiptRecord] = None
    current_extractor: Optional[TextExtractor] = None


class ReceiptPipelineService:
    """Cache check, single-flight queue, ranked extractor fallback, parse, persist"""

    def __init__(self, registry: ExtractorRegistry, storage: StorageService,
                 parser: Optional[ReceiptParser] = None,
                 cache: Optional[ResultCache] = None,
                 quality: Optional[QualityAssessor] = None,
                 preprocessor: Optional[ImagePreprocessorPillow] = None,
                 extractor_timeout: float = EXTRACTOR_TIMEOUT_SECONDS,
                 scan_timeout: float = SCAN_TIMEOUT_SECONDS,
                 high_confidence_threshold: float = HIGH_CONFIDENCE_THRESHOLD,
                 queue_max_size: int = QUEUE_MAX_SIZE,
                 clock: Callable[[], float] = time.monotonic):
        self.registry = registry
        self.storage = storage
        self.parser = parser or ReceiptParser()
        self.cache = cache or ResultCache()
        self.quality = quality or QualityAssessor()
        self.preprocessor = preprocessor
        self.extractor_timeout = extractor_timeout
        self.scan_timeout = scan_timeout
        self.high_confidence_threshold = high_confidence_threshold
        self._clock = clock

        self.queue = ProcessingQueue(self._process_receipt, max_size=queue_max_size)
        self.is_initialized = False

        logger.info("ReceiptPipelineService initialized with "
                    f"{len(self.registry)} extractors")

    # ---------------- Lifecycle ----------------

    async def start(self) -> None:
        if self.is_initialized:
            return
        self.queue.start()
        self.is_initialized = True
        logger.info(f"Receipt OCR service started with {len(self.registry.available())} available extractors")

    async def close(self) -> None:
        """Stop the worker and release extractor resources"""
        await self.queue.stop()
        await asyncio.to_thread(self.registry.close)
        self.is_initialized = False
        logger.info("Receipt OCR service cleaned up")

    async def __aenter__(self) -> 'ReceiptPipelineService':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ---------------- Public operations ----------------

    async def scan(self, image: ImageRef) -> ReceiptRecord:
        """Scan one receipt image

        Raises:
            InvalidImageError: the image is missing or unreadable
            AllExtractorsFailedError: no extractor produced a usable result
            QueueFullError: too many scans are already waiting
        """
        info = validate_image(image)

        cache_key = generate_cache_key(info)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info("Returning cached OCR result")
            return cached

        await self.start()
        return await self.queue.enqueue(image)

    async def get_offline_results(self) -> List[ReceiptRecord]:
        return await asyncio.to_thread(self.storage.get_offline_results)

    async def clear_cache(self) -> int:
        """Clear the in-memory cache and every persisted result"""
        self.cache.clear()
        return await asyncio.to_thread(self.storage.clear_offline_results)

    def get_stats(self) -> Dict[str, Any]:
        return {
            'initialized': self.is_initialized,
            'available_extractors': len(self.registry.available()),
            'total_extractors': len(self.registry),
            'extractor_states': self.registry.snapshot(),
            'cache_size': len(self.cache),
            'queue_length': len(self.queue),
        }

    # ---------------- Worker side ----------------

    async def _process_receipt(self, image: ImageRef) -> ReceiptRecord:
        """Runs on the queue worker only"""
        attempt = ScanAttempt(image=image, start_time=self._clock())

        try:
            return await asyncio.wait_for(self._process_with_fallback(attempt), timeout=self.scan_timeout)
        except asyncio.TimeoutError:
            logger.error(f"Scan of {image} exceeded {self.scan_timeout:g}s deadline")

        extractor = attempt.current_extractor
        if extractor is not None:
            attempt.failures[extractor.name] = "deadline exceeded"
            self.registry.mark_failed(extractor)

        if attempt.best_result is None:
            raise AllExtractorsFailedError(attempt.failures,
                                           message=f"Scan deadline of {self.scan_timeout:g}s exceeded")

        logger.warning(f"Deadline reached, keeping best result from {attempt.best_result.extractor_name}")
        return await self._finish(attempt)

    async def _process_with_fallback(self, attempt: ScanAttempt) -> ReceiptRecord:
        info = validate_image(attempt.image)

        # An identical image may have been scanned while this one waited
        attempt.cache_key = generate_cache_key(info)
        cached = self.cache.get(attempt.cache_key)
        if cached is not None:
            logger.info("Returning OCR result cached while queued")
            return cached

        image_data = await asyncio.to_thread(read_image_bytes, attempt.image)
        if self.preprocessor is not None:
            image_data = await asyncio.to_thread(self.preprocessor.enhance_image, image_data)
            attempt.image_quality = self.quality.assess_data(image_data)
        else:
            attempt.image_quality = self.quality.assess(attempt.image)

        extractors = self.registry.available()
        if not extractors:
            raise AllExtractorsFailedError(message="No OCR providers available")

        for extractor in extractors:
            logger.info(f"Trying OCR provider: {extractor.name}")

            attempt.current_extractor = extractor
            extraction = await self._call_extractor(extractor, image_data, attempt.failures)
            attempt.current_extractor = None
            if extraction is None:
                continue

            parsed = self.parser.parse(extraction.text, extraction.confidence, extractor.name)

            if attempt.best_result is None or parsed.confidence > attempt.best_result.confidence:
                attempt.best_result = parsed

            if parsed.confidence > self.high_confidence_threshold:
                logger.info(f"High-confidence result from {extractor.name}, skipping remaining providers")
                break

        if attempt.best_result is None:
            raise AllExtractorsFailedError(attempt.failures)

        return await self._finish(attempt)

    async def _finish(self, attempt: ScanAttempt) -> ReceiptRecord:
        """Stamp timing and quality on the best result, then cache and persist it"""
        record = attempt.best_result.model_copy(update={
            'image_quality_score': attempt.image_quality,
            'processing_time_ms': int((self._clock() - attempt.start_time) * 1000),
        })

        self.cache.put(attempt.cache_key, record)
        await asyncio.to_thread(self.storage.store_offline_result, attempt.cache_key, record)

        logger.info(f"Scan complete: {record.get_summary()}")
        return record

    async def _call_extractor(self, extractor: TextExtractor, image_data: bytes,
                              failures: Dict[str, str]) -> Optional[ExtractionResult]:
        """One bounded extractor call; failures cool the extractor down"""
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(extractor.extract, image_data),
                timeout=self.extractor_timeout
            )

        except asyncio.TimeoutError:
            reason = f"timed out after {self.extractor_timeout:g}s"
        except ExtractorError as e:
            reason = e.message
        except Exception as e:
            logger.exception(f"Unexpected error from provider {extractor.name}")
            reason = f"unexpected error: {e}"
        else:
            if result.text.strip():
                return result

            # Blank output is not a failed call; no cool-down
            failures[extractor.name] = "no text detected"
            logger.warning(f"Provider {extractor.name} returned no text")
            return None

        failures[extractor.name] = reason
        logger.warning(f"Provider {extractor.name} failed: {reason}")
        self.registry.mark_failed(extractor)
        return None

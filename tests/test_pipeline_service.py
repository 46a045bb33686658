"""
Unit Tests for the Receipt Pipeline Service (orchestration)

Covers cache idempotence, ranked fallback with cool-down, early exit on
high confidence, single-flight serialization and deadlines.

Run with: pytest tests/test_pipeline_service.py -v
"""

import asyncio
import os
from unittest.mock import MagicMock

import pytest

from receipt_pipeline.exceptions import AllExtractorsFailedError, InvalidImageError
from receipt_pipeline.providers.provider_interfaces import ExtractionResult
from receipt_pipeline.services.extractor_registry import ExtractorRegistry
from receipt_pipeline.services.pipeline_service import ReceiptPipelineService
from receipt_pipeline.services.result_cache import ResultCache
from receipt_pipeline.services.storage_service import StorageService

from conftest import SAMPLE_RECEIPT, FakeExtractor, OverlapTracker, failing


HIGH = ExtractionResult(text=SAMPLE_RECEIPT, confidence=90)
LOW = ExtractionResult(text=SAMPLE_RECEIPT, confidence=60)


def build_service(extractors, memory_store, clock=None, **kwargs):
    registry_kwargs = {'clock': clock} if clock else {}
    registry = ExtractorRegistry(extractors, cooldown_seconds=300, **registry_kwargs)
    return ReceiptPipelineService(
        registry=registry,
        storage=StorageService(memory_store),
        cache=ResultCache(),
        **kwargs
    )


class TestScanResult:
    """Returned record."""

    @pytest.mark.asyncio
    async def test_scan_returns_parsed_record(self, make_image, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH)
        image = make_image(size=120_000)

        async with build_service([extractor], memory_store) as service:
            record = await service.scan(image)

        assert record.merchant_name == 'CHECKERS'
        assert record.amount == 135.50
        assert record.extractor_name == 'aws_textract'
        assert record.confidence == 90
        assert record.image_quality_score == 60
        assert record.processing_time_ms >= 0
        assert len(record.items) <= 20

    @pytest.mark.asyncio
    async def test_extractor_receives_image_bytes(self, make_image, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH)
        image = make_image(size=64)

        async with build_service([extractor], memory_store) as service:
            await service.scan(image)

        with open(image, 'rb') as f:
            assert extractor.calls == [f.read()]

    @pytest.mark.asyncio
    async def test_preprocessed_bytes_are_extracted_and_scored(self, make_image, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH)
        preprocessor = MagicMock()
        preprocessor.enhance_image.return_value = b'\xff\xd8' + b'p' * 250_000

        async with build_service([extractor], memory_store, preprocessor=preprocessor) as service:
            record = await service.scan(make_image(size=1024))

        assert extractor.calls == [preprocessor.enhance_image.return_value]
        assert record.image_quality_score == 80

    @pytest.mark.asyncio
    async def test_record_is_persisted_offline(self, make_image, memory_store):
        image = make_image()

        async with build_service([FakeExtractor('aws_textract', 1, HIGH)], memory_store) as service:
            record = await service.scan(image)
            offline = await service.get_offline_results()

        assert len(memory_store.blobs) == 1
        assert [r.to_storage_dict() for r in offline] == [record.to_storage_dict()]

    @pytest.mark.asyncio
    async def test_store_failure_does_not_fail_scan(self, make_image, memory_store):
        memory_store.put = MagicMock(side_effect=OSError("disk full"))

        async with build_service([FakeExtractor('aws_textract', 1, HIGH)], memory_store) as service:
            record = await service.scan(make_image())

        assert record.merchant_name == 'CHECKERS'


class TestCache:
    """Idempotence by size + modification time."""

    @pytest.mark.asyncio
    async def test_second_scan_hits_cache(self, make_image, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH)
        image = make_image()

        async with build_service([extractor], memory_store) as service:
            first = await service.scan(image)
            second = await service.scan(image)

        assert len(extractor.calls) == 1
        assert second is first

    @pytest.mark.asyncio
    async def test_identical_identity_scanned_concurrently_runs_once(self, make_image, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH, delay=0.02)
        image = make_image()

        async with build_service([extractor], memory_store) as service:
            first, second = await asyncio.gather(service.scan(image), service.scan(image))

        assert len(extractor.calls) == 1
        assert second is first

    @pytest.mark.asyncio
    async def test_modified_file_is_rescanned(self, make_image, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH)
        image = make_image()

        async with build_service([extractor], memory_store) as service:
            await service.scan(image)
            stat = os.stat(image)
            os.utime(image, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
            await service.scan(image)

        assert len(extractor.calls) == 2

    @pytest.mark.asyncio
    async def test_clear_cache_drops_memory_and_offline(self, make_image, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH)
        image = make_image()

        async with build_service([extractor], memory_store) as service:
            await service.scan(image)
            deleted = await service.clear_cache()
            await service.scan(image)

        assert deleted == 1
        assert len(extractor.calls) == 2


class TestFallback:
    """Ranked fallback and cool-down."""

    @pytest.mark.asyncio
    async def test_failed_primary_falls_back_and_cools_down(self, make_image, memory_store, clock):
        primary = FakeExtractor('aws_textract', 1, failing('aws_textract', 'HTTP 503'))
        secondary = FakeExtractor('google_vision', 2, HIGH)

        async with build_service([primary, secondary], memory_store, clock=clock) as service:
            record = await service.scan(make_image(size=100))
            assert service.registry.is_available(primary) is False

            await service.scan(make_image(size=200))

        assert record.extractor_name == 'google_vision'
        assert len(primary.calls) == 1
        assert len(secondary.calls) == 2

    @pytest.mark.asyncio
    async def test_primary_retried_after_cool_down(self, make_image, memory_store, clock):
        primary = FakeExtractor('aws_textract', 1, failing('aws_textract'))
        secondary = FakeExtractor('google_vision', 2, HIGH)

        async with build_service([primary, secondary], memory_store, clock=clock) as service:
            await service.scan(make_image(size=100))
            clock.advance(300)
            await service.scan(make_image(size=200))

        assert len(primary.calls) == 2

    @pytest.mark.asyncio
    async def test_unexpected_exception_treated_as_failure(self, make_image, memory_store):
        primary = FakeExtractor('aws_textract', 1, RuntimeError("adapter bug"))
        secondary = FakeExtractor('tesseract', 3, LOW)

        async with build_service([primary, secondary], memory_store) as service:
            record = await service.scan(make_image())

        assert record.extractor_name == 'tesseract'

    @pytest.mark.asyncio
    async def test_blank_text_moves_on_without_cool_down(self, make_image, memory_store):
        blank = FakeExtractor('aws_textract', 1, ExtractionResult(text='   ', confidence=95))
        secondary = FakeExtractor('google_vision', 2, HIGH)

        async with build_service([blank, secondary], memory_store) as service:
            record = await service.scan(make_image())
            assert service.registry.is_available(blank) is True

        assert record.extractor_name == 'google_vision'


class TestSelection:
    """Confidence-based result selection."""

    @pytest.mark.asyncio
    async def test_early_exit_above_threshold(self, make_image, memory_store):
        first = FakeExtractor('aws_textract', 1, HIGH)
        second = FakeExtractor('google_vision', 2, HIGH)

        async with build_service([first, second], memory_store) as service:
            await service.scan(make_image())

        assert len(second.calls) == 0

    @pytest.mark.asyncio
    async def test_threshold_is_strictly_greater(self, make_image, memory_store):
        first = FakeExtractor('aws_textract', 1, ExtractionResult(text=SAMPLE_RECEIPT, confidence=85))
        second = FakeExtractor('google_vision', 2, LOW)

        async with build_service([first, second], memory_store) as service:
            record = await service.scan(make_image())

        assert len(second.calls) == 1
        assert record.extractor_name == 'aws_textract'

    @pytest.mark.asyncio
    async def test_highest_confidence_wins_when_none_reach_threshold(self, make_image, memory_store):
        first = FakeExtractor('aws_textract', 1, ExtractionResult(text=SAMPLE_RECEIPT, confidence=40))
        second = FakeExtractor('google_vision', 2, ExtractionResult(text=SAMPLE_RECEIPT, confidence=75))
        third = FakeExtractor('tesseract', 3, LOW)

        async with build_service([first, second, third], memory_store) as service:
            record = await service.scan(make_image())

        assert record.extractor_name == 'google_vision'
        assert record.confidence == 75
        assert len(third.calls) == 1


class TestFailures:
    """Surfaced errors."""

    @pytest.mark.asyncio
    async def test_all_extractors_failed(self, make_image, memory_store):
        extractors = [
            FakeExtractor('aws_textract', 1, failing('aws_textract', 'HTTP 500')),
            FakeExtractor('tesseract', 3, failing('tesseract', 'No text detected in image')),
        ]

        async with build_service(extractors, memory_store) as service:
            with pytest.raises(AllExtractorsFailedError) as exc_info:
                await service.scan(make_image())

        assert set(exc_info.value.failures) == {'aws_textract', 'tesseract'}
        assert memory_store.blobs == {}

    @pytest.mark.asyncio
    async def test_no_available_extractors(self, make_image, memory_store):
        extractor = FakeExtractor('tesseract', 3, HIGH)

        async with build_service([extractor], memory_store) as service:
            service.registry.mark_failed(extractor)
            with pytest.raises(AllExtractorsFailedError):
                await service.scan(make_image())

        assert extractor.calls == []

    @pytest.mark.asyncio
    async def test_missing_image_fails_fast(self, tmp_path, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH)

        async with build_service([extractor], memory_store) as service:
            with pytest.raises(InvalidImageError):
                await service.scan(tmp_path / 'nope.jpg')
            assert len(service.queue) == 0

        assert extractor.calls == []

    @pytest.mark.asyncio
    async def test_empty_image_rejected_before_extractors(self, make_image, memory_store):
        extractor = FakeExtractor('aws_textract', 1, HIGH)

        async with build_service([extractor], memory_store) as service:
            with pytest.raises(InvalidImageError):
                await service.scan(make_image(size=0))

        assert extractor.calls == []


class TestTimeouts:
    """Per-extractor timeout and per-scan deadline."""

    @pytest.mark.asyncio
    async def test_slow_extractor_times_out_and_cools_down(self, make_image, memory_store):
        slow = FakeExtractor('aws_textract', 1, HIGH, delay=0.3)
        fallback = FakeExtractor('tesseract', 3, LOW)

        async with build_service([slow, fallback], memory_store, extractor_timeout=0.05) as service:
            record = await service.scan(make_image())
            assert service.registry.is_available(slow) is False

        assert record.extractor_name == 'tesseract'

    @pytest.mark.asyncio
    async def test_scan_deadline(self, make_image, memory_store):
        slow = FakeExtractor('aws_textract', 1, HIGH, delay=0.3)

        async with build_service([slow], memory_store, extractor_timeout=5, scan_timeout=0.05) as service:
            with pytest.raises(AllExtractorsFailedError, match="deadline") as excinfo:
                await service.scan(make_image())

            assert excinfo.value.failures == {'aws_textract': 'deadline exceeded'}
            assert service.registry.is_available(slow) is False

    @pytest.mark.asyncio
    async def test_scan_deadline_keeps_best_result_so_far(self, make_image, memory_store):
        fast = FakeExtractor('aws_textract', 1, LOW)
        slow = FakeExtractor('google_vision', 2, HIGH, delay=0.5)
        image = make_image()

        async with build_service([fast, slow], memory_store, extractor_timeout=5, scan_timeout=0.1) as service:
            record = await service.scan(image)
            again = await service.scan(image)

            assert service.registry.is_available(slow) is False

        assert record.extractor_name == 'aws_textract'
        assert record.confidence == 60
        assert again.to_storage_dict() == record.to_storage_dict()
        assert len(fast.calls) == 1
        assert len(memory_store.blobs) == 1


class TestConcurrency:
    """Single-flight processing."""

    @pytest.mark.asyncio
    async def test_five_concurrent_scans_never_overlap(self, make_image, memory_store):
        tracker = OverlapTracker()
        extractor = FakeExtractor('aws_textract', 1, HIGH, delay=0.02, tracker=tracker)
        images = [make_image(size=1000 + i) for i in range(5)]

        async with build_service([extractor], memory_store) as service:
            records = await asyncio.gather(*(service.scan(image) for image in images))

        assert len(records) == 5
        assert len(extractor.calls) == 5
        assert tracker.max_active == 1


class TestStats:
    """Introspection."""

    @pytest.mark.asyncio
    async def test_stats(self, make_image, memory_store):
        extractors = [
            FakeExtractor('aws_textract', 1, failing('aws_textract')),
            FakeExtractor('tesseract', 3, LOW),
        ]

        async with build_service(extractors, memory_store) as service:
            await service.scan(make_image())
            stats = service.get_stats()

        assert stats['initialized'] is True
        assert stats['total_extractors'] == 2
        assert stats['available_extractors'] == 1
        assert stats['cache_size'] == 1
        assert stats['queue_length'] == 0

    @pytest.mark.asyncio
    async def test_close_releases_extractors(self, memory_store):
        extractor = FakeExtractor('tesseract', 3, LOW)
        service = build_service([extractor], memory_store)
        await service.start()

        await service.close()

        assert extractor.closed is True
        assert service.get_stats()['initialized'] is False

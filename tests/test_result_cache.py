"""
Unit Tests for the bounded result cache

Run with: pytest tests/test_result_cache.py -v
"""

import pytest

from receipt_pipeline.receipt_schemas import ReceiptRecord
from receipt_pipeline.services.result_cache import ResultCache


def make_record(name: str) -> ReceiptRecord:
    return ReceiptRecord(merchant_name=name, confidence=80, extractor_name='tesseract')


class TestResultCache:
    """LRU eviction and TTL expiry."""

    def test_get_returns_same_record(self, clock):
        cache = ResultCache(clock=clock)
        record = make_record('SPAR')

        cache.put('ocr_1_1', record)

        assert cache.get('ocr_1_1') is record
        assert 'ocr_1_1' in cache
        assert cache.get('missing') is None

    def test_oldest_entry_evicted_when_full(self, clock):
        cache = ResultCache(max_entries=2, clock=clock)
        cache.put('a', make_record('A'))
        cache.put('b', make_record('B'))

        cache.put('c', make_record('C'))

        assert cache.get('a') is None
        assert len(cache) == 2

    def test_recent_read_protects_from_eviction(self, clock):
        cache = ResultCache(max_entries=2, clock=clock)
        cache.put('a', make_record('A'))
        cache.put('b', make_record('B'))
        cache.get('a')

        cache.put('c', make_record('C'))

        assert cache.get('a') is not None
        assert cache.get('b') is None

    def test_ttl_expiry(self, clock):
        cache = ResultCache(ttl_seconds=60, clock=clock)
        cache.put('a', make_record('A'))

        clock.advance(59)
        assert cache.get('a') is not None

        clock.advance(1)
        assert cache.get('a') is None
        assert len(cache) == 0

    def test_no_ttl_never_expires(self, clock):
        cache = ResultCache(clock=clock)
        cache.put('a', make_record('A'))

        clock.advance(10 ** 9)

        assert cache.get('a') is not None

    def test_clear(self, clock):
        cache = ResultCache(clock=clock)
        cache.put('a', make_record('A'))

        cache.clear()

        assert len(cache) == 0

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            ResultCache(max_entries=0)

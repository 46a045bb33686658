"""
    Storage Service module
"""

import json
import logging
from typing import List, Optional

from pydantic import ValidationError

from receipt_pipeline.config import CACHE_KEY_PREFIX
from receipt_pipeline.providers.provider_interfaces import OfflineStore
from receipt_pipeline.receipt_schemas import ReceiptRecord


logger = logging.getLogger(__name__)

class StorageService:
    """Business logic layer over the durable offline store"""

    def __init__(self, offline_store: OfflineStore, key_prefix: str = CACHE_KEY_PREFIX):
        self.offline_store = offline_store
        self.key_prefix = key_prefix

    def store_offline_result(self, key: str, record: ReceiptRecord) -> bool:
        """Persist a record for offline access; failures are logged, not raised"""
        try:
            payload = json.dumps(record.to_storage_dict(), ensure_ascii=False).encode('utf-8')
            stored = self.offline_store.put(key, payload)

        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Failed to store OCR result offline: {e}")
            return False

        if not stored:
            logger.warning(f"Offline store rejected record {key}")
        return stored

    def get_offline_result(self, key: str) -> Optional[ReceiptRecord]:
        data = self.offline_store.get(key)
        if data is None:
            return None
        return self._decode(key, data)

    def get_offline_results(self) -> List[ReceiptRecord]:
        """All persisted records, most recent receipt date first"""
        results = []

        for key in self.offline_store.keys(self.key_prefix):
            record = self.get_offline_result(key)
            if record is not None:
                results.append(record)

        return sorted(results, key=lambda record: record.date, reverse=True)

    def clear_offline_results(self) -> int:
        """Bulk delete every persisted record under the key prefix"""
        deleted = self.offline_store.delete_prefix(self.key_prefix)
        logger.info(f"Cleared {deleted} offline OCR results")
        return deleted

    @staticmethod
    def _decode(key: str, data: bytes) -> Optional[ReceiptRecord]:
        """Skip unreadable entries instead of failing the whole listing"""
        try:
            return ReceiptRecord.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"Skipping unreadable offline record {key}: {e.error_count()} errors")
            return None

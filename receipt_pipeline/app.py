# Copyright (c) 2025 Anton Sheinin - All rights reserved.
# Unauthorized use is prohibited. See LICENSE file for details.

"""
    Receipt Pipeline - Composition Root
"""

import logging
from typing import Optional

from receipt_pipeline.config import PipelineConfig, load_config
from receipt_pipeline.providers.provider_factory import ProviderFactory
from receipt_pipeline.services.extractor_registry import ExtractorRegistry
from receipt_pipeline.services.pipeline_service import ReceiptPipelineService
from receipt_pipeline.services.result_cache import ResultCache
from receipt_pipeline.services.storage_service import StorageService


logger = logging.getLogger(__name__)


def create_pipeline(config: Optional[PipelineConfig] = None) -> ReceiptPipelineService:
    """Wire every service once from the deployment configuration"""
    config = config or load_config()

    registry = ExtractorRegistry(
        ProviderFactory.create_configured_extractors(config),
        cooldown_seconds=config.cooldown_seconds
    )
    storage = StorageService(ProviderFactory.create_offline_store(config))
    cache = ResultCache(max_entries=config.cache_max_entries, ttl_seconds=config.cache_ttl_seconds)

    logger.info(f"Creating receipt pipeline (offline store: {config.offline_store}, "
                f"preprocess: {config.preprocess_mode})")

    return ReceiptPipelineService(
        registry=registry,
        storage=storage,
        cache=cache,
        preprocessor=ProviderFactory.create_image_preprocessor(config),
        extractor_timeout=config.extractor_timeout,
        scan_timeout=config.scan_timeout,
        high_confidence_threshold=config.high_confidence_threshold,
        queue_max_size=config.queue_max_size
    )

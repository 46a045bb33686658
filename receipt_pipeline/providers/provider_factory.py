"""
    Provider Factory for text extractors and offline stores
"""

import logging
from enum import Enum
from typing import Dict, List, Type

from receipt_pipeline.config import EXTRACTOR_PRIORITIES, PipelineConfig
from receipt_pipeline.providers.image_preprocessor.pillow_preprocessor import (
    EnhancementConfig,
    ImagePreprocessorPillow,
    ProcessingMode,
)
from receipt_pipeline.providers.ocr.aws_textract_provider import TextractProvider
from receipt_pipeline.providers.ocr.azure_vision_provider import AzureVisionProvider
from receipt_pipeline.providers.ocr.google_vision_provider import GoogleVisionProvider
from receipt_pipeline.providers.ocr.tesseract_provider import TesseractProvider
from receipt_pipeline.providers.provider_interfaces import OfflineStore, TextExtractor
from receipt_pipeline.providers.storage.local_file_store import LocalFileStore
from receipt_pipeline.providers.storage.s3_storage_provider import S3StorageProvider


logger = logging.getLogger(__name__)

class ExtractorKind(Enum):
    """Every supported extraction back-end"""
    AWS_TEXTRACT = "aws_textract"
    GOOGLE_VISION = "google_vision"
    TESSERACT = "tesseract"
    AZURE_VISION = "azure_vision"


class ProviderFactory:
    """Unified factory for creating all providers"""

    _extractors: Dict[ExtractorKind, Type[TextExtractor]] = {
        ExtractorKind.AWS_TEXTRACT: TextractProvider,
        ExtractorKind.GOOGLE_VISION: GoogleVisionProvider,
        ExtractorKind.TESSERACT: TesseractProvider,
        ExtractorKind.AZURE_VISION: AzureVisionProvider,
    }

    _offline_stores: Dict[str, Type[OfflineStore]] = {
        'local': LocalFileStore,
        's3': S3StorageProvider,
    }

    @classmethod
    def is_configured(cls, kind: ExtractorKind, config: PipelineConfig) -> bool:
        """Tesseract needs nothing; remote extractors need their credentials"""
        if kind == ExtractorKind.AWS_TEXTRACT:
            return config.textract_enabled
        if kind == ExtractorKind.GOOGLE_VISION:
            return config.google_vision_enabled
        if kind == ExtractorKind.AZURE_VISION:
            return config.azure_vision_enabled
        return True

    @classmethod
    def create_extractor(cls, kind: ExtractorKind, config: PipelineConfig) -> TextExtractor:
        if kind not in cls._extractors:
            available = ', '.join(k.value for k in cls._extractors)
            raise ValueError(f"Unknown extractor '{kind}'. Available: {available}")

        priority = EXTRACTOR_PRIORITIES[kind.value]

        if kind == ExtractorKind.AWS_TEXTRACT:
            return TextractProvider(
                endpoint=config.textract_endpoint,
                api_key=config.textract_api_key,
                timeout=config.extractor_timeout,
                priority=priority
            )
        if kind == ExtractorKind.GOOGLE_VISION:
            return GoogleVisionProvider(
                api_key=config.google_vision_api_key,
                credentials_json=config.google_credentials_json,
                timeout=config.extractor_timeout,
                priority=priority
            )
        if kind == ExtractorKind.AZURE_VISION:
            return AzureVisionProvider(
                api_key=config.azure_vision_key,
                endpoint=config.azure_vision_endpoint,
                timeout=config.extractor_timeout,
                priority=priority
            )
        return TesseractProvider(
            tesseract_cmd=config.tesseract_cmd,
            lang=config.tesseract_lang,
            timeout=config.extractor_timeout,
            priority=priority
        )

    @classmethod
    def create_configured_extractors(cls, config: PipelineConfig) -> List[TextExtractor]:
        """Baseline extractor plus every remote extractor whose configuration is present"""
        extractors = []
        for kind in ExtractorKind:
            if not cls.is_configured(kind, config):
                logger.info(f"Extractor {kind.value} not configured, skipping")
                continue

            extractors.append(cls.create_extractor(kind, config))
            logger.info(f"Extractor {kind.value} registered")

        return extractors

    @classmethod
    def create_offline_store(cls, config: PipelineConfig) -> OfflineStore:
        provider_name = config.offline_store
        if provider_name not in cls._offline_stores:
            available = ', '.join(cls._offline_stores.keys())
            raise ValueError(f"Unknown offline store '{provider_name}'. Available: {available}")

        if provider_name == 's3':
            return S3StorageProvider(bucket_name=config.s3_bucket)
        return LocalFileStore(directory=config.offline_dir)

    @classmethod
    def create_image_preprocessor(cls, config: PipelineConfig):
        """None when preprocessing is disabled"""
        if config.preprocess_mode == 'none':
            return None
        return ImagePreprocessorPillow(EnhancementConfig(mode=ProcessingMode(config.preprocess_mode)))

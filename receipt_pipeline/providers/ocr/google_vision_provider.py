"""
    Google Vision Provider module
"""

import json
import logging
from typing import Optional

from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import vision
from google.oauth2 import service_account

from receipt_pipeline.exceptions import ExtractorError
from receipt_pipeline.providers.provider_interfaces import ExtractionResult, TextExtractor


logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 75.0


class GoogleVisionProvider(TextExtractor):
    """Google Cloud Vision TEXT_DETECTION"""

    name = 'google_vision'

    def __init__(self, api_key: Optional[str] = None, credentials_json: Optional[str] = None,
                 timeout: float = 30.0, priority: int = 2, client: Optional[vision.ImageAnnotatorClient] = None):
        if not api_key and not credentials_json and client is None:
            raise ValueError("Google Vision API key not configured")

        self.api_key = api_key
        self.credentials_json = credentials_json
        self.timeout = timeout
        self.priority = priority
        self._client = client

    @property
    def client(self) -> vision.ImageAnnotatorClient:
        """Created on first use so a bad credential only fails this extractor"""
        if self._client is None:
            if self.credentials_json:
                creds = service_account.Credentials.from_service_account_info(
                    json.loads(self.credentials_json)
                )
                self._client = vision.ImageAnnotatorClient(credentials=creds)
            else:
                self._client = vision.ImageAnnotatorClient(client_options={'api_key': self.api_key})
        return self._client

    def extract(self, image_data: bytes) -> ExtractionResult:
        """Extract raw text using Google Vision"""

        logger.info("Extracting raw text using Google Vision")

        try:
            response = self.client.text_detection(
                image=vision.Image(content=image_data),
                max_results=1,
                timeout=self.timeout
            )

        except (google_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError, ValueError) as e:
            raise ExtractorError(self.name, f"Google Vision API error: {e}")

        if response.error.message:
            raise ExtractorError(self.name, f"Google Vision API error: {response.error.message}")

        texts = response.text_annotations
        if not texts or not texts[0].description.strip():
            raise ExtractorError(self.name, "No text detected in image")

        # text_detection() rarely reports confidence on the full-text annotation
        confidence = texts[0].confidence * 100 if texts[0].confidence else DEFAULT_CONFIDENCE

        logger.info(f"Google Vision extracted {len(texts[0].description)} chars, confidence: {confidence:.1f}")
        return ExtractionResult(text=texts[0].description, confidence=confidence)

    def close(self) -> None:
        if self._client is not None:
            self._client.transport.close()
            self._client = None

"""
    Azure Computer Vision Provider module (Read API v3.2)
"""

import json
import logging
import time
from typing import Optional

import urllib3

from receipt_pipeline.exceptions import ExtractorError
from receipt_pipeline.providers.provider_interfaces import ExtractionResult, TextExtractor


logger = logging.getLogger(__name__)

# Read API reports word confidence only; lines are trusted at a flat score
DEFAULT_CONFIDENCE = 85.0
POLL_ATTEMPTS = 10
POLL_INTERVAL_SECONDS = 1.0


class AzureVisionProvider(TextExtractor):
    """Azure Read: submit, then poll Operation-Location"""

    name = 'azure_vision'

    def __init__(self, api_key: str, endpoint: str, timeout: float = 30.0, priority: int = 4,
                 http: Optional[urllib3.PoolManager] = None, poll_interval: float = POLL_INTERVAL_SECONDS):
        if not api_key or not endpoint:
            raise ValueError("Azure Vision API credentials not configured")

        self.api_key = api_key
        self.endpoint = endpoint.rstrip('/')
        self.timeout = timeout
        self.priority = priority
        self.poll_interval = poll_interval
        self.http = http or urllib3.PoolManager(retries=False)

    def extract(self, image_data: bytes) -> ExtractionResult:
        logger.info("Extracting raw text using Azure Vision")

        response = self._request(
            'POST',
            f"{self.endpoint}/vision/v3.2/read/analyze",
            body=image_data,
            headers={
                'Ocp-Apim-Subscription-Key': self.api_key,
                'Content-Type': 'application/octet-stream',
            }
        )

        if not 200 <= response.status < 300:
            raise ExtractorError(self.name, f"Azure Vision API error: HTTP {response.status}")

        operation_location = response.headers.get('Operation-Location')
        if not operation_location:
            raise ExtractorError(self.name, "No operation location returned from Azure")

        for _ in range(POLL_ATTEMPTS):
            time.sleep(self.poll_interval)

            result_response = self._request(
                'GET',
                operation_location,
                headers={'Ocp-Apim-Subscription-Key': self.api_key}
            )
            if not 200 <= result_response.status < 300:
                raise ExtractorError(self.name, f"Azure Vision API error: HTTP {result_response.status}")

            try:
                result_data = json.loads(result_response.data.decode('utf-8'))
            except (UnicodeDecodeError, json.JSONDecodeError) as e:
                raise ExtractorError(self.name, f"Malformed Azure Vision response: {e}")

            status = result_data.get('status')
            if status == 'succeeded':
                read_results = (result_data.get('analyzeResult') or {}).get('readResults') or [{}]
                lines = read_results[0].get('lines', [])
                text = '\n'.join(line.get('text', '') for line in lines)
                if not text.strip():
                    raise ExtractorError(self.name, "No text detected in image")

                logger.info(f"Azure Vision extracted {len(text)} chars")
                return ExtractionResult(text=text, confidence=DEFAULT_CONFIDENCE)

            if status == 'failed':
                raise ExtractorError(self.name, "Azure Vision processing failed")

        raise ExtractorError(self.name, "Azure Vision processing timeout")

    def _request(self, method: str, url: str, **kwargs) -> urllib3.BaseHTTPResponse:
        try:
            return self.http.request(method, url, timeout=self.timeout, **kwargs)
        except urllib3.exceptions.HTTPError as e:
            raise ExtractorError(self.name, f"Azure Vision API unreachable: {e}")

    def close(self) -> None:
        self.http.clear()

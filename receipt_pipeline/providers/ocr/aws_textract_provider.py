"""
    AWS Textract Provider module

    Talks to a secure backend (API Gateway + Lambda) that accepts
    {"imageBase64": ...} and calls Textract, so no AWS credentials live
    on the scanning side. The backend may answer with {"text": ...}, a raw
    DetectDocumentText result ({"Blocks": [...]}) or a raw AnalyzeExpense
    result ({"ExpenseDocuments": [...]}).
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional

import urllib3

from receipt_pipeline.exceptions import ExtractorError
from receipt_pipeline.providers.provider_interfaces import ExtractionResult, TextExtractor


logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 90.0


class TextractProvider(TextExtractor):
    """AWS Textract through an HTTPS backend"""

    name = 'aws_textract'

    def __init__(self, endpoint: str, api_key: Optional[str] = None, timeout: float = 30.0,
                 priority: int = 1, http: Optional[urllib3.PoolManager] = None):
        if not endpoint:
            raise ValueError("AWS Textract endpoint not configured")

        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.priority = priority
        self.http = http or urllib3.PoolManager(retries=False)

    def extract(self, image_data: bytes) -> ExtractionResult:
        """POST the base64 image and normalize the response shape"""

        logger.info("Extracting raw text using AWS Textract backend")

        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['x-api-key'] = self.api_key

        body = json.dumps({'imageBase64': base64.b64encode(image_data).decode('utf-8')})

        try:
            response = self.http.request(
                'POST',
                self.endpoint,
                body=body,
                headers=headers,
                timeout=self.timeout
            )
        except urllib3.exceptions.HTTPError as e:
            raise ExtractorError(self.name, f"AWS Textract backend unreachable: {e}")

        if not 200 <= response.status < 300:
            message = response.data.decode('utf-8', errors='replace')[:200] if response.data else ''
            raise ExtractorError(self.name, f"AWS Textract backend error: HTTP {response.status} {message}".strip())

        try:
            data = json.loads(response.data.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ExtractorError(self.name, f"Malformed AWS Textract response: {e}")

        if not isinstance(data, dict):
            raise ExtractorError(self.name, "Malformed AWS Textract response: expected an object")

        result = self.normalize_response(data)
        if result is None or not result.text.strip():
            raise ExtractorError(self.name, "AWS Textract: No text parsed from response")

        logger.info(f"AWS Textract extracted {len(result.text)} chars, confidence: {result.confidence:.1f}")
        return result

    @classmethod
    def normalize_response(cls, data: Dict[str, Any]) -> Optional[ExtractionResult]:
        """Map any supported backend shape to ExtractionResult"""

        if isinstance(data.get('text'), str) and data['text']:
            return ExtractionResult(text=data['text'], confidence=DEFAULT_CONFIDENCE)

        if isinstance(data.get('Blocks'), list):
            return cls._from_blocks(data['Blocks'])

        if isinstance(data.get('ExpenseDocuments'), list):
            return ExtractionResult(text=cls._from_expense_documents(data['ExpenseDocuments']), confidence=DEFAULT_CONFIDENCE)

        return None

    @staticmethod
    def _from_blocks(blocks: List[Dict[str, Any]]) -> ExtractionResult:
        """DetectDocumentText: LINE blocks in reading order"""
        text_lines = []
        confidences = []

        for block in blocks:
            if not isinstance(block, dict) or block.get('BlockType') != 'LINE':
                continue
            text_lines.append(block.get('Text', ''))
            if isinstance(block.get('Confidence'), (int, float)):
                confidences.append(block['Confidence'])

        avg_confidence = sum(confidences) / len(confidences) if confidences else DEFAULT_CONFIDENCE
        return ExtractionResult(text='\n'.join(line for line in text_lines if line), confidence=avg_confidence)

    @staticmethod
    def _from_expense_documents(documents: List[Dict[str, Any]]) -> str:
        """AnalyzeExpense: 'label: value' summary lines then item rows"""
        parts = []

        for doc in documents:
            if not isinstance(doc, dict):
                continue

            for field in doc.get('SummaryFields', []):
                label = (field.get('LabelDetection') or {}).get('Text') or (field.get('Type') or {}).get('Text') or ''
                value = (field.get('ValueDetection') or {}).get('Text') or ''
                if label or value:
                    parts.append(f"{label}: {value}".strip())

            for group in doc.get('LineItemGroups', []):
                for line_item in group.get('LineItems', []):
                    row = ' '.join(
                        (fld.get('ValueDetection') or {}).get('Text')
                        for fld in line_item.get('LineItemExpenseFields', [])
                        if (fld.get('ValueDetection') or {}).get('Text')
                    )
                    if row:
                        parts.append(row)

        return '\n'.join(parts)

    def close(self) -> None:
        self.http.clear()

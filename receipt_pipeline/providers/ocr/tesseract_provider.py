"""
    Tesseract Provider module (local, no external configuration)
"""

import io
import logging
from collections import OrderedDict
from typing import Dict, List, Optional

import pytesseract
from PIL import Image

from receipt_pipeline.exceptions import ExtractorError
from receipt_pipeline.providers.provider_interfaces import ExtractionResult, TextExtractor


logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 75.0

# Uniform block of text, keep column spacing for item/price lines
TESSERACT_CONFIG = '--psm 6 -c preserve_interword_spaces=1'


class TesseractProvider(TextExtractor):
    """Offline OCR through the tesseract binary"""

    name = 'tesseract'

    def __init__(self, tesseract_cmd: Optional[str] = None, lang: str = 'eng',
                 timeout: float = 0, priority: int = 3):
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.lang = lang
        # 0 disables the limit; otherwise the tesseract process is killed when it expires
        self.timeout = timeout
        self.priority = priority

    def extract(self, image_data: bytes) -> ExtractionResult:
        """Extract text and mean word confidence"""

        logger.info("Extracting raw text using Tesseract")

        try:
            img = Image.open(io.BytesIO(image_data))
            img.load()
            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')

            data = pytesseract.image_to_data(
                img,
                lang=self.lang,
                config=TESSERACT_CONFIG,
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout,
            )

        except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError, OSError) as e:
            raise ExtractorError(self.name, f"Tesseract error: {e}")
        except RuntimeError as e:
            # pytesseract reports a killed process as RuntimeError
            raise ExtractorError(self.name, f"Tesseract timed out: {e}")

        text, confidences = self._collect_lines(data)
        if not text.strip():
            raise ExtractorError(self.name, "No text detected in image")

        confidence = sum(confidences) / len(confidences) if confidences else DEFAULT_CONFIDENCE

        logger.info(f"Tesseract extracted {len(text)} chars, confidence: {confidence:.1f}")
        return ExtractionResult(text=text, confidence=confidence)

    @staticmethod
    def _collect_lines(data: Dict[str, List]) -> tuple:
        """Rebuild text lines from word-level output"""
        lines: "OrderedDict[tuple, List[str]]" = OrderedDict()
        confidences = []

        for i, word in enumerate(data.get('text', [])):
            word = (word or '').strip()
            if not word:
                continue

            line_key = (data['block_num'][i], data['par_num'][i], data['line_num'][i])
            lines.setdefault(line_key, []).append(word)

            try:
                conf = float(data['conf'][i])
            except (TypeError, ValueError):
                continue
            if conf >= 0:
                confidences.append(conf)

        text = '\n'.join(' '.join(words) for words in lines.values())
        return text, confidences

"""
    Receipt Parser module

    Deterministic heuristics turning raw extracted text into a ReceiptRecord.
    parse() never raises: every field falls back to a default so garbled text
    still yields a best-effort record (zero amount, today's date and
    UNKNOWN MERCHANT mean "needs user review").
"""

import logging
import re
from datetime import date
from typing import Callable, List, Optional, Set

from pydantic import ValidationError

from receipt_pipeline.config import (
    MAX_AMOUNT,
    MAX_ITEM_PRICE,
    MAX_ITEMS,
    MAX_NAME_LENGTH,
    MERCHANT_FALLBACK_LINES,
    MERCHANT_SCAN_LINES,
    UNKNOWN_MERCHANT,
)
from receipt_pipeline.providers.category_manager import CategoryManager, category_manager as default_category_manager
from receipt_pipeline.receipt_schemas import LineItem, ReceiptRecord


logger = logging.getLogger(__name__)

MONTHS = {name: index for index, name in enumerate(
    ('jan', 'feb', 'mar', 'apr', 'may', 'jun', 'jul', 'aug', 'sep', 'oct', 'nov', 'dec'), start=1
)}

# Tried in order against every line; first valid calendar date wins
DATE_PATTERNS = (
    ('dmy', re.compile(r'(?<!\d)(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})(?!\d)')),
    ('ymd', re.compile(r'(?<!\d)(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})(?!\d)')),
    ('dmy_short', re.compile(r'(?<!\d)(\d{1,2})[/\-](\d{1,2})[/\-](\d{2})(?!\d)')),
    ('d_month_y', re.compile(
        r'(?<!\d)(\d{1,2})\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?,?\s+(\d{4})(?!\d)',
        re.IGNORECASE
    )),
)
TWO_DIGIT_YEAR_PIVOT = 50

# 1,234.56 | 135.50 | 135,50
AMOUNT = r'(\d{1,3}(?:,\d{3})+\.\d{2}|\d+[.,]\d{2})(?!\d)'

TOTAL_PATTERNS = (
    re.compile(r'total[:\s]*r?\s*' + AMOUNT, re.IGNORECASE),
    re.compile(r'amount[:\s]*r?\s*' + AMOUNT, re.IGNORECASE),
    re.compile(r'^r?\s*' + AMOUNT + r'\s*$', re.IGNORECASE),
    re.compile(AMOUNT + r'\s*$'),
)

# name  [qty [x|@]]  price; a quantity must be a whole token
ITEM_PATTERN = re.compile(
    r'^(.+?)\s+(?:(\d+(?:[.,]\d+)?)\s*(?:[x@]\s*|\s))?(r?\s?' + AMOUNT + r')\s*$',
    re.IGNORECASE
)

# Summary lines carry amounts but are not purchased items
NON_ITEM_KEYWORDS = re.compile(
    r'\b(sub-?total|total|amount|balance|change|cash|card|tender|vat|tax|due|tendered)\b',
    re.IGNORECASE
)
ITEM_NAME_SYMBOLS = re.compile(r'[*@#:;|_=~]+')


def parse_amount(token: str) -> Optional[float]:
    """'1,234.56' -> 1234.56, 'R 12,50' -> 12.5"""
    cleaned = token.strip().lstrip('rR').strip()
    if ',' in cleaned and '.' in cleaned:
        cleaned = cleaned.replace(',', '')
    else:
        cleaned = cleaned.replace(',', '.')
    try:
        return float(cleaned)
    except ValueError:
        return None


def clean_item_name(name: str) -> str:
    """Strip leading digits and symbols, collapse whitespace, uppercase"""
    name = re.sub(r'^\d+\s*', '', name.strip())
    name = ITEM_NAME_SYMBOLS.sub('', name)
    return ' '.join(name.split()).upper()


class ReceiptParser:
    """Raw text -> ReceiptRecord"""

    def __init__(self, categories: Optional[CategoryManager] = None, today: Callable[[], date] = date.today):
        self.categories = categories or default_category_manager
        self._today = today

    def parse(self, raw_text: str, source_confidence: float, extractor_name: str) -> ReceiptRecord:
        """Best-effort structure; never raises"""
        raw_text = raw_text or ''
        lines = [line.strip() for line in raw_text.splitlines()]
        lines = [line for line in lines if line]

        defaults = {
            'merchant_name': UNKNOWN_MERCHANT,
            'amount': 0.0,
            'date': self._today(),
            'items': [],
            'category': self.categories.default_category,
        }
        merchant = self._safe(self.extract_merchant_name, lines, default=defaults['merchant_name'])
        confidence = self._clamp_confidence(source_confidence)

        record_fields = {
            'merchant_name': merchant,
            'amount': self._safe(self.extract_total, lines, default=defaults['amount']),
            'date': self._safe(self.extract_date, lines, default=defaults['date']),
            'items': self._safe(self.extract_items, lines, default=defaults['items']),
            'category': self._safe(self.determine_category, merchant, raw_text, default=defaults['category']),
            'confidence': confidence,
            'raw_text': raw_text,
            'extractor_name': extractor_name,
        }

        try:
            record = ReceiptRecord(**record_fields)
        except ValidationError as e:
            # Only the offending fields fall back; the rest of the parse survives
            invalid = self._invalid_fields(e) & set(defaults)
            logger.warning(f"Parsed fields {sorted(invalid)} failed validation, using defaults: {e}")
            record_fields.update({name: defaults[name] for name in invalid})
            record = ReceiptRecord(**record_fields)

        logger.info(record.get_summary())
        return record

    def _safe(self, func: Callable, *args, default):
        try:
            return func(*args)
        except Exception as e:
            logger.warning(f"{func.__name__} failed, using default: {e}")
            return default

    @staticmethod
    def _invalid_fields(error: ValidationError) -> Set[str]:
        """Field names (not aliases) named by a validation error"""
        by_alias = {field.alias or name: name for name, field in ReceiptRecord.model_fields.items()}
        return {by_alias.get(err['loc'][0], err['loc'][0]) for err in error.errors() if err['loc']}

    @staticmethod
    def _clamp_confidence(confidence) -> float:
        try:
            return max(0.0, min(100.0, float(confidence)))
        except (TypeError, ValueError):
            return 0.0

    # ---------------- Merchant ----------------

    def extract_merchant_name(self, lines: List[str]) -> str:
        """Known alias in the first lines, else first substantial line"""
        head = [line.lower() for line in lines[:MERCHANT_SCAN_LINES]]

        for merchant, aliases in self.categories.get_merchant_aliases():
            for alias in aliases:
                if any(alias in line for line in head):
                    return merchant

        for line in lines[:MERCHANT_FALLBACK_LINES]:
            if len(line) > 3 and not line.isdigit():
                return line.upper()[:MAX_NAME_LENGTH].rstrip()

        return UNKNOWN_MERCHANT

    # ---------------- Date ----------------

    def extract_date(self, lines: List[str]) -> date:
        for line in lines:
            for kind, pattern in DATE_PATTERNS:
                match = pattern.search(line)
                if not match:
                    continue

                parsed = self._build_date(kind, match)
                if parsed is not None:
                    return parsed

        return self._today()

    @staticmethod
    def _build_date(kind: str, match: re.Match) -> Optional[date]:
        first, second, third = match.groups()
        try:
            if kind == 'dmy':
                return date(int(third), int(second), int(first))
            if kind == 'ymd':
                return date(int(first), int(second), int(third))
            if kind == 'dmy_short':
                short_year = int(third)
                year = short_year + (1900 if short_year > TWO_DIGIT_YEAR_PIVOT else 2000)
                return date(year, int(second), int(first))
            return date(int(third), MONTHS[second[:3].lower()], int(first))

        except (ValueError, KeyError):
            return None

    # ---------------- Total ----------------

    def extract_total(self, lines: List[str]) -> float:
        """Largest plausible labelled/trailing amount"""
        max_amount = 0.0

        for line in lines:
            for pattern in TOTAL_PATTERNS:
                match = pattern.search(line)
                if not match:
                    continue

                amount = parse_amount(match.group(1))
                if amount is not None and max_amount < amount < MAX_AMOUNT:
                    max_amount = amount

        return max_amount

    # ---------------- Items ----------------

    def extract_items(self, lines: List[str]) -> List[LineItem]:
        items = []

        for line in lines:
            if NON_ITEM_KEYWORDS.search(line):
                continue

            match = ITEM_PATTERN.search(line)
            if not match:
                continue

            name = clean_item_name(match.group(1))
            price = parse_amount(match.group(3))
            quantity = self._parse_quantity(match.group(2))

            if not 2 < len(name) <= MAX_NAME_LENGTH or price is None or not 0 < price < MAX_ITEM_PRICE:
                continue

            try:
                item = LineItem(name=name, quantity=quantity if quantity and quantity > 0 else 1.0, price=price)
            except ValidationError as e:
                logger.debug(f"Skipping item line {line!r}: {e}")
                continue

            items.append(item)
            if len(items) == MAX_ITEMS:
                break

        return items

    @staticmethod
    def _parse_quantity(token: str) -> Optional[float]:
        token = (token or '').replace(',', '.')
        try:
            return float(token)
        except ValueError:
            return None

    # ---------------- Category ----------------

    def determine_category(self, merchant_name: str, raw_text: str) -> str:
        """Merchant table, then keywords, then the default"""
        category = self.categories.get_category_for_merchant(merchant_name)
        if category:
            return category

        return self.categories.get_category_from_keywords(raw_text) or self.categories.default_category

"""
    Pydantic schemas for receipt records
"""

import logging
import datetime as dt
from typing import List

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from receipt_pipeline.config import (
    DEFAULT_CATEGORY,
    MAX_AMOUNT,
    MAX_ITEM_PRICE,
    MAX_ITEMS,
    MAX_NAME_LENGTH,
    UNKNOWN_MERCHANT,
)
from receipt_pipeline.providers.category_manager import category_manager


logger = logging.getLogger(__name__)

class LineItem(BaseModel):
    """Individual receipt line"""

    model_config = ConfigDict(frozen=True)

    name: str = Field(
        min_length=1,
        max_length=MAX_NAME_LENGTH,
        description="Normalized uppercase item name"
    )
    quantity: float = Field(
        gt=0,
        default=1.0,
        description="Quantity purchased (supports fractional weights)"
    )
    price: float = Field(
        gt=0,
        lt=MAX_ITEM_PRICE,
        description="Line price"
    )

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Clean and uppercase item name"""
        cleaned = ' '.join(v.split()).upper()
        if not cleaned:
            raise ValueError("Item name cannot be empty")

        return cleaned


class ReceiptRecord(BaseModel):
    """Structured output of one scan, immutable once created"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    merchant_name: str = Field(
        default=UNKNOWN_MERCHANT,
        max_length=MAX_NAME_LENGTH,
        description="Canonical or best-guess merchant name"
    )
    amount: float = Field(
        default=0.0,
        ge=0,
        lt=MAX_AMOUNT,
        description="Receipt total, 0 when unrecognized"
    )
    date: dt.date = Field(
        default_factory=dt.date.today,
        description="Purchase date, today when unrecognized"
    )
    items: List[LineItem] = Field(
        default_factory=list,
        max_length=MAX_ITEMS,
        description="Recognized line items"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        description="Expense category from the category vocabulary"
    )
    confidence: float = Field(
        ge=0,
        le=100,
        description="Extractor's own trust score"
    )
    raw_text: str = Field(default="", description="Raw extracted text")
    processing_time_ms: int = Field(default=0, ge=0)
    extractor_name: str = Field(min_length=1)
    image_quality_score: int = Field(default=0, ge=0, le=100)

    @field_validator('merchant_name', mode='before')
    @classmethod
    def validate_merchant_name(cls, v) -> str:
        """Empty merchant names fall back to the sentinel"""
        cleaned = str(v).strip() if v is not None else ''
        return cleaned or UNKNOWN_MERCHANT

    @field_validator('date', mode='before')
    @classmethod
    def validate_and_parse_date(cls, v) -> dt.date:
        """Accept date, datetime or ISO string"""
        if isinstance(v, dt.datetime):
            return v.date()
        if isinstance(v, dt.date):
            return v

        try:
            return date_parser.isoparse(str(v)).date()
        except (ValueError, OverflowError):
            raise ValueError(f"Unrecognized date format: {v}")

    @field_validator('category')
    @classmethod
    def validate_category(cls, v: str) -> str:
        """Category must come from the vocabulary"""
        if not category_manager.is_valid_category(v):
            logger.error(f"Category validation failed: '{v}' not in vocabulary")
            raise ValueError(f"Invalid category '{v}'. Must be one of: {', '.join(category_manager.get_all_categories())}")

        return v

    def to_storage_dict(self) -> dict:
        """JSON-compatible dict with camelCase keys"""
        return self.model_dump(mode='json', by_alias=True)

    def needs_review(self, threshold: float = 85) -> bool:
        """True when the user should verify fields before saving"""
        return (
            self.confidence <= threshold
            or self.merchant_name == UNKNOWN_MERCHANT
            or self.amount == 0
        )

    def get_summary(self) -> str:
        """Get human-readable receipt summary for logging"""
        return (
            f"Receipt: {self.merchant_name} | {self.date.isoformat()} | {len(self.items)} items | "
            f"Total: {self.amount:.2f} | {self.category} | {self.extractor_name} @ {self.confidence:.0f}"
        )

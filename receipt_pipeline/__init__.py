"""
Receipt Pipeline

Turns receipt images into structured expense records using several
interchangeable text extractors with ranked fallback.
"""

__version__ = "1.0.0"

from receipt_pipeline.app import create_pipeline
from receipt_pipeline.receipt_schemas import LineItem, ReceiptRecord

__all__ = ["create_pipeline", "LineItem", "ReceiptRecord"]

"""
    Receipt pipeline exceptions
"""

from typing import Dict, Optional


class ReceiptPipelineError(Exception):
    """Base class for all pipeline errors"""


class ConfigurationError(ReceiptPipelineError):
    """Invalid deployment configuration"""


class ExtractorError(ReceiptPipelineError):
    """A single text extractor failed (network, auth, malformed response, timeout)"""

    def __init__(self, extractor_name: str, message: str):
        super().__init__(f"{extractor_name}: {message}")
        self.extractor_name = extractor_name
        self.message = message


class AllExtractorsFailedError(ReceiptPipelineError):
    """Every available extractor failed or none produced a usable result"""

    def __init__(self, failures: Optional[Dict[str, str]] = None, message: str = "All OCR providers failed"):
        self.failures = dict(failures or {})
        if self.failures:
            details = '; '.join(f"{name}: {reason}" for name, reason in self.failures.items())
            message = f"{message} ({details})"
        super().__init__(message)


class InvalidImageError(ReceiptPipelineError):
    """Image reference is missing or unreadable"""

    def __init__(self, path: str, reason: str = "Image file does not exist"):
        super().__init__(f"{reason}: {path}")
        self.path = path
        self.reason = reason


class QueueFullError(ReceiptPipelineError):
    """Scan rejected because the processing queue is at capacity"""

    def __init__(self, max_size: int):
        super().__init__(f"Processing queue is full ({max_size} pending scans)")
        self.max_size = max_size

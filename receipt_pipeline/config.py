"""
    Configuration and Constants
"""

import os
import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Mapping, Optional

import boto3

from receipt_pipeline.exceptions import ConfigurationError


# ---------- Pipeline Constants -----------------------
HIGH_CONFIDENCE_THRESHOLD = 85
COOLDOWN_SECONDS = 5 * 60
EXTRACTOR_TIMEOUT_SECONDS = 30.0
SCAN_TIMEOUT_SECONDS = 120.0

CACHE_KEY_PREFIX = 'ocr_'
CACHE_MAX_ENTRIES = 500
QUEUE_MAX_SIZE = 100

UNKNOWN_MERCHANT = 'UNKNOWN MERCHANT'
DEFAULT_CATEGORY = 'General'
# ------------------------------------------------------


# Limits
MAX_AMOUNT = 10000
MAX_ITEM_PRICE = 1000
MAX_ITEMS = 20
MAX_NAME_LENGTH = 200
MERCHANT_SCAN_LINES = 10
MERCHANT_FALLBACK_LINES = 5

# Extractor priorities (lower number is tried first)
EXTRACTOR_PRIORITIES = {
    'aws_textract': 1,
    'google_vision': 2,
    'tesseract': 3,
    'azure_vision': 4,
}

PREPROCESS_MODES = ('none', 'fast', 'balanced', 'quality')
OFFLINE_STORE_PROVIDERS = ('local', 's3')

ENV_PREFIX = 'RECEIPT_'


@dataclass(frozen=True)
class PipelineConfig:
    """Typed deployment configuration, built once at startup"""

    # Remote extractors (absent credentials exclude the extractor)
    textract_endpoint: Optional[str] = None
    textract_api_key: Optional[str] = None
    google_vision_api_key: Optional[str] = None
    google_credentials_json: Optional[str] = None
    azure_vision_key: Optional[str] = None
    azure_vision_endpoint: Optional[str] = None

    # Local extractor
    tesseract_cmd: Optional[str] = None
    tesseract_lang: str = 'eng'

    # Resilience
    extractor_timeout: float = EXTRACTOR_TIMEOUT_SECONDS
    scan_timeout: float = SCAN_TIMEOUT_SECONDS
    cooldown_seconds: float = COOLDOWN_SECONDS
    high_confidence_threshold: float = HIGH_CONFIDENCE_THRESHOLD

    # Cache / queue policy
    cache_max_entries: int = CACHE_MAX_ENTRIES
    cache_ttl_seconds: Optional[float] = None
    queue_max_size: int = QUEUE_MAX_SIZE

    # Durable offline store
    offline_store: str = 'local'
    offline_dir: str = field(default_factory=lambda: os.path.join(os.path.expanduser('~'), '.receipt_pipeline', 'offline'))
    s3_bucket: Optional[str] = None

    preprocess_mode: str = 'none'

    def __post_init__(self):
        if self.extractor_timeout <= 0 or self.scan_timeout <= 0:
            raise ConfigurationError("Timeouts must be positive")
        if self.cooldown_seconds < 0:
            raise ConfigurationError("Cool-down window cannot be negative")
        if self.cache_max_entries <= 0:
            raise ConfigurationError("Cache size must be positive")
        if self.queue_max_size < 0:
            raise ConfigurationError("Queue size cannot be negative")
        if self.preprocess_mode not in PREPROCESS_MODES:
            raise ConfigurationError(f"Unknown preprocess mode '{self.preprocess_mode}'. Available: {', '.join(PREPROCESS_MODES)}")
        if self.offline_store not in OFFLINE_STORE_PROVIDERS:
            raise ConfigurationError(f"Unknown offline store '{self.offline_store}'. Available: {', '.join(OFFLINE_STORE_PROVIDERS)}")
        if self.offline_store == 's3' and not self.s3_bucket:
            raise ConfigurationError("RECEIPT_S3_BUCKET is required for the s3 offline store")

    @property
    def textract_enabled(self) -> bool:
        return bool(self.textract_endpoint)

    @property
    def google_vision_enabled(self) -> bool:
        return bool(self.google_vision_api_key or self.google_credentials_json)

    @property
    def azure_vision_enabled(self) -> bool:
        return bool(self.azure_vision_key and self.azure_vision_endpoint)


# ------------- Secrets Management (optional, AWS Secrets Manager)-------------
@lru_cache(maxsize=4)
def get_secrets(secret_name: str) -> Dict[str, str]:
    """Get extractor credentials from AWS Secrets Manager (cached)"""
    client = boto3.client('secretsmanager')

    try:
        response = client.get_secret_value(SecretId=secret_name)
        return json.loads(response['SecretString'])

    except Exception as e:
        logging.error(f"Failed to get secrets: {e}")
        raise
# ----------------------------------------------------------------------------

_SECRET_FIELDS = {
    'TEXTRACT_API_KEY': 'textract_api_key',
    'GOOGLE_VISION_API_KEY': 'google_vision_api_key',
    'GOOGLE_CREDENTIALS_JSON': 'google_credentials_json',
    'AZURE_VISION_KEY': 'azure_vision_key',
}


def _env(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(ENV_PREFIX + name, '').strip()
    return value or None


def _number(environ: Mapping[str, str], name: str, default, cast=float):
    raw = _env(environ, name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be a number, got '{raw}'")


def load_config(environ: Optional[Mapping[str, str]] = None) -> PipelineConfig:
    """Build PipelineConfig from RECEIPT_* environment variables"""

    environ = os.environ if environ is None else environ

    values = {
        'textract_endpoint': _env(environ, 'TEXTRACT_ENDPOINT'),
        'textract_api_key': _env(environ, 'TEXTRACT_API_KEY'),
        'google_vision_api_key': _env(environ, 'GOOGLE_VISION_API_KEY'),
        'google_credentials_json': _env(environ, 'GOOGLE_CREDENTIALS_JSON'),
        'azure_vision_key': _env(environ, 'AZURE_VISION_KEY'),
        'azure_vision_endpoint': _env(environ, 'AZURE_VISION_ENDPOINT'),
        'tesseract_cmd': _env(environ, 'TESSERACT_CMD'),
        'tesseract_lang': _env(environ, 'TESSERACT_LANG') or 'eng',
        'extractor_timeout': _number(environ, 'EXTRACTOR_TIMEOUT', EXTRACTOR_TIMEOUT_SECONDS),
        'scan_timeout': _number(environ, 'SCAN_TIMEOUT', SCAN_TIMEOUT_SECONDS),
        'cooldown_seconds': _number(environ, 'COOLDOWN_SECONDS', COOLDOWN_SECONDS),
        'cache_max_entries': _number(environ, 'CACHE_MAX_ENTRIES', CACHE_MAX_ENTRIES, int),
        'cache_ttl_seconds': _number(environ, 'CACHE_TTL_SECONDS', None),
        'queue_max_size': _number(environ, 'QUEUE_MAX_SIZE', QUEUE_MAX_SIZE, int),
        'offline_store': _env(environ, 'OFFLINE_STORE') or 'local',
        's3_bucket': _env(environ, 'S3_BUCKET'),
        'preprocess_mode': (_env(environ, 'PREPROCESS') or 'none').lower(),
    }

    offline_dir = _env(environ, 'OFFLINE_DIR')
    if offline_dir:
        values['offline_dir'] = offline_dir

    secret_name = _env(environ, 'SECRETS_NAME')
    if secret_name:
        secrets = get_secrets(secret_name)
        for secret_key, field_name in _SECRET_FIELDS.items():
            if secrets.get(secret_key):
                values[field_name] = secrets[secret_key]

    return PipelineConfig(**values)


def setup_logging(level: int = logging.INFO):
    """Setup logging configuration"""
    logging.basicConfig(
        level=level,
        format='[%(levelname)s] %(name)s: %(message)s',
        force=True
    )

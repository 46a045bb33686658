"""
    Common Utility Functions
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from receipt_pipeline.config import CACHE_KEY_PREFIX
from receipt_pipeline.exceptions import InvalidImageError


ImageRef = Union[str, os.PathLike]


@dataclass(frozen=True)
class ImageInfo:
    """Cheap identity of an image file (no content hashing)"""
    path: str
    size: int
    modified_time_ns: int


def get_image_info(image: ImageRef) -> Optional[ImageInfo]:
    """Stat an image reference, None when it does not exist"""
    path = Path(image)
    try:
        stat = path.stat()
    except (OSError, ValueError):
        return None

    if not path.is_file():
        return None

    return ImageInfo(path=str(path), size=stat.st_size, modified_time_ns=stat.st_mtime_ns)


def validate_image(image: ImageRef) -> ImageInfo:
    """Stat plus readability check, InvalidImageError when unusable"""
    info = get_image_info(image)
    if info is None:
        raise InvalidImageError(str(image))
    if info.size == 0:
        raise InvalidImageError(info.path, "Image file is empty")
    if not os.access(info.path, os.R_OK):
        raise InvalidImageError(info.path, "Image file is not readable")

    return info


def generate_cache_key(info: ImageInfo) -> str:
    """Composite of byte size and last-modified time"""
    return f"{CACHE_KEY_PREFIX}{info.size}_{info.modified_time_ns}"


def read_image_bytes(image: ImageRef) -> bytes:
    """Read image content, InvalidImageError when missing, unreadable or empty"""
    path = Path(image)
    if not path.is_file():
        raise InvalidImageError(str(path))

    try:
        data = path.read_bytes()
    except OSError as e:
        raise InvalidImageError(str(path), f"Image file is not readable ({e.strerror})")

    if not data:
        raise InvalidImageError(str(path), "Image file is empty")

    return data

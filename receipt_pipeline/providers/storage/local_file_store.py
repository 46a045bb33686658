"""
    Local directory implementation of OfflineStore
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from receipt_pipeline.providers.provider_interfaces import OfflineStore


logger = logging.getLogger(__name__)

BLOB_SUFFIX = '.blob'


class LocalFileStore(OfflineStore):
    """One file per key inside a directory"""

    def __init__(self, directory: str):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not key or '/' in key or '\\' in key or key.startswith('.'):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}{BLOB_SUFFIX}"

    def put(self, key: str, data: bytes) -> bool:
        """Atomic write through a temp file in the same directory"""
        target = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix='.tmp-')
            try:
                with os.fdopen(fd, 'wb') as f:
                    f.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
            return True

        except OSError as e:
            logger.error(f"Local store write error for {key}: {e}")
            return False

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._path(key).read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Local store read error for {key}: {e}")
            return None

    def keys(self, prefix: str = '') -> List[str]:
        return sorted(
            path.name[:-len(BLOB_SUFFIX)]
            for path in self.directory.glob(f"{prefix}*{BLOB_SUFFIX}")
            if path.is_file()
        )

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        for key in self.keys(prefix):
            try:
                self._path(key).unlink()
                deleted += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error(f"Local store delete error for {key}: {e}")

        logger.info(f"Deleted {deleted} local records with prefix '{prefix}'")
        return deleted

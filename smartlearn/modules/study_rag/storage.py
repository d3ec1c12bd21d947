"""
Blob storage for uploaded PDFs.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from smartlearn.config import settings
from smartlearn.utils.helpers import generate_id, safe_filename

logger = logging.getLogger(__name__)


class BlobStorage(ABC):
    """Stores raw uploads and hands back a URL for them."""

    @abstractmethod
    def store(self, file_bytes: bytes, filename: str) -> str:
        ...

    @abstractmethod
    def remove(self, url: str) -> bool:
        ...


class LocalBlobStorage(BlobStorage):
    """Keeps uploads as files under a directory and returns file:// URLs."""

    def __init__(self, directory: Optional[str] = None):
        self.directory = Path(directory or settings.UPLOADS_DIR)
        self.directory.mkdir(parents=True, exist_ok=True)

    def store(self, file_bytes: bytes, filename: str) -> str:
        # Unique prefix so re-uploads of the same filename never collide
        target = self.directory / f"{generate_id()[:12]}_{safe_filename(filename)}"
        target.write_bytes(file_bytes)
        logger.info(f"Stored upload {filename} as {target}")
        return target.resolve().as_uri()

    def remove(self, url: str) -> bool:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            logger.warning(f"Not a local blob URL: {url}")
            return False

        path = Path(unquote(parsed.path))
        if path.resolve().parent != self.directory.resolve():
            logger.warning(f"Refusing to remove file outside upload directory: {path}")
            return False

        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Removed upload {path}")
        return True

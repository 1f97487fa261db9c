import logging
import mimetypes
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import requests

from ..utils.config import ConfigManager
from ..utils.progress import ProgressTracker

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredImage:
    source_url: str
    storage_url: str
    content_type: str
    size: int


class ImageProcessor:
    """Copies selected product images into the object store, one at a time"""

    def __init__(
        self,
        object_store,
        config_manager: Optional[ConfigManager] = None,
        session: Optional[requests.Session] = None,
        clock=time.time,
    ):
        self.object_store = object_store
        self.config = config_manager or ConfigManager()
        self.timeout = self.config.get("fetching.timeout_seconds", 15)
        self.clock = clock

        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": self.config.get(
                    "fetching.user_agent", "Mozilla/5.0 (compatible; CatalogDrafter/1.0)"
                )
            }
        )

    def process_images(
        self, urls: List[str], progress: Optional[ProgressTracker] = None
    ) -> Tuple[List[StoredImage], List[str]]:
        """
        Download and store each image

        Args:
            urls: Image URLs in display order
            progress: Optional tracker for per-image checkpoints

        Returns:
            Stored images in input order, and a warning per image that failed
        """
        stored: List[StoredImage] = []
        warnings: List[str] = []

        for index, url in enumerate(urls, 1):
            if progress:
                progress.update("image-selection", "active", f"Processing image {index}/{len(urls)}")
            try:
                stored.append(self._process_one(url, index))
            except (requests.RequestException, ValueError, OSError) as e:
                logger.warning(f"Failed to process image {url}: {e}")
                warnings.append(f"Image could not be copied and was skipped: {url} ({e})")

        logger.info(f"Stored {len(stored)}/{len(urls)} images")
        return stored, warnings

    def _process_one(self, url: str, index: int = 1) -> StoredImage:
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if not content_type.startswith("image/"):
            raise ValueError(f"not an image (content type '{content_type or 'unknown'}')")

        data = response.content
        if not data:
            raise ValueError("empty image body")

        path = f"products/{int(self.clock() * 1000)}_{index}_{self._filename(url, content_type)}"
        storage_url = self.object_store.put(path, data, content_type)

        return StoredImage(
            source_url=url, storage_url=storage_url, content_type=content_type, size=len(data)
        )

    @staticmethod
    def _filename(url: str, content_type: str) -> str:
        name = urlparse(url).path.rsplit("/", 1)[-1]
        name = _SAFE_NAME_RE.sub("_", name).strip("._") or "image"
        if "." not in name:
            name += mimetypes.guess_extension(content_type) or ".jpg"
        return name[:100]

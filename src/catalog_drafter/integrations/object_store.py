import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class LocalObjectStore:
    """Stores bytes under a root directory and hands back a URL for them"""

    def __init__(self, root: str, base_url: Optional[str] = None):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/") if base_url else None

    def put(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """
        Store bytes

        Args:
            path: Relative object path, e.g. "products/123_photo.jpg"
            data: Object content
            content_type: MIME type, kept for parity with remote stores

        Returns:
            Public URL when a base URL is configured, else a file:// URL
        """
        relative = Path(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid object path: {path}")

        target = self.root / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        logger.debug(f"Stored {len(data)} bytes ({content_type}) at {target}")

        if self.base_url:
            return f"{self.base_url}/{relative.as_posix()}"
        return target.resolve().as_uri()

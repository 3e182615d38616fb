"""
Local image storage for uploaded vehicle photos.

Images are written under a date-partitioned directory; the returned
relative path is the opaque image handle kept on each record.
"""

import re
import uuid
from datetime import datetime
from pathlib import Path

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^\w.-]+")


class ImageStorage:
    """
    Stores uploaded images on the local filesystem.

    Example:
        storage = ImageStorage()
        image_ref = storage.save(image_bytes, "car.jpg", timestamp)
    """

    def __init__(self, base_path: str | Path | None = None):
        """
        Initialize storage.

        Args:
            base_path: Root directory; defaults to the configured path.
        """
        self.base_path = Path(base_path or get_settings().image_storage_path)

    def save(self, image_bytes: bytes, file_name: str, timestamp: datetime) -> str:
        """
        Write one image to disk.

        Args:
            image_bytes: Raw image data as uploaded.
            file_name: Original file name, used for a readable suffix.
            timestamp: Upload time, used for the date partition.

        Returns:
            str: Path relative to the storage root.
        """
        day_dir = Path(timestamp.strftime("%Y/%m/%d"))
        target_dir = self.base_path / day_dir
        target_dir.mkdir(parents=True, exist_ok=True)

        name = f"{timestamp.strftime('%H%M%S')}_{uuid.uuid4().hex[:8]}_{self._safe_name(file_name)}"
        (target_dir / name).write_bytes(image_bytes)

        relative = (day_dir / name).as_posix()
        logger.debug("image_saved", path=relative, size=len(image_bytes))
        return relative

    def resolve(self, image_ref: str) -> Path:
        """
        Absolute path of a stored image.

        Raises:
            ValueError: If the reference escapes the storage root.
        """
        root = self.base_path.resolve()
        path = (root / image_ref).resolve()
        if root not in path.parents:
            raise ValueError(f"Invalid image reference: {image_ref}")
        return path

    @staticmethod
    def _safe_name(file_name: str) -> str:
        cleaned = _UNSAFE_CHARS.sub("_", Path(file_name).name).strip("._")
        return cleaned[:80] or "image"

"""Filesystem storage for uploaded images."""

from app.infrastructure.storage.storage import ImageStorage

__all__ = ["ImageStorage"]

"""Core module for configuration, logging, tracing and storage."""

from video_optimizer.core.config import settings
from video_optimizer.core.storage import StorageManager, get_storage

__all__ = [
    "settings",
    "StorageManager",
    "get_storage",
]

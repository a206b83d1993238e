"""Core module for configuration, logging and storage."""

from transcode_worker.core.config import Settings, get_settings
from transcode_worker.core.storage import (
    StorageBackend,
    StorageConfig,
    StorageError,
    ObjectNotFoundError,
    create_storage,
)

__all__ = [
    "Settings",
    "get_settings",
    "StorageBackend",
    "StorageConfig",
    "StorageError",
    "ObjectNotFoundError",
    "create_storage",
]

"""Storage backends for coldpack containers."""

from .base import OpenMode, StorageBackend
from .local import LocalStorageBackend
from .rclone import RcloneStorageBackend

__all__ = [
    "LocalStorageBackend",
    "OpenMode",
    "RcloneStorageBackend",
    "StorageBackend",
]

"""Local filesystem storage backend."""

import logging
import os
from pathlib import Path
from typing import Optional

from .base import OpenMode, StorageBackend

logger = logging.getLogger(__name__)

# Permission bits for containers created through this backend
DEFAULT_FILE_MODE = 0o644


class LocalStorageBackend(StorageBackend):
    """
    Storage backend over the local filesystem using raw file descriptors.

    Handles are the operating system descriptors themselves, so no state is
    kept beyond the optional root directory used to resolve relative names.
    """

    def __init__(self, root: Optional[Path] = None):
        """
        Initialize local backend.

        Args:
            root: Directory that relative object names resolve against
                (default: current working directory)
        """
        self.root = Path(root).expanduser().resolve() if root is not None else None

    def _resolve(self, name: str) -> Path:
        path = Path(name).expanduser()
        if self.root is not None and not path.is_absolute():
            path = self.root / path
        return path

    def open(self, name: str, mode: OpenMode) -> int:
        path = self._resolve(name)
        if mode == OpenMode.WRITE:
            flags = os.O_CREAT | os.O_TRUNC | os.O_WRONLY
        else:
            flags = os.O_RDONLY
        fd = os.open(path, flags, DEFAULT_FILE_MODE)
        logger.debug("Opened %s for %s (fd=%d)", path, mode.value, fd)
        return fd

    def read(self, handle: int, size: int) -> bytes:
        return os.read(handle, size)

    def write(self, handle: int, data: bytes) -> int:
        return os.write(handle, data)

    def close(self, handle: int) -> None:
        os.close(handle)

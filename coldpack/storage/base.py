"""Storage backend interface consumed by the archive adapter."""

from abc import ABC, abstractmethod
from enum import Enum


class OpenMode(str, Enum):
    """Access mode requested when opening a storage object."""

    READ = "read"
    WRITE = "write"


class StorageBackend(ABC):
    """
    Primitive byte-stream operations on a storage system.

    A backend instance is the session context: it carries whatever connection
    or credentials the storage system needs. Objects are addressed by name and
    accessed through integer handles. Every method raises ``OSError`` on
    failure; callers never retry.
    """

    @abstractmethod
    def open(self, name: str, mode: OpenMode) -> int:
        """
        Open a storage object.

        Args:
            name: Object name or path understood by the backend
            mode: READ for an existing object, WRITE to create or truncate one

        Returns:
            Handle for subsequent read/write/close calls
        """

    @abstractmethod
    def read(self, handle: int, size: int) -> bytes:
        """Read up to ``size`` bytes. An empty result signals end of stream."""

    @abstractmethod
    def write(self, handle: int, data: bytes) -> int:
        """Write ``data`` and return the number of bytes accepted."""

    @abstractmethod
    def close(self, handle: int) -> None:
        """Release the handle, flushing any pending writes."""

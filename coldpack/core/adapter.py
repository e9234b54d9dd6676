"""Bridge between the tar codec and a storage backend."""

import logging
from typing import Optional

from ..storage.base import OpenMode, StorageBackend
from .errors import IOOpenError, ReadError, WriteError

logger = logging.getLogger(__name__)

# Size of a single transfer to or from the backend
TRANSFER_BUFFER_SIZE = 8192


class StorageIOAdapter:
    """
    File-like view of one storage object, handed to ``tarfile`` as its fileobj.

    The codec drives all I/O through ``read``/``write``; each call is turned
    into one or more backend transfers of at most ``TRANSFER_BUFFER_SIZE``
    bytes. Backend failures are converted into ``ReadError``/``WriteError`` so
    they surface as fatal for the in-flight codec operation. Nothing is
    retried.

    Only the subset of the file protocol used by ``tarfile`` stream mode is
    implemented: no seek, tell or fileno.
    """

    def __init__(self, backend: StorageBackend, name: str, mode: OpenMode):
        """
        Initialize adapter.

        Args:
            backend: Storage backend (the session context)
            name: Object name of the container on the backend
            mode: OpenMode.READ or OpenMode.WRITE
        """
        self.backend = backend
        self.name = name
        self.mode = mode
        self.handle: Optional[int] = None
        self.bytes_read = 0
        self.bytes_written = 0

    def open(self) -> "StorageIOAdapter":
        """Open the storage object. Raises IOOpenError on failure."""
        if self.handle is not None:
            return self
        try:
            handle = self.backend.open(self.name, self.mode)
        except OSError as e:
            raise IOOpenError(f"Cannot open {self.name}: {e}") from e
        if handle is None or handle < 0:
            raise IOOpenError(f"Cannot open {self.name}: backend returned {handle}")
        self.handle = handle
        return self

    @property
    def closed(self) -> bool:
        return self.handle is None

    def readable(self) -> bool:
        return self.mode == OpenMode.READ

    def writable(self) -> bool:
        return self.mode == OpenMode.WRITE

    def _require_open(self) -> int:
        if self.handle is None:
            raise ValueError(f"I/O operation on closed storage object: {self.name}")
        return self.handle

    def read(self, size: int = -1) -> bytes:
        """
        Read up to ``size`` bytes, fewer only at end of stream.

        Args:
            size: Maximum number of bytes (negative reads to end of stream)

        Returns:
            Bytes read; empty at end of stream
        """
        handle = self._require_open()
        chunks = []
        remaining = size
        while remaining != 0:
            want = TRANSFER_BUFFER_SIZE
            if remaining > 0:
                want = min(want, remaining)
            try:
                chunk = self.backend.read(handle, want)
            except OSError as e:
                raise ReadError(f"Read from {self.name} failed: {e}") from e
            if chunk is None:
                raise ReadError(f"Read from {self.name} failed: no data returned")
            if not chunk:
                break
            chunks.append(chunk)
            self.bytes_read += len(chunk)
            if remaining > 0:
                remaining -= len(chunk)
        return b"".join(chunks)

    def write(self, data) -> int:
        """
        Write all of ``data`` in transfer-sized pieces.

        Returns:
            Number of bytes written (always ``len(data)``)
        """
        handle = self._require_open()
        view = memoryview(data).cast("B")
        offset = 0
        while offset < len(view):
            piece = bytes(view[offset:offset + TRANSFER_BUFFER_SIZE])
            try:
                written = self.backend.write(handle, piece)
            except OSError as e:
                raise WriteError(f"Write to {self.name} failed: {e}") from e
            if written is None or written <= 0:
                raise WriteError(
                    f"Write to {self.name} failed: backend accepted {written} bytes"
                )
            offset += written
            self.bytes_written += written
        return offset

    def flush(self) -> None:
        pass

    def close(self) -> None:
        """
        Close the storage object. Safe to call more than once.

        Raises:
            WriteError: If a write-mode object fails to close (data may be lost)
            ReadError: If a read-mode object fails to close
        """
        if self.handle is None:
            return
        handle, self.handle = self.handle, None
        try:
            self.backend.close(handle)
        except OSError as e:
            error_cls = WriteError if self.mode == OpenMode.WRITE else ReadError
            raise error_cls(f"Close of {self.name} failed: {e}") from e
        logger.debug(
            "Closed %s (%d bytes read, %d bytes written)",
            self.name,
            self.bytes_read,
            self.bytes_written,
        )

    def __enter__(self):
        return self.open()

    def __exit__(self, *args):
        self.close()

"""Rclone storage backend for coldpack."""

import itertools
import logging
import subprocess
from dataclasses import dataclass

from .base import OpenMode, StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class _RcloneStream:
    """One running ``rclone cat`` or ``rclone rcat`` process."""

    target: str
    mode: OpenMode
    process: subprocess.Popen
    at_eof: bool = False


class RcloneStorageBackend(StorageBackend):
    """
    Storage backend that streams objects through the rclone command line.

    Reads pipe from ``rclone cat <remote>/<name>`` and writes pipe into
    ``rclone rcat <remote>/<name>``, so containers never touch local disk.
    Each handle owns one subprocess for its whole lifetime.
    """

    def __init__(self, remote: str, binary: str = "rclone"):
        """
        Initialize rclone backend.

        Args:
            remote: Remote prefix (e.g. "s3:bucket/archives" or "gdrive:")
            binary: rclone executable to invoke (default: "rclone")
        """
        self.remote = remote
        self.binary = binary
        self._streams: dict[int, _RcloneStream] = {}
        self._handles = itertools.count(1)

    def target_for(self, name: str) -> str:
        """Build the rclone path for an object name."""
        name = name.lstrip("/")
        if self.remote.endswith((":", "/")):
            return f"{self.remote}{name}"
        return f"{self.remote}/{name}"

    def open(self, name: str, mode: OpenMode) -> int:
        target = self.target_for(name)
        if mode == OpenMode.WRITE:
            cmd = [self.binary, "rcat", target]
            process = subprocess.Popen(
                cmd, stdin=subprocess.PIPE, stderr=subprocess.PIPE
            )
        else:
            cmd = [self.binary, "cat", target]
            process = subprocess.Popen(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE
            )

        handle = next(self._handles)
        self._streams[handle] = _RcloneStream(target, mode, process)
        logger.debug("Started %s (handle=%d)", " ".join(cmd), handle)
        return handle

    def _stream(self, handle: int) -> _RcloneStream:
        try:
            return self._streams[handle]
        except KeyError:
            raise OSError(f"Unknown rclone handle: {handle}") from None

    def read(self, handle: int, size: int) -> bytes:
        stream = self._stream(handle)
        data = stream.process.stdout.read(size)
        if not data:
            stream.at_eof = True
        return data

    def write(self, handle: int, data: bytes) -> int:
        stream = self._stream(handle)
        stream.process.stdin.write(data)
        return len(data)

    def close(self, handle: int) -> None:
        stream = self._streams.pop(handle, None)
        if stream is None:
            raise OSError(f"Unknown rclone handle: {handle}")

        process = stream.process
        if stream.mode == OpenMode.WRITE:
            _, stderr = process.communicate()
        else:
            process.stdout.close()
            if not stream.at_eof:
                # Reader stopped early; rclone exits on the broken pipe
                process.terminate()
                process.wait()
                process.stderr.close()
                return
            process.wait()
            stderr = process.stderr.read()
            process.stderr.close()

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            logger.error("rclone failed for %s: %s", stream.target, message)
            raise OSError(f"rclone exited with {process.returncode}: {message}")

"""Pytest configuration and shared fixtures for coldpack tests."""

import itertools
import os

import pytest

from coldpack.storage.base import OpenMode, StorageBackend
from coldpack.storage.local import LocalStorageBackend


class MemoryStorageBackend(StorageBackend):
    """
    In-memory backend standing in for remote storage.

    Records the size of every transfer so tests can check chunking, and can
    be told to fail reads or writes after a number of bytes.
    """

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.read_sizes: list[int] = []
        self.write_sizes: list[int] = []
        self.open_calls: list[tuple[str, OpenMode]] = []
        self.closed_handles: list[int] = []
        self.fail_open = False
        self.fail_read_after: int = -1
        self.fail_write_after: int = -1
        self.fail_close = False
        self._handles = itertools.count(3)
        self._open: dict[int, dict] = {}

    def open(self, name, mode):
        self.open_calls.append((name, mode))
        if self.fail_open:
            raise OSError("simulated open failure")
        if mode == OpenMode.READ and name not in self.objects:
            raise FileNotFoundError(name)
        handle = next(self._handles)
        self._open[handle] = {
            "name": name,
            "mode": mode,
            "data": bytearray() if mode == OpenMode.WRITE else self.objects[name],
            "pos": 0,
        }
        return handle

    def read(self, handle, size):
        state = self._open[handle]
        self.read_sizes.append(size)
        pos = state["pos"]
        if 0 <= self.fail_read_after <= pos:
            raise OSError("simulated read failure")
        chunk = bytes(state["data"][pos:pos + size])
        state["pos"] = pos + len(chunk)
        return chunk

    def write(self, handle, data):
        state = self._open[handle]
        self.write_sizes.append(len(data))
        if 0 <= self.fail_write_after <= len(state["data"]):
            raise OSError("simulated write failure")
        state["data"] += data
        return len(data)

    def close(self, handle):
        state = self._open.pop(handle)
        self.closed_handles.append(handle)
        if self.fail_close:
            raise OSError("simulated close failure")
        if state["mode"] == OpenMode.WRITE:
            self.objects[state["name"]] = bytes(state["data"])

    @property
    def open_handles(self) -> int:
        return len(self._open)


@pytest.fixture
def memory_backend():
    """Provide an empty in-memory storage backend."""
    return MemoryStorageBackend()


@pytest.fixture
def local_backend(tmp_path):
    """Provide a local backend rooted at a fresh storage directory."""
    root = tmp_path / "storage"
    root.mkdir()
    return LocalStorageBackend(root)


@pytest.fixture
def sample_files(tmp_path):
    """
    Create source objects to package.

    Returns a list of (path, metadata, permission) tuples in registration
    order, with varied sizes and permission bits.
    """
    source = tmp_path / "source"
    source.mkdir()

    specs = [
        ("alpha.txt", b"Sample content 1\n", 0o644, {"title": "Alpha", "tags": ["a"]}),
        ("beta.bin", os.urandom(50_000), 0o600, {"title": "Beta", "size": 50_000}),
        ("gamma.sh", b"#!/bin/sh\necho hi\n", 0o755, None),
        ("empty.dat", b"", 0o640, {"note": "empty"}),
    ]

    files = []
    for name, content, perm, metadata in specs:
        path = source / name
        path.write_bytes(content)
        os.chmod(path, perm)
        files.append((str(path), metadata, perm))
    return files

"""Tests for the storage I/O adapter."""

import pytest

from coldpack.core.adapter import TRANSFER_BUFFER_SIZE, StorageIOAdapter
from coldpack.core.errors import IOOpenError, ReadError, WriteError
from coldpack.storage.base import OpenMode


class TestAdapterOpen:
    """Test opening and closing storage objects."""

    def test_open_failure(self, memory_backend):
        """Test that a backend OSError becomes IOOpenError."""
        adapter = StorageIOAdapter(memory_backend, "missing", OpenMode.READ)
        with pytest.raises(IOOpenError, match="missing"):
            adapter.open()
        assert adapter.closed

    def test_negative_handle_is_open_failure(self, memory_backend, monkeypatch):
        """Test that a negative handle is treated as failure."""
        monkeypatch.setattr(memory_backend, "open", lambda name, mode: -1)
        adapter = StorageIOAdapter(memory_backend, "x", OpenMode.WRITE)
        with pytest.raises(IOOpenError):
            adapter.open()

    def test_close_is_idempotent(self, memory_backend):
        """Test that closing twice only closes the handle once."""
        adapter = StorageIOAdapter(memory_backend, "x", OpenMode.WRITE).open()
        adapter.close()
        adapter.close()
        assert len(memory_backend.closed_handles) == 1
        assert memory_backend.objects["x"] == b""

    def test_close_failure_on_write(self, memory_backend):
        """Test that a failed close of a written object raises WriteError."""
        memory_backend.fail_close = True
        adapter = StorageIOAdapter(memory_backend, "x", OpenMode.WRITE).open()
        with pytest.raises(WriteError):
            adapter.close()
        assert adapter.closed

    def test_context_manager(self, memory_backend):
        """Test open/close via with statement."""
        with StorageIOAdapter(memory_backend, "x", OpenMode.WRITE) as adapter:
            adapter.write(b"abc")
        assert memory_backend.objects["x"] == b"abc"

    def test_io_on_closed_adapter(self, memory_backend):
        """Test that I/O before open is rejected."""
        adapter = StorageIOAdapter(memory_backend, "x", OpenMode.WRITE)
        with pytest.raises(ValueError, match="closed"):
            adapter.write(b"abc")


class TestAdapterRead:
    """Test reads through the adapter."""

    def test_read_is_chunked(self, memory_backend):
        """Test that large reads are split into transfer-sized requests."""
        memory_backend.objects["x"] = bytes(range(256)) * 100
        with StorageIOAdapter(memory_backend, "x", OpenMode.READ) as adapter:
            data = adapter.read(20_000)

        assert data == memory_backend.objects["x"][:20_000]
        assert memory_backend.read_sizes == [8192, 8192, 20_000 - 2 * 8192]

    def test_read_to_end(self, memory_backend):
        """Test that a negative size reads the whole object."""
        memory_backend.objects["x"] = b"z" * 30_000
        with StorageIOAdapter(memory_backend, "x", OpenMode.READ) as adapter:
            assert adapter.read() == b"z" * 30_000
            assert adapter.read(10) == b""
            assert adapter.bytes_read == 30_000

    def test_short_object(self, memory_backend):
        """Test that reads stop at end of stream."""
        memory_backend.objects["x"] = b"short"
        with StorageIOAdapter(memory_backend, "x", OpenMode.READ) as adapter:
            assert adapter.read(512) == b"short"

    def test_read_failure(self, memory_backend):
        """Test that a backend read error becomes ReadError."""
        memory_backend.objects["x"] = b"a" * 100
        memory_backend.fail_read_after = 0
        with StorageIOAdapter(memory_backend, "x", OpenMode.READ) as adapter:
            with pytest.raises(ReadError, match="simulated read failure"):
                adapter.read(10)


class TestAdapterWrite:
    """Test writes through the adapter."""

    def test_write_is_chunked(self, memory_backend):
        """Test that large writes are split into transfer-sized pieces."""
        payload = b"q" * (TRANSFER_BUFFER_SIZE * 2 + 100)
        with StorageIOAdapter(memory_backend, "x", OpenMode.WRITE) as adapter:
            assert adapter.write(payload) == len(payload)

        assert memory_backend.write_sizes == [8192, 8192, 100]
        assert memory_backend.objects["x"] == payload

    def test_short_writes_are_completed(self, memory_backend, monkeypatch):
        """Test that partial backend writes are retried with the remainder."""
        original_write = memory_backend.write

        def half_write(handle, data):
            return original_write(handle, data[: max(1, len(data) // 2)])

        monkeypatch.setattr(memory_backend, "write", half_write)
        with StorageIOAdapter(memory_backend, "x", OpenMode.WRITE) as adapter:
            adapter.write(b"0123456789")

        assert memory_backend.objects["x"] == b"0123456789"

    def test_zero_byte_write_is_failure(self, memory_backend, monkeypatch):
        """Test that a backend accepting nothing raises WriteError."""
        monkeypatch.setattr(memory_backend, "write", lambda handle, data: 0)
        with StorageIOAdapter(memory_backend, "x", OpenMode.WRITE) as adapter:
            with pytest.raises(WriteError):
                adapter.write(b"data")

    def test_write_failure(self, memory_backend):
        """Test that a backend write error becomes WriteError."""
        memory_backend.fail_write_after = 0
        with StorageIOAdapter(memory_backend, "x", OpenMode.WRITE) as adapter:
            with pytest.raises(WriteError, match="simulated write failure"):
                adapter.write(b"data")

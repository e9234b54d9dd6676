"""Coldpack - package stored objects into self-describing containers."""

__version__ = "0.1.0"

from .core.errors import (
    ArchiveError,
    CodecInitError,
    FormatError,
    IOOpenError,
    ManifestError,
    ReadError,
    SessionStateError,
    SourceItemError,
    WriteError,
)
from .core.manifest import CollectionManifest, Item
from .core.session import ArchiveSession

__all__ = [
    "ArchiveError",
    "ArchiveSession",
    "CodecInitError",
    "CollectionManifest",
    "FormatError",
    "IOOpenError",
    "Item",
    "ManifestError",
    "ReadError",
    "SessionStateError",
    "SourceItemError",
    "WriteError",
]

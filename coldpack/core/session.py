"""Archive sessions: build a container from items, or read one back."""

import copy
import io
import logging
import os
import stat
import tarfile
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from ..storage.base import OpenMode, StorageBackend
from .adapter import TRANSFER_BUFFER_SIZE, StorageIOAdapter
from .errors import (
    ArchiveError,
    CodecInitError,
    FormatError,
    ManifestError,
    SessionStateError,
    SourceItemError,
    WriteError,
)
from .formats import ContainerFormat, select_write_format
from .manifest import MANIFEST_MODE, MANIFEST_NAME, CollectionManifest, Item

logger = logging.getLogger(__name__)

# Chunk size used when copying an entry's payload to a local file
EXTRACT_CHUNK_SIZE = TRANSFER_BUFFER_SIZE


class EntryType(str, Enum):
    """Container entry type."""

    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    OTHER = "other"


def _entry_type(member: tarfile.TarInfo) -> EntryType:
    if member.isreg():
        return EntryType.FILE
    if member.isdir():
        return EntryType.DIR
    if member.issym():
        return EntryType.SYMLINK
    if member.islnk():
        return EntryType.HARDLINK
    return EntryType.OTHER


@dataclass
class EntryCursor:
    """Header of the container entry most recently returned by advance()."""

    pathname: str
    filetype: EntryType
    perm: int
    size: int
    mtime: float
    member: tarfile.TarInfo = field(repr=False)
    extracted: bool = False


@dataclass
class _Building:
    manifest: CollectionManifest
    tar: tarfile.TarFile
    adapter: StorageIOAdapter
    container_format: ContainerFormat


@dataclass
class _Reading:
    manifest: CollectionManifest
    tar: tarfile.TarFile
    adapter: StorageIOAdapter
    index: int = 0
    cursor: Optional[EntryCursor] = None
    exhausted: bool = False


@dataclass
class _Closed:
    manifest: CollectionManifest


_SessionState = Union[_Building, _Reading, _Closed]


class ArchiveSession:
    """
    One container, either being built or being read.

    Building sessions (from ``create``) collect items in memory and write the
    whole container when closed: the ``INDEX.json`` manifest entry first, then
    one entry per item in registration order. Reading sessions (from
    ``open``) parse the manifest eagerly and then stream entries on demand
    through ``advance``/``extract_item``/``metadata``.

    All container bytes go through a StorageIOAdapter, so the container can
    live on any StorageBackend. Sessions are single-threaded; separate
    sessions share no state.

    Example:
        >>> with ArchiveSession.create(backend, "out.tar.gz", "coll-1") as s:
        ...     s.add_item("/data/a.txt", {"title": "A"})
        >>> with ArchiveSession.open(backend, "out.tar.gz") as s:
        ...     for path in s:
        ...         s.extract_item(f"/restore/{os.path.basename(path)}")
    """

    def __init__(self, path: str, state: _SessionState):
        """Use ``create`` or ``open`` instead of calling this directly."""
        self.path = path
        self._state = state

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls, backend: StorageBackend, destination: str, collection: str
    ) -> "ArchiveSession":
        """
        Start building a new container.

        The container format is chosen from the destination extension, falling
        back to gzip-compressed ustar tar when the extension is unknown.

        Args:
            backend: Storage backend holding the container
            destination: Object name of the new container
            collection: Identifier of the collection the items come from

        Returns:
            Session in building mode

        Raises:
            IOOpenError: If the backend cannot create the container object
            CodecInitError: If the tar codec cannot be set up
        """
        container_format = select_write_format(destination)
        logger.info(
            "Creating %s container %s for collection %s",
            container_format.label,
            destination,
            collection,
        )

        adapter = StorageIOAdapter(backend, destination, OpenMode.WRITE).open()
        try:
            tar = tarfile.open(
                fileobj=adapter,
                mode=container_format.write_mode,
                format=container_format.tar_format,
            )
        except (tarfile.TarError, ValueError) as e:
            logger.error("Cannot start %s codec: %s", container_format.label, e)
            _close_adapter_quietly(adapter)
            raise CodecInitError(
                f"Cannot write {container_format.label} to {destination}: {e}"
            ) from e

        manifest = CollectionManifest(collection=collection, items=[])
        return cls(destination, _Building(manifest, tar, adapter, container_format))

    @classmethod
    def open(cls, backend: StorageBackend, source: str) -> "ArchiveSession":
        """
        Open an existing container and read its manifest.

        Compression is auto-detected. The first entry must be ``INDEX.json``;
        after this call the next ``advance`` returns the first item entry.

        Args:
            backend: Storage backend holding the container
            source: Object name of the container

        Returns:
            Session in reading mode

        Raises:
            IOOpenError: If the backend cannot open the container object
            ReadError: If reading from the backend fails
            FormatError: If the data is not a container or the first entry
                is not the manifest
            ManifestError: If the manifest is unparsable or incomplete
        """
        adapter = StorageIOAdapter(backend, source, OpenMode.READ).open()
        try:
            tar = tarfile.open(fileobj=adapter, mode="r|*")
        except tarfile.TarError as e:
            _close_adapter_quietly(adapter)
            raise FormatError(f"{source} is not a readable container: {e}") from e
        except ArchiveError:
            _close_adapter_quietly(adapter)
            raise

        try:
            manifest = _read_manifest(tar, source)
        except ArchiveError as e:
            logger.error("Cannot open %s: %s", source, e)
            _close_quietly(tar, adapter)
            raise

        logger.info(
            "Opened %s: collection %s, %d items",
            source,
            manifest.collection,
            len(manifest.items),
        )
        return cls(source, _Reading(manifest, tar, adapter))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> str:
        """Current mode: building, reading or closed."""
        if isinstance(self._state, _Building):
            return "building"
        if isinstance(self._state, _Reading):
            return "reading"
        return "closed"

    @property
    def collection(self) -> str:
        return self._state.manifest.collection

    @property
    def items(self) -> tuple[Item, ...]:
        """Copy of the manifest items in order."""
        return tuple(item.model_copy(deep=True) for item in self._state.manifest.items)

    @property
    def index(self) -> int:
        """Number of advance() calls so far (1-based index of current item)."""
        state = self._state
        return state.index if isinstance(state, _Reading) else 0

    @property
    def cursor(self) -> Optional[EntryCursor]:
        state = self._state
        return state.cursor if isinstance(state, _Reading) else None

    def _require_building(self, operation: str) -> _Building:
        if not isinstance(self._state, _Building):
            raise SessionStateError(
                f"{operation}() requires a building session, session is {self.mode}"
            )
        return self._state

    def _require_reading(self, operation: str) -> _Reading:
        if not isinstance(self._state, _Reading):
            raise SessionStateError(
                f"{operation}() requires a reading session, session is {self.mode}"
            )
        return self._state

    def _require_cursor(self, operation: str) -> tuple[_Reading, EntryCursor]:
        state = self._require_reading(operation)
        if state.exhausted:
            raise SessionStateError(f"{operation}() called after the last entry")
        if state.cursor is None:
            raise SessionStateError(
                f"{operation}() called before advance() returned an entry"
            )
        return state, state.cursor

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_item(self, path: str, metadata: Any = None) -> None:
        """
        Register an object to be packaged when the session is closed.

        Args:
            path: Local path of the object; also its entry name in the container
            metadata: JSON-compatible value stored in the manifest (copied)

        Raises:
            SessionStateError: If the session is not building
            ValueError: If the metadata does not round-trip through JSON
        """
        state = self._require_building("add_item")
        state.manifest.add_item(path, metadata)
        logger.debug("Registered item %d: %s", len(state.manifest.items), path)

    def _finalize(self, state: _Building) -> None:
        """Write the manifest entry and then every item's entry."""
        items = state.manifest.items
        sources = [_stat_source(item.path) for item in items]

        payload = state.manifest.encode()
        info = tarfile.TarInfo(MANIFEST_NAME)
        info.type = tarfile.REGTYPE
        info.mode = MANIFEST_MODE
        info.size = len(payload)
        info.mtime = int(time.time())
        state.tar.addfile(info, io.BytesIO(payload))
        logger.debug("Wrote %s (%d bytes)", MANIFEST_NAME, len(payload))

        for item, st in zip(items, sources):
            _write_item(state.tar, item.path, st)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def advance(self) -> Optional[str]:
        """
        Move to the next entry in the container.

        Returns:
            Pathname of the new current entry, or None once every entry has
            been returned

        Raises:
            SessionStateError: If the session is not reading, or None was
                already returned
            ReadError: If reading from the backend fails
            FormatError: If the container is corrupt or truncated, including
                ending before every manifest item was returned
        """
        state = self._require_reading("advance")
        if state.exhausted:
            raise SessionStateError("advance() called after the last entry")

        state.index += 1
        state.cursor = None
        try:
            member = state.tar.next()
        except tarfile.TarError as e:
            state.exhausted = True
            raise FormatError(f"Corrupt entry {state.index} in {self.path}: {e}") from e
        except ArchiveError:
            state.exhausted = True
            raise

        if member is None:
            state.exhausted = True
            items = state.manifest.items
            if state.index <= len(items):
                # Cut at a header boundary reads as a clean end to tarfile
                missing = ", ".join(item.path for item in items[state.index - 1 :])
                raise FormatError(
                    f"{self.path} ended after {state.index - 1} of {len(items)} "
                    f"entries; missing {missing}"
                )
            logger.debug("Reached end of %s after %d entries", self.path, state.index - 1)
            return None

        state.cursor = EntryCursor(
            pathname=member.name,
            filetype=_entry_type(member),
            perm=member.mode & 0o7777,
            size=member.size,
            mtime=member.mtime,
            member=member,
        )

        items = state.manifest.items
        if state.index > len(items):
            logger.warning(
                "Entry %d (%s) in %s has no manifest item",
                state.index,
                member.name,
                self.path,
            )
        elif items[state.index - 1].path != member.name:
            logger.warning(
                "Entry %d is %s but manifest lists %s",
                state.index,
                member.name,
                items[state.index - 1].path,
            )
        return member.name

    def __iter__(self) -> Iterator[str]:
        """Yield entry pathnames by calling advance() until the end."""
        while True:
            pathname = self.advance()
            if pathname is None:
                return
            yield pathname

    def extract_item(self, destination: Union[str, os.PathLike]) -> None:
        """
        Write the current entry's payload to a local file.

        The file is created or truncated and given exactly the entry's
        permission bits. Directory entries create a directory instead. Each
        entry can be extracted once.

        Args:
            destination: Local path to write

        Raises:
            SessionStateError: If there is no current entry or it was already
                extracted
            FormatError: If the entry is not a file or directory, or its data
                is truncated
            ReadError: If reading from the backend fails
            WriteError: If the local file cannot be written
        """
        state, cursor = self._require_cursor("extract_item")
        if cursor.extracted:
            raise SessionStateError(f"{cursor.pathname} was already extracted")
        cursor.extracted = True

        if cursor.filetype == EntryType.DIR:
            try:
                os.makedirs(destination, exist_ok=True)
                os.chmod(destination, cursor.perm)
            except OSError as e:
                raise WriteError(f"Cannot create directory {destination}: {e}") from e
            return

        if cursor.filetype != EntryType.FILE:
            raise FormatError(
                f"Cannot extract {cursor.filetype.value} entry {cursor.pathname}"
            )

        try:
            fd = os.open(destination, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, cursor.perm)
        except OSError as e:
            raise WriteError(f"Cannot create {destination}: {e}") from e

        written = 0
        try:
            os.fchmod(fd, cursor.perm)
            source = state.tar.extractfile(cursor.member)
            while True:
                try:
                    chunk = source.read(EXTRACT_CHUNK_SIZE)
                except tarfile.TarError as e:
                    raise FormatError(
                        f"Truncated data for {cursor.pathname} in {self.path}: {e}"
                    ) from e
                if not chunk:
                    break
                _write_all(fd, chunk)
                written += len(chunk)
        except OSError as e:
            raise WriteError(f"Cannot write {destination}: {e}") from e
        finally:
            os.close(fd)

        logger.debug("Extracted %s to %s (%d bytes)", cursor.pathname, destination, written)

    def metadata(self) -> Any:
        """
        Metadata of the manifest item matching the current entry.

        Returns:
            Copy of the item's metadata value

        Raises:
            SessionStateError: Before the first advance, after the last entry,
                or when the entry has no manifest item
        """
        state, cursor = self._require_cursor("metadata")
        items = state.manifest.items
        if state.index > len(items):
            raise SessionStateError(
                f"Entry {state.index} ({cursor.pathname}) has no manifest item"
            )
        return copy.deepcopy(items[state.index - 1].metadata)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """
        End the session. Safe to call more than once.

        Building sessions write the container first: manifest entry, then one
        entry per item. If any source cannot be packaged the build is aborted
        with SourceItemError; sources are checked before anything is written,
        so a missing source leaves a container with no entries.
        """
        state = self._state
        if isinstance(state, _Closed):
            return
        self._state = _Closed(state.manifest)

        if isinstance(state, _Building):
            try:
                self._finalize(state)
            except BaseException:
                logger.warning("Build of %s aborted", self.path)
                _close_quietly(state.tar, state.adapter)
                raise
            _close(state.tar, state.adapter)
            logger.info(
                "Wrote %s (%s): %d items, %d bytes",
                self.path,
                state.container_format.label,
                len(state.manifest.items),
                state.adapter.bytes_written,
            )
        else:
            _close(state.tar, state.adapter)

    def abort(self) -> None:
        """Release resources without writing anything further."""
        state = self._state
        if isinstance(state, _Closed):
            return
        self._state = _Closed(state.manifest)
        if isinstance(state, _Building):
            logger.warning("Build of %s abandoned before finalize", self.path)
        _close_quietly(state.tar, state.adapter)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def __repr__(self) -> str:
        return f"ArchiveSession({self.path!r}, mode={self.mode!r})"


def _read_manifest(tar: tarfile.TarFile, source: str) -> CollectionManifest:
    """Read and parse the first entry of a container opened for reading."""
    member = tar.next()
    if member is None:
        raise FormatError(f"{source} contains no entries")
    if member.name != MANIFEST_NAME:
        raise FormatError(
            f"{source} starts with {member.name!r}, expected {MANIFEST_NAME!r}"
        )
    if not member.isreg():
        raise FormatError(f"{MANIFEST_NAME} in {source} is not a regular file")

    try:
        payload = tar.extractfile(member).read(member.size)
    except tarfile.TarError as e:
        raise ManifestError(f"Truncated {MANIFEST_NAME} in {source}: {e}") from e
    if len(payload) != member.size:
        raise ManifestError(
            f"Truncated {MANIFEST_NAME} in {source}: "
            f"{len(payload)} of {member.size} bytes"
        )
    return CollectionManifest.from_json(payload)


def _stat_source(path: str) -> os.stat_result:
    try:
        st = os.stat(path)
    except OSError as e:
        raise SourceItemError(path, e.strerror or str(e)) from e
    if not (stat.S_ISREG(st.st_mode) or stat.S_ISDIR(st.st_mode)):
        raise SourceItemError(path, "not a regular file or directory")
    return st


def _write_item(tar: tarfile.TarFile, path: str, st: os.stat_result) -> None:
    """Write one item's header and payload, taking metadata from ``st``."""
    info = tarfile.TarInfo(path)
    info.mode = stat.S_IMODE(st.st_mode)
    info.mtime = st.st_mtime

    try:
        if stat.S_ISDIR(st.st_mode):
            info.type = tarfile.DIRTYPE
            info.size = 0
            tar.addfile(info)
        else:
            info.type = tarfile.REGTYPE
            info.size = st.st_size
            with open(path, "rb") as f:
                tar.addfile(info, f)
    except OSError as e:
        raise SourceItemError(path, str(e)) from e
    except ValueError as e:
        # Header cannot represent the entry (e.g. name too long for ustar)
        raise SourceItemError(path, str(e)) from e

    logger.debug("Wrote %s (%d bytes)", path, info.size)


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]


def _close(tar: tarfile.TarFile, adapter: StorageIOAdapter) -> None:
    """Close codec then adapter, raising the first failure after both ran."""
    try:
        tar.close()
    except BaseException:
        _close_adapter_quietly(adapter)
        raise
    adapter.close()


def _close_quietly(tar: tarfile.TarFile, adapter: StorageIOAdapter) -> None:
    """Release codec and adapter while another error is propagating."""
    try:
        tar.close()
    except (ArchiveError, OSError, tarfile.TarError) as e:
        logger.warning("Failed to close codec for %s: %s", adapter.name, e)
    _close_adapter_quietly(adapter)


def _close_adapter_quietly(adapter: StorageIOAdapter) -> None:
    try:
        adapter.close()
    except ArchiveError as e:
        logger.warning("Failed to close %s: %s", adapter.name, e)

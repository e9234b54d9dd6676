"""Exception hierarchy for coldpack archive sessions."""


class ArchiveError(Exception):
    """Base class for all archive session failures."""


class CodecInitError(ArchiveError):
    """The container codec could not be configured or started."""


class IOOpenError(ArchiveError):
    """The storage backend refused to open the container object."""


class FormatError(ArchiveError):
    """The container is unreadable or does not start with the manifest entry."""


class ManifestError(ArchiveError):
    """The embedded manifest is not valid JSON or lacks required fields."""


class ReadError(ArchiveError):
    """A read through the storage adapter failed."""


class WriteError(ArchiveError):
    """A write through the storage adapter or to a local file failed."""


class SessionStateError(ArchiveError):
    """An operation was called in a mode or state that does not permit it."""


class SourceItemError(ArchiveError):
    """A registered item's source object could not be packaged."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot package {path}: {reason}")

"""Container format and filter selection for new archives."""

import tarfile
from dataclasses import dataclass


@dataclass(frozen=True)
class ContainerFormat:
    """Tar header format plus compression filter for a container."""

    tar_format: int
    compression: str  # "" (none), "gz", "bz2" or "xz"

    @property
    def write_mode(self) -> str:
        """Stream-mode string for ``tarfile.open``."""
        return f"w|{self.compression}"

    @property
    def label(self) -> str:
        names = {
            tarfile.USTAR_FORMAT: "ustar",
            tarfile.GNU_FORMAT: "gnutar",
            tarfile.PAX_FORMAT: "pax",
        }
        name = names.get(self.tar_format, "tar")
        return f"{name}+{self.compression}" if self.compression else name


# Used when the destination extension is not recognized
FALLBACK_FORMAT = ContainerFormat(tarfile.USTAR_FORMAT, "gz")

# Longest suffixes first so ".tar.gz" wins over ".gz"
_EXTENSION_FORMATS = [
    (".tar.gz", ContainerFormat(tarfile.PAX_FORMAT, "gz")),
    (".tar.bz2", ContainerFormat(tarfile.PAX_FORMAT, "bz2")),
    (".tar.xz", ContainerFormat(tarfile.PAX_FORMAT, "xz")),
    (".tgz", ContainerFormat(tarfile.PAX_FORMAT, "gz")),
    (".taz", ContainerFormat(tarfile.PAX_FORMAT, "gz")),
    (".tbz2", ContainerFormat(tarfile.PAX_FORMAT, "bz2")),
    (".tbz", ContainerFormat(tarfile.PAX_FORMAT, "bz2")),
    (".txz", ContainerFormat(tarfile.PAX_FORMAT, "xz")),
    (".tar", ContainerFormat(tarfile.PAX_FORMAT, "")),
]


def select_write_format(path: str) -> ContainerFormat:
    """
    Choose the container format from the destination path's extension.

    Args:
        path: Destination object name

    Returns:
        Matching ContainerFormat, or FALLBACK_FORMAT (gzip-filtered ustar)
        when the extension is not recognized

    Examples:
        >>> select_write_format("data.tar.xz").label
        'pax+xz'
        >>> select_write_format("data.bin").label
        'ustar+gz'
    """
    lowered = path.lower()
    for suffix, container_format in _EXTENSION_FORMATS:
        if lowered.endswith(suffix):
            return container_format
    return FALLBACK_FORMAT

"""Typer-based CLI application for coldpack."""

import json
import logging
from pathlib import Path, PurePosixPath
from typing import Annotated, Any, Optional

import typer

from coldpack import __version__
from coldpack.config import ConfigError, build_backend, load_config
from coldpack.core.errors import ArchiveError
from coldpack.core.manifest import CollectionManifest
from coldpack.core.session import ArchiveSession, EntryType
from coldpack.storage.base import StorageBackend
from coldpack.utils.formatters import format_mode, format_size

app = typer.Typer(
    name="coldpack",
    help="Package stored objects into self-describing containers",
    add_completion=False,
)

logger = logging.getLogger(__name__)

# Suffix of the per-item metadata files written by unpack
METADATA_SUFFIX = ".metadata.json"


def version_callback(value: bool):
    """Display version and exit."""
    if value:
        typer.echo(f"coldpack v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = None,
):
    """Coldpack - self-describing containers for collections.

    Every container starts with an INDEX.json manifest that records the
    collection it came from and per-item metadata, followed by the items
    themselves in manifest order.
    """
    pass


ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", help="YAML config file (default: $COLDPACK_CONFIG)"),
]

LogLevelOption = Annotated[
    Optional[str],
    typer.Option(
        help="Logging level (debug, info, warn, error)",
        case_sensitive=False,
        hidden=True,
    ),
]


def setup(config_path: Optional[Path], log_level: Optional[str]) -> StorageBackend:
    """Load config, configure logging and build the storage backend.

    Raises:
        typer.Exit: If the config or log level is invalid
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1) from e

    configure_logging(log_level or config.log_level)

    try:
        return build_backend(config)
    except ConfigError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1) from e


def configure_logging(log_level: str) -> None:
    """Configure root logging from a level name.

    Raises:
        typer.Exit: If the level name is not recognized
    """
    log_level_upper = log_level.upper()
    if log_level_upper not in ["DEBUG", "INFO", "WARN", "WARNING", "ERROR"]:
        typer.echo(
            f"❌ Invalid log level: {log_level}. "
            "Must be debug, info, warn, or error.",
            err=True,
        )
        raise typer.Exit(1)

    # Map WARN to WARNING for Python logging
    if log_level_upper == "WARN":
        log_level_upper = "WARNING"

    logging.basicConfig(
        level=getattr(logging, log_level_upper),
        format="%(message)s",
    )


def load_item_metadata(path: Path) -> dict[str, Any]:
    """Read a JSON object mapping source paths to metadata values.

    Raises:
        typer.Exit: If the file is unreadable or not a JSON object
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        typer.echo(f"❌ Cannot read metadata file {path}: {e}", err=True)
        raise typer.Exit(1) from e

    if not isinstance(data, dict):
        typer.echo(
            f"❌ Metadata file {path} must contain a JSON object keyed by path",
            err=True,
        )
        raise typer.Exit(1)
    return data


def extraction_target(output_dir: Path, entry: str) -> Optional[Path]:
    """Map an entry pathname to a path under output_dir.

    Leading slashes are dropped. Returns None for names that would escape
    output_dir or that are empty.

    Examples:
        >>> extraction_target(Path("/out"), "/data/a.txt")
        PosixPath('/out/data/a.txt')
        >>> extraction_target(Path("/out"), "../etc/passwd") is None
        True
    """
    parts = [p for p in PurePosixPath(entry).parts if p not in ("/", ".")]
    if not parts or ".." in parts:
        return None
    return output_dir.joinpath(*parts)


@app.command()
def pack(
    destination: Annotated[
        str, typer.Argument(help="Container to create (object name on the backend)")
    ],
    sources: Annotated[
        list[Path], typer.Argument(help="Files or directories to package, in order")
    ],
    collection: Annotated[
        str, typer.Option(help="Identifier of the collection the items come from")
    ],
    metadata: Annotated[
        Optional[Path],
        typer.Option(help="JSON file mapping each source path to its metadata"),
    ] = None,
    config: ConfigOption = None,
    log_level: LogLevelOption = None,
):
    """Build a container from local files.

    Items are written in the order given, after the INDEX.json manifest.
    The container format follows the destination extension (.tar, .tar.gz,
    .tar.bz2, .tar.xz); anything else is written as gzip-compressed tar.
    """
    backend = setup(config, log_level)

    item_metadata: dict[str, Any] = {}
    if metadata is not None:
        item_metadata = load_item_metadata(metadata)

    missing = [s for s in sources if not s.exists()]
    if missing:
        for source in missing:
            typer.echo(f"❌ Source path does not exist: {source}", err=True)
        raise typer.Exit(1)

    typer.echo("=" * 60)
    typer.echo("📦 Coldpack - Creating Container")
    typer.echo("=" * 60)
    typer.echo(f"Container:   {destination}")
    typer.echo(f"Collection:  {collection}")
    typer.echo(f"Items:       {len(sources)}")
    typer.echo("=" * 60)

    try:
        session = ArchiveSession.create(backend, destination, collection)
        with session:
            for source in sources:
                session.add_item(str(source), item_metadata.get(str(source)))
    except KeyboardInterrupt:
        typer.echo("\n❌ Operation cancelled by user", err=True)
        raise typer.Exit(130) from None
    except ArchiveError as e:
        typer.echo(f"❌ Error creating container: {e}", err=True)
        logger.debug("Container creation failed", exc_info=True)
        raise typer.Exit(1) from e
    except ValueError as e:
        typer.echo(f"❌ Invalid metadata: {e}", err=True)
        raise typer.Exit(1) from e

    total_size = sum(s.stat().st_size for s in sources if s.is_file())
    typer.echo(f"✅ Container created: {destination}")
    typer.echo(f"   {len(sources)} items, {format_size(total_size)} of payload")


@app.command()
def unpack(
    archive: Annotated[str, typer.Argument(help="Container to read")],
    output_dir: Annotated[
        Path, typer.Argument(help="Directory to extract items into")
    ],
    config: ConfigOption = None,
    log_level: LogLevelOption = None,
):
    """Extract every item and write its metadata next to it.

    Each extracted item PATH gets a PATH.metadata.json file holding the
    metadata recorded for it in the manifest.
    """
    backend = setup(config, log_level)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        typer.echo(f"❌ Cannot create output directory: {e}", err=True)
        raise typer.Exit(1) from e

    extracted = 0
    skipped = 0
    try:
        with ArchiveSession.open(backend, archive) as session:
            typer.echo(f"📂 Collection: {session.collection}")
            item_count = len(session.items)

            for entry in session:
                target = extraction_target(output_dir, entry)
                if target is None:
                    typer.echo(f"⚠️  Skipping unsafe entry name: {entry}", err=True)
                    skipped += 1
                    continue

                cursor = session.cursor
                if cursor.filetype not in (EntryType.FILE, EntryType.DIR):
                    typer.echo(
                        f"⚠️  Skipping {cursor.filetype.value} entry: {entry}",
                        err=True,
                    )
                    skipped += 1
                    continue

                target.parent.mkdir(parents=True, exist_ok=True)
                session.extract_item(target)
                extracted += 1
                typer.echo(
                    f"  {format_mode(cursor.perm)}  {format_size(cursor.size):>10}  "
                    f"{entry}"
                )

                if session.index <= item_count:
                    sidecar = target.with_name(target.name + METADATA_SUFFIX)
                    sidecar.write_text(
                        json.dumps(session.metadata(), indent=2) + "\n",
                        encoding="utf-8",
                    )
    except KeyboardInterrupt:
        typer.echo("\n❌ Operation cancelled by user", err=True)
        raise typer.Exit(130) from None
    except ArchiveError as e:
        typer.echo(f"❌ Error reading container: {e}", err=True)
        logger.debug("Container extraction failed", exc_info=True)
        raise typer.Exit(1) from e
    except OSError as e:
        typer.echo(f"❌ Cannot write to output directory: {e}", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"✅ Extracted {extracted} items to {output_dir}")
    if skipped:
        typer.echo(f"⚠️  Skipped {skipped} entries")


@app.command("list")
def list_items(
    archive: Annotated[str, typer.Argument(help="Container to inspect")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the manifest as JSON"),
    ] = False,
    config: ConfigOption = None,
    log_level: LogLevelOption = None,
):
    """Show the collection and items recorded in a container's manifest."""
    backend = setup(config, log_level)

    try:
        with ArchiveSession.open(backend, archive) as session:
            manifest = CollectionManifest(
                collection=session.collection, items=list(session.items)
            )
    except ArchiveError as e:
        typer.echo(f"❌ Error reading container: {e}", err=True)
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(manifest.to_json())
        return

    typer.echo(f"Collection:  {manifest.collection}")
    typer.echo(f"Items:       {len(manifest.items)}")
    for i, item in enumerate(manifest.items, 1):
        typer.echo(f"  {i:>4}. {item.path}")


if __name__ == "__main__":
    app()

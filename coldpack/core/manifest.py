"""Manifest schema and serialization for coldpack containers."""

import json
from typing import Any, Union

from pydantic import BaseModel, Field, ValidationError

from .errors import ManifestError

# Name and permission bits of the manifest entry, always first in a container
MANIFEST_NAME = "INDEX.json"
MANIFEST_MODE = 0o444


class Item(BaseModel):
    """One packaged object: where it came from plus its metadata."""

    path: str = Field(..., description="Source path at build time")
    metadata: Any = Field(None, description="Arbitrary JSON value for this item")


class CollectionManifest(BaseModel):
    """
    Ordered item list for a container and the collection it was built from.

    Item order is significant: it is the order entries follow the manifest
    entry inside the container.
    """

    collection: str = Field(..., description="Origin collection identifier")
    items: list[Item] = Field(..., description="Items in order")

    def add_item(self, path: str, metadata: Any = None) -> Item:
        """
        Append an item to the end of the manifest.

        The metadata is stored as its JSON round-trip copy, so later changes
        by the caller do not leak into the manifest. Values JSON cannot
        represent exactly (NaN, tuples, bytes, non-string keys) are rejected.

        Args:
            path: Source path of the object
            metadata: JSON-compatible metadata value

        Returns:
            The appended Item

        Raises:
            ValueError: If the metadata is not a plain JSON value
        """
        item = Item(path=path, metadata=_json_copy(path, metadata))
        self.items.append(item)
        return item

    def to_json(self, indent: int = 2) -> str:
        """
        Serialize manifest to JSON string.

        Args:
            indent: JSON indentation level

        Returns:
            JSON string representation
        """
        return self.model_dump_json(indent=indent)

    def encode(self) -> bytes:
        """UTF-8 bytes of the manifest entry payload."""
        return self.to_json().encode("utf-8")

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "CollectionManifest":
        """
        Deserialize manifest from JSON.

        Args:
            data: JSON document (str or UTF-8 bytes)

        Returns:
            CollectionManifest instance

        Raises:
            ManifestError: If the document is not valid JSON, is not an object,
                or lacks a string "collection" or an array "items"
        """
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise ManifestError(f"Invalid {MANIFEST_NAME}: {e}") from e


def _json_copy(path: str, metadata: Any) -> Any:
    """Return a copy of ``metadata`` that survives a JSON round trip unchanged."""
    try:
        copied = json.loads(json.dumps(metadata, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise ValueError(f"Metadata for {path} is not valid JSON: {e}") from e
    if copied != metadata:
        raise ValueError(f"Metadata for {path} does not round-trip through JSON")
    return copied

"""
Collection blob encoding.

A collection is stored as a single UTF-8 JSON array of objects, pretty-printed
with a two-space indent so diffs in the backing repository stay readable.

Invariants:
    - encode_collection output always decodes back to a list
    - decode_collection never returns partial data; bad blobs raise
"""

from __future__ import annotations

import json
from typing import List

from .errors import CorruptCollectionError, ValidationError
from .records import Record


def encode_collection(records: List[Record], collection: str | None = None) -> bytes:
    """Serialize records to blob bytes.

    Raises:
        ValidationError: If a record holds a value JSON cannot represent
    """
    try:
        text = json.dumps(records, indent=2, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Collection '{collection}' holds a value that cannot be stored as JSON: {e}",
            collection=collection,
        ) from e
    return text.encode("utf-8")


def decode_collection(content: bytes, path: str) -> List[Record]:
    """Parse blob bytes into a list of records.

    An empty blob is treated as an empty collection.

    Raises:
        CorruptCollectionError: If the blob is not a JSON array of objects
    """
    if not content.strip():
        return []
    try:
        data = json.loads(content.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorruptCollectionError(path, f"invalid JSON ({e})") from e

    if not isinstance(data, list):
        raise CorruptCollectionError(path, f"expected array, got {type(data).__name__}")
    for i, item in enumerate(data):
        if not isinstance(item, dict):
            raise CorruptCollectionError(path, f"item {i} is {type(item).__name__}, not an object")
    return data

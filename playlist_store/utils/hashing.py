"""Playlist Store - Canonical serialization and hashing utilities.

All hash functions return HEX DIGEST ONLY (no prefix).

The snapshot stored on a playlist row is sha256(canonical_json(document)).
canonical_json must stay byte-for-byte stable across runs: any change to it
makes every stored snapshot mismatch and forces a full re-ingestion.
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def sha256_bytes(data: bytes) -> str:
    """Compute SHA256 hash of bytes.

    Args:
        data: Bytes to hash.

    Returns:
        SHA256 hex digest (64 lowercase hex characters, no prefix).
    """
    return hashlib.sha256(data).hexdigest()


def canonical_json(document: Mapping[str, Any]) -> bytes:
    """Serialize a parsed source document deterministically.

    Keys are sorted at every nesting level, separators carry no whitespace and
    non-ASCII text is kept as UTF-8. Documents that differ only in key order
    therefore serialize identically; list order is significant.

    Args:
        document: Parsed JSON document (nested dicts/lists/scalars).

    Returns:
        UTF-8 encoded canonical JSON.

    Raises:
        TypeError: If the document holds values JSON cannot represent.
    """
    text = json.dumps(
        document,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return text.encode("utf-8")


def snapshot_hash(document: Mapping[str, Any]) -> str:
    """Compute the snapshot hash of a source document.

    Args:
        document: Parsed JSON document.

    Returns:
        SHA256 hex digest of canonical_json(document).
    """
    return sha256_bytes(canonical_json(document))

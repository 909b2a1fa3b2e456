"""Playlist Store - Utility modules."""

from playlist_store.utils.batching import batched
from playlist_store.utils.hashing import canonical_json, sha256_bytes, snapshot_hash

__all__ = [
    # batching
    "batched",
    # hashing
    "canonical_json",
    "sha256_bytes",
    "snapshot_hash",
]

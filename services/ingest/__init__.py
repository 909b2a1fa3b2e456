"""Playlist Store - Ingestion service.

Batch ingestion of playlist and audio-feature JSON documents: snapshot
change detection, normalization and per-batch transactional upsert.
"""

__all__: list[str] = []

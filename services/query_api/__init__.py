"""Playlist Store - Query API service.

FastAPI service exposing read-only aggregate queries over the store.
"""

__all__: list[str] = []

"""Playlist Store - Core application modules.

Provides:
- SQLAlchemy models and DB primitives (engine, session factory, unit of work)
- Pydantic source-document schemas
- Normalization, change detection and conflict-tolerant upsert
- Read-only aggregate queries
"""

__version__ = "0.1.0"

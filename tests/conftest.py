"""Shared pytest fixtures for Playlist Store tests.

This module contains common fixtures used across multiple test files,
reducing duplication and improving test maintainability.
"""

import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from playlist_store.db import init_db
from services.query_api.main import app, override_session_factory


@pytest.fixture
def temp_db():
    """Create a temporary database for testing.

    Creates an isolated SQLite database in a temporary directory.
    The database is cleaned up after the test completes.

    Yields:
        tuple: (db_path, engine, SessionFactory)
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        engine, SessionFactory = init_db(f"sqlite:///{db_path}")
        yield db_path, engine, SessionFactory
        engine.dispose()


@pytest.fixture
def session_factory(temp_db):
    """Session factory bound to the temporary database."""
    _, _, SessionFactory = temp_db
    return SessionFactory


@pytest.fixture
def client(temp_db):
    """Create a FastAPI test client with temp database.

    Injects the temporary session factory so the app lifespan does not open
    the default database. The injection is cleared after the test completes.

    Args:
        temp_db: Temporary database fixture.

    Yields:
        tuple: (test_client, SessionFactory)
    """
    _, _, SessionFactory = temp_db
    override_session_factory(SessionFactory)

    with TestClient(app) as client:
        yield client, SessionFactory

    override_session_factory(None)

"""Playlist Store - Ingestion command line entry point.

Loads the playlist and audio-features JSON files, opens the storage provider,
runs one ingestion pass and disposes the provider.

Usage:
    python -m services.ingest.run --from playlists.json --features features.json [--batch 5]

Exit status: 0 on success, 1 on any handled failure.
"""

from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from playlist_store.config import DEFAULT_BATCH_SIZE
from playlist_store.db import get_database_url, init_db
from services.ingest.pipeline import SourceDocumentError, run_ingestion

logger = logging.getLogger(__name__)


def load_json_file(path: Path) -> Any:
    """Read and parse a JSON file.

    Raises:
        SourceDocumentError: If the file is missing, unreadable or not JSON.
    """
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as e:
        raise SourceDocumentError(str(path), "file not found") from e
    except json.JSONDecodeError as e:
        raise SourceDocumentError(str(path), f"invalid JSON: {e}") from e
    except OSError as e:
        raise SourceDocumentError(str(path), str(e)) from e


def load_playlists(path: Path) -> list[dict[str, Any]]:
    """Load playlist documents: a JSON array, or a single playlist object."""
    data = load_json_file(path)
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return data
    raise SourceDocumentError(str(path), "expected a playlist object or an array of playlists")


def load_features(path: Path) -> dict[str, Any]:
    """Load the audio-features document: {"audio_features": [...]} or a bare array."""
    data = load_json_file(path)
    if isinstance(data, list):
        return {"audio_features": data}
    if isinstance(data, dict):
        return data
    raise SourceDocumentError(str(path), "expected an object with audio_features or an array")


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Ingest playlist and audio-feature JSON into the playlist store"
    )
    parser.add_argument(
        "--from",
        "-f",
        dest="from_path",
        type=Path,
        required=True,
        help="Path to the playlist JSON file",
    )
    parser.add_argument(
        "--features",
        "-p",
        type=Path,
        required=True,
        help="Path to the audio features JSON file",
    )
    parser.add_argument(
        "--batch",
        "-b",
        type=_positive_int,
        default=DEFAULT_BATCH_SIZE,
        help=f"Playlists per transaction (default: {DEFAULT_BATCH_SIZE})",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="SQLAlchemy database URL (default: PLAYLIST_STORE_DB_URL or local SQLite)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from_path = args.from_path.resolve()
    features_path = args.features.resolve()
    logger.info("Ingesting playlists from: %s", from_path)
    logger.info("With audio features from: %s", features_path)
    logger.info("Batch size: %d", args.batch)

    try:
        raw_playlists = load_playlists(from_path)
        raw_features = load_features(features_path)
    except SourceDocumentError as e:
        logger.error("Ingestion failed: %s", e.message)
        logger.info("Total rows written: 0")
        return 1

    try:
        engine, SessionFactory = init_db(get_database_url(args.db_url))
    except (SQLAlchemyError, ImportError):
        # ImportError: the URL names a DBAPI driver that is not installed
        logger.exception("Could not open the database")
        logger.info("Total rows written: 0")
        return 1

    try:
        summary = run_ingestion(
            SessionFactory,
            raw_playlists,
            raw_features,
            batch_size=args.batch,
        )
    finally:
        engine.dispose()

    if not summary.ok:
        return 1
    logger.info("Ingestion complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Tests for services.ingest.pipeline.

Covers idempotent re-runs, snapshot change propagation, per-batch atomicity
and the failure codes reported in the run summary.
"""

from datetime import datetime

import pytest
from sqlalchemy import select

from playlist_store.models import Artist, Playlist, PlaylistTrack, Track
from playlist_store.utils.hashing import snapshot_hash
from services.ingest import pipeline
from services.ingest.pipeline import (
    IngestErrorCode,
    MalformedDocumentError,
    run_ingestion,
    validate_playlists,
)
from services.ingest.run import load_features, load_playlists
from tests.factories import FIXTURES_DIR, make_features, make_playlist, make_track, table_counts


@pytest.fixture
def fixture_documents():
    """Parsed fixture playlists and audio features."""
    return (
        load_playlists(FIXTURES_DIR / "playlist.basic.json"),
        load_features(FIXTURES_DIR / "audio_features.json"),
    )


def _poison(monkeypatch, playlist_id):
    """Make the given playlist normalize to a junction row with a missing artist."""
    real_normalize = pipeline.normalize_playlist

    def normalize_with_orphan(document, snapshot):
        records = real_normalize(document, snapshot)
        if document.id == playlist_id:
            records.track_artists.append(
                {"track_id": records.tracks[0]["id"], "artist_id": "ghost"}
            )
        return records

    monkeypatch.setattr(pipeline, "normalize_playlist", normalize_with_orphan)


class TestValidatePlaylists:
    """Tests for validate_playlists."""

    def test_snapshot_computed_over_raw_document(self):
        raw = make_playlist("p1", [make_track("t1")])

        [pending] = validate_playlists([raw])

        assert pending.document.id == "p1"
        assert pending.snapshot == snapshot_hash(raw)

    def test_reports_offending_index(self):
        bad = make_track("t2")
        del bad["album"]
        raws = [make_playlist("p1", [make_track("t1")]), make_playlist("p2", [bad])]

        with pytest.raises(MalformedDocumentError) as exc_info:
            validate_playlists(raws)

        assert exc_info.value.document_ref == "playlists[1]"
        assert exc_info.value.error_code == IngestErrorCode.DOCUMENT_MALFORMED


class TestRunIngestion:
    """Tests for run_ingestion happy paths."""

    def test_fixture_ingestion(self, session_factory, fixture_documents):
        playlists, features = fixture_documents

        summary = run_ingestion(session_factory, playlists, features)

        assert summary.ok is True
        assert summary.error_code is None
        assert summary.message == "Ingestion complete"
        assert summary.playlists_seen == 1
        assert summary.batches_committed == 1
        assert table_counts(session_factory) == {
            "artists": 2,
            "albums": 1,
            "tracks": 2,
            "track_artists": 3,
            "playlists": 1,
            "playlist_tracks": 2,
            "audio_features": 2,
        }
        assert summary.rows_written == 13

    def test_second_run_writes_nothing(self, session_factory, fixture_documents):
        """Re-ingesting an unchanged file writes zero rows and leaves counts as-is."""
        playlists, features = fixture_documents
        run_ingestion(session_factory, playlists, features)
        counts_after_first = table_counts(session_factory)

        summary = run_ingestion(session_factory, playlists, features)

        assert summary.ok is True
        assert summary.rows_written == 0
        assert summary.playlists_skipped == 1
        assert summary.batches_committed == 0
        assert table_counts(session_factory) == counts_after_first

    def test_changed_playlist_reingested(self, session_factory):
        first = make_playlist("p1", [make_track("t1"), make_track("t2")])
        run_ingestion(session_factory, [first])

        second = make_playlist("p1", [make_track("t1"), make_track("t2"), make_track("t3")])
        summary = run_ingestion(session_factory, [second])

        assert summary.playlists_skipped == 0
        assert summary.tally.by_relation["tracks"] == 1
        assert summary.tally.by_relation["playlists"] == 1
        with session_factory() as session:
            playlist = session.get(Playlist, "p1")
            positions = session.execute(
                select(PlaylistTrack.track_id, PlaylistTrack.position)
                .where(PlaylistTrack.playlist_id == "p1")
                .order_by(PlaylistTrack.position)
            ).all()
        assert playlist.snapshot == snapshot_hash(second)
        assert [tuple(row) for row in positions] == [("t1", 0), ("t2", 1), ("t3", 2)]

    def test_only_changed_playlists_reingested(self, session_factory):
        p1 = make_playlist("p1", [make_track("t1")])
        p2 = make_playlist("p2", [make_track("t2")])
        run_ingestion(session_factory, [p1, p2])

        p2_changed = make_playlist("p2", [make_track("t2"), make_track("t3")])
        summary = run_ingestion(session_factory, [p1, p2_changed])

        assert summary.playlists_skipped == 1
        assert summary.batches_committed == 1

    def test_shared_entities_written_once(self, session_factory):
        """Playlists sharing a track and artist produce one row each."""
        shared = make_track("t1", artists=("ar-1",))
        raws = [make_playlist(f"p{i}", [shared]) for i in range(3)]

        summary = run_ingestion(session_factory, raws, batch_size=2)

        assert summary.batches_committed == 2
        counts = table_counts(session_factory)
        assert counts["tracks"] == 1
        assert counts["artists"] == 1
        assert counts["track_artists"] == 1
        assert counts["playlist_tracks"] == 3

    def test_batches_split_by_size(self, session_factory):
        raws = [make_playlist(f"p{i}", [make_track(f"t{i}")]) for i in range(7)]

        summary = run_ingestion(session_factory, raws, batch_size=3)

        assert summary.ok is True
        assert summary.batches_committed == 3
        assert table_counts(session_factory)["playlists"] == 7

    def test_duplicate_playlist_id_keeps_last(self, session_factory, caplog):
        first = make_playlist("p1", [make_track("t1")], name="First")
        last = make_playlist("p1", [make_track("t2")], name="Last")

        with caplog.at_level("WARNING"):
            summary = run_ingestion(session_factory, [first, last])

        assert summary.ok is True
        with session_factory() as session:
            assert session.get(Playlist, "p1").name == "Last"
            assert session.get(Track, "t1") is None
        assert "more than once" in caplog.text

    def test_features_pass_runs_when_playlists_unchanged(self, session_factory):
        raw = make_playlist("p1", [make_track("t1"), make_track("t2")])
        run_ingestion(session_factory, [raw], make_features(("t1", 0.4)))

        summary = run_ingestion(session_factory, [raw], make_features(("t1", 0.4), ("t2", 0.9)))

        assert summary.playlists_skipped == 1
        assert summary.tally.by_relation["audio_features"] == 1
        assert summary.rows_written == 1

    def test_features_optional(self, session_factory):
        summary = run_ingestion(session_factory, [make_playlist("p1", [make_track("t1")])])
        assert summary.ok is True
        assert table_counts(session_factory)["audio_features"] == 0

    def test_empty_input(self, session_factory):
        summary = run_ingestion(session_factory, [], {"audio_features": []})
        assert summary.ok is True
        assert summary.rows_written == 0
        assert summary.batches_committed == 0

    def test_final_count_logged(self, session_factory, caplog):
        with caplog.at_level("INFO"):
            run_ingestion(session_factory, [make_playlist("p1", [])])
        assert "Total rows written: 1" in caplog.text

    def test_invalid_batch_size(self, session_factory):
        with pytest.raises(ValueError):
            run_ingestion(session_factory, [], batch_size=0)


class TestRunIngestionFailures:
    """Tests for run_ingestion failure handling."""

    def test_malformed_document_writes_nothing(self, session_factory):
        """Validation happens before any unit of work is opened."""
        bad = make_track("t9")
        del bad["album"]
        raws = [make_playlist("p1", [make_track("t1")]), make_playlist("p2", [bad])]

        summary = run_ingestion(session_factory, raws)

        assert summary.ok is False
        assert summary.error_code == IngestErrorCode.DOCUMENT_MALFORMED
        assert "playlists[1]" in summary.message
        assert summary.rows_written == 0
        assert all(count == 0 for count in table_counts(session_factory).values())

    def test_failing_batch_rolled_back_in_full(self, session_factory, monkeypatch):
        """A five-playlist batch whose fifth document fails leaves no trace."""
        _poison(monkeypatch, "p4")
        raws = [make_playlist(f"p{i}", [make_track(f"t{i}")]) for i in range(5)]

        summary = run_ingestion(session_factory, raws, batch_size=5)

        assert summary.ok is False
        assert summary.error_code == IngestErrorCode.BATCH_FAILED
        assert summary.batches_committed == 0
        assert summary.rows_written == 0
        assert all(count == 0 for count in table_counts(session_factory).values())

    def test_earlier_batches_survive(self, session_factory, monkeypatch):
        _poison(monkeypatch, "p3")
        raws = [make_playlist(f"p{i}", [make_track(f"t{i}")]) for i in range(4)]

        summary = run_ingestion(session_factory, raws, make_features(("t0", 0.5)), batch_size=2)

        assert summary.ok is False
        assert summary.error_code == IngestErrorCode.BATCH_FAILED
        assert summary.batches_committed == 1
        with session_factory() as session:
            stored = session.execute(select(Playlist.id).order_by(Playlist.id)).scalars().all()
        assert stored == ["p0", "p1"]
        # The run stops at the failing batch; the features pass never runs
        assert table_counts(session_factory)["audio_features"] == 0
        assert summary.rows_written == sum(table_counts(session_factory).values())

    def test_failed_batch_retried_on_next_run(self, session_factory, monkeypatch):
        raws = [make_playlist("p0", [make_track("t0")])]
        with monkeypatch.context() as m:
            _poison(m, "p0")
            assert run_ingestion(session_factory, raws).ok is False

        summary = run_ingestion(session_factory, raws)

        assert summary.ok is True
        assert summary.playlists_skipped == 0
        with session_factory() as session:
            assert session.get(Artist, "ar-1") is not None

    def test_orphan_audio_features(self, session_factory):
        raws = [make_playlist("p1", [make_track("t1")])]

        summary = run_ingestion(session_factory, raws, make_features(("t1", 0.3), ("ghost", 0.9)))

        assert summary.ok is False
        assert summary.error_code == IngestErrorCode.FEATURES_FAILED
        assert summary.batches_committed == 1
        counts = table_counts(session_factory)
        assert counts["playlists"] == 1
        assert counts["audio_features"] == 0

    def test_malformed_features_document(self, session_factory):
        summary = run_ingestion(
            session_factory,
            [make_playlist("p1", [make_track("t1")])],
            {"audio_features": [{"energy": 0.5}]},
        )

        assert summary.error_code == IngestErrorCode.DOCUMENT_MALFORMED
        assert table_counts(session_factory)["playlists"] == 0

    def test_unexpected_error_reported(self, session_factory, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(pipeline, "select_changed", explode)

        summary = run_ingestion(session_factory, [make_playlist("p1", [])])

        assert summary.ok is False
        assert summary.error_code == IngestErrorCode.INGEST_FAILED
        assert "boom" in summary.message


class TestAddedAtStorage:
    """Tests for how item timestamps are persisted."""

    def _stored_added_at(self, session_factory, added_at):
        raw = make_playlist("p1", [make_track("t1")])
        raw["tracks"]["items"][0]["added_at"] = added_at
        assert run_ingestion(session_factory, [raw]).ok

        with session_factory() as session:
            return session.execute(
                select(PlaylistTrack.added_at).where(PlaylistTrack.playlist_id == "p1")
            ).scalar_one()

    def test_offset_timestamp_stored_as_utc(self, session_factory):
        """A +05:00 timestamp is stored on the same UTC basis as a Z timestamp."""
        stored = self._stored_added_at(session_factory, "2024-01-01T10:00:00+05:00")
        assert stored.replace(tzinfo=None) == datetime(2024, 1, 1, 5, 0)

    def test_utc_timestamp_unchanged(self, session_factory):
        stored = self._stored_added_at(session_factory, "2024-01-01T05:00:00Z")
        assert stored.replace(tzinfo=None) == datetime(2024, 1, 1, 5, 0)

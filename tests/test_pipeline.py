"""
Tests for ETL pipeline orchestration.

Tests the three import runs end to end, failure reporting and the
import status summary.
"""

import json
import sqlite3
from pathlib import Path

import pytest

from spotify_analysis.etl.pipeline import (
    ImportResult,
    get_import_status,
    run_account_data_import,
    run_streaming_history_import,
    run_technical_log_import,
)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "db" / "spotify.db"


class TestStreamingHistoryImport:
    """Tests for run_streaming_history_import."""

    def test_success(self, history_dir, db_path, fetch):
        result = run_streaming_history_import(history_dir, db_path, timeout=5)

        assert result.success, result.error
        assert result.counts == {"play": 5}
        assert result.files_processed == [
            "Streaming_History_Audio_2023_0.json",
            "Streaming_History_Audio_2023_1.json",
        ]
        assert fetch(db_path, "SELECT COUNT(*) FROM track") == [(2,)]
        assert fetch(db_path, "SELECT COUNT(*) FROM podcast_episode") == [(1,)]
        assert "artist: 1 created" in result.dimension_summary

    def test_sets_import_state(self, history_dir, db_path, fetch):
        run_streaming_history_import(history_dir, db_path, timeout=5)

        state = fetch(
            db_path, "SELECT value FROM import_state WHERE key = 'last_streaming_history_import'"
        )
        assert len(state) == 1
        assert state[0][0].endswith("Z")

    def test_missing_folder_opens_nothing(self, tmp_path, db_path):
        """A missing source folder should raise before the database is created."""
        with pytest.raises(FileNotFoundError):
            run_streaming_history_import(tmp_path / "nope", db_path)

        assert not db_path.exists()

    def test_failed_file_stops_run(self, history_dir, db_path, play_record, fetch):
        """A failing file should be reported; earlier files stay committed."""
        (history_dir / "Streaming_History_Audio_2023_2.json").write_text(
            json.dumps([play_record(ts="2023-07-01T10:00:00Z"), play_record(ts="garbage")]),
            encoding="utf-8",
        )
        (history_dir / "Streaming_History_Audio_2023_3.json").write_text(
            json.dumps([play_record()]), encoding="utf-8"
        )

        result = run_streaming_history_import(history_dir, db_path, timeout=5)

        assert not result.success
        assert result.failed_file == "Streaming_History_Audio_2023_2.json"
        assert result.failed_index == 1
        assert "garbage" in result.error
        assert result.counts["play"] == 5
        assert fetch(db_path, "SELECT COUNT(*) FROM play") == [(5,)]
        # The state key is only written by a complete run
        assert fetch(
            db_path, "SELECT value FROM import_state WHERE key = 'last_streaming_history_import'"
        ) == []

    def test_invalid_json_reported(self, history_dir, db_path):
        (history_dir / "Streaming_History_Audio_2023_2.json").write_text("{", encoding="utf-8")

        result = run_streaming_history_import(history_dir, db_path, timeout=5)

        assert not result.success
        assert "JSONDecodeError" in result.error
        assert result.failed_file is None

    def test_rerun_reuses_dimensions(self, history_dir, db_path, fetch):
        """A second run should find every dimension and append plays again."""
        run_streaming_history_import(history_dir, db_path, timeout=5)
        result = run_streaming_history_import(history_dir, db_path, timeout=5)

        assert result.success
        assert fetch(db_path, "SELECT COUNT(*) FROM artist") == [(1,)]
        assert fetch(db_path, "SELECT COUNT(*) FROM play") == [(10,)]
        assert "0 created" in result.dimension_summary


class TestAccountDataImport:
    """Tests for run_account_data_import."""

    def test_counts(self, history_dir, account_dir, db_path, fetch):
        run_streaming_history_import(history_dir, db_path, timeout=5)
        result = run_account_data_import(account_dir, db_path, timeout=5)

        assert result.success, result.error
        assert result.counts == {
            "user_profile": 1,
            "follow": 3,
            "inference": 2,
            "marquee": 1,
            "search_query": 1,
            "playlist": 1,
            "playlist_collaborator": 1,
            "playlist_track": 2,
            "library_track": 2,
            "library_album": 1,
            "library_artist": 1,
            "streaming_history_music": 3,
            "streaming_history_podcast": 1,
            "wrapped": 2,
            "duo_family": 1,
            "identifier": 1,
            "payment": 1,
            "user_address": 1,
            "user_prompt": 2,
            "user_festival": 1,
            "chat_conversation": 1,
            "chat_message": 2,
            "sound_capsule_stat": 1,
            "sound_capsule_highlight": 1,
        }
        assert fetch(
            db_path, "SELECT COUNT(*) FROM playlist_track WHERE track_id IS NOT NULL"
        ) == [(1,)]

    def test_files_processed_lists_real_files(self, history_dir, account_dir, db_path):
        run_streaming_history_import(history_dir, db_path, timeout=5)
        result = run_account_data_import(account_dir, db_path, timeout=5)

        assert result.files_processed[:3] == ["Userdata.json", "Identity.json", "Follow.json"]
        assert "Playlist1.json" in result.files_processed
        assert "StreamingHistory_podcast_0.json" in result.files_processed
        assert "Wrapped2023.json" in result.files_processed
        assert all("*" not in name for name in result.files_processed)

    def test_files_processed_skips_missing_files(self, tmp_path, db_path):
        """A folder with only Userdata.json should report only that file."""
        source = tmp_path / "only_userdata"
        source.mkdir()
        (source / "Userdata.json").write_text(
            json.dumps({"username": "listener42"}), encoding="utf-8"
        )

        result = run_account_data_import(source, db_path, timeout=5)

        assert result.success, result.error
        assert result.files_processed == ["Userdata.json"]
        assert result.counts["user_profile"] == 1
        assert result.counts["playlist"] == 0

    def test_without_streaming_history(self, account_dir, db_path, fetch):
        """Account data alone should import but leave tracks unlinked."""
        result = run_account_data_import(account_dir, db_path, timeout=5)

        assert result.success
        assert fetch(db_path, "SELECT COUNT(*) FROM track") == [(0,)]
        assert fetch(
            db_path, "SELECT COUNT(*) FROM library_track WHERE track_id IS NOT NULL"
        ) == [(0,)]


class TestTechnicalLogImport:
    """Tests for run_technical_log_import."""

    def test_counts(self, techlog_dir, db_path):
        result = run_technical_log_import(techlog_dir, db_path, timeout=5)

        assert result.success
        assert result.counts["RawCoreStream"] == 3
        assert result.counts["CollectionChange"] == 1
        assert result.counts["Recipients"] == 3
        assert result.counts["SessionCreation"] == 1
        assert len(result.files_processed) == 10


class TestImportResult:
    """Tests for ImportResult formatting."""

    def test_total_rows(self):
        assert ImportResult(name="x", success=True, counts={"a": 2, "b": 3}).total_rows == 5

    def test_str_failure(self):
        result = ImportResult(
            name="Streaming history",
            success=False,
            failed_file="h.json",
            failed_index=4,
            error="boom",
        )
        text = str(result)
        assert "FAILED: boom" in text
        assert "h.json (record 4)" in text


class TestImportStatus:
    """Tests for get_import_status."""

    def test_missing_database(self, db_path):
        assert get_import_status(db_path) == {"exists": False}

    def test_incomplete_schema(self, db_path):
        db_path.parent.mkdir(parents=True)
        conn = sqlite3.connect(str(db_path))
        conn.execute("CREATE TABLE other (x INTEGER)")
        conn.commit()
        conn.close()
        assert get_import_status(db_path) == {"exists": True, "schema_valid": False}

    def test_after_import(self, history_dir, db_path):
        run_streaming_history_import(history_dir, db_path, timeout=5)
        status = get_import_status(db_path)

        assert status["schema_valid"]
        assert status["schema_version"] == "1.0.0"
        assert status["counts"]["play"] == 5
        assert status["last_streaming_history_import"] is not None
        assert status["last_account_data_import"] is None

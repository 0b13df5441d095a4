"""
Tests for the command-line interface.
"""

import os
from pathlib import Path
from unittest import mock

import pytest

import main


def run_cli(argv) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main.main(argv)
    return exc_info.value.code


@pytest.fixture
def db_args(tmp_path: Path):
    return ["--db-dir", str(tmp_path / "db"), "--db-name", "spotify.db"]


@pytest.mark.integration
class TestImportCommands:
    """Tests for history / account / techlog."""

    def test_history_then_status(self, history_dir, db_args, capsys):
        assert run_cli(["history", str(history_dir), *db_args, "--timeout", "5"]) == 0
        assert "SUCCESS" in capsys.readouterr().out

        assert run_cli(["status", *db_args]) == 0
        out = capsys.readouterr().out
        assert "Schema version: 1.0.0" in out
        assert "Latest plays:" in out
        assert "Song A" in out

    def test_full_run_and_verify(self, history_dir, account_dir, techlog_dir, db_args):
        assert run_cli(["history", str(history_dir), *db_args]) == 0
        assert run_cli(["account", str(account_dir), *db_args]) == 0
        assert run_cli(["techlog", str(techlog_dir), *db_args]) == 0
        assert run_cli(["verify", *db_args]) == 0

    def test_missing_folder(self, tmp_path, db_args, capsys):
        assert run_cli(["history", str(tmp_path / "nope"), *db_args]) == 1
        assert "cannot read export folder" in capsys.readouterr().out
        assert not (tmp_path / "db" / "spotify.db").exists()

    def test_failed_import_exit_code(self, history_dir, db_args, capsys):
        (history_dir / "Streaming_History_Audio_2023_2.json").write_text(
            '[{"ts": "bad", "ms_played": 1}]', encoding="utf-8"
        )
        assert run_cli(["history", str(history_dir), *db_args]) == 1
        assert "Failed file: Streaming_History_Audio_2023_2.json (record 0)" in capsys.readouterr().out


class TestReportCommands:
    """Tests for status / verify / plot / serve."""

    def test_status_without_database(self, db_args, capsys):
        assert run_cli(["status", *db_args]) == 1
        assert "No database" in capsys.readouterr().out

    def test_verify_without_database(self, db_args):
        assert run_cli(["verify", *db_args]) == 1

    def test_plot(self, imported_store, tmp_path):
        out_dir = tmp_path / "plots"
        args = ["--db-dir", str(imported_store.parent), "--db-name", imported_store.name]

        assert run_cli(["plot", *args, "--output-dir", str(out_dir), "--top", "5"]) == 0
        assert (out_dir / "monthly_listening.html").exists()
        assert (out_dir / "top_artists.html").exists()

    def test_serve_runs_uvicorn(self, db_args, monkeypatch, tmp_path):
        """serve should point the API at the configured database."""
        # Registered so monkeypatch restores the variable the command sets
        monkeypatch.setenv("SPOTIFY_ANALYSIS_DB_PATH", "unset")
        with mock.patch("main.uvicorn.run") as run:
            assert run_cli(["serve", *db_args, "--port", "9000"]) == 0

        run.assert_called_once_with("spotify_analysis.api:app", host="127.0.0.1", port=9000)
        assert os.environ["SPOTIFY_ANALYSIS_DB_PATH"] == str(tmp_path / "db" / "spotify.db")

    def test_command_required(self):
        assert run_cli([]) == 2

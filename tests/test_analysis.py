"""
Tests for the analysis queries over the reporting views.
"""

from pathlib import Path

import pytest

from spotify_analysis.analysis import (
    get_latest_plays,
    get_listening_heatmap,
    get_monthly_listening,
    get_platform_stats,
    get_summary,
    get_top_albums,
    get_top_artists,
    get_top_tracks,
    get_yearly_summary,
)
from spotify_analysis.database import open_store_readonly
from spotify_analysis.etl.pipeline import (
    run_account_data_import,
    run_streaming_history_import,
    run_technical_log_import,
)


@pytest.fixture
def conn(imported_store: Path):
    connection = open_store_readonly(imported_store)
    yield connection
    connection.close()


class TestSummary:
    """Tests for get_summary."""

    def test_counts(self, conn):
        summary = get_summary(conn)

        assert summary["total_plays"] == 5
        assert summary["total_artists"] == 1
        assert summary["total_tracks"] == 2
        assert summary["total_episodes"] == 1
        assert summary["total_chapters"] == 0
        assert summary["total_ms_played"] == 900_000
        assert summary["first_play"] == "2023-05-01T10:00:00Z"
        assert summary["last_play"] == "2023-06-01T09:00:00Z"

    def test_empty_store(self, store_conn):
        summary = get_summary(store_conn)
        assert summary["total_plays"] == 0
        assert summary["total_ms_played"] == 0
        assert summary["first_play"] is None


class TestLatestPlays:
    """Tests for get_latest_plays."""

    def test_newest_first(self, conn):
        plays = get_latest_plays(conn, limit=2)

        assert len(plays) == 2
        assert plays[0]["timestamp"] == "2023-06-01T09:00:00Z"
        assert plays[0]["content_type"] == "Music"
        assert plays[0]["skipped"] == 1
        assert plays[1]["content_type"] == "Podcast"
        assert plays[1]["podcast_show_name"] == "Show A"


class TestTopLists:
    """Tests for top artists and tracks."""

    def test_top_artists(self, conn):
        artists = get_top_artists(conn)

        assert len(artists) == 1
        assert artists[0]["artist_name"] == "Artist A"
        assert artists[0]["total_plays"] == 4
        assert artists[0]["unique_tracks_played"] == 2
        assert artists[0]["skip_count"] == 1

    def test_top_tracks(self, conn):
        tracks = get_top_tracks(conn)

        assert [(t["track_name"], t["total_plays"]) for t in tracks] == [("Song A", 3), ("Song B", 1)]
        assert tracks[0]["album_name"] == "Album A"

    def test_limit(self, conn):
        assert len(get_top_tracks(conn, limit=1)) == 1


class TestMonthlyAndPlatform:
    """Tests for monthly listening and platform stats."""

    def test_monthly(self, conn):
        months = get_monthly_listening(conn)

        assert [m["year_month"] for m in months] == ["2023-05", "2023-06"]
        assert months[0]["music_plays"] == 3
        assert months[0]["podcast_plays"] == 1
        assert months[1]["total_plays"] == 1

    def test_platform(self, conn):
        platforms = get_platform_stats(conn)
        assert len(platforms) == 1
        assert platforms[0]["platform"] == "android"
        assert platforms[0]["total_plays"] == 5
        assert platforms[0]["first_seen"] == "2023-05-01T10:00:00Z"


class TestAlbumsYearlyHeatmap:
    """Tests for album stats, the yearly summary and the listening heatmap."""

    def test_top_albums(self, conn):
        albums = get_top_albums(conn)

        assert len(albums) == 1
        assert albums[0]["album_name"] == "Album A"
        assert albums[0]["artist_name"] == "Artist A"
        assert albums[0]["total_plays"] == 4
        assert albums[0]["unique_tracks_played"] == 2

    def test_yearly_summary(self, conn):
        years = get_yearly_summary(conn)

        assert [y["year"] for y in years] == [2023]
        assert years[0]["total_plays"] == 5
        assert years[0]["days_active"] == 3
        assert years[0]["unique_tracks_played"] == 2
        assert years[0]["unique_artists"] == 1
        assert years[0]["skips"] == 1

    def test_heatmap(self, conn):
        """2023-05-01 is a Monday, 2023-05-02 a Tuesday, 2023-06-01 a Thursday."""
        cells = [
            (c["day_of_week"], c["hour_of_day"], c["total_plays"])
            for c in get_listening_heatmap(conn)
        ]
        assert cells == [("Monday", 10, 3), ("Tuesday", 8, 1), ("Thursday", 9, 1)]


class TestPlayViews:
    """Tests for the views computed from plays alone."""

    def test_artist_stats_extras(self, conn):
        row = conn.execute(
            "SELECT unique_albums_played, days_listened, skip_pct FROM vw_artist_stats"
        ).fetchone()
        assert tuple(row) == (1, 2, 25.0)

    def test_skip_analysis_tracks_only(self, conn):
        rows = conn.execute("SELECT reason_end, total_plays, skipped FROM vw_skip_analysis").fetchall()
        assert [tuple(r) for r in rows] == [("trackdone", 4, 1)]

    def test_offline_listening(self, conn):
        rows = conn.execute("SELECT year, offline, total_plays FROM vw_offline_listening").fetchall()
        assert [tuple(r) for r in rows] == [(2023, 0, 5)]

    def test_daily_activity(self, conn):
        row = conn.execute(
            "SELECT total_plays, unique_tracks, active_minutes FROM vw_daily_activity "
            "WHERE play_date = '2023-05-01'"
        ).fetchone()
        assert tuple(row) == (3, 2, 6)

    def test_artist_discovery(self, conn):
        row = conn.execute(
            "SELECT discovery_year, engagement_level, recency, in_library FROM vw_artist_discovery"
        ).fetchone()
        assert tuple(row) == (2023, "Sampled", "Historical", 0)


@pytest.fixture
def full_store(tmp_path: Path, history_dir: Path, account_dir: Path, techlog_dir: Path):
    """Read-only connection to a database with all three imports loaded."""
    db_path = tmp_path / "full" / "spotify.db"
    for run, folder in (
        (run_streaming_history_import, history_dir),
        (run_account_data_import, account_dir),
        (run_technical_log_import, techlog_dir),
    ):
        result = run(folder, db_path, timeout=5)
        assert result.success, result.error
    connection = open_store_readonly(db_path)
    yield connection
    connection.close()


class TestCrossFeedViews:
    """Tests for views joining plays with account data and technical logs."""

    def test_artist_engagement(self, full_store):
        row = full_store.execute(
            "SELECT artist_name, marquee_segment, total_plays, in_library, is_followed "
            "FROM vw_artist_engagement"
        ).fetchone()
        assert tuple(row) == ("Artist A", "Light listeners", 4, 1, 0)

    def test_playlist_track_activity(self, full_store):
        rows = full_store.execute(
            "SELECT track_name, total_plays, play_relative_to_add "
            "FROM vw_playlist_track_activity ORDER BY track_name"
        ).fetchall()
        assert [tuple(r) for r in rows] == [
            ("Song A", 3, "Played after adding"),
            ("Unknown", 0, "Never played"),
        ]

    def test_search_history(self, full_store):
        row = full_store.execute(
            "SELECT search_date, click_count, had_interaction FROM vw_search_history"
        ).fetchone()
        assert tuple(row) == ("2023-05-01", 2, 1)

    def test_collection_growth(self, full_store):
        rows = full_store.execute(
            "SELECT change_date, added, removed FROM vw_collection_growth"
        ).fetchall()
        assert [tuple(r) for r in rows] == [("2023-07-22", 1, 0)]

    def test_session_activity(self, full_store):
        rows = full_store.execute(
            "SELECT session_date, sessions, plays_on_date FROM vw_session_activity"
        ).fetchall()
        assert [tuple(r) for r in rows] == [("2023-07-22", 1, 0)]

"""
Analysis functions over the reporting views.

Read-only queries shared by the CLI, the API and the plots. Every function
takes an open connection to the analysis database.
"""

import sqlite3
from contextlib import closing
from typing import Any, Dict, List, Tuple
import logging

from spotify_analysis.database import fetch_all, fetch_one

logger = logging.getLogger(__name__)


def _rows(conn: sqlite3.Connection, query: str, params: Tuple[Any, ...] = ()) -> List[Dict[str, Any]]:
    with closing(conn.cursor()) as cursor:
        cursor.execute(query, params)
        columns = [d[0] for d in cursor.description]
        return [dict(zip(columns, row)) for row in cursor.fetchall()]


def _count(conn: sqlite3.Connection, table: str) -> int:
    row = fetch_one(conn, f"SELECT COUNT(*) FROM {table};")
    return row[0] if row else 0


def get_summary(conn: sqlite3.Connection) -> Dict[str, Any]:
    """
    Get headline statistics.

    Returns:
        Dictionary with play/dimension counts, total listening time and
        the first/last play timestamps.
    """
    first_play, last_play, total_ms = fetch_all(
        conn, "SELECT MIN(timestamp), MAX(timestamp), COALESCE(SUM(ms_played), 0) FROM play;"
    )[0]

    return {
        "total_plays": _count(conn, "play"),
        "total_artists": _count(conn, "artist"),
        "total_albums": _count(conn, "album"),
        "total_tracks": _count(conn, "track"),
        "total_episodes": _count(conn, "podcast_episode"),
        "total_chapters": _count(conn, "audiobook_chapter"),
        "total_ms_played": total_ms,
        "total_hours": round(total_ms / 3_600_000, 1),
        "first_play": first_play,
        "last_play": last_play,
    }


def get_latest_plays(conn: sqlite3.Connection, limit: int = 10) -> List[Dict[str, Any]]:
    """
    Get the most recent plays.

    Args:
        conn: Connection to the analysis database.
        limit: Number of plays to return.

    Returns:
        List of play dictionaries from vw_play_detail, newest first.
    """
    plays = _rows(
        conn,
        """
        SELECT timestamp, content_type, track_name, artist_name, album_name,
               episode_name, podcast_show_name, audiobook_chapter_title,
               ms_played, platform, skipped
        FROM vw_play_detail
        ORDER BY timestamp DESC, play_id DESC
        LIMIT ?;
        """,
        (limit,),
    )
    logger.info(f"Retrieved {len(plays)} latest plays")
    return plays


def get_top_artists(conn: sqlite3.Connection, limit: int = 10) -> List[Dict[str, Any]]:
    """Get the most played artists from vw_artist_stats."""
    return _rows(
        conn,
        """
        SELECT artist_name, total_plays, unique_tracks_played, total_hours,
               first_played, last_played, skip_count
        FROM vw_artist_stats
        ORDER BY total_plays DESC, artist_name
        LIMIT ?;
        """,
        (limit,),
    )


def get_top_tracks(conn: sqlite3.Connection, limit: int = 10) -> List[Dict[str, Any]]:
    """Get the most played tracks from vw_track_stats."""
    return _rows(
        conn,
        """
        SELECT track_name, artist_name, album_name, track_uri, total_plays,
               total_minutes, skip_count
        FROM vw_track_stats
        ORDER BY total_plays DESC, track_name
        LIMIT ?;
        """,
        (limit,),
    )


def get_monthly_listening(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """Get listening totals per month, oldest first."""
    return _rows(
        conn,
        """
        SELECT year_month, total_plays, unique_tracks, days_active, total_hours,
               music_plays, podcast_plays, audiobook_plays
        FROM vw_monthly_listening
        ORDER BY year_month;
        """,
    )


def get_platform_stats(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """Get plays per platform."""
    return _rows(
        conn,
        """
        SELECT platform, total_plays, total_hours, first_seen, last_seen
        FROM vw_platform_stats
        ORDER BY total_plays DESC;
        """,
    )


def get_top_albums(conn: sqlite3.Connection, limit: int = 10) -> List[Dict[str, Any]]:
    """Get the most played albums from vw_album_stats."""
    return _rows(
        conn,
        """
        SELECT album_name, artist_name, total_plays, unique_tracks_played,
               total_hours, first_played, last_played
        FROM vw_album_stats
        ORDER BY total_plays DESC, album_name
        LIMIT ?;
        """,
        (limit,),
    )


def get_yearly_summary(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """Get listening totals per calendar year, oldest first."""
    return _rows(
        conn,
        """
        SELECT year, total_plays, total_hours, days_active, unique_tracks_played,
               unique_artists, unique_albums, skips, shuffle_plays, offline_plays,
               platforms_used
        FROM vw_yearly_listening_summary
        ORDER BY year;
        """,
    )


def get_listening_heatmap(conn: sqlite3.Connection) -> List[Dict[str, Any]]:
    """
    Get play counts per (day of week, hour of day).

    Returns:
        One dictionary per populated cell, ordered Sunday first then by hour.
    """
    return _rows(
        conn,
        """
        SELECT day_of_week_num, day_of_week, hour_of_day, total_plays, total_minutes
        FROM vw_listening_heatmap
        ORDER BY day_of_week_num, hour_of_day;
        """,
    )

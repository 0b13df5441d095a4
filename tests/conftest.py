"""
Pytest fixtures for Spotify Analysis tests.

This module provides shared fixtures for testing the import pipeline,
including an empty analysis database and builders that write export files.

Fixture Categories:
    1. Database fixtures (empty analysis database, open connection)
    2. Export fixtures (streaming history, account data, technical logs)
    3. Record builders (play records with sensible defaults)

Design Notes:
    - Fixtures use tmp_path for isolation between tests
    - Export files mimic the field names of a real Spotify export
"""

import json
import sqlite3
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

import pytest

from spotify_analysis.database import open_store
from spotify_analysis.etl.pipeline import run_streaming_history_import
from spotify_analysis.etl.schema import create_schema


def pytest_configure(config):
    config.addinivalue_line("markers", "property: hypothesis property-based tests")
    config.addinivalue_line("markers", "integration: end-to-end tests over several modules")


def write_json(path: Path, payload: Any) -> Path:
    """Write a JSON payload to path and return the path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def make_play(
    ts: Any = "2023-05-01T10:00:00Z",
    ms_played: Any = 180_000,
    track_uri: Optional[str] = "spotify:track:aaa",
    track_name: Optional[str] = "Song A",
    artist: Optional[str] = "Artist A",
    album: Optional[str] = "Album A",
    **extra: Any,
) -> Dict[str, Any]:
    """Build an Extended Streaming History record."""
    record: Dict[str, Any] = {
        "ts": ts,
        "platform": "android",
        "ms_played": ms_played,
        "conn_country": "NL",
        "ip_addr": "10.0.0.1",
        "master_metadata_track_name": track_name,
        "master_metadata_album_artist_name": artist,
        "master_metadata_album_album_name": album,
        "spotify_track_uri": track_uri,
        "episode_name": None,
        "episode_show_name": None,
        "spotify_episode_uri": None,
        "reason_start": "trackdone",
        "reason_end": "trackdone",
        "shuffle": False,
        "skipped": False,
        "offline": False,
        "offline_timestamp": None,
        "incognito_mode": False,
    }
    record.update(extra)
    return record


def make_episode_play(
    ts: str = "2023-05-02T08:00:00Z",
    episode_uri: str = "spotify:episode:eee",
    episode_name: str = "Episode 1",
    show: Optional[str] = "Show A",
) -> Dict[str, Any]:
    """Build a podcast play record."""
    return make_play(
        ts=ts,
        track_uri=None,
        track_name=None,
        artist=None,
        album=None,
        spotify_episode_uri=episode_uri,
        episode_name=episode_name,
        episode_show_name=show,
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def empty_store(tmp_path: Path) -> Path:
    """
    Create an analysis database with the schema and no data.

    Returns:
        Path to the database file.
    """
    db_path = tmp_path / "store" / "spotify.db"
    create_schema(db_path)
    return db_path


@pytest.fixture
def store_conn(empty_store: Path) -> Iterator[sqlite3.Connection]:
    """Open a read-write connection to the empty analysis database."""
    conn = open_store(empty_store, timeout=5)
    yield conn
    conn.close()


# =============================================================================
# Export fixtures
# =============================================================================


@pytest.fixture
def export_dir(tmp_path: Path) -> Path:
    """An empty export folder."""
    path = tmp_path / "export"
    path.mkdir()
    return path


@pytest.fixture
def write_export(export_dir: Path) -> Callable[[str, Any], Path]:
    """Return a function that writes a JSON file into the export folder."""

    def _write(name: str, payload: Any) -> Path:
        return write_json(export_dir / name, payload)

    return _write


@pytest.fixture
def history_dir(tmp_path: Path) -> Path:
    """
    Create an Extended Streaming History folder with two files.

    Contents:
        - Streaming_History_Audio_2023_0.json: 3 plays (2 tracks, 1 artist)
        - Streaming_History_Audio_2023_1.json: 1 track play, 1 episode play
    """
    path = tmp_path / "history"
    write_json(
        path / "Streaming_History_Audio_2023_0.json",
        [
            make_play(ts="2023-05-01T10:00:00Z"),
            make_play(ts="2023-05-01T10:03:00Z", track_uri="spotify:track:bbb", track_name="Song B"),
            make_play(ts="2023-05-01T10:06:00Z"),
        ],
    )
    write_json(
        path / "Streaming_History_Audio_2023_1.json",
        [
            make_play(ts="2023-06-01T09:00:00Z", skipped=True),
            make_episode_play(),
        ],
    )
    return path


@pytest.fixture
def account_dir(tmp_path: Path) -> Path:
    """Create an Account Data folder covering every importer."""
    path = tmp_path / "account"
    write_json(
        path / "Userdata.json",
        {
            "username": "listener42",
            "email": "listener@example.com",
            "country": "NL",
            "birthdate": "1990-01-15",
            "gender": "neutral",
            "creationTime": "2015-03-21",
        },
    )
    write_json(
        path / "Identity.json",
        {"displayName": "Listener", "imageUrl": "https://example.com/a.png", "tasteMaker": False, "verified": True},
    )
    write_json(
        path / "Follow.json",
        {"userIsFollowing": ["alice", "bob"], "userIsFollowedBy": ["carol"], "userIsBlocking": []},
    )
    write_json(path / "Inferences.json", {"inferences": ["1P_Custom_Rock", "3P_Cars"]})
    write_json(
        path / "Marquee.json",
        [{"artistName": "Artist A", "segment": "Light listeners"}],
    )
    write_json(
        path / "SearchQueries.json",
        [
            {
                "platform": "ANDROID",
                "searchTime": "2023-05-01T10:00:00.123Z[UTC]",
                "searchQuery": "artist a",
                "searchInteractionURIs": ["spotify:artist:111", "spotify:track:aaa"],
            },
            {
                "platform": "ANDROID",
                "searchTime": "not-a-date",
                "searchQuery": "skipped",
                "searchInteractionURIs": [],
            },
        ],
    )
    write_json(
        path / "Playlist1.json",
        {
            "playlists": [
                {
                    "name": "Favourites",
                    "lastModifiedDate": "2023-06-01",
                    "collaborators": ["alice"],
                    "numberOfFollowers": 3,
                    "items": [
                        {
                            "track": {
                                "trackName": "Song A",
                                "artistName": "Artist A",
                                "albumName": "Album A",
                                "trackUri": "spotify:track:aaa",
                            },
                            "episode": None,
                            "addedDate": "2023-05-02",
                        },
                        {
                            "track": {
                                "trackName": "Unknown",
                                "artistName": "Someone",
                                "albumName": "Else",
                                "trackUri": "spotify:track:zzz",
                            },
                            "episode": None,
                            "addedDate": "2023-05-03",
                        },
                        {"track": None, "episode": {"episodeUri": "spotify:episode:eee"}},
                    ],
                }
            ]
        },
    )
    write_json(
        path / "YourLibrary.json",
        {
            "tracks": [
                {"artist": "Artist A", "album": "Album A", "track": "Song A", "uri": "spotify:track:aaa"},
                {"artist": "Artist C", "album": "Album C", "track": "Song C", "uri": "spotify:track:ccc"},
            ],
            "albums": [{"artist": "Artist A", "album": "Album A", "uri": "spotify:album:a1"}],
            "artists": [{"name": "Artist A", "uri": "spotify:artist:111"}],
        },
    )
    write_json(
        path / "StreamingHistory_music_0.json",
        [
            {"endTime": "2023-05-01 10:03", "artistName": "Artist A", "trackName": "Song A", "msPlayed": 180000},
            {"endTime": "2023-05-01 10:06", "artistName": "Artist A", "trackName": "Song B", "msPlayed": 1000},
        ],
    )
    write_json(
        path / "StreamingHistory_music_1.json",
        [{"endTime": "2023-05-02 11:00", "artistName": "Artist B", "trackName": "Song D", "msPlayed": 5000}],
    )
    write_json(
        path / "StreamingHistory_podcast_0.json",
        [{"endTime": "2023-05-02 08:30", "podcastName": "Show A", "episodeName": "Episode 1", "msPlayed": 900000}],
    )
    write_json(path / "Wrapped2023.json", {"topArtists": {"topArtistUri": "spotify:artist:111"}, "yearlyMetrics": {"totalMsListened": 123}})
    write_json(path / "DuoNewFamily.json", [{"address": "1 Main St, Utrecht"}])
    write_json(
        path / "Identifiers.json",
        [{"identifierType": "email", "identifierValue": "listener@example.com"}],
    )
    write_json(
        path / "Payments.json",
        {"payment_method": "Visa", "creation_date": "2020-01-01", "country": "NL", "postal_code": "3511"},
    )
    write_json(
        path / "UserAddress.json",
        "Map(street -> 1 Main St, Apt 2, city -> Utrecht, state -> UT, "
        "postal_code_short -> 3511, postal_code_extra -> AB)",
    )
    write_json(
        path / "UserPrompts.json",
        [
            {"createdTimestamp": "2024-01-01T10:00:00Z", "message": "something chill"},
            {"createdTimestamp": "not-a-time", "message": "kept anyway"},
        ],
    )
    write_json(
        path / "UserFestivalsDataForSAR.json",
        [
            {
                "festivalId": "fest-1",
                "userId": "u1",
                "totalArtistsMatched": 3,
                "matchPercentile": 90,
                "festivalPersona": "Explorer",
                "topArtists": ["Artist A"],
                "topDiscoveryArtists": [],
            }
        ],
    )
    write_json(
        path / "MessageData.json",
        {
            "spotify:chat:c1": {
                "members": ["listener42", "alice"],
                "messages": [
                    {"time": "2023-05-01T10:00:00Z", "from": "alice", "message": "hi", "uri": "spotify:track:aaa"},
                    {"time": "not-a-time", "from": "listener42", "message": "yo", "uri": None},
                ],
            }
        },
    )
    write_json(
        path / "YourSoundCapsule.json",
        {
            "stats": [
                {
                    "date": "2023-05-01",
                    "streamCount": 10,
                    "secondsPlayed": 600,
                    "topTracks": ["spotify:track:aaa"],
                    "topArtists": ["spotify:artist:111"],
                    "topGenres": ["rock"],
                }
            ],
            "highlights": [
                {"date": "2023-05-01", "highlightType": "TOP_ARTIST", "artistUri": "spotify:artist:111"}
            ],
        },
    )
    return path


@pytest.fixture
def techlog_dir(tmp_path: Path) -> Path:
    """Create a Technical Log folder with dedicated and generic record types."""
    path = tmp_path / "techlog"
    context = {
        "context_time": 1690000000000,
        "context_application_version": "8.8.0",
        "context_conn_country": "NL",
        "context_device_manufacturer": "Google",
        "context_device_model": "Pixel",
        "context_device_type": "smartphone",
        "context_os_name": "android",
        "context_os_version": "14",
        "context_user_agent": None,
    }
    write_json(
        path / "CollectionChange.json",
        [
            {
                "timestamp_utc": "2023-07-22T04:26:40.000Z",
                "message_change_type": "add",
                "message_set": "collection",
                "message_item_uri": "spotify:track:aaa",
                "message_context_uri": "spotify:album:a1",
                **context,
            },
            {"timestamp_utc": "garbage", "message_change_type": "add", **context},
        ],
    )
    write_json(
        path / "PlaylistChange.json",
        [
            {
                "timestamp_utc": "2023-07-22T05:00:00Z",
                "message_change_type": "add",
                "message_playlist_uri": "spotify:playlist:p1",
                "message_item_uri": "spotify:track:aaa",
                "message_item_uri_kind": "track",
                "message_client_platform": "android",
                **context,
            }
        ],
    )
    write_json(
        path / "ShareEvent.json",
        [
            {
                "timestamp_utc": "2023-07-23T12:00:00Z",
                "message_entity_uri": "spotify:track:aaa",
                "message_destination_id": "whatsapp",
                "message_share_id": "abc",
                "message_source_page": "nowplaying",
                "message_source_page_uri": "spotify:track:aaa",
                **context,
            }
        ],
    )
    write_json(
        path / "RawCoreStream.json",
        [
            {
                "timestamp_utc": "2023-07-22T04:26:40.000Z",
                "message_content_uri": "spotify:track:aaa",
                "message_ms_played": 1000,
                **context,
            }
        ],
    )
    write_json(
        path / "RawCoreStream_1.json",
        [
            {
                "timestamp_utc": "not a time",
                "message_content_uri": "spotify:track:bbb",
                **context,
            },
            {"timestamp_utc": "2023-07-22T04:30:00Z", "message_content_uri": "spotify:track:ccc"},
        ],
    )
    write_json(
        path / "RootlistChange.json",
        [
            {
                "timestamp_utc": "2023-07-22T06:00:00Z",
                "message_change_type": "add",
                "message_item_uri": "spotify:playlist:p1",
                "message_item_uri_kind": "playlist",
                "message_client_platform": "android",
                **context,
            }
        ],
    )
    write_json(
        path / "PlaybackError.json",
        [
            {
                "timestamp_utc": "2023-07-22T07:00:00Z",
                "message_file_id": "f00",
                "message_track_id": "t00",
                "message_error_code": "AUDIO_DECODE",
                "message_fatal": True,
                "message_bitrate": 160000,
                **context,
            },
            {"timestamp_utc": None, "message_error_code": "X", **context},
        ],
    )
    write_json(
        path / "SessionCreation.json",
        [
            {
                "timestamp_utc": "2023-07-22T04:00:00Z",
                "message_session_id": "s1",
                "message_created_at": "1690000000000",
                **context,
            }
        ],
    )
    write_json(
        path / "AccountPagesActivity.json",
        [
            {
                "timestamp_utc": "2023-07-24T09:00:00Z",
                "message_name": "change_password",
                "message_market": "NL",
                "message_success": "true",
                "message_reason": None,
                **context,
            }
        ],
    )
    write_json(
        path / "Recipients.json",
        {"Service providers": ["Acme Cloud", "Beta Analytics"], "Partners": "Gamma Labels"},
    )
    return path


def rows(db_path: Path, query: str, params: tuple = ()) -> List[tuple]:
    """Run a query against a database file and return all rows."""
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(query, params).fetchall()
    finally:
        conn.close()


@pytest.fixture
def fetch() -> Callable[..., List[tuple]]:
    """Return the rows() query helper."""
    return rows


@pytest.fixture
def play_record() -> Callable[..., Dict[str, Any]]:
    """Return the make_play() record builder."""
    return make_play


@pytest.fixture
def episode_record() -> Callable[..., Dict[str, Any]]:
    """Return the make_episode_play() record builder."""
    return make_episode_play


@pytest.fixture
def imported_store(tmp_path: Path, history_dir: Path) -> Path:
    """
    Analysis database after importing history_dir.

    Contents:
        - 5 plays: 4 music (tracks aaa x3, bbb x1) and 1 podcast episode
        - Plays in 2023-05 (3 music, 1 podcast) and 2023-06 (1 music)
    """
    db_path = tmp_path / "imported" / "spotify.db"
    result = run_streaming_history_import(history_dir, db_path, timeout=5)
    assert result.success, result.error
    return db_path

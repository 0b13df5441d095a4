"""
Importers for the Account Data and Technical Log folders of an export.

Each importer takes the export folder and returns the number of rows it
wrote per category. A missing file is logged and counts as zero rows.

Design Decisions:
    1. Array files go through import_file (one transaction per file)
    2. Section-shaped and singleton files are written in one transaction
    3. Playlist and library rows link to an existing track by URI but never
       create one; run the streaming history import first
    4. The user profile is a singleton: an existing row means skip
    5. Timestamp policy differs per feed:
       - search queries and dedicated technical-log tables skip the record
       - legacy streaming history fails the file
       - user prompts, chat messages and the catch-all table keep the
         record with a NULL time
    6. Nested lists (festival artists, chat members, sound capsule tops)
       are stored as JSON text
"""

import json
import re
import sqlite3
from pathlib import Path
from typing import Any, Callable, Dict, Optional
import logging

from spotify_analysis.database import transaction
from spotify_analysis.etl.extractors import (
    Record,
    discover_chunked_files,
    discover_numbered_files,
    discover_wrapped_files,
    group_log_files,
    read_json,
    read_records,
    read_sections,
)
from spotify_analysis.etl.identity import DimensionKind, DimensionResolver
from spotify_analysis.etl.loaders import (
    RecordImportError,
    clip,
    has_rows,
    import_file,
    import_generic,
)
from spotify_analysis.etl.normalizers import (
    format_timestamp,
    normalize_timestamp,
    parse_date,
    parse_scala_map,
    require_int,
    require_timestamp,
)

logger = logging.getLogger(__name__)

ImportCounts = Dict[str, int]
SectionWriter = Callable[[sqlite3.Connection, Record, str], ImportCounts]

FOLLOW_SECTIONS = {
    "userIsFollowing": "following",
    "userIsFollowedBy": "follower",
    "userIsBlocking": "blocking",
}
WRAPPED_YEAR_PATTERN = re.compile(r"(\d{4})")
ADDRESS_FIELDS = ("street", "city", "state", "postal_code_short", "postal_code_extra")


def _not_found(directory: Path, name: str) -> None:
    logger.info(f"{name} not found in {directory}, skipping")


def _import_sections(
    conn: sqlite3.Connection,
    path: Path,
    writer: SectionWriter,
    reader: Callable[[Path], Record] = read_sections,
) -> ImportCounts:
    """
    Write a section-shaped file in one transaction.

    Raises:
        RecordImportError: If writing fails; the file was rolled back.
    """
    sections = reader(path)
    try:
        with transaction(conn):
            counts = writer(conn, sections, path.name)
    except Exception as e:
        logger.error(f"{path.name}: import failed, file rolled back: {e}")
        raise RecordImportError(path, None, e) from e

    logger.info(f"{path.name}: " + ", ".join(f"{k}={v}" for k, v in counts.items()))
    return counts


def _merge(total: ImportCounts, counts: ImportCounts) -> ImportCounts:
    for key, value in counts.items():
        total[key] = total.get(key, 0) + value
    return total


# =============================================================================
# Account data
# =============================================================================


def import_user_profile(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """
    Import Userdata.json (and Identity.json, if present) into user_profile.

    The table holds one row; an existing row means nothing is imported.
    """
    userdata_path = directory / "Userdata.json"
    if not userdata_path.exists():
        _not_found(directory, userdata_path.name)
        return {"user_profile": 0}

    if has_rows(conn, "user_profile"):
        logger.info("user_profile already populated, skipping")
        return {"user_profile": 0}

    userdata = read_records(userdata_path)
    if not userdata:
        logger.warning(f"{userdata_path.name} has no record, skipping")
        return {"user_profile": 0}
    user = userdata[0]

    identity = Record()
    identity_path = directory / "Identity.json"
    if identity_path.exists():
        identity_records = read_records(identity_path)
        if identity_records:
            identity = identity_records[0]
    else:
        _not_found(directory, identity_path.name)

    username = user.get_str("username")
    if username is None:
        logger.warning(f"{userdata_path.name} has no username, skipping")
        return {"user_profile": 0}

    with transaction(conn):
        conn.execute(
            """
            INSERT INTO user_profile
                (username, email, country, birthdate, gender, creation_time,
                 display_name, image_url, taste_maker, verified)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                clip("user_profile", "username", username),
                clip("user_profile", "email", user.get_str("email")),
                clip("user_profile", "country", user.get_str("country")),
                parse_date(user.get("birthdate")),
                clip("user_profile", "gender", user.get_str("gender")),
                parse_date(user.get("creationTime")),
                clip("user_profile", "display_name", identity.get_str("displayName")),
                clip("user_profile", "image_url", identity.get_str("imageUrl")),
                identity.get_bool("tasteMaker"),
                identity.get_bool("verified"),
            ),
        )

    logger.info(f"Imported user profile for {username}")
    return {"user_profile": 1}


def _write_follows(conn: sqlite3.Connection, sections: Record, source_file: str) -> ImportCounts:
    written = 0
    for section, relationship in FOLLOW_SECTIONS.items():
        for username in sections.get_list(section):
            if not isinstance(username, str) or not username:
                continue
            conn.execute(
                "INSERT INTO follow (relationship, username) VALUES (?, ?);",
                (relationship, clip("follow", "username", username)),
            )
            written += 1
    return {"follow": written}


def import_follows(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import Follow.json into follow (following / follower / blocking)."""
    path = directory / "Follow.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"follow": 0}
    return _import_sections(conn, path, _write_follows)


def _write_inferences(
    conn: sqlite3.Connection, sections: Record, source_file: str
) -> ImportCounts:
    written = 0
    for value in sections.get_list("inferences"):
        if isinstance(value, str) and value:
            conn.execute(
                "INSERT INTO inference (inference_value) VALUES (?);",
                (clip("inference", "inference_value", value),),
            )
            written += 1
    return {"inference": written}


def import_inferences(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import Inferences.json into inference."""
    path = directory / "Inferences.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"inference": 0}
    return _import_sections(conn, path, _write_inferences)


def _handle_marquee(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    artist_name = record.get_str("artistName")
    segment = record.get_str("segment")
    if artist_name is None or segment is None:
        return False
    conn.execute(
        "INSERT INTO marquee (artist_name, segment) VALUES (?, ?);",
        (clip("marquee", "artist_name", artist_name), clip("marquee", "segment", segment)),
    )
    return True


def import_marquee(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import Marquee.json into marquee."""
    path = directory / "Marquee.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"marquee": 0}
    return {"marquee": import_file(conn, path, _handle_marquee)}


def _handle_search_query(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    # searchTime looks like "2023-05-01T10:00:00.123Z[UTC]"
    search_time = normalize_timestamp(record.get("searchTime"), millis=True)
    if search_time is None:
        logger.debug(f"{source_file}: skipping search with bad time {record.get('searchTime')!r}")
        return False

    query_text = record.get("searchQuery")
    cursor = conn.execute(
        """
        INSERT INTO search_query (platform, search_time, search_query_text)
        VALUES (?, ?, ?);
        """,
        (
            clip("search_query", "platform", record.get_str("platform")),
            search_time,
            clip("search_query", "search_query_text", query_text if isinstance(query_text, str) else ""),
        ),
    )
    search_query_id = cursor.lastrowid

    for uri in record.get_list("searchInteractionURIs"):
        if isinstance(uri, str) and uri:
            conn.execute(
                """
                INSERT INTO search_interaction (search_query_id, interaction_uri)
                VALUES (?, ?);
                """,
                (search_query_id, clip("search_interaction", "interaction_uri", uri)),
            )
    return True


def import_search_queries(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import SearchQueries.json into search_query and search_interaction."""
    path = directory / "SearchQueries.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"search_query": 0}
    return {"search_query": import_file(conn, path, _handle_search_query)}


def _make_playlist_writer(resolver: DimensionResolver) -> SectionWriter:
    def write_playlists(
        conn: sqlite3.Connection, sections: Record, source_file: str
    ) -> ImportCounts:
        counts = {"playlist": 0, "playlist_collaborator": 0, "playlist_track": 0}

        for playlist in sections.records("playlists"):
            cursor = conn.execute(
                """
                INSERT INTO playlist
                    (playlist_name, last_modified_date, number_of_followers, source_file)
                VALUES (?, ?, ?, ?);
                """,
                (
                    clip("playlist", "playlist_name", playlist.get_str("name") or ""),
                    parse_date(playlist.get("lastModifiedDate")),
                    playlist.get_int("numberOfFollowers"),
                    clip("playlist", "source_file", source_file),
                ),
            )
            playlist_id = cursor.lastrowid
            counts["playlist"] += 1

            for username in playlist.get_list("collaborators"):
                if isinstance(username, str) and username:
                    conn.execute(
                        """
                        INSERT INTO playlist_collaborator (playlist_id, username)
                        VALUES (?, ?);
                        """,
                        (playlist_id, clip("playlist_collaborator", "username", username)),
                    )
                    counts["playlist_collaborator"] += 1

            for item in playlist.records("items"):
                track = item.get_map("track")
                if track is None:
                    # episodes and local files
                    continue
                track_uri = track.get_str("trackUri")
                conn.execute(
                    """
                    INSERT INTO playlist_track
                        (playlist_id, track_uri, track_name, artist_name, album_name,
                         added_date, track_id)
                    VALUES (?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        playlist_id,
                        clip("playlist_track", "track_uri", track_uri),
                        clip("playlist_track", "track_name", track.get_str("trackName")),
                        clip("playlist_track", "artist_name", track.get_str("artistName")),
                        clip("playlist_track", "album_name", track.get_str("albumName")),
                        parse_date(item.get("addedDate")),
                        resolver.lookup(DimensionKind.TRACK, track_uri),
                    ),
                )
                counts["playlist_track"] += 1

        return counts

    return write_playlists


def import_playlists(
    conn: sqlite3.Connection, directory: Path, resolver: Optional[DimensionResolver] = None
) -> ImportCounts:
    """
    Import Playlist1.json, Playlist2.json, ... into the playlist tables.

    Playlist tracks are linked to track rows by URI when one exists.
    """
    files = discover_numbered_files(directory, "Playlist")
    if not files:
        _not_found(directory, "Playlist1.json")
        return {"playlist": 0}

    resolver = resolver or DimensionResolver(conn)
    writer = _make_playlist_writer(resolver)
    total: ImportCounts = {}
    for path in files:
        _merge(total, _import_sections(conn, path, writer))
    return total


def _make_library_writer(resolver: DimensionResolver) -> SectionWriter:
    def write_library(conn: sqlite3.Connection, sections: Record, source_file: str) -> ImportCounts:
        counts = {"library_track": 0, "library_album": 0, "library_artist": 0}

        for track in sections.records("tracks"):
            uri = track.get_str("uri")
            if uri is None:
                continue
            conn.execute(
                """
                INSERT INTO library_track
                    (track_uri, track_name, artist_name, album_name, track_id)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    clip("library_track", "track_uri", uri),
                    clip("library_track", "track_name", track.get_str("track") or ""),
                    clip("library_track", "artist_name", track.get_str("artist") or ""),
                    clip("library_track", "album_name", track.get_str("album")),
                    resolver.lookup(DimensionKind.TRACK, uri),
                ),
            )
            counts["library_track"] += 1

        for album in sections.records("albums"):
            uri = album.get_str("uri")
            if uri is None:
                continue
            conn.execute(
                """
                INSERT INTO library_album (album_uri, album_name, artist_name)
                VALUES (?, ?, ?);
                """,
                (
                    clip("library_album", "album_uri", uri),
                    clip("library_album", "album_name", album.get_str("album") or ""),
                    clip("library_album", "artist_name", album.get_str("artist") or ""),
                ),
            )
            counts["library_album"] += 1

        for artist in sections.records("artists"):
            uri = artist.get_str("uri")
            if uri is None:
                continue
            conn.execute(
                "INSERT INTO library_artist (artist_uri, artist_name) VALUES (?, ?);",
                (
                    clip("library_artist", "artist_uri", uri),
                    clip("library_artist", "artist_name", artist.get_str("name") or ""),
                ),
            )
            counts["library_artist"] += 1

        return counts

    return write_library


def import_library(
    conn: sqlite3.Connection, directory: Path, resolver: Optional[DimensionResolver] = None
) -> ImportCounts:
    """Import YourLibrary.json into the library tables."""
    path = directory / "YourLibrary.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"library_track": 0}
    return _import_sections(conn, path, _make_library_writer(resolver or DimensionResolver(conn)))


def _legacy_end_time(record: Record) -> str:
    # endTime is "YYYY-MM-DD HH:MM", local time without zone
    return format_timestamp(require_timestamp(record.get("endTime"), "endTime"))


def _handle_music_history(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    conn.execute(
        """
        INSERT INTO streaming_history_music
            (end_time, artist_name, track_name, ms_played, source_file)
        VALUES (?, ?, ?, ?, ?);
        """,
        (
            _legacy_end_time(record),
            clip("streaming_history_music", "artist_name", record.get_str("artistName") or ""),
            clip("streaming_history_music", "track_name", record.get_str("trackName") or ""),
            require_int(record.get("msPlayed"), "msPlayed"),
            clip("streaming_history_music", "source_file", source_file),
        ),
    )
    return True


def _handle_podcast_history(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    conn.execute(
        """
        INSERT INTO streaming_history_podcast
            (end_time, podcast_name, episode_name, ms_played, source_file)
        VALUES (?, ?, ?, ?, ?);
        """,
        (
            _legacy_end_time(record),
            clip("streaming_history_podcast", "podcast_name", record.get_str("podcastName") or ""),
            clip("streaming_history_podcast", "episode_name", record.get_str("episodeName") or ""),
            require_int(record.get("msPlayed"), "msPlayed"),
            clip("streaming_history_podcast", "source_file", source_file),
        ),
    )
    return True


def import_legacy_streaming_history(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """
    Import StreamingHistory_music_N.json and StreamingHistory_podcast_N.json.

    Chunks are numbered from 0. An unparseable endTime fails the file.
    """
    counts: ImportCounts = {}
    for base_name, table, handler in (
        ("StreamingHistory_music", "streaming_history_music", _handle_music_history),
        ("StreamingHistory_podcast", "streaming_history_podcast", _handle_podcast_history),
    ):
        files = discover_chunked_files(directory, base_name, first_suffix=0)
        if not files:
            _not_found(directory, f"{base_name}_0.json")
        counts[table] = sum(import_file(conn, path, handler) for path in files)
    return counts


def _write_wrapped(year: int) -> SectionWriter:
    def write(conn: sqlite3.Connection, sections: Record, source_file: str) -> ImportCounts:
        written = 0
        for name, value in sections.data.items():
            conn.execute(
                "INSERT INTO wrapped (year, section_name, section_data) VALUES (?, ?, ?);",
                (
                    year,
                    clip("wrapped", "section_name", name),
                    json.dumps(value, ensure_ascii=False),
                ),
            )
            written += 1
        return {"wrapped": written}

    return write


def import_wrapped(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import Wrapped<year>.json files, one row per top-level section."""
    files = discover_wrapped_files(directory)
    if not files:
        _not_found(directory, "Wrapped<year>.json")
        return {"wrapped": 0}

    total: ImportCounts = {}
    for path in files:
        match = WRAPPED_YEAR_PATTERN.search(path.stem)
        if match is None:
            logger.warning(f"{path.name}: no year in file name, skipping")
            continue
        _merge(total, _import_sections(conn, path, _write_wrapped(int(match.group(1)))))
    return total


def _json_list(value: Any) -> Optional[str]:
    return json.dumps(value, ensure_ascii=False) if isinstance(value, list) else None


def _handle_duo_family(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    address = record.get_str("address")
    if address is None:
        return False
    conn.execute(
        "INSERT INTO duo_family (address) VALUES (?);",
        (clip("duo_family", "address", address),),
    )
    return True


def import_duo_family(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import DuoNewFamily.json into duo_family."""
    path = directory / "DuoNewFamily.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"duo_family": 0}
    return {"duo_family": import_file(conn, path, _handle_duo_family)}


def _handle_identifier(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    identifier_type = record.get_str("identifierType")
    identifier_value = record.get_str("identifierValue")
    if identifier_type is None and identifier_value is None:
        return False
    conn.execute(
        "INSERT INTO identifier (identifier_type, identifier_value) VALUES (?, ?);",
        (
            clip("identifier", "identifier_type", identifier_type),
            clip("identifier", "identifier_value", identifier_value),
        ),
    )
    return True


def import_identifiers(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import Identifiers.json into identifier."""
    path = directory / "Identifiers.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"identifier": 0}
    return {"identifier": import_file(conn, path, _handle_identifier)}


def _handle_payment(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    conn.execute(
        """
        INSERT INTO payment (payment_method, creation_date, country, postal_code)
        VALUES (?, ?, ?, ?);
        """,
        (
            clip("payment", "payment_method", record.get_str("payment_method")),
            parse_date(record.get("creation_date")),
            clip("payment", "country", record.get_str("country")),
            clip("payment", "postal_code", record.get_str("postal_code")),
        ),
    )
    return True


def import_payments(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import Payments.json into payment."""
    path = directory / "Payments.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"payment": 0}
    return {"payment": import_file(conn, path, _handle_payment)}


def _read_addresses(path: Path) -> Record:
    # a single value, or an array of values
    payload = read_json(path)
    return Record({"addresses": payload if isinstance(payload, list) else [payload]})


def _write_addresses(
    conn: sqlite3.Connection, sections: Record, source_file: str
) -> ImportCounts:
    written = 0
    for entry in sections.get_list("addresses"):
        if isinstance(entry, str):
            fields = parse_scala_map(entry)
        elif isinstance(entry, dict):
            fields = Record(entry)
        else:
            continue
        values = [fields.get(name) for name in ADDRESS_FIELDS]
        if all(value in (None, "") for value in values):
            logger.debug(f"{source_file}: skipping address without known fields")
            continue
        conn.execute(
            """
            INSERT INTO user_address
                (street, city, state, postal_code_short, postal_code_extra)
            VALUES (?, ?, ?, ?, ?);
            """,
            tuple(
                clip("user_address", name, value or None)
                for name, value in zip(ADDRESS_FIELDS, values)
            ),
        )
        written += 1
    return {"user_address": written}


def import_user_addresses(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """
    Import UserAddress.json into user_address.

    Each address is either an object or a string in the
    "Map(street -> ..., city -> ...)" form.
    """
    path = directory / "UserAddress.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"user_address": 0}
    return _import_sections(conn, path, _write_addresses, reader=_read_addresses)


def _handle_user_prompt(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    conn.execute(
        "INSERT INTO user_prompt (created_timestamp, message) VALUES (?, ?);",
        (
            normalize_timestamp(record.get("createdTimestamp"), millis=True),
            clip("user_prompt", "message", record.get_str("message")),
        ),
    )
    return True


def import_user_prompts(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import UserPrompts.json into user_prompt; a bad time is stored as NULL."""
    path = directory / "UserPrompts.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"user_prompt": 0}
    return {"user_prompt": import_file(conn, path, _handle_user_prompt)}


def _handle_user_festival(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    conn.execute(
        """
        INSERT INTO user_festival
            (festival_id, user_id, total_artists_matched, match_percentile,
             festival_persona, top_artists, top_discovery_artists)
        VALUES (?, ?, ?, ?, ?, ?, ?);
        """,
        (
            clip("user_festival", "festival_id", record.get_str("festivalId")),
            clip("user_festival", "user_id", record.get_str("userId")),
            record.get_int("totalArtistsMatched"),
            record.get_int("matchPercentile"),
            clip("user_festival", "festival_persona", record.get_str("festivalPersona")),
            _json_list(record.get("topArtists")),
            _json_list(record.get("topDiscoveryArtists")),
        ),
    )
    return True


def import_user_festivals(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import UserFestivalsDataForSAR.json into user_festival."""
    path = directory / "UserFestivalsDataForSAR.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"user_festival": 0}
    return {"user_festival": import_file(conn, path, _handle_user_festival)}


def _write_messages(conn: sqlite3.Connection, sections: Record, source_file: str) -> ImportCounts:
    counts = {"chat_conversation": 0, "chat_message": 0}

    for chat_uri, value in sections.data.items():
        if not isinstance(value, dict):
            continue
        conversation = Record(value)
        cursor = conn.execute(
            "INSERT INTO chat_conversation (chat_uri, members) VALUES (?, ?);",
            (
                clip("chat_conversation", "chat_uri", chat_uri),
                _json_list(conversation.get("members")),
            ),
        )
        conversation_id = cursor.lastrowid
        counts["chat_conversation"] += 1

        for message in conversation.records("messages"):
            conn.execute(
                """
                INSERT INTO chat_message
                    (chat_conversation_id, message_time, sender_username, message, message_uri)
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    conversation_id,
                    normalize_timestamp(message.get("time"), millis=True),
                    clip("chat_message", "sender_username", message.get_str("from")),
                    message.get_str("message"),
                    clip("chat_message", "message_uri", message.get_str("uri")),
                ),
            )
            counts["chat_message"] += 1

    return counts


def import_messages(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import MessageData.json into chat_conversation and chat_message."""
    path = directory / "MessageData.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"chat_conversation": 0}
    return _import_sections(conn, path, _write_messages)


def _write_sound_capsule(
    conn: sqlite3.Connection, sections: Record, source_file: str
) -> ImportCounts:
    counts = {"sound_capsule_stat": 0, "sound_capsule_highlight": 0}

    for stat in sections.records("stats"):
        conn.execute(
            """
            INSERT INTO sound_capsule_stat
                (week_date, stream_count, seconds_played, top_tracks, top_artists, top_genres)
            VALUES (?, ?, ?, ?, ?, ?);
            """,
            (
                parse_date(stat.get("date")),
                stat.get_int("streamCount"),
                stat.get_int("secondsPlayed"),
                _json_list(stat.get("topTracks")),
                _json_list(stat.get("topArtists")),
                _json_list(stat.get("topGenres")),
            ),
        )
        counts["sound_capsule_stat"] += 1

    for highlight in sections.records("highlights"):
        _, data = highlight.pop_keys(("date", "highlightType"))
        conn.execute(
            """
            INSERT INTO sound_capsule_highlight (week_date, highlight_type, highlight_data)
            VALUES (?, ?, ?);
            """,
            (
                parse_date(highlight.get("date")),
                clip("sound_capsule_highlight", "highlight_type", highlight.get_str("highlightType")),
                json.dumps(data, ensure_ascii=False) if data else None,
            ),
        )
        counts["sound_capsule_highlight"] += 1

    return counts


def import_sound_capsule(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """Import YourSoundCapsule.json (weekly stats and highlights)."""
    path = directory / "YourSoundCapsule.json"
    if not path.exists():
        _not_found(directory, path.name)
        return {"sound_capsule_stat": 0}
    return _import_sections(conn, path, _write_sound_capsule)


# =============================================================================
# Technical logs
# =============================================================================


def _log_time(record: Record) -> Optional[str]:
    return normalize_timestamp(record.get("timestamp_utc"), millis=True)


def _handle_collection_change(
    conn: sqlite3.Connection, record: Record, source_file: str
) -> bool:
    change_time = _log_time(record)
    change_type = record.get_str("message_change_type")
    if change_time is None or change_type is None:
        return False
    conn.execute(
        """
        INSERT INTO collection_change
            (change_time, change_type, collection_set, item_uri, context_uri)
        VALUES (?, ?, ?, ?, ?);
        """,
        (
            change_time,
            clip("collection_change", "change_type", change_type),
            clip("collection_change", "collection_set", record.get_str("message_set")),
            clip("collection_change", "item_uri", record.get_str("message_item_uri")),
            clip("collection_change", "context_uri", record.get_str("message_context_uri")),
        ),
    )
    return True


def _handle_playlist_change(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    change_time = _log_time(record)
    change_type = record.get_str("message_change_type")
    if change_time is None or change_type is None:
        return False
    conn.execute(
        """
        INSERT INTO playlist_change
            (change_time, change_type, playlist_uri, item_uri, item_uri_kind, client_platform)
        VALUES (?, ?, ?, ?, ?, ?);
        """,
        (
            change_time,
            clip("playlist_change", "change_type", change_type),
            clip("playlist_change", "playlist_uri", record.get_str("message_playlist_uri")),
            clip("playlist_change", "item_uri", record.get_str("message_item_uri")),
            clip("playlist_change", "item_uri_kind", record.get_str("message_item_uri_kind")),
            clip("playlist_change", "client_platform", record.get_str("message_client_platform")),
        ),
    )
    return True


def _handle_share_event(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    share_time = _log_time(record)
    if share_time is None:
        return False
    conn.execute(
        """
        INSERT INTO share_event
            (share_time, entity_uri, destination_id, share_id, source_page,
             source_page_uri, device_type, os_name, os_version, country)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            share_time,
            clip("share_event", "entity_uri", record.get_str("message_entity_uri")),
            clip("share_event", "destination_id", record.get_str("message_destination_id")),
            clip("share_event", "share_id", record.get_str("message_share_id")),
            clip("share_event", "source_page", record.get_str("message_source_page")),
            clip("share_event", "source_page_uri", record.get_str("message_source_page_uri")),
            clip("share_event", "device_type", record.get_str("context_device_type")),
            clip("share_event", "os_name", record.get_str("context_os_name")),
            clip("share_event", "os_version", record.get_str("context_os_version")),
            clip("share_event", "country", record.get_str("context_conn_country")),
        ),
    )
    return True


def _handle_rootlist_change(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    change_time = _log_time(record)
    change_type = record.get_str("message_change_type")
    if change_time is None or change_type is None:
        return False
    conn.execute(
        """
        INSERT INTO rootlist_change
            (change_time, change_type, item_uri, item_uri_kind, client_platform)
        VALUES (?, ?, ?, ?, ?);
        """,
        (
            change_time,
            clip("rootlist_change", "change_type", change_type),
            clip("rootlist_change", "item_uri", record.get_str("message_item_uri")),
            clip("rootlist_change", "item_uri_kind", record.get_str("message_item_uri_kind")),
            clip("rootlist_change", "client_platform", record.get_str("message_client_platform")),
        ),
    )
    return True


def _handle_playback_error(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    error_time = _log_time(record)
    if error_time is None:
        return False
    conn.execute(
        """
        INSERT INTO playback_error
            (error_time, file_id, spotify_track_id, error_code, is_fatal, bitrate,
             device_type, os_name)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            error_time,
            clip("playback_error", "file_id", record.get_str("message_file_id")),
            clip("playback_error", "spotify_track_id", record.get_str("message_track_id")),
            clip("playback_error", "error_code", record.get_str("message_error_code")),
            record.get_bool("message_fatal"),
            record.get_int("message_bitrate"),
            clip("playback_error", "device_type", record.get_str("context_device_type")),
            clip("playback_error", "os_name", record.get_str("context_os_name")),
        ),
    )
    return True


def _handle_session_creation(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    session_time = _log_time(record)
    if session_time is None:
        return False
    conn.execute(
        "INSERT INTO session (session_time, spotify_session_id, created_at) VALUES (?, ?, ?);",
        (
            session_time,
            clip("session", "spotify_session_id", record.get_str("message_session_id")),
            clip("session", "created_at", record.get_str("message_created_at")),
        ),
    )
    return True


def _handle_account_activity(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
    activity_time = _log_time(record)
    if activity_time is None:
        return False
    conn.execute(
        """
        INSERT INTO account_activity
            (activity_time, activity_name, market, success, reason, device_type,
             os_name, country)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?);
        """,
        (
            activity_time,
            clip("account_activity", "activity_name", record.get_str("message_name")),
            clip("account_activity", "market", record.get_str("message_market")),
            record.get_bool("message_success"),
            clip("account_activity", "reason", record.get_str("message_reason")),
            clip("account_activity", "device_type", record.get_str("context_device_type")),
            clip("account_activity", "os_name", record.get_str("context_os_name")),
            clip("account_activity", "country", record.get_str("context_conn_country")),
        ),
    )
    return True


def _write_recipients(
    conn: sqlite3.Connection, sections: Record, source_file: str
) -> ImportCounts:
    # {"<group>": ["<member>", ...]} or {"<group>": "<member>"}
    written = 0
    for group_name, members in sections.data.items():
        if isinstance(members, str):
            members = [members]
        if not isinstance(members, list):
            continue
        for member in members:
            if not isinstance(member, str) or not member:
                continue
            conn.execute(
                "INSERT INTO data_recipient (group_name, member_name) VALUES (?, ?);",
                (
                    clip("data_recipient", "group_name", group_name),
                    clip("data_recipient", "member_name", member),
                ),
            )
            written += 1
    return {"data_recipient": written}


# Record types with a table of their own
DEDICATED_LOG_HANDLERS = {
    "CollectionChange": _handle_collection_change,
    "PlaylistChange": _handle_playlist_change,
    "ShareEvent": _handle_share_event,
    "RootlistChange": _handle_rootlist_change,
    "PlaybackError": _handle_playback_error,
    "SessionCreation": _handle_session_creation,
    "AccountPagesActivity": _handle_account_activity,
}

# Files that are one object of named sections rather than an array of records
SECTION_LOG_WRITERS: Dict[str, SectionWriter] = {
    "Recipients": _write_recipients,
}


def import_technical_logs(conn: sqlite3.Connection, directory: Path) -> ImportCounts:
    """
    Import every technical-log file in a folder.

    Dedicated record types go to their own tables, Recipients goes to
    data_recipient, and everything else goes to tech_log_event. Counts are
    keyed by record type and summed over chunks.
    """
    groups = group_log_files(directory)
    if not groups:
        logger.info(f"No technical log files found in {directory}")
        return {}

    counts: ImportCounts = {}
    for record_type, files in groups.items():
        handler = DEDICATED_LOG_HANDLERS.get(record_type)
        writer = SECTION_LOG_WRITERS.get(record_type)
        if writer is not None:
            written = sum(
                sum(_import_sections(conn, path, writer).values()) for path in files
            )
        elif handler is not None:
            written = sum(import_file(conn, path, handler) for path in files)
        else:
            written = sum(import_generic(conn, path, record_type) for path in files)
        counts[record_type] = written
        logger.info(f"{record_type}: {written} rows from {len(files)} file(s)")
    return counts

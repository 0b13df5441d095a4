"""
ETL Loaders for the analysis database.

This module runs the per-file import loop and writes fact rows. Each
source file is one transaction: either all of its rows land, or none do.

Design Decisions:
    1. A file is read and decoded completely before the transaction opens,
       so JSON errors never leave a transaction behind
    2. A record handler returns True when it wrote a row, False when it
       deliberately skipped the record; anything it raises aborts the file
    3. Dimension rows created while importing a file share its transaction
       and are rolled back with it (the resolver forgets their ids)
    4. Over-long text is truncated to the column limit, never rejected
    5. The catch-all event sink hoists known context fields into columns and
       keeps everything else as a JSON object

Failure Policy:
    - play: missing/unparseable `ts` or `ms_played` aborts the file
    - tech_log_event: unparseable timestamp is stored as NULL
"""

import json
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
import logging

from spotify_analysis.database import transaction
from spotify_analysis.etl.extractors import Record, read_records
from spotify_analysis.etl.identity import DimensionResolver
from spotify_analysis.etl.normalizers import (
    format_timestamp,
    normalize_timestamp,
    require_int,
    require_timestamp,
    truncate,
)
from spotify_analysis.etl.schema import REQUIRED_TABLES, REQUIRED_VIEWS, column_limit

logger = logging.getLogger(__name__)

RecordHandler = Callable[[sqlite3.Connection, Record, str], bool]

# Record keys hoisted into tech_log_event columns
GENERIC_CONTEXT_COLUMNS: Dict[str, str] = {
    "context_application_version": "app_version",
    "context_conn_country": "conn_country",
    "context_device_manufacturer": "device_manufacturer",
    "context_device_model": "device_model",
    "context_device_type": "device_type",
    "context_os_name": "os_name",
    "context_os_version": "os_version",
    "context_user_agent": "user_agent",
}
MESSAGE_PREFIX = "message_"


class RecordImportError(Exception):
    """Raised when a record fails and its file's transaction is rolled back."""

    def __init__(self, path: Path, index: Optional[int], cause: BaseException):
        self.path = path
        self.index = index
        self.cause = cause
        where = f"record {index}" if index is not None else "import"
        super().__init__(f"{path.name}: {where} failed: {cause}")


def _now_iso() -> str:
    """Get current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def clip(table: str, column: str, value: Any) -> Optional[str]:
    """Truncate a value to the declared limit of table.column."""
    return truncate(value, column_limit(table, column))


def import_file(
    conn: sqlite3.Connection,
    path: Path,
    handler: RecordHandler,
    resolver: Optional[DimensionResolver] = None,
) -> int:
    """
    Import one file of records as a single transaction.

    Args:
        conn: Connection to the analysis database (autocommit mode).
        path: Source JSON file (array of records or a single object).
        handler: Called as handler(conn, record, file_name) per record.
        resolver: Resolver used by the handler, if any. Its ids created
                  during this file are committed or forgotten with the file.

    Returns:
        Number of rows written.

    Raises:
        FileNotFoundError / json.JSONDecodeError / ValueError: If the file
            can't be read; nothing was written.
        RecordImportError: If a record failed; the file was rolled back.
    """
    records = read_records(path)
    logger.info(f"Importing {path.name}: {len(records)} records")

    written = 0
    current: Optional[int] = None
    try:
        with transaction(conn):
            for current, record in enumerate(records):
                if handler(conn, record, path.name):
                    written += 1
            current = None
    except Exception as e:
        if resolver is not None:
            resolver.rollback()
        if current is not None:
            logger.error(f"{path.name}: record {current} failed, file rolled back: {e}")
        else:
            logger.error(f"{path.name}: commit failed, file rolled back: {e}")
        raise RecordImportError(path, current, e) from e

    if resolver is not None:
        resolver.commit()

    skipped = len(records) - written
    logger.info(f"{path.name}: {written} rows written, {skipped} skipped")
    return written


# =============================================================================
# play: Extended streaming history
# =============================================================================


def _uri(record: Record, key: str) -> Optional[str]:
    value = record.get_str(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_content(
    resolver: DimensionResolver, record: Record
) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    """
    Resolve the content slot of a streaming-history record.

    Exactly one slot is considered: track URI, else episode URI, else
    audiobook chapter URI. A record with none of them references nothing.

    Returns:
        Tuple of (track_id, episode_id, audiobook_chapter_id).
    """
    track_uri = _uri(record, "spotify_track_uri")
    if track_uri:
        artist_id = resolver.artist(record.get_str("master_metadata_album_artist_name"))
        album_id = resolver.album(record.get_str("master_metadata_album_album_name"), artist_id)
        track_id = resolver.track(
            track_uri, record.get_str("master_metadata_track_name"), album_id, artist_id
        )
        return track_id, None, None

    episode_uri = _uri(record, "spotify_episode_uri")
    if episode_uri:
        show_id = resolver.show(record.get_str("episode_show_name"))
        episode_id = resolver.episode(episode_uri, record.get_str("episode_name"), show_id)
        return None, episode_id, None

    chapter_uri = _uri(record, "audiobook_chapter_uri")
    if chapter_uri:
        audiobook_id = resolver.audiobook(
            _uri(record, "audiobook_uri"), record.get_str("audiobook_title")
        )
        chapter_id = resolver.chapter(
            chapter_uri, record.get_str("audiobook_chapter_title"), audiobook_id
        )
        return None, None, chapter_id

    return None, None, None


def make_play_handler(resolver: DimensionResolver) -> RecordHandler:
    """
    Build the handler that turns a streaming-history record into a play row.

    The timestamp (`ts`) and `ms_played` are required; a record without a
    usable value raises, which fails the whole file.
    """

    def handle_play(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
        timestamp = format_timestamp(require_timestamp(record.get("ts"), "ts"))
        ms_played = require_int(record.get("ms_played"), "ms_played")
        track_id, episode_id, chapter_id = resolve_content(resolver, record)

        conn.execute(
            """
            INSERT INTO play
                (timestamp, platform, ms_played, conn_country, ip_addr,
                 track_id, episode_id, audiobook_chapter_id,
                 reason_start, reason_end, shuffle, skipped, offline,
                 offline_timestamp, incognito_mode, source_file)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                timestamp,
                clip("play", "platform", record.get_str("platform")),
                ms_played,
                clip("play", "conn_country", record.get_str("conn_country")),
                clip("play", "ip_addr", record.get_str("ip_addr") or record.get_str("ip_addr_decrypted")),
                track_id,
                episode_id,
                chapter_id,
                clip("play", "reason_start", record.get_str("reason_start")),
                clip("play", "reason_end", record.get_str("reason_end")),
                record.get_bool("shuffle"),
                record.get_bool("skipped"),
                record.get_bool("offline"),
                record.get_int("offline_timestamp"),
                record.get_bool("incognito_mode"),
                clip("play", "source_file", source_file),
            ),
        )
        return True

    return handle_play


def import_plays(conn: sqlite3.Connection, path: Path, resolver: DimensionResolver) -> int:
    """Import one Extended Streaming History file into play."""
    return import_file(conn, path, make_play_handler(resolver), resolver)


# =============================================================================
# tech_log_event: catch-all sink
# =============================================================================


def split_generic_record(record: Record) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Split a technical-log record into hoisted columns and message data.

    Returns:
        Tuple of (column values, remaining properties with any "message_"
        prefix stripped, in original order).
    """
    hoisted_keys = ["timestamp_utc", "context_time", *GENERIC_CONTEXT_COLUMNS]
    known, remainder = record.pop_keys(hoisted_keys)
    known_record = Record(known)

    columns: Dict[str, Any] = {
        "timestamp_utc": normalize_timestamp(known_record.get("timestamp_utc"), millis=True),
        "context_time": known_record.get_int("context_time"),
    }
    for key, column in GENERIC_CONTEXT_COLUMNS.items():
        columns[column] = clip("tech_log_event", column, known_record.get_str(key))

    message: Dict[str, Any] = {}
    for key, value in remainder.items():
        name = key[len(MESSAGE_PREFIX):] if key.startswith(MESSAGE_PREFIX) else key
        message[name] = value

    return columns, message


def make_generic_handler(record_type: str) -> RecordHandler:
    """Build the handler that writes any record into tech_log_event."""
    log_type = clip("tech_log_event", "log_type", record_type)

    def handle_generic(conn: sqlite3.Connection, record: Record, source_file: str) -> bool:
        columns, message = split_generic_record(record)
        conn.execute(
            """
            INSERT INTO tech_log_event
                (log_type, timestamp_utc, context_time, app_version, conn_country,
                 device_manufacturer, device_model, device_type, os_name,
                 os_version, user_agent, message_data, source_file)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                log_type,
                columns["timestamp_utc"],
                columns["context_time"],
                columns["app_version"],
                columns["conn_country"],
                columns["device_manufacturer"],
                columns["device_model"],
                columns["device_type"],
                columns["os_name"],
                columns["os_version"],
                columns["user_agent"],
                json.dumps(message, ensure_ascii=False) if message else None,
                clip("tech_log_event", "source_file", source_file),
            ),
        )
        return True

    return handle_generic


def import_generic(conn: sqlite3.Connection, path: Path, record_type: str) -> int:
    """
    Import a technical-log file into the catch-all tech_log_event table.

    Args:
        conn: Connection to the analysis database.
        path: Source file.
        record_type: Logical record type stored as log_type.

    Returns:
        Number of rows written.
    """
    return import_file(conn, path, make_generic_handler(record_type))


# =============================================================================
# Row counts and import state
# =============================================================================


def _check_relation(name: str) -> str:
    if name not in REQUIRED_TABLES and name not in REQUIRED_VIEWS:
        raise ValueError(f"Unknown table or view: {name}")
    return name


def count_rows(conn: sqlite3.Connection, table: str) -> int:
    """
    Count the rows of a table or view.

    Raises:
        ValueError: If the name isn't part of the schema.
    """
    with closing(conn.cursor()) as cursor:
        cursor.execute(f"SELECT COUNT(*) FROM {_check_relation(table)};")
        result = cursor.fetchone()
        return result[0] if result else 0


def has_rows(conn: sqlite3.Connection, table: str) -> bool:
    """Check whether a table has at least one row."""
    with closing(conn.cursor()) as cursor:
        cursor.execute(f"SELECT 1 FROM {_check_relation(table)} LIMIT 1;")
        return cursor.fetchone() is not None


def set_import_state(conn: sqlite3.Connection, key: str, value: str) -> None:
    """
    Update an import_state key-value pair.

    Args:
        conn: Connection to the analysis database.
        key: State key (e.g., 'last_streaming_history_import').
        value: State value.
    """
    conn.execute(
        """
        INSERT OR REPLACE INTO import_state (key, value, updated_at)
        VALUES (?, ?, ?);
        """,
        (key, value, _now_iso()),
    )


def get_import_state(conn: sqlite3.Connection, key: str) -> Optional[str]:
    """
    Get an import_state value.

    Returns:
        The value, or None if the key isn't set.
    """
    with closing(conn.cursor()) as cursor:
        cursor.execute("SELECT value FROM import_state WHERE key = ?;", (key,))
        result = cursor.fetchone()
        return result[0] if result else None

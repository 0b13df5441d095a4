"""
ETL Pipeline orchestration.

This module runs the three imports of a Spotify data export into the
analysis database:

    1. Extended Streaming History -> play and the dimension tables
    2. Account Data -> profile, social, search, playlist, library, legacy
       history, Wrapped, chat, payment, address and sound capsule tables
    3. Technical Log Information -> change, share, session, error and
       account-activity tables, data_recipient, and tech_log_event

Run Order:
    Streaming history must be imported before account data; playlist and
    library rows link to tracks by URI and never create them.

Pipeline Steps (per import):
    0. Check that the source folder exists (before any connection)
    1. Ensure the analysis database schema exists
    2. Open the store with a fixed statement timeout
    3. Import files in sorted-name order, one transaction per file
    4. Record the import time in import_state

The first failing file stops the run. Files before it stay committed, and
rerunning is safe for dimensions (natural-key lookups) but appends facts
again.
"""

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple
import logging

from spotify_analysis.database import DEFAULT_TIMEOUT, open_store
from spotify_analysis.etl.extractors import (
    describe_files,
    discover_chunked_files,
    discover_existing,
    discover_numbered_files,
    discover_streaming_history_files,
    discover_wrapped_files,
)
from spotify_analysis.etl.identity import DimensionResolver
from spotify_analysis.etl.importers import (
    import_duo_family,
    import_follows,
    import_identifiers,
    import_inferences,
    import_legacy_streaming_history,
    import_library,
    import_marquee,
    import_messages,
    import_payments,
    import_playlists,
    import_search_queries,
    import_sound_capsule,
    import_technical_logs,
    import_user_addresses,
    import_user_festivals,
    import_user_profile,
    import_user_prompts,
    import_wrapped,
)
from spotify_analysis.etl.loaders import (
    RecordImportError,
    count_rows,
    get_import_state,
    import_plays,
    set_import_state,
)
from spotify_analysis.etl.schema import create_schema, verify_schema

logger = logging.getLogger(__name__)

STREAMING_HISTORY_STATE_KEY = "last_streaming_history_import"
ACCOUNT_DATA_STATE_KEY = "last_account_data_import"
TECHNICAL_LOG_STATE_KEY = "last_technical_log_import"

STATUS_TABLES = [
    "artist",
    "album",
    "track",
    "podcast_show",
    "podcast_episode",
    "audiobook",
    "audiobook_chapter",
    "play",
    "user_profile",
    "playlist",
    "playlist_track",
    "library_track",
    "search_query",
    "streaming_history_music",
    "chat_message",
    "collection_change",
    "session",
    "tech_log_event",
]


@dataclass
class ImportResult:
    """Result of an import run."""

    name: str
    success: bool
    counts: Dict[str, int] = field(default_factory=dict)
    files_processed: List[str] = field(default_factory=list)
    failed_file: Optional[str] = None
    failed_index: Optional[int] = None
    error: Optional[str] = None
    dimension_summary: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def total_rows(self) -> int:
        return sum(self.counts.values())

    def __str__(self) -> str:
        status = "SUCCESS" if self.success else f"FAILED: {self.error}"
        lines = [f"{self.name} import {status}"]
        if self.failed_file:
            where = f" (record {self.failed_index})" if self.failed_index is not None else ""
            lines.append(f"  Failed file: {self.failed_file}{where}")
        lines.append(f"  Files: {len(self.files_processed)} processed")
        for category, count in self.counts.items():
            lines.append(f"  {category}: {count:,} rows")
        if self.dimension_summary:
            lines.append("  Dimensions:")
            lines.append(self.dimension_summary)
        lines.append(f"  Duration: {self.duration_seconds:.2f}s")
        return "\n".join(lines)


def _now_iso() -> str:
    """Get current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _require_directory(source_dir: Path) -> None:
    if not source_dir.is_dir():
        raise FileNotFoundError(f"Source directory not found: {source_dir}")


def _run(
    name: str,
    source_dir: Path,
    db_path: Path,
    timeout: float,
    state_key: str,
    body: Callable[[sqlite3.Connection, ImportResult], None],
) -> ImportResult:
    """
    Shared run scaffolding: schema, connection, state, timing, error capture.

    Raises:
        FileNotFoundError: If source_dir doesn't exist. Nothing is opened.
    """
    _require_directory(source_dir)

    start_time = datetime.now()
    result = ImportResult(name=name, success=False)

    try:
        logger.info(f"Ensuring schema exists at {db_path}...")
        create_schema(db_path)

        conn = open_store(db_path, timeout=timeout)
        try:
            body(conn, result)
            set_import_state(conn, state_key, _now_iso())
        finally:
            conn.close()

        result.success = True
        result.duration_seconds = (datetime.now() - start_time).total_seconds()
        logger.info(f"{name} import completed in {result.duration_seconds:.2f}s")
        return result

    except RecordImportError as e:
        result.failed_file = e.path.name
        result.failed_index = e.index
        result.error = str(e)
    except (sqlite3.Error, OSError, ValueError) as e:
        # ValueError covers json.JSONDecodeError and malformed top-level shapes
        result.error = f"{type(e).__name__}: {e}"

    result.duration_seconds = (datetime.now() - start_time).total_seconds()
    logger.error(f"{name} import failed: {result.error}")
    return result


def run_streaming_history_import(
    source_dir: Path,
    db_path: Path,
    timeout: float = DEFAULT_TIMEOUT,
) -> ImportResult:
    """
    Import Extended Streaming History files into play.

    Args:
        source_dir: Folder with Streaming_History_*.json files.
        db_path: Path to the analysis database (created if missing).
        timeout: Statement timeout in seconds.

    Returns:
        ImportResult with per-file outcome and row counts.

    Raises:
        FileNotFoundError: If source_dir doesn't exist.
    """

    def body(conn: sqlite3.Connection, result: ImportResult) -> None:
        files = discover_streaming_history_files(source_dir)
        logger.info(f"Found {len(files)} streaming history files: {describe_files(files)}")

        resolver = DimensionResolver(conn)
        result.counts["play"] = 0
        try:
            for path in files:
                result.counts["play"] += import_plays(conn, path, resolver)
                result.files_processed.append(path.name)
                logger.info(f"{path.name}: running total {result.counts['play']} plays")
        finally:
            result.dimension_summary = str(resolver.stats)
            logger.info(
                f"Created {resolver.stats.total_inserts()} dimension rows, "
                f"{resolver.cached_count()} ids cached"
            )

    return _run(
        "Streaming history", source_dir, db_path, timeout, STREAMING_HISTORY_STATE_KEY, body
    )


def run_account_data_import(
    source_dir: Path,
    db_path: Path,
    timeout: float = DEFAULT_TIMEOUT,
) -> ImportResult:
    """
    Import the Account Data folder.

    Run after run_streaming_history_import so that playlist and library
    tracks can be linked.

    Raises:
        FileNotFoundError: If source_dir doesn't exist.
    """

    def body(conn: sqlite3.Connection, result: ImportResult) -> None:
        if not count_rows(conn, "track"):
            logger.warning(
                "No tracks in the database; playlist and library tracks won't be linked. "
                "Import streaming history first."
            )

        resolver = DimensionResolver(conn)
        # (files the step reads, importer)
        steps: List[Tuple[Callable[[], List[Path]], Callable[[], Dict[str, int]]]] = [
            (
                lambda: discover_existing(source_dir, "Userdata.json", "Identity.json"),
                lambda: import_user_profile(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "Follow.json"),
                lambda: import_follows(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "Inferences.json"),
                lambda: import_inferences(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "Marquee.json"),
                lambda: import_marquee(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "SearchQueries.json"),
                lambda: import_search_queries(conn, source_dir),
            ),
            (
                lambda: discover_numbered_files(source_dir, "Playlist"),
                lambda: import_playlists(conn, source_dir, resolver),
            ),
            (
                lambda: discover_existing(source_dir, "YourLibrary.json"),
                lambda: import_library(conn, source_dir, resolver),
            ),
            (
                lambda: discover_chunked_files(source_dir, "StreamingHistory_music", first_suffix=0)
                + discover_chunked_files(source_dir, "StreamingHistory_podcast", first_suffix=0),
                lambda: import_legacy_streaming_history(conn, source_dir),
            ),
            (
                lambda: discover_wrapped_files(source_dir),
                lambda: import_wrapped(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "DuoNewFamily.json"),
                lambda: import_duo_family(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "Identifiers.json"),
                lambda: import_identifiers(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "Payments.json"),
                lambda: import_payments(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "UserAddress.json"),
                lambda: import_user_addresses(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "UserPrompts.json"),
                lambda: import_user_prompts(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "UserFestivalsDataForSAR.json"),
                lambda: import_user_festivals(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "MessageData.json"),
                lambda: import_messages(conn, source_dir),
            ),
            (
                lambda: discover_existing(source_dir, "YourSoundCapsule.json"),
                lambda: import_sound_capsule(conn, source_dir),
            ),
        ]
        for discover, step in steps:
            files = discover()
            counts = step()
            for category, count in counts.items():
                result.counts[category] = result.counts.get(category, 0) + count
            result.files_processed.extend(path.name for path in files)

    return _run("Account data", source_dir, db_path, timeout, ACCOUNT_DATA_STATE_KEY, body)


def run_technical_log_import(
    source_dir: Path,
    db_path: Path,
    timeout: float = DEFAULT_TIMEOUT,
) -> ImportResult:
    """
    Import the Technical Log Information folder.

    Raises:
        FileNotFoundError: If source_dir doesn't exist.
    """

    def body(conn: sqlite3.Connection, result: ImportResult) -> None:
        counts = import_technical_logs(conn, source_dir)
        result.counts.update(counts)
        result.files_processed.extend(sorted(p.name for p in source_dir.glob("*.json")))

    return _run("Technical log", source_dir, db_path, timeout, TECHNICAL_LOG_STATE_KEY, body)


def get_import_status(db_path: Path) -> dict:
    """
    Get current import status from the analysis database.

    Args:
        db_path: Path to the analysis database.

    Returns:
        Dictionary with row counts and import state.
    """
    if not db_path.exists():
        return {"exists": False}

    if not verify_schema(db_path):
        return {"exists": True, "schema_valid": False}

    conn = sqlite3.connect(str(db_path))
    try:
        return {
            "exists": True,
            "schema_valid": True,
            "counts": {table: count_rows(conn, table) for table in STATUS_TABLES},
            "schema_version": get_import_state(conn, "schema_version"),
            STREAMING_HISTORY_STATE_KEY: get_import_state(conn, STREAMING_HISTORY_STATE_KEY),
            ACCOUNT_DATA_STATE_KEY: get_import_state(conn, ACCOUNT_DATA_STATE_KEY),
            TECHNICAL_LOG_STATE_KEY: get_import_state(conn, TECHNICAL_LOG_STATE_KEY),
        }
    finally:
        conn.close()

"""
Import validation module.

This module provides automated checks to verify an import after it ran.

Validation Checks:
    1. Row counts per dimension and play (informational)
    2. Dimension natural keys are unique
    3. A play references at most one content slot
    4. No orphaned foreign keys (play -> content, track -> album/artist)
    5. Play timestamps are ISO-8601 and the date range is present
    6. Plays by source file (informational)
    7. Import state is valid
"""

import re
import sqlite3
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple
import logging

from spotify_analysis.database import fetch_one, open_store_readonly
from spotify_analysis.etl.schema import SCHEMA_VERSION

logger = logging.getLogger(__name__)

# ISO-8601 as stored: seconds precision, optional millis, optional Z
ISO8601_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{3})?Z?$")

DIMENSION_TABLES = [
    "artist",
    "album",
    "track",
    "podcast_show",
    "podcast_episode",
    "audiobook",
    "audiobook_chapter",
]

# (table, natural key expression)
NATURAL_KEYS: List[Tuple[str, str]] = [
    ("artist", "artist_name"),
    ("album", "album_name, COALESCE(artist_id, -1)"),
    ("track", "spotify_uri"),
    ("podcast_show", "show_name"),
    ("podcast_episode", "spotify_uri"),
    ("audiobook", "spotify_uri"),
    ("audiobook_chapter", "spotify_uri"),
]

# (child table, child column, parent table, parent column)
FOREIGN_KEYS: List[Tuple[str, str, str, str]] = [
    ("play", "track_id", "track", "track_id"),
    ("play", "episode_id", "podcast_episode", "episode_id"),
    ("play", "audiobook_chapter_id", "audiobook_chapter", "chapter_id"),
    ("track", "artist_id", "artist", "artist_id"),
    ("track", "album_id", "album", "album_id"),
    ("album", "artist_id", "artist", "artist_id"),
    ("podcast_episode", "show_id", "podcast_show", "show_id"),
    ("audiobook_chapter", "audiobook_id", "audiobook", "audiobook_id"),
    ("playlist_track", "track_id", "track", "track_id"),
    ("library_track", "track_id", "track", "track_id"),
    ("chat_message", "chat_conversation_id", "chat_conversation", "chat_conversation_id"),
]


@dataclass
class ValidationCheck:
    """Result of a single validation check."""

    name: str
    passed: bool
    message: str
    details: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of all validation checks."""

    passed: bool
    checks: List[ValidationCheck] = field(default_factory=list)
    summary: str = ""

    def __str__(self) -> str:
        lines = []
        for check in self.checks:
            icon = "✓" if check.passed else "✗"
            lines.append(f"{icon} {check.name}: {check.message}")
            if check.details:
                lines.append(f"  → {check.details}")

        status = "All checks passed" if self.passed else "Some checks failed"
        lines.append(f"\n{status}.")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "summary": self.summary,
            "checks": [
                {
                    "name": c.name,
                    "passed": c.passed,
                    "message": c.message,
                    "details": c.details,
                }
                for c in self.checks
            ],
        }


def _scalar(conn: sqlite3.Connection, query: str) -> int:
    row = fetch_one(conn, query)
    return row[0] if row and row[0] is not None else 0


def check_row_counts(conn: sqlite3.Connection) -> ValidationCheck:
    """Report dimension and play row counts (informational)."""
    counts = {table: _scalar(conn, f"SELECT COUNT(*) FROM {table};") for table in DIMENSION_TABLES}
    plays = _scalar(conn, "SELECT COUNT(*) FROM play;")

    return ValidationCheck(
        name="Row counts",
        passed=True,
        message=f"{plays} plays",
        details=", ".join(f"{table}={count}" for table, count in counts.items()),
    )


def check_natural_keys_unique(conn: sqlite3.Connection) -> ValidationCheck:
    """
    Verify no dimension has two rows for the same natural key.

    Album keys include the artist, with NULL artists compared as equal.
    """
    duplicates = []
    for table, key in NATURAL_KEYS:
        count = _scalar(
            conn,
            f"SELECT COUNT(*) FROM (SELECT 1 FROM {table} GROUP BY {key} HAVING COUNT(*) > 1);",
        )
        if count:
            duplicates.append(f"{table}: {count} duplicated keys")

    if duplicates:
        return ValidationCheck(
            name="Unique natural keys",
            passed=False,
            message=f"{len(duplicates)} dimensions have duplicates",
            details="; ".join(duplicates),
        )
    return ValidationCheck(
        name="Unique natural keys",
        passed=True,
        message=f"All {len(NATURAL_KEYS)} dimensions unique",
    )


def check_content_slots_exclusive(conn: sqlite3.Connection) -> ValidationCheck:
    """Verify no play references more than one of track/episode/chapter."""
    count = _scalar(
        conn,
        """
        SELECT COUNT(*) FROM play
        WHERE (track_id IS NOT NULL)
            + (episode_id IS NOT NULL)
            + (audiobook_chapter_id IS NOT NULL) > 1;
        """,
    )
    unresolved = _scalar(
        conn,
        """
        SELECT COUNT(*) FROM play
        WHERE track_id IS NULL AND episode_id IS NULL AND audiobook_chapter_id IS NULL;
        """,
    )

    return ValidationCheck(
        name="Exclusive content slot",
        passed=count == 0,
        message=f"{count} plays with more than one content reference",
        details=f"{unresolved} plays reference no content" if unresolved else None,
    )


def check_no_orphans(conn: sqlite3.Connection) -> ValidationCheck:
    """Verify every non-null foreign key points at an existing row."""
    orphans = []
    for child, column, parent, parent_column in FOREIGN_KEYS:
        count = _scalar(
            conn,
            f"""
            SELECT COUNT(*) FROM {child} c
            WHERE c.{column} IS NOT NULL
              AND c.{column} NOT IN (SELECT {parent_column} FROM {parent});
            """,
        )
        if count:
            orphans.append(f"{child}.{column}: {count}")

    if orphans:
        return ValidationCheck(
            name="No orphaned references",
            passed=False,
            message=f"{len(orphans)} foreign keys have orphans",
            details="; ".join(orphans),
        )
    return ValidationCheck(
        name="No orphaned references",
        passed=True,
        message=f"All {len(FOREIGN_KEYS)} references valid",
    )


def check_play_timestamps(conn: sqlite3.Connection) -> ValidationCheck:
    """Verify play timestamps are stored as ISO-8601 and report the range."""
    with closing(conn.cursor()) as cursor:
        cursor.execute("SELECT MIN(timestamp), MAX(timestamp), COUNT(*) FROM play;")
        earliest, latest, total = cursor.fetchone()

        if total == 0:
            return ValidationCheck(
                name="Play timestamps",
                passed=True,
                message="No plays to check",
            )

        cursor.execute("SELECT timestamp FROM play ORDER BY RANDOM() LIMIT 1000;")
        invalid = [row[0] for row in cursor.fetchall() if not ISO8601_PATTERN.match(row[0] or "")]

    if invalid:
        return ValidationCheck(
            name="Play timestamps",
            passed=False,
            message=f"{len(invalid)} invalid timestamps in sample",
            details=f"Examples: {invalid[:3]}",
        )
    return ValidationCheck(
        name="Play timestamps",
        passed=True,
        message=f"{earliest} to {latest}",
    )


def check_plays_by_source_file(conn: sqlite3.Connection) -> ValidationCheck:
    """Report plays per source file (informational)."""
    with closing(conn.cursor()) as cursor:
        cursor.execute(
            """
            SELECT COALESCE(source_file, '(unknown)'), COUNT(*)
            FROM play
            GROUP BY source_file
            ORDER BY source_file;
            """
        )
        rows = cursor.fetchall()

    return ValidationCheck(
        name="Plays by source file",
        passed=True,
        message=f"{len(rows)} source files",
        details=", ".join(f"{name}={count}" for name, count in rows) if rows else None,
    )


def check_import_state(conn: sqlite3.Connection) -> ValidationCheck:
    """Verify import state has the expected schema version."""
    with closing(conn.cursor()) as cursor:
        cursor.execute("SELECT value FROM import_state WHERE key = 'schema_version';")
        row = cursor.fetchone()

    if row is None:
        return ValidationCheck(
            name="Import state",
            passed=False,
            message="No schema_version in import_state",
        )
    if row[0] != SCHEMA_VERSION:
        return ValidationCheck(
            name="Import state",
            passed=False,
            message=f"Schema version {row[0]} (expected {SCHEMA_VERSION})",
        )
    return ValidationCheck(
        name="Import state",
        passed=True,
        message=f"Schema version {row[0]}",
    )


def validate_import(db_path: Path) -> ValidationResult:
    """
    Run all validation checks against the analysis database.

    Args:
        db_path: Path to the analysis database.

    Returns:
        ValidationResult with all check results.
    """
    checks: List[ValidationCheck] = []

    if not db_path.exists():
        checks.append(
            ValidationCheck(
                name="Connection",
                passed=False,
                message=f"Database not found: {db_path}",
            )
        )
    else:
        try:
            conn = open_store_readonly(db_path)
            try:
                checks.append(check_row_counts(conn))
                checks.append(check_natural_keys_unique(conn))
                checks.append(check_content_slots_exclusive(conn))
                checks.append(check_no_orphans(conn))
                checks.append(check_play_timestamps(conn))
                checks.append(check_plays_by_source_file(conn))
                checks.append(check_import_state(conn))
            finally:
                conn.close()
        except sqlite3.Error as e:
            checks.append(
                ValidationCheck(
                    name="Connection",
                    passed=False,
                    message=f"Query failed: {e}",
                )
            )

    all_passed = all(check.passed for check in checks)
    passed_count = sum(1 for c in checks if c.passed)

    result = ValidationResult(
        passed=all_passed,
        checks=checks,
        summary=f"{passed_count}/{len(checks)} checks passed",
    )

    logger.info(f"Validation complete: {result.summary}")
    return result

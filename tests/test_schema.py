"""
Tests for the analysis database schema.
"""

import sqlite3
from pathlib import Path

import pytest

from spotify_analysis.etl.schema import (
    COLUMN_LIMITS,
    REQUIRED_TABLES,
    REQUIRED_VIEWS,
    SCHEMA_VERSION,
    column_limit,
    create_schema,
    get_table_names,
    get_view_names,
    verify_schema,
)


class TestCreateSchema:
    """Tests for create_schema."""

    def test_creates_all_tables_and_views(self, empty_store: Path):
        assert REQUIRED_TABLES.issubset(set(get_table_names(empty_store)))
        assert REQUIRED_VIEWS.issubset(set(get_view_names(empty_store)))

    def test_idempotent(self, empty_store: Path):
        """Creating the schema twice should keep existing rows."""
        conn = sqlite3.connect(str(empty_store))
        conn.execute("INSERT INTO artist (artist_name) VALUES ('Kept')")
        conn.commit()
        conn.close()

        create_schema(empty_store)

        conn = sqlite3.connect(str(empty_store))
        try:
            assert conn.execute("SELECT COUNT(*) FROM artist").fetchone()[0] == 1
        finally:
            conn.close()

    def test_creates_parent_directory(self, tmp_path: Path):
        db_path = tmp_path / "a" / "b" / "spotify.db"
        create_schema(db_path)
        assert db_path.exists()

    @pytest.mark.parametrize("view", sorted(REQUIRED_VIEWS))
    def test_views_query_on_empty_store(self, store_conn, view):
        """Every view should compile and return no rows before any import."""
        assert store_conn.execute(f"SELECT * FROM {view}").fetchall() == []

    def test_schema_version_seeded(self, empty_store: Path):
        conn = sqlite3.connect(str(empty_store))
        try:
            value = conn.execute(
                "SELECT value FROM import_state WHERE key = 'schema_version'"
            ).fetchone()[0]
        finally:
            conn.close()
        assert value == SCHEMA_VERSION


class TestConstraints:
    """Tests for constraints the importers rely on."""

    def test_play_flag_check(self, store_conn):
        with pytest.raises(sqlite3.IntegrityError):
            store_conn.execute(
                "INSERT INTO play (timestamp, ms_played, skipped) VALUES ('2023-01-01T00:00:00Z', 1, 2)"
            )

    def test_track_uri_unique(self, store_conn):
        store_conn.execute("INSERT INTO track (spotify_uri, track_name) VALUES ('u', 'a')")
        with pytest.raises(sqlite3.IntegrityError):
            store_conn.execute("INSERT INTO track (spotify_uri, track_name) VALUES ('u', 'b')")

    def test_foreign_keys_enforced(self, store_conn):
        with pytest.raises(sqlite3.IntegrityError):
            store_conn.execute(
                "INSERT INTO play (timestamp, ms_played, track_id) VALUES ('2023-01-01T00:00:00Z', 1, 999)"
            )

    def test_follow_relationship_check(self, store_conn):
        with pytest.raises(sqlite3.IntegrityError):
            store_conn.execute("INSERT INTO follow (relationship, username) VALUES ('friend', 'x')")

    def test_chat_message_needs_conversation(self, store_conn):
        with pytest.raises(sqlite3.IntegrityError):
            store_conn.execute("INSERT INTO chat_message (chat_conversation_id, message) VALUES (999, 'x')")

    def test_data_recipient_member_required(self, store_conn):
        with pytest.raises(sqlite3.IntegrityError):
            store_conn.execute("INSERT INTO data_recipient (group_name) VALUES ('g')")


class TestVerifySchema:
    """Tests for verify_schema."""

    def test_valid(self, empty_store: Path):
        assert verify_schema(empty_store)

    def test_missing_file(self, tmp_path: Path):
        assert not verify_schema(tmp_path / "missing.db")

    def test_missing_view(self, empty_store: Path):
        conn = sqlite3.connect(str(empty_store))
        conn.execute("DROP VIEW vw_artist_stats")
        conn.commit()
        conn.close()
        assert not verify_schema(empty_store)


class TestColumnLimits:
    """Tests for declared text column limits."""

    def test_lookup(self):
        assert column_limit("artist", "artist_name") == 200
        assert column_limit("play", "conn_country") == 2

    def test_unknown_column(self):
        with pytest.raises(KeyError):
            column_limit("artist", "nope")

    def test_limits_reference_real_tables(self):
        tables = {key.split(".", 1)[0] for key in COLUMN_LIMITS}
        assert tables.issubset(REQUIRED_TABLES)

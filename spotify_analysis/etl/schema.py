"""
Schema definitions for the analysis database.

This module defines the DDL for the relational store that Spotify export
archives are loaded into.

Design Decisions:
    1. Dimension tables use INTEGER surrogate keys assigned by SQLite and a
       UNIQUE constraint on the natural key (name or Spotify URI)
    2. An album is unique per (name, artist); a NULL artist is a real key value
    3. Fact rows carry nullable FKs, one per content slot (track / episode /
       chapter), at most one of which is populated
    4. Timestamps are ISO-8601 TEXT; offset-aware values are normalized to UTC
    5. Text columns have a maximum length (COLUMN_LIMITS) that importers
       truncate to, since SQLite does not enforce declared lengths
    6. Low-value technical log records share one catch-all table
"""

import sqlite3
from pathlib import Path
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)

# Schema version for migration tracking
SCHEMA_VERSION = "1.0.0"

# Maximum stored length per text column, keyed by "table.column".
COLUMN_LIMITS: Dict[str, int] = {
    # Dimensions
    "artist.artist_name": 200,
    "album.album_name": 250,
    "track.spotify_uri": 50,
    "track.track_name": 200,
    "podcast_show.show_name": 100,
    "podcast_episode.spotify_uri": 50,
    "podcast_episode.episode_name": 200,
    "audiobook.spotify_uri": 50,
    "audiobook.title": 100,
    "audiobook_chapter.spotify_uri": 50,
    "audiobook_chapter.chapter_title": 300,
    # Fact
    "play.platform": 100,
    "play.conn_country": 2,
    "play.ip_addr": 45,
    "play.reason_start": 30,
    "play.reason_end": 30,
    "play.source_file": 200,
    # Account data
    "user_profile.username": 100,
    "user_profile.email": 200,
    "user_profile.country": 2,
    "user_profile.gender": 20,
    "user_profile.display_name": 200,
    "user_profile.image_url": 500,
    "follow.relationship": 20,
    "follow.username": 200,
    "inference.inference_value": 500,
    "marquee.artist_name": 200,
    "marquee.segment": 100,
    "search_query.platform": 50,
    "search_query.search_query_text": 500,
    "search_interaction.interaction_uri": 200,
    "playlist.playlist_name": 300,
    "playlist.source_file": 100,
    "playlist_collaborator.username": 200,
    "playlist_track.track_uri": 50,
    "playlist_track.track_name": 300,
    "playlist_track.artist_name": 200,
    "playlist_track.album_name": 250,
    "library_track.track_uri": 50,
    "library_track.track_name": 300,
    "library_track.artist_name": 200,
    "library_track.album_name": 250,
    "library_album.album_uri": 50,
    "library_album.album_name": 250,
    "library_album.artist_name": 200,
    "library_artist.artist_uri": 50,
    "library_artist.artist_name": 200,
    "streaming_history_music.artist_name": 200,
    "streaming_history_music.track_name": 300,
    "streaming_history_music.source_file": 100,
    "streaming_history_podcast.podcast_name": 200,
    "streaming_history_podcast.episode_name": 300,
    "streaming_history_podcast.source_file": 100,
    "wrapped.section_name": 50,
    "duo_family.address": 500,
    "identifier.identifier_type": 100,
    "identifier.identifier_value": 500,
    "payment.payment_method": 200,
    "payment.country": 2,
    "payment.postal_code": 20,
    "user_address.street": 300,
    "user_address.city": 100,
    "user_address.state": 50,
    "user_address.postal_code_short": 20,
    "user_address.postal_code_extra": 20,
    "user_prompt.message": 1000,
    "user_festival.festival_id": 100,
    "user_festival.user_id": 50,
    "user_festival.festival_persona": 100,
    "chat_conversation.chat_uri": 200,
    "chat_message.sender_username": 200,
    "chat_message.message_uri": 200,
    "sound_capsule_highlight.highlight_type": 50,
    # Technical logs
    "collection_change.change_type": 10,
    "collection_change.collection_set": 20,
    "collection_change.item_uri": 100,
    "collection_change.context_uri": 100,
    "playlist_change.change_type": 10,
    "playlist_change.playlist_uri": 100,
    "playlist_change.item_uri": 100,
    "playlist_change.item_uri_kind": 20,
    "playlist_change.client_platform": 50,
    "share_event.entity_uri": 100,
    "share_event.destination_id": 100,
    "share_event.share_id": 100,
    "share_event.source_page": 100,
    "share_event.source_page_uri": 200,
    "share_event.device_type": 50,
    "share_event.os_name": 50,
    "share_event.os_version": 50,
    "share_event.country": 2,
    "rootlist_change.change_type": 10,
    "rootlist_change.item_uri": 100,
    "rootlist_change.item_uri_kind": 30,
    "rootlist_change.client_platform": 50,
    "playback_error.file_id": 100,
    "playback_error.spotify_track_id": 100,
    "playback_error.error_code": 50,
    "playback_error.device_type": 50,
    "playback_error.os_name": 50,
    "session.spotify_session_id": 100,
    "session.created_at": 50,
    "account_activity.activity_name": 200,
    "account_activity.market": 10,
    "account_activity.reason": 200,
    "account_activity.device_type": 50,
    "account_activity.os_name": 50,
    "account_activity.country": 2,
    "data_recipient.group_name": 200,
    "data_recipient.member_name": 300,
    "tech_log_event.log_type": 100,
    "tech_log_event.app_version": 50,
    "tech_log_event.conn_country": 2,
    "tech_log_event.device_manufacturer": 100,
    "tech_log_event.device_model": 100,
    "tech_log_event.device_type": 50,
    "tech_log_event.os_name": 50,
    "tech_log_event.os_version": 50,
    "tech_log_event.user_agent": 500,
    "tech_log_event.source_file": 200,
}

SCHEMA_DDL = """
-- =============================================================================
-- Dimension tables
-- =============================================================================
CREATE TABLE IF NOT EXISTS artist (
    artist_id INTEGER PRIMARY KEY AUTOINCREMENT,
    artist_name TEXT NOT NULL UNIQUE
);

-- An album is unique per (album_name, artist_id). The expression index makes
-- two albums with the same name and a NULL artist collide as well.
CREATE TABLE IF NOT EXISTS album (
    album_id INTEGER PRIMARY KEY AUTOINCREMENT,
    album_name TEXT NOT NULL,
    artist_id INTEGER REFERENCES artist(artist_id)
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_album_name_artist
    ON album(album_name, COALESCE(artist_id, -1));

CREATE TABLE IF NOT EXISTS track (
    track_id INTEGER PRIMARY KEY AUTOINCREMENT,
    spotify_uri TEXT NOT NULL UNIQUE,
    track_name TEXT NOT NULL,
    album_id INTEGER REFERENCES album(album_id),
    artist_id INTEGER REFERENCES artist(artist_id)
);

CREATE TABLE IF NOT EXISTS podcast_show (
    show_id INTEGER PRIMARY KEY AUTOINCREMENT,
    show_name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS podcast_episode (
    episode_id INTEGER PRIMARY KEY AUTOINCREMENT,
    spotify_uri TEXT NOT NULL UNIQUE,
    episode_name TEXT NOT NULL,
    show_id INTEGER REFERENCES podcast_show(show_id)
);

CREATE TABLE IF NOT EXISTS audiobook (
    audiobook_id INTEGER PRIMARY KEY AUTOINCREMENT,
    spotify_uri TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS audiobook_chapter (
    chapter_id INTEGER PRIMARY KEY AUTOINCREMENT,
    spotify_uri TEXT NOT NULL UNIQUE,
    chapter_title TEXT NOT NULL,
    audiobook_id INTEGER REFERENCES audiobook(audiobook_id)
);

CREATE INDEX IF NOT EXISTS idx_track_artist ON track(artist_id);
CREATE INDEX IF NOT EXISTS idx_track_album ON track(album_id);
CREATE INDEX IF NOT EXISTS idx_album_artist ON album(artist_id);

-- =============================================================================
-- play: Extended streaming history fact table
-- =============================================================================
-- At most one of track_id / episode_id / audiobook_chapter_id is set.
-- All NULL means local or otherwise unresolvable content.
--
CREATE TABLE IF NOT EXISTS play (
    play_id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    platform TEXT,
    ms_played INTEGER NOT NULL,
    conn_country TEXT,
    ip_addr TEXT,
    track_id INTEGER REFERENCES track(track_id),
    episode_id INTEGER REFERENCES podcast_episode(episode_id),
    audiobook_chapter_id INTEGER REFERENCES audiobook_chapter(chapter_id),
    reason_start TEXT,
    reason_end TEXT,
    shuffle INTEGER CHECK (shuffle IN (0, 1)),
    skipped INTEGER CHECK (skipped IN (0, 1)),
    offline INTEGER CHECK (offline IN (0, 1)),
    offline_timestamp INTEGER,
    incognito_mode INTEGER CHECK (incognito_mode IN (0, 1)),
    source_file TEXT
);

CREATE INDEX IF NOT EXISTS idx_play_timestamp ON play(timestamp);
CREATE INDEX IF NOT EXISTS idx_play_track ON play(track_id) WHERE track_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_play_episode ON play(episode_id) WHERE episode_id IS NOT NULL;

-- =============================================================================
-- Account data
-- =============================================================================
CREATE TABLE IF NOT EXISTS user_profile (
    user_profile_id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL,
    email TEXT,
    country TEXT,
    birthdate TEXT,
    gender TEXT,
    creation_time TEXT,
    display_name TEXT,
    image_url TEXT,
    taste_maker INTEGER,
    verified INTEGER
);

CREATE TABLE IF NOT EXISTS follow (
    follow_id INTEGER PRIMARY KEY AUTOINCREMENT,
    relationship TEXT NOT NULL CHECK (relationship IN ('following', 'follower', 'blocking')),
    username TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS inference (
    inference_id INTEGER PRIMARY KEY AUTOINCREMENT,
    inference_value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS marquee (
    marquee_id INTEGER PRIMARY KEY AUTOINCREMENT,
    artist_name TEXT NOT NULL,
    segment TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_marquee_artist ON marquee(artist_name);

CREATE TABLE IF NOT EXISTS search_query (
    search_query_id INTEGER PRIMARY KEY AUTOINCREMENT,
    platform TEXT,
    search_time TEXT NOT NULL,
    search_query_text TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_search_query_time ON search_query(search_time);

CREATE TABLE IF NOT EXISTS search_interaction (
    search_interaction_id INTEGER PRIMARY KEY AUTOINCREMENT,
    search_query_id INTEGER NOT NULL REFERENCES search_query(search_query_id),
    interaction_uri TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS playlist (
    playlist_id INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_name TEXT NOT NULL,
    last_modified_date TEXT,
    number_of_followers INTEGER,
    source_file TEXT
);

CREATE TABLE IF NOT EXISTS playlist_collaborator (
    playlist_collaborator_id INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_id INTEGER NOT NULL REFERENCES playlist(playlist_id),
    username TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS playlist_track (
    playlist_track_id INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_id INTEGER NOT NULL REFERENCES playlist(playlist_id),
    track_uri TEXT,
    track_name TEXT,
    artist_name TEXT,
    album_name TEXT,
    added_date TEXT,
    track_id INTEGER REFERENCES track(track_id)
);

CREATE INDEX IF NOT EXISTS idx_playlist_track_uri ON playlist_track(track_uri);
CREATE INDEX IF NOT EXISTS idx_playlist_track_playlist ON playlist_track(playlist_id);

CREATE TABLE IF NOT EXISTS library_track (
    library_track_id INTEGER PRIMARY KEY AUTOINCREMENT,
    track_uri TEXT NOT NULL,
    track_name TEXT NOT NULL,
    artist_name TEXT NOT NULL,
    album_name TEXT,
    track_id INTEGER REFERENCES track(track_id)
);

CREATE INDEX IF NOT EXISTS idx_library_track_uri ON library_track(track_uri);

CREATE TABLE IF NOT EXISTS library_album (
    library_album_id INTEGER PRIMARY KEY AUTOINCREMENT,
    album_uri TEXT NOT NULL,
    album_name TEXT NOT NULL,
    artist_name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS library_artist (
    library_artist_id INTEGER PRIMARY KEY AUTOINCREMENT,
    artist_uri TEXT NOT NULL,
    artist_name TEXT NOT NULL
);

-- Account-data version of the streaming history (no URIs, minute precision)
CREATE TABLE IF NOT EXISTS streaming_history_music (
    streaming_history_music_id INTEGER PRIMARY KEY AUTOINCREMENT,
    end_time TEXT NOT NULL,
    artist_name TEXT NOT NULL,
    track_name TEXT NOT NULL,
    ms_played INTEGER NOT NULL,
    source_file TEXT
);

CREATE INDEX IF NOT EXISTS idx_streaming_history_music_end
    ON streaming_history_music(end_time);

CREATE TABLE IF NOT EXISTS streaming_history_podcast (
    streaming_history_podcast_id INTEGER PRIMARY KEY AUTOINCREMENT,
    end_time TEXT NOT NULL,
    podcast_name TEXT NOT NULL,
    episode_name TEXT NOT NULL,
    ms_played INTEGER NOT NULL,
    source_file TEXT
);

CREATE TABLE IF NOT EXISTS wrapped (
    wrapped_id INTEGER PRIMARY KEY AUTOINCREMENT,
    year INTEGER NOT NULL,
    section_name TEXT NOT NULL,
    section_data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS duo_family (
    duo_family_id INTEGER PRIMARY KEY AUTOINCREMENT,
    address TEXT
);

CREATE TABLE IF NOT EXISTS identifier (
    identifier_id INTEGER PRIMARY KEY AUTOINCREMENT,
    identifier_type TEXT,
    identifier_value TEXT
);

CREATE TABLE IF NOT EXISTS payment (
    payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
    payment_method TEXT,
    creation_date TEXT,
    country TEXT,
    postal_code TEXT
);

-- Parsed from the "Map(street -> ..., city -> ...)" rendering
CREATE TABLE IF NOT EXISTS user_address (
    user_address_id INTEGER PRIMARY KEY AUTOINCREMENT,
    street TEXT,
    city TEXT,
    state TEXT,
    postal_code_short TEXT,
    postal_code_extra TEXT
);

CREATE TABLE IF NOT EXISTS user_prompt (
    user_prompt_id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_timestamp TEXT,
    message TEXT
);

-- top_artists / top_discovery_artists are JSON arrays of names
CREATE TABLE IF NOT EXISTS user_festival (
    user_festival_id INTEGER PRIMARY KEY AUTOINCREMENT,
    festival_id TEXT,
    user_id TEXT,
    total_artists_matched INTEGER,
    match_percentile INTEGER,
    festival_persona TEXT,
    top_artists TEXT,
    top_discovery_artists TEXT
);

CREATE TABLE IF NOT EXISTS chat_conversation (
    chat_conversation_id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_uri TEXT NOT NULL,
    members TEXT
);

CREATE TABLE IF NOT EXISTS chat_message (
    chat_message_id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_conversation_id INTEGER NOT NULL REFERENCES chat_conversation(chat_conversation_id),
    message_time TEXT,
    sender_username TEXT,
    message TEXT,
    message_uri TEXT
);

CREATE INDEX IF NOT EXISTS idx_chat_message_conversation ON chat_message(chat_conversation_id);

-- top_* columns are JSON arrays
CREATE TABLE IF NOT EXISTS sound_capsule_stat (
    sound_capsule_stat_id INTEGER PRIMARY KEY AUTOINCREMENT,
    week_date TEXT,
    stream_count INTEGER,
    seconds_played INTEGER,
    top_tracks TEXT,
    top_artists TEXT,
    top_genres TEXT
);

CREATE TABLE IF NOT EXISTS sound_capsule_highlight (
    sound_capsule_highlight_id INTEGER PRIMARY KEY AUTOINCREMENT,
    week_date TEXT,
    highlight_type TEXT,
    highlight_data TEXT
);

-- =============================================================================
-- Technical logs
-- =============================================================================
CREATE TABLE IF NOT EXISTS collection_change (
    collection_change_id INTEGER PRIMARY KEY AUTOINCREMENT,
    change_time TEXT NOT NULL,
    change_type TEXT NOT NULL,
    collection_set TEXT,
    item_uri TEXT,
    context_uri TEXT
);

CREATE INDEX IF NOT EXISTS idx_collection_change_time ON collection_change(change_time);

CREATE TABLE IF NOT EXISTS playlist_change (
    playlist_change_id INTEGER PRIMARY KEY AUTOINCREMENT,
    change_time TEXT NOT NULL,
    change_type TEXT NOT NULL,
    playlist_uri TEXT,
    item_uri TEXT,
    item_uri_kind TEXT,
    client_platform TEXT
);

CREATE INDEX IF NOT EXISTS idx_playlist_change_time ON playlist_change(change_time);

CREATE TABLE IF NOT EXISTS share_event (
    share_event_id INTEGER PRIMARY KEY AUTOINCREMENT,
    share_time TEXT NOT NULL,
    entity_uri TEXT,
    destination_id TEXT,
    share_id TEXT,
    source_page TEXT,
    source_page_uri TEXT,
    device_type TEXT,
    os_name TEXT,
    os_version TEXT,
    country TEXT
);

CREATE INDEX IF NOT EXISTS idx_share_event_time ON share_event(share_time);

-- Playlists and folders added to or removed from the library sidebar
CREATE TABLE IF NOT EXISTS rootlist_change (
    rootlist_change_id INTEGER PRIMARY KEY AUTOINCREMENT,
    change_time TEXT NOT NULL,
    change_type TEXT NOT NULL,
    item_uri TEXT,
    item_uri_kind TEXT,
    client_platform TEXT
);

CREATE INDEX IF NOT EXISTS idx_rootlist_change_time ON rootlist_change(change_time);

CREATE TABLE IF NOT EXISTS playback_error (
    playback_error_id INTEGER PRIMARY KEY AUTOINCREMENT,
    error_time TEXT NOT NULL,
    file_id TEXT,
    spotify_track_id TEXT,
    error_code TEXT,
    is_fatal INTEGER,
    bitrate INTEGER,
    device_type TEXT,
    os_name TEXT
);

CREATE TABLE IF NOT EXISTS session (
    session_id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_time TEXT NOT NULL,
    spotify_session_id TEXT,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_session_time ON session(session_time);

CREATE TABLE IF NOT EXISTS account_activity (
    account_activity_id INTEGER PRIMARY KEY AUTOINCREMENT,
    activity_time TEXT NOT NULL,
    activity_name TEXT,
    market TEXT,
    success INTEGER,
    reason TEXT,
    device_type TEXT,
    os_name TEXT,
    country TEXT
);

-- Data-sharing disclosure: recipient names per group
CREATE TABLE IF NOT EXISTS data_recipient (
    data_recipient_id INTEGER PRIMARY KEY AUTOINCREMENT,
    group_name TEXT,
    member_name TEXT NOT NULL
);

-- =============================================================================
-- tech_log_event: Catch-all for every other technical log record type
-- =============================================================================
-- Well-known context_* fields are hoisted into typed columns; everything
-- else is kept as a JSON object in message_data.
--
CREATE TABLE IF NOT EXISTS tech_log_event (
    tech_log_event_id INTEGER PRIMARY KEY AUTOINCREMENT,
    log_type TEXT NOT NULL,
    timestamp_utc TEXT,
    context_time INTEGER,
    app_version TEXT,
    conn_country TEXT,
    device_manufacturer TEXT,
    device_model TEXT,
    device_type TEXT,
    os_name TEXT,
    os_version TEXT,
    user_agent TEXT,
    message_data TEXT,
    source_file TEXT
);

CREATE INDEX IF NOT EXISTS idx_tech_log_event_type ON tech_log_event(log_type);
CREATE INDEX IF NOT EXISTS idx_tech_log_event_type_time
    ON tech_log_event(log_type, timestamp_utc);

-- =============================================================================
-- import_state: Key-value store for import metadata
-- =============================================================================
--   - 'schema_version'
--   - 'last_streaming_history_import', 'last_account_data_import',
--     'last_technical_log_import'
--
CREATE TABLE IF NOT EXISTS import_state (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

INSERT OR REPLACE INTO import_state (key, value, updated_at)
VALUES ('schema_version', '{schema_version}', datetime('now'));
""".format(
    schema_version=SCHEMA_VERSION
)

VIEWS_DDL = """
CREATE VIEW IF NOT EXISTS vw_play_detail AS
SELECT
    p.play_id,
    p.timestamp,
    substr(p.timestamp, 1, 10) AS play_date,
    CAST(strftime('%Y', p.timestamp) AS INTEGER) AS play_year,
    CAST(strftime('%m', p.timestamp) AS INTEGER) AS play_month,
    CAST(strftime('%H', p.timestamp) AS INTEGER) AS hour_of_day,
    p.ms_played,
    ROUND(p.ms_played / 60000.0, 2) AS minutes_played,
    p.platform,
    p.conn_country,
    CASE
        WHEN p.track_id IS NOT NULL THEN 'Music'
        WHEN p.episode_id IS NOT NULL THEN 'Podcast'
        WHEN p.audiobook_chapter_id IS NOT NULL THEN 'Audiobook'
        ELSE 'Unknown'
    END AS content_type,
    t.track_name,
    t.spotify_uri AS track_uri,
    ar.artist_name,
    al.album_name,
    ep.episode_name,
    ps.show_name AS podcast_show_name,
    ac.chapter_title AS audiobook_chapter_title,
    ab.title AS audiobook_title,
    p.reason_start,
    p.reason_end,
    p.shuffle,
    p.skipped,
    p.offline,
    p.incognito_mode,
    p.source_file
FROM play p
LEFT JOIN track t ON p.track_id = t.track_id
LEFT JOIN artist ar ON t.artist_id = ar.artist_id
LEFT JOIN album al ON t.album_id = al.album_id
LEFT JOIN podcast_episode ep ON p.episode_id = ep.episode_id
LEFT JOIN podcast_show ps ON ep.show_id = ps.show_id
LEFT JOIN audiobook_chapter ac ON p.audiobook_chapter_id = ac.chapter_id
LEFT JOIN audiobook ab ON ac.audiobook_id = ab.audiobook_id;

CREATE VIEW IF NOT EXISTS vw_artist_stats AS
SELECT
    ar.artist_id,
    ar.artist_name,
    COUNT(*) AS total_plays,
    COUNT(DISTINCT t.track_id) AS unique_tracks_played,
    COUNT(DISTINCT t.album_id) AS unique_albums_played,
    SUM(p.ms_played) AS total_ms_played,
    ROUND(SUM(p.ms_played) / 3600000.0, 1) AS total_hours,
    MIN(p.timestamp) AS first_played,
    MAX(p.timestamp) AS last_played,
    COUNT(DISTINCT substr(p.timestamp, 1, 10)) AS days_listened,
    SUM(CASE WHEN p.skipped = 1 THEN 1 ELSE 0 END) AS skip_count,
    ROUND(SUM(CASE WHEN p.skipped = 1 THEN 1 ELSE 0 END) * 100.0 / COUNT(*), 1) AS skip_pct
FROM play p
JOIN track t ON p.track_id = t.track_id
JOIN artist ar ON t.artist_id = ar.artist_id
GROUP BY ar.artist_id, ar.artist_name;

CREATE VIEW IF NOT EXISTS vw_track_stats AS
SELECT
    t.track_id,
    t.track_name,
    t.spotify_uri AS track_uri,
    ar.artist_name,
    al.album_name,
    COUNT(*) AS total_plays,
    SUM(p.ms_played) AS total_ms_played,
    ROUND(SUM(p.ms_played) / 60000.0, 1) AS total_minutes,
    MIN(p.timestamp) AS first_played,
    MAX(p.timestamp) AS last_played,
    SUM(CASE WHEN p.skipped = 1 THEN 1 ELSE 0 END) AS skip_count,
    SUM(CASE WHEN p.shuffle = 1 THEN 1 ELSE 0 END) AS shuffle_count,
    ROUND(SUM(CASE WHEN p.skipped = 1 THEN 1 ELSE 0 END) * 100.0 / COUNT(*), 1) AS skip_pct
FROM play p
JOIN track t ON p.track_id = t.track_id
LEFT JOIN artist ar ON t.artist_id = ar.artist_id
LEFT JOIN album al ON t.album_id = al.album_id
GROUP BY t.track_id, t.track_name, t.spotify_uri, ar.artist_name, al.album_name;

CREATE VIEW IF NOT EXISTS vw_monthly_listening AS
SELECT
    substr(p.timestamp, 1, 7) AS year_month,
    COUNT(*) AS total_plays,
    COUNT(DISTINCT p.track_id) AS unique_tracks,
    COUNT(DISTINCT substr(p.timestamp, 1, 10)) AS days_active,
    SUM(p.ms_played) AS total_ms_played,
    ROUND(SUM(p.ms_played) / 3600000.0, 1) AS total_hours,
    SUM(CASE WHEN p.track_id IS NOT NULL THEN 1 ELSE 0 END) AS music_plays,
    SUM(CASE WHEN p.episode_id IS NOT NULL THEN 1 ELSE 0 END) AS podcast_plays,
    SUM(CASE WHEN p.audiobook_chapter_id IS NOT NULL THEN 1 ELSE 0 END) AS audiobook_plays
FROM play p
GROUP BY substr(p.timestamp, 1, 7);

CREATE VIEW IF NOT EXISTS vw_platform_stats AS
SELECT
    p.platform,
    COUNT(*) AS total_plays,
    ROUND(SUM(p.ms_played) / 3600000.0, 1) AS total_hours,
    MIN(p.timestamp) AS first_seen,
    MAX(p.timestamp) AS last_seen
FROM play p
GROUP BY p.platform;

CREATE VIEW IF NOT EXISTS vw_playlist_overview AS
SELECT
    pl.playlist_id,
    pl.playlist_name,
    pl.last_modified_date,
    pl.number_of_followers,
    COUNT(pt.playlist_track_id) AS track_count,
    COUNT(pt.track_id) AS tracks_in_history,
    COUNT(DISTINCT pt.artist_name) AS unique_artists
FROM playlist pl
LEFT JOIN playlist_track pt ON pt.playlist_id = pl.playlist_id
GROUP BY pl.playlist_id, pl.playlist_name, pl.last_modified_date, pl.number_of_followers;

CREATE VIEW IF NOT EXISTS vw_library_listening_status AS
SELECT
    lt.library_track_id,
    lt.track_name,
    lt.artist_name,
    lt.album_name,
    lt.track_uri,
    COUNT(p.play_id) AS total_plays,
    COALESCE(SUM(p.ms_played), 0) AS total_ms_played,
    MAX(p.timestamp) AS last_played,
    CASE WHEN COUNT(p.play_id) = 0 THEN 'Never played' ELSE 'Played' END AS listening_status
FROM library_track lt
LEFT JOIN play p ON p.track_id = lt.track_id
GROUP BY lt.library_track_id, lt.track_name, lt.artist_name, lt.album_name, lt.track_uri;

CREATE VIEW IF NOT EXISTS vw_album_stats AS
SELECT
    al.album_id,
    al.album_name,
    ar.artist_name,
    COUNT(*) AS total_plays,
    COUNT(DISTINCT t.track_id) AS unique_tracks_played,
    SUM(p.ms_played) AS total_ms_played,
    ROUND(SUM(p.ms_played) / 3600000.0, 1) AS total_hours,
    MIN(p.timestamp) AS first_played,
    MAX(p.timestamp) AS last_played
FROM play p
JOIN track t ON p.track_id = t.track_id
JOIN album al ON t.album_id = al.album_id
LEFT JOIN artist ar ON al.artist_id = ar.artist_id
GROUP BY al.album_id, al.album_name, ar.artist_name;

-- day_of_week_num: 1 = Sunday ... 7 = Saturday
CREATE VIEW IF NOT EXISTS vw_listening_heatmap AS
SELECT
    CAST(strftime('%w', p.timestamp) AS INTEGER) + 1 AS day_of_week_num,
    CASE strftime('%w', p.timestamp)
        WHEN '0' THEN 'Sunday'
        WHEN '1' THEN 'Monday'
        WHEN '2' THEN 'Tuesday'
        WHEN '3' THEN 'Wednesday'
        WHEN '4' THEN 'Thursday'
        WHEN '5' THEN 'Friday'
        ELSE 'Saturday'
    END AS day_of_week,
    CAST(strftime('%H', p.timestamp) AS INTEGER) AS hour_of_day,
    COUNT(*) AS total_plays,
    ROUND(SUM(p.ms_played) / 60000.0, 0) AS total_minutes
FROM play p
GROUP BY strftime('%w', p.timestamp), strftime('%H', p.timestamp);

CREATE VIEW IF NOT EXISTS vw_skip_analysis AS
SELECT
    p.reason_end,
    COUNT(*) AS total_plays,
    SUM(CASE WHEN p.skipped = 1 THEN 1 ELSE 0 END) AS skipped,
    ROUND(AVG(CASE WHEN p.skipped = 1 THEN p.ms_played END) / 1000.0, 1) AS avg_seconds_before_skip,
    ROUND(AVG(CASE WHEN p.skipped = 0 THEN p.ms_played END) / 1000.0, 1) AS avg_seconds_full_play
FROM play p
WHERE p.track_id IS NOT NULL
GROUP BY p.reason_end;

CREATE VIEW IF NOT EXISTS vw_offline_listening AS
SELECT
    CAST(strftime('%Y', p.timestamp) AS INTEGER) AS year,
    p.offline,
    COUNT(*) AS total_plays,
    ROUND(SUM(p.ms_played) / 3600000.0, 1) AS total_hours,
    COUNT(DISTINCT p.track_id) AS unique_tracks
FROM play p
GROUP BY strftime('%Y', p.timestamp), p.offline;

CREATE VIEW IF NOT EXISTS vw_artist_engagement AS
SELECT
    m.artist_name,
    m.segment AS marquee_segment,
    a.artist_id,
    COALESCE(s.total_plays, 0) AS total_plays,
    COALESCE(s.total_hours, 0) AS total_hours,
    COALESCE(s.unique_tracks_played, 0) AS unique_tracks_played,
    s.first_played,
    s.last_played,
    EXISTS (SELECT 1 FROM library_artist la WHERE la.artist_name = m.artist_name) AS in_library,
    EXISTS (
        SELECT 1 FROM follow f
        WHERE f.username = m.artist_name AND f.relationship = 'following'
    ) AS is_followed
FROM marquee m
LEFT JOIN artist a ON m.artist_name = a.artist_name
LEFT JOIN vw_artist_stats s ON a.artist_id = s.artist_id;

CREATE VIEW IF NOT EXISTS vw_search_history AS
SELECT
    sq.search_query_id,
    sq.search_time,
    substr(sq.search_time, 1, 10) AS search_date,
    sq.platform,
    sq.search_query_text,
    COUNT(si.search_interaction_id) AS click_count,
    CASE WHEN COUNT(si.search_interaction_id) > 0 THEN 1 ELSE 0 END AS had_interaction
FROM search_query sq
LEFT JOIN search_interaction si ON sq.search_query_id = si.search_query_id
GROUP BY sq.search_query_id, sq.search_time, sq.platform, sq.search_query_text;

-- Matched by URI so plays imported after the playlist still count
CREATE VIEW IF NOT EXISTS vw_playlist_track_activity AS
SELECT
    pl.playlist_name,
    pt.track_name,
    pt.artist_name,
    pt.album_name,
    pt.added_date,
    COALESCE(ts.total_plays, 0) AS total_plays,
    COALESCE(ts.total_minutes, 0) AS total_minutes,
    ts.first_played,
    ts.last_played,
    ts.skip_pct,
    CASE
        WHEN ts.last_played IS NULL THEN 'Never played'
        WHEN substr(ts.last_played, 1, 10) >= pt.added_date THEN 'Played after adding'
        ELSE 'Only played before adding'
    END AS play_relative_to_add
FROM playlist_track pt
JOIN playlist pl ON pt.playlist_id = pl.playlist_id
LEFT JOIN track t ON pt.track_uri = t.spotify_uri
LEFT JOIN vw_track_stats ts ON t.track_id = ts.track_id;

CREATE VIEW IF NOT EXISTS vw_collection_growth AS
SELECT
    substr(cc.change_time, 1, 10) AS change_date,
    substr(cc.change_time, 1, 7) AS year_month,
    cc.change_type,
    SUM(CASE WHEN cc.change_type IN ('add', 'added') THEN 1 ELSE 0 END) AS added,
    SUM(CASE WHEN cc.change_type IN ('remove', 'removed') THEN 1 ELSE 0 END) AS removed,
    COUNT(*) AS total_changes
FROM collection_change cc
GROUP BY substr(cc.change_time, 1, 10), substr(cc.change_time, 1, 7), cc.change_type;

CREATE VIEW IF NOT EXISTS vw_artist_discovery AS
SELECT
    s.artist_id,
    s.artist_name,
    s.first_played,
    s.last_played,
    s.total_plays,
    s.total_hours,
    s.unique_tracks_played,
    s.unique_albums_played,
    s.days_listened,
    s.skip_pct,
    CAST(substr(s.first_played, 1, 4) AS INTEGER) AS discovery_year,
    CASE
        WHEN s.total_hours >= 50 THEN 'Obsession'
        WHEN s.total_hours >= 10 THEN 'Heavy rotation'
        WHEN s.total_hours >= 2 THEN 'Regular'
        WHEN s.total_plays >= 5 THEN 'Casual'
        ELSE 'Sampled'
    END AS engagement_level,
    CASE
        WHEN s.last_played >= date('now', '-1 month') THEN 'Current'
        WHEN s.last_played >= date('now', '-3 months') THEN 'Recent'
        WHEN s.last_played >= date('now', '-1 year') THEN 'Past year'
        ELSE 'Historical'
    END AS recency,
    EXISTS (SELECT 1 FROM library_artist la WHERE la.artist_name = s.artist_name) AS in_library,
    (SELECT m.segment FROM marquee m WHERE m.artist_name = s.artist_name LIMIT 1) AS marquee_segment
FROM vw_artist_stats s;

CREATE VIEW IF NOT EXISTS vw_yearly_listening_summary AS
SELECT
    CAST(strftime('%Y', p.timestamp) AS INTEGER) AS year,
    COUNT(*) AS total_plays,
    ROUND(SUM(p.ms_played) / 3600000.0, 1) AS total_hours,
    COUNT(DISTINCT substr(p.timestamp, 1, 10)) AS days_active,
    COUNT(DISTINCT p.track_id) AS unique_tracks_played,
    COUNT(DISTINCT t.artist_id) AS unique_artists,
    COUNT(DISTINCT t.album_id) AS unique_albums,
    ROUND(AVG(CASE WHEN p.track_id IS NOT NULL THEN p.ms_played END) / 1000.0, 1) AS avg_track_seconds,
    SUM(CASE WHEN p.skipped = 1 THEN 1 ELSE 0 END) AS skips,
    SUM(CASE WHEN p.shuffle = 1 THEN 1 ELSE 0 END) AS shuffle_plays,
    SUM(CASE WHEN p.offline = 1 THEN 1 ELSE 0 END) AS offline_plays,
    SUM(CASE WHEN p.incognito_mode = 1 THEN 1 ELSE 0 END) AS incognito_plays,
    COUNT(DISTINCT p.platform) AS platforms_used
FROM play p
LEFT JOIN track t ON p.track_id = t.track_id
GROUP BY strftime('%Y', p.timestamp);

-- Sessions and plays are aggregated per date before joining
CREATE VIEW IF NOT EXISTS vw_session_activity AS
SELECT
    s.session_date,
    s.sessions,
    COALESCE(pd.plays, 0) AS plays_on_date,
    COALESCE(pd.minutes_played, 0) AS minutes_played
FROM (
    SELECT substr(session_time, 1, 10) AS session_date, COUNT(*) AS sessions
    FROM session
    GROUP BY substr(session_time, 1, 10)
) s
LEFT JOIN (
    SELECT
        substr(timestamp, 1, 10) AS play_date,
        COUNT(*) AS plays,
        ROUND(SUM(ms_played) / 60000.0, 0) AS minutes_played
    FROM play
    GROUP BY substr(timestamp, 1, 10)
) pd ON pd.play_date = s.session_date;

CREATE VIEW IF NOT EXISTS vw_daily_activity AS
SELECT
    substr(p.timestamp, 1, 10) AS play_date,
    COUNT(*) AS total_plays,
    ROUND(SUM(p.ms_played) / 3600000.0, 2) AS hours,
    COUNT(DISTINCT p.track_id) AS unique_tracks,
    COUNT(DISTINCT t.artist_id) AS unique_artists,
    MIN(p.timestamp) AS first_play,
    MAX(p.timestamp) AS last_play,
    CAST(ROUND((julianday(MAX(p.timestamp)) - julianday(MIN(p.timestamp))) * 1440) AS INTEGER)
        AS active_minutes
FROM play p
LEFT JOIN track t ON p.track_id = t.track_id
GROUP BY substr(p.timestamp, 1, 10);
"""

REQUIRED_TABLES = {
    "artist",
    "album",
    "track",
    "podcast_show",
    "podcast_episode",
    "audiobook",
    "audiobook_chapter",
    "play",
    "user_profile",
    "follow",
    "inference",
    "marquee",
    "search_query",
    "search_interaction",
    "playlist",
    "playlist_collaborator",
    "playlist_track",
    "library_track",
    "library_album",
    "library_artist",
    "streaming_history_music",
    "streaming_history_podcast",
    "wrapped",
    "duo_family",
    "identifier",
    "payment",
    "user_address",
    "user_prompt",
    "user_festival",
    "chat_conversation",
    "chat_message",
    "sound_capsule_stat",
    "sound_capsule_highlight",
    "collection_change",
    "playlist_change",
    "share_event",
    "rootlist_change",
    "playback_error",
    "session",
    "account_activity",
    "data_recipient",
    "tech_log_event",
    "import_state",
}

REQUIRED_VIEWS = {
    "vw_play_detail",
    "vw_artist_stats",
    "vw_track_stats",
    "vw_monthly_listening",
    "vw_platform_stats",
    "vw_playlist_overview",
    "vw_library_listening_status",
    "vw_album_stats",
    "vw_listening_heatmap",
    "vw_skip_analysis",
    "vw_offline_listening",
    "vw_artist_engagement",
    "vw_search_history",
    "vw_playlist_track_activity",
    "vw_collection_growth",
    "vw_artist_discovery",
    "vw_yearly_listening_summary",
    "vw_session_activity",
    "vw_daily_activity",
}


def column_limit(table: str, column: str) -> int:
    """
    Get the maximum stored length of a text column.

    Raises:
        KeyError: If the column has no declared limit.
    """
    return COLUMN_LIMITS[f"{table}.{column}"]


def create_schema(db_path: Path) -> None:
    """
    Create the analysis database schema if it doesn't exist.

    This function is idempotent - safe to call multiple times.
    Uses IF NOT EXISTS for all table, index and view creation.

    Args:
        db_path: Path to the database file. Parent directory will be created
                 if it doesn't exist.

    Raises:
        sqlite3.Error: If schema creation fails.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Creating/verifying schema at: {db_path}")

    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute("PRAGMA foreign_keys = ON;")
        conn.executescript(SCHEMA_DDL)
        conn.executescript(VIEWS_DDL)
        conn.commit()

        logger.info(f"Schema created/verified successfully (version {SCHEMA_VERSION})")
    except sqlite3.Error as e:
        logger.error(f"Schema creation failed: {e}")
        raise
    finally:
        conn.close()


def get_table_names(db_path: Path) -> List[str]:
    """
    Get all table names in the analysis database.

    Args:
        db_path: Path to the database file.

    Returns:
        List of table names.
    """
    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name;"
        )
        return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()


def get_view_names(db_path: Path) -> List[str]:
    """Get all view names in the analysis database."""
    conn = sqlite3.connect(str(db_path))
    try:
        cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='view' ORDER BY name;")
        return [row[0] for row in cursor.fetchall()]
    finally:
        conn.close()


def verify_schema(db_path: Path) -> bool:
    """
    Verify that the schema exists and has all required tables and views.

    Args:
        db_path: Path to the database file.

    Returns:
        True if schema is valid, False otherwise.
    """
    if not db_path.exists():
        return False

    existing_tables = set(get_table_names(db_path))
    existing_views = set(get_view_names(db_path))
    return REQUIRED_TABLES.issubset(existing_tables) and REQUIRED_VIEWS.issubset(existing_views)

"""
Dimension resolution for ETL.

This module maps natural keys (artist names, Spotify URIs, ...) to the
surrogate ids of dimension rows, creating a row the first time a key is
seen. Every play row references its track/episode/chapter through here.

Design Decisions:
    1. The cache is owned by a DimensionResolver instance, one per import
       run, so separate runs and tests never share state
    2. Lookup order is cache, then storage, then insert; the id is cached
       whether it was found or created
    3. Album is keyed by (name, artist id). A NULL artist is a key value of
       its own: "Greatest Hits" without an artist is one row, distinct from
       "Greatest Hits" by any resolved artist
    4. Episode and chapter are keyed by URI alone; their parent is stored on
       first insert and never back-patched
    5. Natural keys are truncated to the column limit before lookup, so a
       rerun matches the stored (truncated) key
    6. Resolver writes share the caller's transaction. Ids inserted since the
       last commit() are evicted by rollback() so a failed file leaves no
       stale ids in the cache

Resolution Strategy:
    1. Empty or missing key: no id
    2. Cache hit: cached id, no storage round-trip
    3. Storage hit: existing id
    4. Otherwise insert; if the unique constraint fires (another writer got
       there first) retry once as a lookup
"""

import sqlite3
from collections import Counter
from contextlib import closing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from spotify_analysis.etl.normalizers import truncate
from spotify_analysis.etl.schema import column_limit

logger = logging.getLogger(__name__)


class DimensionKind(Enum):
    """The dimension types a play can reference."""

    ARTIST = "artist"
    ALBUM = "album"
    TRACK = "track"
    PODCAST_SHOW = "podcast_show"
    PODCAST_EPISODE = "podcast_episode"
    AUDIOBOOK = "audiobook"
    AUDIOBOOK_CHAPTER = "audiobook_chapter"


@dataclass(frozen=True)
class DimensionSpec:
    """Storage layout of one dimension kind."""

    table: str
    id_column: str
    key_column: str
    label_column: Optional[str] = None
    parent_column: Optional[str] = None
    parent_in_key: bool = False
    extra_columns: Tuple[str, ...] = ()


DIMENSIONS: Dict[DimensionKind, DimensionSpec] = {
    DimensionKind.ARTIST: DimensionSpec("artist", "artist_id", "artist_name"),
    DimensionKind.ALBUM: DimensionSpec(
        "album", "album_id", "album_name", parent_column="artist_id", parent_in_key=True
    ),
    DimensionKind.TRACK: DimensionSpec(
        "track",
        "track_id",
        "spotify_uri",
        label_column="track_name",
        parent_column="album_id",
        extra_columns=("artist_id",),
    ),
    DimensionKind.PODCAST_SHOW: DimensionSpec("podcast_show", "show_id", "show_name"),
    DimensionKind.PODCAST_EPISODE: DimensionSpec(
        "podcast_episode",
        "episode_id",
        "spotify_uri",
        label_column="episode_name",
        parent_column="show_id",
    ),
    DimensionKind.AUDIOBOOK: DimensionSpec(
        "audiobook", "audiobook_id", "spotify_uri", label_column="title"
    ),
    DimensionKind.AUDIOBOOK_CHAPTER: DimensionSpec(
        "audiobook_chapter",
        "chapter_id",
        "spotify_uri",
        label_column="chapter_title",
        parent_column="audiobook_id",
    ),
}

CacheKey = Tuple[str, Optional[int]]


@dataclass
class ResolverStats:
    """Per-kind counts of how each resolve() was answered."""

    cache_hits: Counter = field(default_factory=Counter)
    storage_hits: Counter = field(default_factory=Counter)
    inserts: Counter = field(default_factory=Counter)

    def total_inserts(self) -> int:
        return sum(self.inserts.values())

    def __str__(self) -> str:
        lines = []
        for kind in DimensionKind:
            name = kind.value
            if self.cache_hits[name] or self.storage_hits[name] or self.inserts[name]:
                lines.append(
                    f"  {name}: {self.inserts[name]} created, "
                    f"{self.storage_hits[name]} found, {self.cache_hits[name]} cached"
                )
        return "\n".join(lines) if lines else "  (no dimensions resolved)"


class DimensionResolver:
    """
    Resolve natural keys to dimension surrogate ids.

    Example:
        resolver = DimensionResolver(conn)
        with transaction(conn):
            artist_id = resolver.artist("Radiohead")
            album_id = resolver.album("OK Computer", artist_id)
        resolver.commit()
    """

    def __init__(self, conn: sqlite3.Connection):
        """
        Args:
            conn: Connection to the analysis database. Lookups and inserts
                  run on it, inside whatever transaction the caller has open.
        """
        self.conn = conn
        self._cache: Dict[DimensionKind, Dict[CacheKey, int]] = {
            kind: {} for kind in DimensionKind
        }
        self._pending: List[Tuple[DimensionKind, CacheKey]] = []
        self.stats = ResolverStats()

    def _normalize_key(self, spec: DimensionSpec, natural_key: Optional[str]) -> Optional[str]:
        if natural_key is None:
            return None
        key = truncate(natural_key.strip(), column_limit(spec.table, spec.key_column))
        return key or None

    def _cache_key(self, spec: DimensionSpec, key: str, parent_id: Optional[int]) -> CacheKey:
        return (key, parent_id if spec.parent_in_key else None)

    def _find(self, spec: DimensionSpec, key: str, parent_id: Optional[int]) -> Optional[int]:
        query = f"SELECT {spec.id_column} FROM {spec.table} WHERE {spec.key_column} = ?"
        params: Tuple[Any, ...] = (key,)
        if spec.parent_in_key:
            # IS matches NULL to NULL
            query += f" AND {spec.parent_column} IS ?"
            params = (key, parent_id)

        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query + " LIMIT 1;", params)
            row = cursor.fetchone()
            return int(row[0]) if row else None

    def _insert(
        self,
        spec: DimensionSpec,
        key: str,
        parent_id: Optional[int],
        label: Optional[str],
        attributes: Optional[Mapping[str, Any]],
    ) -> int:
        columns = [spec.key_column]
        values: List[Any] = [key]

        if spec.label_column:
            limit = column_limit(spec.table, spec.label_column)
            columns.append(spec.label_column)
            # Label columns are NOT NULL; fall back to the key
            values.append(truncate(label, limit) or truncate(key, limit))

        if spec.parent_column:
            columns.append(spec.parent_column)
            values.append(parent_id)

        for name, value in (attributes or {}).items():
            if name not in spec.extra_columns:
                raise ValueError(f"Unknown attribute '{name}' for {spec.table}")
            columns.append(name)
            values.append(value)

        placeholders = ", ".join("?" for _ in columns)
        query = f"INSERT INTO {spec.table} ({', '.join(columns)}) VALUES ({placeholders});"

        with closing(self.conn.cursor()) as cursor:
            cursor.execute(query, values)
            new_id = cursor.lastrowid
        if new_id is None:
            raise sqlite3.DatabaseError(f"No id returned for insert into {spec.table}")
        return int(new_id)

    def resolve(
        self,
        kind: DimensionKind,
        natural_key: Optional[str],
        parent_id: Optional[int] = None,
        label: Optional[str] = None,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> Optional[int]:
        """
        Get the surrogate id for a natural key, creating the row if needed.

        Args:
            kind: Dimension type.
            natural_key: Name or Spotify URI. Empty or None yields None.
            parent_id: Parent surrogate id (artist for album, album for
                       track, show for episode, audiobook for chapter).
                       None is allowed and stored as NULL.
            label: Display name for URI-keyed kinds (track name etc.).
            attributes: Extra columns written on insert (track: artist_id).

        Returns:
            Surrogate id, or None if the key is empty.

        Raises:
            sqlite3.Error: If the lookup or insert fails. The caller's
                transaction should be rolled back.
        """
        spec = DIMENSIONS[kind]
        key = self._normalize_key(spec, natural_key)
        if key is None:
            return None

        cache_key = self._cache_key(spec, key, parent_id)
        cache = self._cache[kind]

        cached = cache.get(cache_key)
        if cached is not None:
            self.stats.cache_hits[kind.value] += 1
            return cached

        found = self._find(spec, key, parent_id)
        if found is not None:
            self.stats.storage_hits[kind.value] += 1
            cache[cache_key] = found
            return found

        try:
            new_id = self._insert(spec, key, parent_id, label, attributes)
        except sqlite3.IntegrityError:
            found = self._find(spec, key, parent_id)
            if found is None:
                raise
            logger.debug(f"{kind.value} '{key}' inserted concurrently; using id {found}")
            self.stats.storage_hits[kind.value] += 1
            cache[cache_key] = found
            return found

        self.stats.inserts[kind.value] += 1
        cache[cache_key] = new_id
        self._pending.append((kind, cache_key))
        logger.debug(f"Created {kind.value} {new_id}: {key}")
        return new_id

    def lookup(
        self, kind: DimensionKind, natural_key: Optional[str], parent_id: Optional[int] = None
    ) -> Optional[int]:
        """
        Get the surrogate id for a natural key without ever inserting.

        Returns:
            Existing id, or None if the key is empty or unknown.
        """
        spec = DIMENSIONS[kind]
        key = self._normalize_key(spec, natural_key)
        if key is None:
            return None

        cache_key = self._cache_key(spec, key, parent_id)
        cached = self._cache[kind].get(cache_key)
        if cached is not None:
            return cached

        found = self._find(spec, key, parent_id)
        if found is not None:
            self._cache[kind][cache_key] = found
        return found

    def commit(self) -> None:
        """Mark every id created so far as durable."""
        self._pending.clear()

    def rollback(self) -> int:
        """
        Forget ids created since the last commit().

        Call after the enclosing transaction has been rolled back.

        Returns:
            Number of cache entries evicted.
        """
        evicted = 0
        for kind, cache_key in self._pending:
            if self._cache[kind].pop(cache_key, None) is not None:
                evicted += 1
        self._pending.clear()
        if evicted:
            logger.debug(f"Evicted {evicted} rolled-back dimension ids from cache")
        return evicted

    def cached_count(self, kind: Optional[DimensionKind] = None) -> int:
        """Number of cached ids, for one kind or all."""
        if kind is not None:
            return len(self._cache[kind])
        return sum(len(entries) for entries in self._cache.values())

    # Convenience wrappers, one per kind

    def artist(self, name: Optional[str]) -> Optional[int]:
        return self.resolve(DimensionKind.ARTIST, name)

    def album(self, name: Optional[str], artist_id: Optional[int]) -> Optional[int]:
        return self.resolve(DimensionKind.ALBUM, name, parent_id=artist_id)

    def track(
        self,
        uri: Optional[str],
        name: Optional[str],
        album_id: Optional[int],
        artist_id: Optional[int],
    ) -> Optional[int]:
        return self.resolve(
            DimensionKind.TRACK,
            uri,
            parent_id=album_id,
            label=name,
            attributes={"artist_id": artist_id},
        )

    def show(self, name: Optional[str]) -> Optional[int]:
        return self.resolve(DimensionKind.PODCAST_SHOW, name)

    def episode(
        self, uri: Optional[str], name: Optional[str], show_id: Optional[int]
    ) -> Optional[int]:
        return self.resolve(DimensionKind.PODCAST_EPISODE, uri, parent_id=show_id, label=name)

    def audiobook(self, uri: Optional[str], title: Optional[str]) -> Optional[int]:
        return self.resolve(DimensionKind.AUDIOBOOK, uri, label=title)

    def chapter(
        self, uri: Optional[str], title: Optional[str], audiobook_id: Optional[int]
    ) -> Optional[int]:
        return self.resolve(
            DimensionKind.AUDIOBOOK_CHAPTER, uri, parent_id=audiobook_id, label=title
        )

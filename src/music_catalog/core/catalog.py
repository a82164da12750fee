"""
Catalog Store

Single SQLite database holding the library catalog:
- Tracks (one row per distinct content hash) with an FTS5 full-text index
- Artist and Album aggregates, always rebuilt from Track rows
- Cache entries for the hot/recent tiers
- Run history
"""

import json
import logging
import os
import re
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..utils.decorators import track_performance


def path_text(path: Union[str, Path]) -> str:
    """
    Text form of a filesystem path that SQLite and JSON can store.

    Bytes that are not valid UTF-8 (surrogate-escaped by the OS layer)
    are written as \\xNN escapes; valid paths are returned unchanged.
    """
    return os.fsencode(path).decode('utf-8', 'backslashreplace')


class CatalogError(Exception):
    """Raised when the catalog cannot be opened or a batch cannot be committed"""
    pass


@dataclass
class Track:
    """One catalogued audio file"""
    canonical_path: str
    source_path: str
    artist: str
    album_bucket: str
    title: str
    extension: str
    size_bytes: int
    content_hash: str
    added_at: float = 0
    play_count: int = 0
    rating: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> 'Track':
        return cls(**{key: row[key] for key in row.keys() if key != 'id'})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ArtistSummary:
    """Artist aggregate"""
    name: str
    track_count: int
    album_count: int
    total_size: int
    first_added: float
    last_added: float


@dataclass
class AlbumSummary:
    """Album aggregate (artist + bucket label)"""
    artist: str
    bucket_label: str
    track_count: int
    total_size: int
    date_added: float


@dataclass
class CacheEntry:
    """Derived copy of a canonical file in a cache tier"""
    tier: str
    cached_path: str
    source_canonical_path: str
    size_bytes: int
    cached_at: float


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS tracks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    canonical_path TEXT NOT NULL UNIQUE,
    source_path TEXT NOT NULL,
    artist TEXT NOT NULL,
    album_bucket TEXT NOT NULL,
    title TEXT NOT NULL,
    extension TEXT NOT NULL,
    size_bytes INTEGER NOT NULL,
    content_hash TEXT NOT NULL UNIQUE,
    added_at REAL NOT NULL,
    play_count INTEGER NOT NULL DEFAULT 0,
    rating INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_tracks_artist ON tracks(artist, album_bucket);
CREATE INDEX IF NOT EXISTS idx_tracks_added ON tracks(added_at);

CREATE TABLE IF NOT EXISTS artists (
    name TEXT PRIMARY KEY,
    track_count INTEGER NOT NULL,
    album_count INTEGER NOT NULL,
    total_size INTEGER NOT NULL,
    first_added REAL NOT NULL,
    last_added REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS albums (
    artist TEXT NOT NULL,
    bucket_label TEXT NOT NULL,
    track_count INTEGER NOT NULL,
    total_size INTEGER NOT NULL,
    date_added REAL NOT NULL,
    PRIMARY KEY (artist, bucket_label)
);

CREATE TABLE IF NOT EXISTS cache_entries (
    cached_path TEXT PRIMARY KEY,
    tier TEXT NOT NULL,
    source_canonical_path TEXT NOT NULL,
    size_bytes INTEGER NOT NULL,
    cached_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS runs (
    run_id TEXT PRIMARY KEY,
    started_at REAL NOT NULL,
    finished_at REAL NOT NULL,
    mode TEXT NOT NULL,
    statistics TEXT NOT NULL
);
"""

FTS_SCHEMA_SQL = """
CREATE VIRTUAL TABLE IF NOT EXISTS tracks_fts USING fts5(
    artist, album_bucket, title,
    content='tracks',
    content_rowid='id',
    tokenize='unicode61 remove_diacritics 2'
);

CREATE TRIGGER IF NOT EXISTS tracks_fts_ai
AFTER INSERT ON tracks BEGIN
    INSERT INTO tracks_fts(rowid, artist, album_bucket, title)
    VALUES (new.id, new.artist, new.album_bucket, new.title);
END;

CREATE TRIGGER IF NOT EXISTS tracks_fts_bd
BEFORE DELETE ON tracks BEGIN
    INSERT INTO tracks_fts(tracks_fts, rowid, artist, album_bucket, title)
    VALUES ('delete', old.id, old.artist, old.album_bucket, old.title);
END;

CREATE TRIGGER IF NOT EXISTS tracks_fts_bu
BEFORE UPDATE ON tracks BEGIN
    INSERT INTO tracks_fts(tracks_fts, rowid, artist, album_bucket, title)
    VALUES ('delete', old.id, old.artist, old.album_bucket, old.title);
END;

CREATE TRIGGER IF NOT EXISTS tracks_fts_au
AFTER UPDATE ON tracks BEGIN
    INSERT INTO tracks_fts(rowid, artist, album_bucket, title)
    VALUES (new.id, new.artist, new.album_bucket, new.title);
END;
"""

SEARCH_TERM = re.compile(r'\w+', re.UNICODE)


def fts5_available() -> bool:
    """Check whether the linked SQLite library was built with FTS5"""
    conn = sqlite3.connect(":memory:")
    try:
        conn.execute("CREATE VIRTUAL TABLE fts_check USING fts5(body)")
        return True
    except sqlite3.OperationalError:
        return False
    finally:
        conn.close()


class CatalogStore:
    """
    Catalog database for the organized library.

    The store is the single writer of catalog state. All writes go through
    explicit transactions so a batch of tracks is either fully visible or
    not at all. Read-only stores (dry-runs) never create or modify the file;
    a missing catalog opens as an empty in-memory one.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        self.db_path = Path(db_path)
        self.read_only = read_only
        self.logger = logging.getLogger(__name__)
        self._lock = threading.RLock()

        self._conn = self._connect()
        self._init_schema()

        self.logger.info(f"CatalogStore opened: {self.db_path}"
                         f"{' (read-only)' if self.read_only else ''}")

    def _connect(self) -> sqlite3.Connection:
        try:
            if self.read_only and self.db_path.exists():
                uri = f"{self.db_path.resolve().as_uri()}?mode=ro"
                conn = sqlite3.connect(uri, uri=True, timeout=30.0,
                                       isolation_level=None, check_same_thread=False)
            elif self.read_only:
                conn = sqlite3.connect(":memory:", isolation_level=None,
                                       check_same_thread=False)
            else:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path), timeout=30.0,
                                       isolation_level=None, check_same_thread=False)
        except sqlite3.Error as e:
            raise CatalogError(f"Cannot open catalog {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self):
        """Create tables, full-text index and sync triggers"""
        if self.read_only and self.db_path.exists():
            return

        with self._lock:
            try:
                if not self.read_only:
                    self._conn.execute("PRAGMA journal_mode=WAL")
                    self._conn.execute("PRAGMA synchronous=NORMAL")
                self._conn.execute("PRAGMA foreign_keys=ON")
                self._conn.executescript(SCHEMA_SQL)
            except sqlite3.Error as e:
                raise CatalogError(f"Failed to initialize catalog schema: {e}") from e

            try:
                self._conn.executescript(FTS_SCHEMA_SQL)
            except sqlite3.OperationalError as e:
                raise CatalogError(f"SQLite full-text search (FTS5) is unavailable: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside BEGIN IMMEDIATE ... COMMIT, rolling back on any error"""
        if self.read_only:
            raise CatalogError("Catalog is open read-only")

        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise CatalogError(f"Cannot start catalog transaction: {e}") from e
            try:
                yield self._conn
                self._conn.execute("COMMIT")
            except BaseException as e:
                self._conn.execute("ROLLBACK")
                self.logger.error(f"Catalog transaction rolled back: {e}")
                if isinstance(e, sqlite3.Error):
                    raise CatalogError(f"Catalog transaction failed: {e}") from e
                raise

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def close(self):
        with self._lock:
            self._conn.close()

    def __enter__(self) -> 'CatalogStore':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ===== TRACKS =====

    @track_performance(threshold_ms=5000)
    def upsert_batch(self, tracks: List[Track]) -> int:
        """
        Insert a batch of tracks in one atomic transaction.

        Re-inserting a track that is already present with the same path and
        hash is a no-op. Any conflicting row aborts the whole batch.

        Args:
            tracks: Tracks to insert

        Returns:
            Number of newly inserted tracks

        Raises:
            CatalogError: If the batch conflicts with existing rows or the
                commit fails; the catalog is left unchanged
        """
        inserted = 0
        with self.transaction() as conn:
            for track in tracks:
                canonical_path = path_text(track.canonical_path)
                existing = conn.execute(
                    "SELECT canonical_path, content_hash FROM tracks "
                    "WHERE content_hash = ? OR canonical_path = ?",
                    (track.content_hash, canonical_path)
                ).fetchall()

                if existing:
                    if (len(existing) == 1
                            and existing[0]['canonical_path'] == canonical_path
                            and existing[0]['content_hash'] == track.content_hash):
                        continue
                    raise CatalogError(
                        f"Track conflicts with catalog: {canonical_path} "
                        f"({track.content_hash[:12]})"
                    )

                conn.execute("""
                    INSERT INTO tracks
                    (canonical_path, source_path, artist, album_bucket, title,
                     extension, size_bytes, content_hash, added_at, play_count, rating)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    canonical_path,
                    path_text(track.source_path),
                    track.artist,
                    track.album_bucket,
                    track.title,
                    track.extension,
                    track.size_bytes,
                    track.content_hash,
                    track.added_at or time.time(),
                    track.play_count,
                    track.rating,
                ))
                inserted += 1

        self.logger.info(f"Committed {inserted} tracks ({len(tracks) - inserted} already present)")
        return inserted

    def lookup_by_hash(self, content_hash: str) -> Optional[Track]:
        rows = self._query("SELECT * FROM tracks WHERE content_hash = ?", (content_hash,))
        return Track.from_row(rows[0]) if rows else None

    def lookup_by_path(self, canonical_path: Union[str, Path]) -> Optional[Track]:
        rows = self._query("SELECT * FROM tracks WHERE canonical_path = ?", (path_text(canonical_path),))
        return Track.from_row(rows[0]) if rows else None

    def hash_index_items(self) -> List[Tuple[str, str]]:
        """All (content_hash, canonical_path) pairs"""
        rows = self._query("SELECT content_hash, canonical_path FROM tracks")
        return [(row['content_hash'], row['canonical_path']) for row in rows]

    def all_tracks(self) -> List[Track]:
        rows = self._query("SELECT * FROM tracks ORDER BY artist, album_bucket, title, id")
        return [Track.from_row(row) for row in rows]

    def total_tracks(self) -> int:
        return self._query("SELECT COUNT(*) AS n FROM tracks")[0]['n']

    def search(self, query: str, limit: Optional[int] = None, offset: int = 0) -> List[Track]:
        """
        Search artist, bucket and title.

        Full-text keyword matches (every term, prefix-expanded) come first,
        ordered by bm25 relevance; plain substring matches that the
        full-text pass missed follow. The result is deterministic, so a
        caller can page through it with offset/limit.

        Args:
            query: Free text
            limit: Maximum number of results (None for all)
            offset: Number of leading results to skip

        Returns:
            Matching tracks
        """
        terms = SEARCH_TERM.findall(query)
        if not terms:
            return []

        fts_query = " AND ".join('"' + term.replace('"', '""') + '"*' for term in terms)
        ranked = self._query("""
            SELECT t.* FROM tracks t
            JOIN tracks_fts f ON t.id = f.rowid
            WHERE tracks_fts MATCH ?
            ORDER BY bm25(tracks_fts), t.artist, t.title, t.id
        """, (fts_query,))

        pattern = '%' + query.strip().replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_') + '%'
        substring = self._query("""
            SELECT * FROM tracks
            WHERE artist LIKE ? ESCAPE '\\'
               OR title LIKE ? ESCAPE '\\'
               OR album_bucket LIKE ? ESCAPE '\\'
            ORDER BY artist, title, id
        """, (pattern, pattern, pattern))

        seen = set()
        results = []
        for row in list(ranked) + list(substring):
            if row['id'] in seen:
                continue
            seen.add(row['id'])
            results.append(Track.from_row(row))

        end = None if limit is None else offset + limit
        return results[offset:end]

    # ===== AGGREGATES =====

    @track_performance(threshold_ms=5000)
    def recompute_aggregates(self) -> Dict[str, int]:
        """Rebuild Artist and Album aggregates from the Track rows"""
        with self.transaction() as conn:
            conn.execute("DELETE FROM artists")
            conn.execute("""
                INSERT INTO artists (name, track_count, album_count, total_size,
                                     first_added, last_added)
                SELECT artist, COUNT(*), COUNT(DISTINCT album_bucket),
                       SUM(size_bytes), MIN(added_at), MAX(added_at)
                FROM tracks GROUP BY artist
            """)
            conn.execute("DELETE FROM albums")
            conn.execute("""
                INSERT INTO albums (artist, bucket_label, track_count, total_size, date_added)
                SELECT artist, album_bucket, COUNT(*), SUM(size_bytes), MIN(added_at)
                FROM tracks GROUP BY artist, album_bucket
            """)
            artists = conn.execute("SELECT COUNT(*) FROM artists").fetchone()[0]
            albums = conn.execute("SELECT COUNT(*) FROM albums").fetchone()[0]

        self.logger.info(f"Aggregates rebuilt: {artists} artists, {albums} albums")
        return {'artists': artists, 'albums': albums}

    def artists(self) -> List[ArtistSummary]:
        rows = self._query("SELECT * FROM artists ORDER BY name COLLATE NOCASE, name")
        return [ArtistSummary(**dict(row)) for row in rows]

    def albums(self, artist: Optional[str] = None) -> List[AlbumSummary]:
        if artist is None:
            rows = self._query("SELECT * FROM albums ORDER BY artist COLLATE NOCASE, bucket_label")
        else:
            rows = self._query("SELECT * FROM albums WHERE artist = ? ORDER BY bucket_label",
                               (artist,))
        return [AlbumSummary(**dict(row)) for row in rows]

    def top_artists(self, limit: int) -> List[ArtistSummary]:
        rows = self._query("""
            SELECT * FROM artists ORDER BY track_count DESC, name ASC LIMIT ?
        """, (limit,))
        return [ArtistSummary(**dict(row)) for row in rows]

    def tracks_by_artist(self, artist: str, limit: Optional[int] = None) -> List[Track]:
        rows = self._query("""
            SELECT * FROM tracks WHERE artist = ? ORDER BY added_at DESC, id DESC LIMIT ?
        """, (artist, -1 if limit is None else limit))
        return [Track.from_row(row) for row in rows]

    def recent_tracks(self, limit: int) -> List[Track]:
        rows = self._query("SELECT * FROM tracks ORDER BY added_at DESC, id DESC LIMIT ?",
                           (limit,))
        return [Track.from_row(row) for row in rows]

    def popular_tracks(self, limit: int) -> List[Track]:
        rows = self._query("""
            SELECT * FROM tracks
            ORDER BY play_count DESC, rating DESC, added_at DESC, id DESC LIMIT ?
        """, (limit,))
        return [Track.from_row(row) for row in rows]

    def statistics(self) -> Dict[str, Any]:
        """Catalog-wide counters for reports"""
        row = self._query("""
            SELECT
                (SELECT COUNT(*) FROM tracks) AS tracks,
                (SELECT COUNT(*) FROM artists) AS artists,
                (SELECT COUNT(*) FROM albums) AS albums,
                (SELECT COALESCE(SUM(size_bytes), 0) FROM tracks) AS total_size,
                (SELECT COALESCE(SUM(track_count), 0) FROM artists) AS artist_track_sum
        """)[0]
        return dict(row)

    # ===== INDEX LISTS =====

    def distinct_artists(self) -> List[str]:
        rows = self._query("SELECT DISTINCT artist FROM tracks ORDER BY artist COLLATE NOCASE, artist")
        return [row[0] for row in rows]

    def distinct_albums(self) -> List[str]:
        rows = self._query("""
            SELECT DISTINCT artist, album_bucket FROM tracks
            ORDER BY artist COLLATE NOCASE, artist, album_bucket
        """)
        return [f"{row['artist']}/{row['album_bucket']}" for row in rows]

    def distinct_titles(self) -> List[str]:
        rows = self._query("SELECT DISTINCT title FROM tracks ORDER BY title COLLATE NOCASE, title")
        return [row[0] for row in rows]

    def format_counts(self) -> List[Tuple[str, int]]:
        rows = self._query("""
            SELECT extension, COUNT(*) AS n FROM tracks GROUP BY extension ORDER BY n DESC, extension
        """)
        return [(row['extension'], row['n']) for row in rows]

    # ===== CACHE ENTRIES =====

    def cache_entries(self, tier: Optional[str] = None) -> List[CacheEntry]:
        if tier is None:
            rows = self._query("SELECT * FROM cache_entries ORDER BY cached_at, cached_path")
        else:
            rows = self._query("SELECT * FROM cache_entries WHERE tier = ? ORDER BY cached_at, cached_path",
                               (tier,))
        return [CacheEntry(**dict(row)) for row in rows]

    def add_cache_entry(self, entry: CacheEntry):
        with self.transaction() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO cache_entries
                (cached_path, tier, source_canonical_path, size_bytes, cached_at)
                VALUES (?, ?, ?, ?, ?)
            """, (entry.cached_path, entry.tier, entry.source_canonical_path,
                  entry.size_bytes, entry.cached_at))

    def remove_cache_entry(self, cached_path: str):
        with self.transaction() as conn:
            conn.execute("DELETE FROM cache_entries WHERE cached_path = ?", (cached_path,))

    def clear_cache_entries(self) -> int:
        with self.transaction() as conn:
            return conn.execute("DELETE FROM cache_entries").rowcount

    # ===== RUN HISTORY =====

    def record_run(self, run_id: str, started_at: float, finished_at: float,
                   mode: str, statistics: Dict[str, Any]):
        with self.transaction() as conn:
            conn.execute("""
                INSERT OR REPLACE INTO runs (run_id, started_at, finished_at, mode, statistics)
                VALUES (?, ?, ?, ?, ?)
            """, (run_id, started_at, finished_at, mode, json.dumps(statistics, default=str)))

    def recent_runs(self, limit: int = 10) -> List[Dict[str, Any]]:
        rows = self._query("SELECT * FROM runs ORDER BY started_at DESC LIMIT ?", (limit,))
        runs = []
        for row in rows:
            run = dict(row)
            run['statistics'] = json.loads(run['statistics'])
            runs.append(run)
        return runs

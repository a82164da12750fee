"""
Hot/Recent Cache Tier Manager

Keeps copies of frequently wanted tracks on fast storage:
- hot: tracks of the top artists by track count
- recent: the most recently added tracks

Cache contents are derived data. Anything under the cache root may be
evicted or rebuilt at any time; canonical files are never touched.

Last access is the newer of a cached copy's atime and mtime. Catalog
searches call ``touch`` for the tracks they return, so a looked-up track
is evicted after the ones nobody asked for.
"""

import logging
import os
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from ..core.catalog import CacheEntry, CatalogStore, Track
from ..core.constants import (
    CACHE_TIER_HOT,
    CACHE_TIER_RECENT,
    DEFAULT_CACHE_BUDGET_BYTES,
    DEFAULT_RECENT_TRACKS,
    DEFAULT_TOP_ARTISTS,
    DEFAULT_TRACKS_PER_HOT_ARTIST,
    TEMP_FILE_PREFIX,
    TEMP_FILE_SUFFIX,
)


@dataclass
class CacheRefreshResult:
    """What one refresh changed"""
    added: int = 0
    stale_removed: int = 0
    evicted: int = 0
    skipped_oversize: int = 0
    entries: int = 0
    total_bytes: int = 0
    budget_bytes: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


class CacheManager:
    """
    Maintains the hot and recent cache tiers under a byte budget.

    Args:
        catalog: Catalog store (source of aggregates and cache entries)
        library_root: Root of the canonical tree (cache paths mirror it)
        cache_root: Root of the cache tiers
        budget_bytes: Upper bound on the bytes held by all cache entries
        top_artists: Number of artists in the hot tier
        tracks_per_artist: Tracks cached per hot artist
        recent_tracks: Number of most recently added tracks to cache
    """

    def __init__(self, catalog: CatalogStore,
                 library_root: Union[str, Path, None],
                 cache_root: Union[str, Path],
                 budget_bytes: int = DEFAULT_CACHE_BUDGET_BYTES,
                 top_artists: int = DEFAULT_TOP_ARTISTS,
                 tracks_per_artist: int = DEFAULT_TRACKS_PER_HOT_ARTIST,
                 recent_tracks: int = DEFAULT_RECENT_TRACKS):
        self.catalog = catalog
        self.library_root = Path(library_root) if library_root else None
        self.cache_root = Path(cache_root)
        self.budget_bytes = budget_bytes
        self.top_artists = top_artists
        self.tracks_per_artist = tracks_per_artist
        self.recent_tracks = recent_tracks
        self.logger = logging.getLogger(__name__)

    def wanted_tracks(self) -> List[Tuple[str, Track]]:
        """Tracks the tiers should hold, hot first; each track appears once"""
        wanted: List[Tuple[str, Track]] = []
        seen = set()

        for artist in self.catalog.top_artists(self.top_artists):
            for track in self.catalog.tracks_by_artist(artist.name, self.tracks_per_artist):
                if track.canonical_path not in seen:
                    seen.add(track.canonical_path)
                    wanted.append((CACHE_TIER_HOT, track))

        for track in self.catalog.recent_tracks(self.recent_tracks):
            if track.canonical_path not in seen:
                seen.add(track.canonical_path)
                wanted.append((CACHE_TIER_RECENT, track))

        return wanted

    def refresh(self) -> CacheRefreshResult:
        """
        Bring the tiers up to date within the budget.

        The set to keep is chosen before anything is copied: cached copies of
        wanted tracks (most recently accessed first), then missing wanted
        tracks in tier order, then other cached copies (most recently
        accessed first), each taken while it still fits. Everything else is
        evicted, oldest access first, before the missing tracks are copied,
        so usage never exceeds the budget and an unchanged catalog leaves
        the cache unchanged.

        Returns:
            CacheRefreshResult with counters and the final usage
        """
        result = CacheRefreshResult(budget_bytes=self.budget_bytes)
        self.cache_root.mkdir(parents=True, exist_ok=True)

        result.stale_removed = self._drop_stale_entries()

        keep, to_copy, oversize = self._plan()
        result.skipped_oversize = oversize

        evict = [entry for entry in self.catalog.cache_entries() if entry.cached_path not in keep]
        evict.sort(key=lambda entry: (self._last_access(entry), entry.cached_path))
        for entry in evict:
            self._remove_entry(entry)
            self.logger.debug(f"Evicted [{entry.tier}] {entry.cached_path}")
        result.evicted = len(evict)

        for tier, track in to_copy:
            if self._cache_track(tier, track):
                result.added += 1

        usage = self.usage()
        result.entries = usage['entries']
        result.total_bytes = usage['bytes']

        self.logger.info(
            f"Cache refreshed: +{result.added} added, {result.evicted} evicted, "
            f"{result.stale_removed} stale, {result.total_bytes}/{self.budget_bytes} bytes"
        )
        return result

    def _plan(self) -> Tuple[Set[str], List[Tuple[str, Track]], int]:
        """Cached paths to keep, tracks to copy, and the count of tracks larger than the budget"""
        entries = self.catalog.cache_entries()
        by_source = {entry.source_canonical_path: entry for entry in entries}
        wanted = self.wanted_tracks()
        wanted_sources = {track.canonical_path for _, track in wanted}

        def most_recent_first(candidates: List[CacheEntry]) -> List[CacheEntry]:
            return sorted(candidates, key=lambda entry: (-self._last_access(entry), entry.cached_path))

        remaining = self.budget_bytes
        keep: Set[str] = set()
        to_copy: List[Tuple[str, Track]] = []
        oversize = 0

        for entry in most_recent_first([e for e in entries if e.source_canonical_path in wanted_sources]):
            if entry.size_bytes <= remaining:
                keep.add(entry.cached_path)
                remaining -= entry.size_bytes

        for tier, track in wanted:
            if track.canonical_path in by_source:
                continue
            if track.size_bytes > self.budget_bytes:
                oversize += 1
            elif track.size_bytes <= remaining:
                to_copy.append((tier, track))
                remaining -= track.size_bytes

        for entry in most_recent_first([e for e in entries if e.source_canonical_path not in wanted_sources]):
            if entry.size_bytes <= remaining:
                keep.add(entry.cached_path)
                remaining -= entry.size_bytes

        return keep, to_copy, oversize

    def usage(self) -> Dict[str, int]:
        entries = self.catalog.cache_entries()
        return {
            'entries': len(entries),
            'bytes': sum(entry.size_bytes for entry in entries),
            'budget': self.budget_bytes,
        }

    def touch(self, canonical_paths: Iterable[Union[str, Path]]) -> int:
        """Record an access to the cached copies of some tracks; returns how many were touched"""
        wanted = {str(path) for path in canonical_paths}
        touched = 0
        for entry in self.catalog.cache_entries():
            if entry.source_canonical_path in wanted and Path(entry.cached_path).exists():
                os.utime(entry.cached_path)
                touched += 1
        return touched

    def clear(self) -> int:
        """Remove every cached copy and entry"""
        entries = self.catalog.cache_entries()
        for entry in entries:
            self._delete_copy(entry)
        self.catalog.clear_cache_entries()
        return len(entries)

    def _cache_path_for(self, tier: str, track: Track) -> Path:
        canonical = Path(track.canonical_path)
        if self.library_root is not None and self.library_root in canonical.parents:
            relative = canonical.relative_to(self.library_root)
        else:
            relative = Path(track.artist) / track.album_bucket / canonical.name
        return self.cache_root / tier / relative

    def _cache_track(self, tier: str, track: Track) -> bool:
        source = Path(track.canonical_path)
        if not source.exists():
            self.logger.warning(f"Canonical file missing, not caching: {source}")
            return False

        target = self._cache_path_for(tier, track)
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_path = target.parent / f"{TEMP_FILE_PREFIX}{uuid.uuid4().hex}{TEMP_FILE_SUFFIX}"
        try:
            shutil.copyfile(source, temp_path)
            os.replace(temp_path, target)
        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            self.logger.error(f"Failed to cache {source}: {e}")
            return False

        self.catalog.add_cache_entry(CacheEntry(
            tier=tier,
            cached_path=str(target),
            source_canonical_path=track.canonical_path,
            size_bytes=target.stat().st_size,
            cached_at=time.time(),
        ))
        self.logger.debug(f"Cached [{tier}] {target}")
        return True

    def _drop_stale_entries(self) -> int:
        """Forget entries whose file vanished or whose track left the catalog"""
        removed = 0
        for entry in self.catalog.cache_entries():
            if (not Path(entry.cached_path).exists()
                    or self.catalog.lookup_by_path(entry.source_canonical_path) is None):
                self._remove_entry(entry)
                removed += 1
        return removed

    def _last_access(self, entry: CacheEntry) -> float:
        try:
            stat = os.stat(entry.cached_path)
        except OSError:
            return 0.0
        return max(stat.st_atime, stat.st_mtime)

    def _remove_entry(self, entry: CacheEntry):
        self._delete_copy(entry)
        self.catalog.remove_cache_entry(entry.cached_path)

    def _delete_copy(self, entry: CacheEntry):
        path = Path(entry.cached_path)
        if not self._inside_cache(path):
            self.logger.error(f"Refusing to delete file outside the cache root: {path}")
            return
        if path.exists():
            path.unlink()
        self._prune_empty_dirs(path.parent)

    def _inside_cache(self, path: Path) -> bool:
        try:
            path.resolve().relative_to(self.cache_root.resolve())
            return True
        except ValueError:
            return False

    def _prune_empty_dirs(self, directory: Path):
        root = self.cache_root.resolve()
        current: Optional[Path] = directory
        while current is not None and current.resolve() != root and self._inside_cache(current):
            try:
                current.rmdir()
            except OSError:
                break
            current = current.parent

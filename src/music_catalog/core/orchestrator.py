"""
Central Orchestrator for Music Catalog

Coordinates one organize run:
Preflight → Scan → Space Check → Ledger Replay → Classify+Dedup+Place (parallel) →
Catalog Commit → Aggregate Recompute → Ledger Prune → Index Export →
Cache Refresh → Report

Workers never write the catalog. Each returns a FileResult to the main
thread, which is the only consumer of results and the only catalog writer.
"""

import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

from .catalog import CatalogError, CatalogStore, Track, path_text
from .config_manager import LibraryConfig
from .constants import RUN_STATISTICS_FILENAME
from .ledger import Ledger, LedgerError, LedgerRecord
from .preflight import PreflightChecker
from .streaming import DiscoveredFile, FileDiscoveryStream, ParallelStreamProcessor
from ..modules.cache_manager import CacheManager, CacheRefreshResult
from ..modules.classifier import FilenameClassifier
from ..modules.deduplicator import ContentHasher, Deduplicator, HashIndex
from ..modules.organizer import FilePlacer, TransferError
from ..utils.decorators import handle_errors
from ..utils.index_export import IndexExporter
from ..utils.progress import ProgressTracker
from ..utils.reporter import FileOutcome, FileResult, RunReporter, RunStatistics


class LibraryOrchestrator:
    """
    Runs the organize pipeline and the catalog maintenance operations.

    Args:
        config: Complete configuration; source and library directories may
            also be passed to ``run_organization_pipeline`` directly
        reporter: Console/JSON reporter (a default one is created)
    """

    def __init__(self, config: LibraryConfig, reporter: Optional[RunReporter] = None):
        self.config = config
        self.dry_run = config.dry_run
        self.reporter = reporter or RunReporter()
        self.logger = logging.getLogger(__name__)

        processing = config.processing
        self.hasher = ContentHasher(processing.hash_algorithm, processing.hash_chunk_size)
        self.classifier = FilenameClassifier()
        self.preflight = PreflightChecker(processing.hash_algorithm)
        self.ledger = Ledger(config.ledger_file)
        self.supported_formats = {ext.lower() for ext in processing.supported_formats}

        # Set up per run
        self.catalog: Optional[CatalogStore] = None
        self.index: Optional[HashIndex] = None
        self.deduplicator: Optional[Deduplicator] = None
        self.placer: Optional[FilePlacer] = None
        self._replayed: Dict[str, LedgerRecord] = {}
        self._replay_lock = threading.Lock()

        self.logger.info(f"LibraryOrchestrator initialized (dry_run: {self.dry_run}, "
                         f"transfer: {config.transfer.mode})")

    # === CATALOG ACCESS ===

    def open_catalog(self, read_only: bool = False) -> CatalogStore:
        return CatalogStore(self.config.catalog_file, read_only=read_only)

    def cache_manager(self, catalog: CatalogStore, library_root: Union[str, Path, None] = None) -> CacheManager:
        cache = self.config.cache
        return CacheManager(
            catalog=catalog,
            library_root=library_root,
            cache_root=Path(cache.cache_directory).expanduser().resolve(),
            budget_bytes=cache.budget_bytes,
            top_artists=cache.top_artists,
            tracks_per_artist=cache.tracks_per_artist,
            recent_tracks=cache.recent_tracks,
        )

    # === MAIN PIPELINE ===

    def run_organization_pipeline(self, source_folder: Union[str, Path, None] = None,
                                  library_folder: Union[str, Path, None] = None,
                                  report_path: Union[str, Path, None] = None) -> RunStatistics:
        """
        Organize a source tree into the library and update the catalog.

        Args:
            source_folder: Flat source collection (defaults to the configured one)
            library_folder: Canonical library root (defaults to the configured one)
            report_path: JSON artifact path (defaults to the index directory;
                dry-runs only write a report when a path is given)

        Returns:
            RunStatistics of the run

        Raises:
            PreconditionError: Before anything was modified
            CatalogError: If the batch commit failed; the ledger is kept
        """
        source = Path(source_folder or self.config.source_directory).expanduser().resolve()
        library = Path(library_folder or self.config.library_directory).expanduser().resolve()

        stats = RunStatistics(mode="dry-run" if self.dry_run else "execute",
                              transfer_mode=self.config.transfer.mode)
        self.logger.info(f"🎵 Starting run {stats.run_id}: {source} → {library}")

        self.preflight.run_initial_checks(source, library)

        ledger_records = self.ledger.records()
        files = self._scan(source, library)
        ledgered_sources = {record.source_path for record in ledger_records}
        self.preflight.run_space_check(library, self.config.transfer.mode,
                                       self._candidate_sizes(files, ledgered_sources))

        self.catalog = self.open_catalog(read_only=self.dry_run)
        try:
            self.index = HashIndex(self.catalog.hash_index_items())
            self.deduplicator = Deduplicator(self.hasher, self.index)
            self.placer = FilePlacer(library, self.config.transfer.mode, self.hasher, self.dry_run)
            self.logger.info(f"Hash index loaded with {len(self.index)} catalogued tracks")

            self._replayed = self._replay_ledger(ledger_records)

            if not self.dry_run:
                library.mkdir(parents=True, exist_ok=True)
                self.placer.sweep_temporary_files()

            tracks = self._place_files(files, stats)
            tracks.extend(self._leftover_recoveries(stats))

            try:
                self._commit(tracks, library, stats)
            except CatalogError as e:
                stats.fatal_error = str(e)
                self.logger.error(f"Catalog commit failed, ledger kept for the next run: {e}")
                raise

            return stats
        except KeyboardInterrupt:
            stats.fatal_error = "interrupted"
            self.logger.warning("Run interrupted; finished placements are ledgered and resume on the next run")
            raise
        finally:
            self._finish(stats, report_path)
            self.catalog.close()

    def _replay_ledger(self, records: List[LedgerRecord]) -> Dict[str, LedgerRecord]:
        """
        Placements from an interrupted run that never reached the catalog.

        A record is replayed when its canonical file still exists and its
        hash is not catalogued yet. Replayed hashes are committed to the
        index right away so new files with the same content become
        duplicates.
        """
        replayed: Dict[str, LedgerRecord] = {}
        for record in records:
            if not os.path.lexists(record.canonical_path):
                self.logger.warning(f"Ledgered file is gone, not recovering: {record.canonical_path}")
                continue
            if self.index.is_committed(record.content_hash):
                continue
            self.index.commit(record.content_hash, record.canonical_path)
            replayed[record.source_path] = record

        if replayed:
            self.logger.info(f"♻️  Recovering {len(replayed)} placements from the ledger")
        return replayed

    def _scan(self, source: Path, library: Path) -> List[DiscoveredFile]:
        self.logger.info("📁 Scanning source tree...")
        excluded = [library, self.config.workspace_path]
        if self.config.cache.enabled:
            excluded.append(Path(self.config.cache.cache_directory).expanduser())

        files = list(FileDiscoveryStream(excluded).stream_files(source))
        self.logger.info(f"📁 Found {len(files):,} files")
        return files

    def _candidate_sizes(self, files: List[DiscoveredFile], ledgered_sources: Set[str]) -> List[int]:
        """Sizes of the files a copy run may have to write"""
        return [f.size_bytes for f in files
                if self._skip_reason(f) is None and path_text(f.path) not in ledgered_sources]

    def _skip_reason(self, discovered: DiscoveredFile) -> Optional[str]:
        if discovered.extension not in self.supported_formats:
            return "unsupported format"
        if discovered.size_bytes < self.config.processing.min_file_size:
            return "below minimum size"
        return None

    def _place_files(self, files: List[DiscoveredFile], stats: RunStatistics) -> List[Track]:
        """Run the workers and aggregate their results; returns tracks to commit"""
        self.logger.info(f"🔄 Processing {len(files):,} files with "
                         f"{self.config.processing.max_workers} workers")
        tracks: List[Track] = []
        processor = ParallelStreamProcessor(self.config.processing.max_workers)
        show_progress = self.config.ui.progress_mode == "simple"

        with ProgressTracker(len(files), desc="Organizing", enabled=show_progress) as progress:
            for result in processor.process_parallel(files, self.process_file):
                stats.record(result)
                progress.update(status=result.outcome.value)

                if result.outcome == FileOutcome.ORGANIZED and result.track is not None:
                    tracks.append(result.track)

        return tracks

    def _leftover_recoveries(self, stats: RunStatistics) -> List[Track]:
        """Replayed placements whose source was not part of this scan"""
        with self._replay_lock:
            leftovers = list(self._replayed.values())
            self._replayed.clear()

        tracks = []
        for record in leftovers:
            track = record.to_track()
            stats.record_recovered(track)
            tracks.append(track)
        return tracks

    # === WORKER ===

    def process_file(self, discovered: DiscoveredFile) -> FileResult:
        """
        Classify, deduplicate and place one file.

        Runs on a worker thread; touches only the hash index, the placer and
        the ledger, all of which serialize internally. Any error is reported
        as a FAILED result for this file alone.
        """
        try:
            return self._process_file(discovered)
        except Exception as e:
            self.logger.error(f"Unexpected error processing {path_text(discovered.path)}: {e}", exc_info=True)
            return FileResult(path_text(discovered.path), FileOutcome.FAILED, reason=f"unexpected error: {e}")

    def _process_file(self, discovered: DiscoveredFile) -> FileResult:
        source = discovered.path
        source_key = path_text(source)

        with self._replay_lock:
            record = self._replayed.pop(source_key, None)
        if record is not None:
            return FileResult(source_key, FileOutcome.ORGANIZED, track=record.to_track(),
                              size_bytes=record.size_bytes, recovered=True)

        reason = self._skip_reason(discovered)
        if reason is not None:
            return FileResult(source_key, FileOutcome.SKIPPED, reason=reason)

        classification = self.classifier.classify(source.name)

        try:
            decision = self.deduplicator.check(source)
        except OSError as e:
            self.logger.error(f"Cannot read {source_key}: {e}")
            return FileResult(source_key, FileOutcome.FAILED, reason=f"read failed: {e}")

        if decision.is_duplicate:
            return FileResult(source_key, FileOutcome.DUPLICATE, size_bytes=discovered.size_bytes,
                              existing_path=decision.existing_path)

        # Until the placement is ledgered, the claim must be released on any exit
        committed = False
        try:
            placement = self.placer.place(source, classification, decision.content_hash)
            track = Track(
                canonical_path=str(placement.canonical_path),
                source_path=source_key,
                artist=classification.artist,
                album_bucket=classification.album_bucket,
                title=classification.title,
                extension=discovered.extension.lstrip('.'),
                size_bytes=discovered.size_bytes,
                content_hash=decision.content_hash,
                added_at=time.time(),
            )
            if not self.dry_run:
                self.ledger.append(LedgerRecord.from_track(track))
            self.index.commit(decision.content_hash, track.canonical_path)
            committed = True
        except (TransferError, LedgerError) as e:
            self.logger.error(f"Failed to place {source_key}: {e}")
            return FileResult(source_key, FileOutcome.FAILED, reason=str(e))
        finally:
            if not committed:
                self.index.release(decision.content_hash)

        return FileResult(
            source_key, FileOutcome.ORGANIZED,
            track=track,
            size_bytes=discovered.size_bytes,
            planned_path=str(placement.canonical_path) if self.dry_run else None,
            conflicts=[str(c) for c in placement.conflicts],
            created_artist_dir=placement.created_artist_dir,
            created_album_dir=placement.created_album_dir,
            adopted=placement.adopted,
        )

    # === COMMIT & FOLLOW-UP ===

    def _commit(self, tracks: List[Track], library: Path, stats: RunStatistics):
        if self.dry_run:
            self.logger.info(f"Dry-run: {len(tracks)} tracks would be catalogued")
            return

        self.logger.info(f"💾 Committing {len(tracks)} tracks to the catalog")
        self.catalog.upsert_batch(tracks)
        self.catalog.recompute_aggregates()
        self.ledger.prune()

        IndexExporter(self.catalog, self.config.index_path).export()

        if self.config.cache.enabled:
            refreshed = self._refresh_cache(library)
            if refreshed is not None:
                stats.cache = refreshed.to_dict()

    @handle_errors(log_level="warning", return_on_error=None)
    def _refresh_cache(self, library: Path) -> Optional[CacheRefreshResult]:
        return self.cache_manager(self.catalog, library).refresh()

    def _finish(self, stats: RunStatistics, report_path: Union[str, Path, None]):
        stats.finish()
        try:
            stats.catalog = self.catalog.statistics()
            if not self.dry_run:
                self.catalog.record_run(stats.run_id, stats.started_at, stats.finished_at,
                                        stats.mode, stats.to_dict())
        except CatalogError as e:
            self.logger.warning(f"Could not record run {stats.run_id}: {e}")

        if report_path is None and not self.dry_run:
            report_path = self.config.index_path / RUN_STATISTICS_FILENAME
        if report_path is not None:
            try:
                self.reporter.write_json(stats, report_path)
            except OSError as e:
                self.logger.warning(f"Could not write run statistics to {report_path}: {e}")

        self._log_pipeline_summary(stats)

    def _log_pipeline_summary(self, stats: RunStatistics):
        self.logger.info("📊 Run Summary:")
        self.logger.info(f"   📁 Files seen: {stats.files_seen:,}")
        self.logger.info(f"   ✅ Organized: {stats.organized:,} (recovered {stats.recovered:,})")
        self.logger.info(f"   🔄 Duplicates: {stats.duplicates:,}")
        self.logger.info(f"   ⏭️  Skipped: {stats.skipped:,}")
        self.logger.info(f"   ❌ Failed: {stats.failed:,}")
        self.logger.info(f"   ⏱️  Total time: {stats.duration_seconds:.1f} seconds")

    # === CATALOG OPERATIONS ===

    def search(self, query: str, limit: Optional[int] = None, offset: int = 0) -> List[Track]:
        """Search the catalog; cached copies of the hits count as accessed"""
        with self.open_catalog(read_only=True) as catalog:
            tracks = catalog.search(query, limit=limit, offset=offset)
            if tracks and self.config.cache.enabled:
                self.cache_manager(catalog).touch(track.canonical_path for track in tracks)
        return tracks

    def export_indexes(self) -> Optional[Dict[str, int]]:
        with self.open_catalog(read_only=True) as catalog:
            return IndexExporter(catalog, self.config.index_path).export()

    def refresh_cache(self, library_folder: Union[str, Path, None] = None) -> CacheRefreshResult:
        """Rebuild the cache tiers from the current catalog"""
        if not self.config.cache.enabled:
            raise ValueError("No cache directory configured")
        library = Path(library_folder or self.config.library_directory).expanduser().resolve()
        with self.open_catalog() as catalog:
            return self.cache_manager(catalog, library).refresh()

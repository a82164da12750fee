"""
Run statistics and reporting.

Workers never touch counters. Each one returns a FileResult, and the single
aggregating consumer folds the results into RunStatistics. At the end of a
run the statistics are written once as a JSON artifact and rendered once as
a console summary.
"""

import json
import logging
import os
import tempfile
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..core.catalog import Track


class FileOutcome(Enum):
    """Terminal outcome of one discovered file"""
    ORGANIZED = "organized"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FileResult:
    """Message from a worker to the aggregator"""
    source_path: str
    outcome: FileOutcome
    reason: Optional[str] = None
    track: Optional[Track] = None
    size_bytes: int = 0
    existing_path: Optional[str] = None
    planned_path: Optional[str] = None
    conflicts: List[str] = field(default_factory=list)
    created_artist_dir: bool = False
    created_album_dir: bool = False
    adopted: bool = False
    recovered: bool = False


@dataclass
class RunStatistics:
    """Counters for one run"""
    run_id: str = field(default_factory=lambda: time.strftime("%Y%m%d_%H%M%S_") + uuid.uuid4().hex[:6])
    mode: str = "execute"
    transfer_mode: str = "copy"
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None

    files_seen: int = 0
    organized: int = 0
    recovered: int = 0
    adopted: int = 0
    failed: int = 0
    skipped: int = 0
    duplicates: int = 0
    artist_dirs_created: int = 0
    album_dirs_created: int = 0
    bytes_processed: int = 0

    skip_reasons: Counter = field(default_factory=Counter)
    failures: List[Dict[str, str]] = field(default_factory=list)
    duplicate_pairs: List[Dict[str, str]] = field(default_factory=list)
    planned: List[Dict[str, Any]] = field(default_factory=list)

    catalog: Dict[str, Any] = field(default_factory=dict)
    cache: Dict[str, Any] = field(default_factory=dict)
    fatal_error: Optional[str] = None

    def record(self, result: FileResult):
        """Fold one worker result into the counters"""
        self.files_seen += 1

        if result.outcome == FileOutcome.ORGANIZED:
            self._record_organized(result)
        elif result.outcome == FileOutcome.DUPLICATE:
            self.duplicates += 1
            self.duplicate_pairs.append({
                'source_path': result.source_path,
                'existing_path': result.existing_path or "",
            })
        elif result.outcome == FileOutcome.SKIPPED:
            self.skipped += 1
            self.skip_reasons[result.reason or "unspecified"] += 1
        elif result.outcome == FileOutcome.FAILED:
            self.failed += 1
            self.failures.append({
                'source_path': result.source_path,
                'error': result.reason or "unknown error",
            })

    def record_recovered(self, track: Track):
        """A ledgered placement whose source was not part of this scan"""
        self.organized += 1
        self.recovered += 1
        self.bytes_processed += track.size_bytes

    def _record_organized(self, result: FileResult):
        self.organized += 1
        self.bytes_processed += result.size_bytes
        if result.recovered:
            self.recovered += 1
        if result.adopted:
            self.adopted += 1
        if result.created_artist_dir:
            self.artist_dirs_created += 1
        if result.created_album_dir:
            self.album_dirs_created += 1
        if result.planned_path:
            self.planned.append({
                'source_path': result.source_path,
                'target_path': result.planned_path,
                'conflicts': list(result.conflicts),
            })

    def finish(self):
        self.finished_at = time.time()

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return max(0.0, end - self.started_at)

    @property
    def success_rate(self) -> float:
        if self.files_seen == 0:
            return 100.0
        return round(min(self.organized, self.files_seen) * 100.0 / self.files_seen, 2)

    def to_dict(self) -> Dict[str, Any]:
        """Structured summary, grouped the way the JSON artifact is laid out"""
        return {
            'run_id': self.run_id,
            'organization_summary': {
                'mode': self.mode,
                'transfer_mode': self.transfer_mode,
                'started_at': _iso(self.started_at),
                'finished_at': _iso(self.finished_at) if self.finished_at else None,
                'duration_seconds': round(self.duration_seconds, 3),
                'duration_human': format_duration(self.duration_seconds),
                'fatal_error': self.fatal_error,
            },
            'file_processing': {
                'total_files_found': self.files_seen,
                'successfully_organized': self.organized,
                'recovered_from_ledger': self.recovered,
                'adopted_in_place': self.adopted,
                'failed_files': self.failed,
                'skipped_files': self.skipped,
                'duplicates_found': self.duplicates,
                'success_rate': self.success_rate,
                'skip_reasons': dict(self.skip_reasons),
            },
            'library_structure': {
                'artist_directories_created': self.artist_dirs_created,
                'album_directories_created': self.album_dirs_created,
                'directory_structure': "Artist/Album Bucket/Title.ext",
            },
            'storage_analysis': {
                'bytes_processed': self.bytes_processed,
                'human_readable': format_bytes(self.bytes_processed),
            },
            'database_statistics': dict(self.catalog),
            'cache': dict(self.cache),
            'failures': list(self.failures),
            'duplicates': list(self.duplicate_pairs),
            'planned_placements': list(self.planned),
        }


def _iso(timestamp: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S", time.localtime(timestamp))


def format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_bytes(size: float) -> str:
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(size) < 1024 or unit == "TB":
            return f"{size:.1f} {unit}" if unit != "B" else f"{int(size)} B"
        size /= 1024
    return f"{size:.1f} TB"


class RunReporter:
    """Writes the JSON artifact and renders the console summary"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self.logger = logging.getLogger(__name__)

    def write_json(self, stats: RunStatistics, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=".report-", suffix=".json")
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(stats.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        self.logger.info(f"Run statistics written to {path}")
        return path

    def build_table(self, stats: RunStatistics) -> Table:
        table = Table(title=f"Run {stats.run_id} ({stats.mode})", box=box.ROUNDED)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="yellow", justify="right")

        table.add_row("Files found", f"{stats.files_seen:,}")
        table.add_row("Organized", f"{stats.organized:,}")
        if stats.recovered:
            table.add_row("  recovered from ledger", f"{stats.recovered:,}")
        if stats.adopted:
            table.add_row("  adopted in place", f"{stats.adopted:,}")
        table.add_row("Duplicates", f"{stats.duplicates:,}")
        table.add_row("Skipped", f"{stats.skipped:,}")
        table.add_row("Failed", f"{stats.failed:,}")
        table.add_row("Artist folders created", f"{stats.artist_dirs_created:,}")
        table.add_row("Album folders created", f"{stats.album_dirs_created:,}")
        table.add_row("Data processed", format_bytes(stats.bytes_processed))
        table.add_row("Success rate", f"{stats.success_rate:.1f}%")
        table.add_row("Duration", format_duration(stats.duration_seconds))

        if stats.catalog:
            table.add_row("Tracks in catalog", f"{stats.catalog.get('tracks', 0):,}")
            table.add_row("Artists in catalog", f"{stats.catalog.get('artists', 0):,}")
        if stats.cache:
            table.add_row("Cache usage",
                          f"{format_bytes(stats.cache.get('total_bytes', 0))} / "
                          f"{format_bytes(stats.cache.get('budget_bytes', 0))}")
        return table

    def render(self, stats: RunStatistics):
        self.console.print(self.build_table(stats))

        if stats.mode == "dry-run" and stats.planned:
            plan = Table(title="Planned placements", box=box.SIMPLE)
            plan.add_column("Source", overflow="fold")
            plan.add_column("Target", overflow="fold")
            plan.add_column("Conflicts", justify="right")
            for entry in stats.planned:
                plan.add_row(entry['source_path'], entry['target_path'], str(len(entry['conflicts'])))
            self.console.print(plan)

        if stats.failures:
            lines = "\n".join(f"{f['source_path']}: {f['error']}" for f in stats.failures[:20])
            if len(stats.failures) > 20:
                lines += f"\n... and {len(stats.failures) - 20} more"
            self.console.print(Panel(lines, title="Failures", border_style="red"))

        if stats.fatal_error:
            self.console.print(Panel(stats.fatal_error, title="Run failed", border_style="red"))

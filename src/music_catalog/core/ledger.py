"""
Placement Ledger

Append-only journal of completed placements, written after a file lands in
the canonical tree and before the catalog commit. On restart the ledger is
replayed so placements from an interrupted run are catalogued instead of
redone. Records are JSON Lines, one object per line.
"""

import json
import logging
import os
import tempfile
import threading
import time
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import List, Union

from .catalog import Track


class LedgerError(Exception):
    """Raised when the ledger cannot be written"""
    pass


@dataclass
class LedgerRecord:
    """One completed placement"""
    source_path: str
    canonical_path: str
    content_hash: str
    artist: str
    album_bucket: str
    title: str
    extension: str
    size_bytes: int
    timestamp: float = 0

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.time()

    @classmethod
    def from_track(cls, track: Track) -> 'LedgerRecord':
        return cls(
            source_path=track.source_path,
            canonical_path=track.canonical_path,
            content_hash=track.content_hash,
            artist=track.artist,
            album_bucket=track.album_bucket,
            title=track.title,
            extension=track.extension,
            size_bytes=track.size_bytes,
            timestamp=track.added_at,
        )

    def to_track(self) -> Track:
        return Track(
            canonical_path=self.canonical_path,
            source_path=self.source_path,
            artist=self.artist,
            album_bucket=self.album_bucket,
            title=self.title,
            extension=self.extension,
            size_bytes=self.size_bytes,
            content_hash=self.content_hash,
            added_at=self.timestamp,
        )


_RECORD_FIELDS = {f.name for f in fields(LedgerRecord)}


class Ledger:
    """
    Durable JSON Lines journal.

    Appends are serialized by a lock and fsynced, so a record that
    ``append`` returned for survives a crash. A torn final line from a crash
    during a write is ignored on read. Paths that are not valid UTF-8 are
    written back as their original bytes.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()

    def append(self, record: LedgerRecord):
        line = json.dumps(asdict(record), ensure_ascii=False, sort_keys=True)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, 'a', encoding='utf-8', errors='surrogateescape') as f:
                    f.write(line + '\n')
                    f.flush()
                    os.fsync(f.fileno())
            except (OSError, UnicodeError) as e:
                raise LedgerError(f"Failed to append to ledger {self.path}: {e}") from e

    def records(self) -> List[LedgerRecord]:
        """Read all intact records in append order"""
        if not self.path.exists():
            return []

        records = []
        with self._lock, open(self.path, 'r', encoding='utf-8', errors='surrogateescape') as f:
            for line_number, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    data = json.loads(line)
                    records.append(LedgerRecord(**{k: v for k, v in data.items() if k in _RECORD_FIELDS}))
                except (json.JSONDecodeError, TypeError) as e:
                    self.logger.warning(f"Ignoring unreadable ledger line {line_number}: {e}")
        return records

    def __len__(self) -> int:
        return len(self.records())

    def is_empty(self) -> bool:
        return not self.path.exists() or self.path.stat().st_size == 0

    def prune(self):
        """Atomically empty the ledger after a successful reconciliation"""
        with self._lock:
            if not self.path.exists():
                return
            fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix='.ledger-')
            os.close(fd)
            os.replace(tmp_name, self.path)
        self.logger.info(f"Ledger pruned: {self.path}")

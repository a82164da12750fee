"""
Atomic File Placement

Places source files into the canonical <Artist>/<Bucket>/<Title>.<ext> tree.
Every transfer goes to a hidden temporary name in the target directory and
is renamed into place, so the canonical tree never holds a partial file.
"""

import logging
import os
import shutil
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Set, Tuple, Union

from ..core.constants import MAX_COLLISION_SUFFIX, TEMP_FILE_PREFIX, TEMP_FILE_SUFFIX
from .classifier import Classification
from .deduplicator import ContentHasher


class TransferError(Exception):
    """Raised when a single file cannot be placed"""
    pass


@dataclass
class PlacementResult:
    """Where a file ended up and what had to be created for it"""
    canonical_path: Path
    adopted: bool = False
    created_artist_dir: bool = False
    created_album_dir: bool = False
    conflicts: List[Path] = field(default_factory=list)


class FilePlacer:
    """
    Places files into the canonical library tree.

    Transfer modes:
    - copy: full copy preserving modification time and permissions
    - link: symbolic link to the source; no storage cost, but the library
      breaks if the source is moved or deleted

    Name collisions with different content get a " (n)" suffix on the
    title. A colliding file with the same content is an orphan from an
    interrupted placement and is adopted as-is.
    """

    def __init__(self, library_root: Union[str, Path], mode: str = "copy",
                 hasher: Optional[ContentHasher] = None, dry_run: bool = False):
        if mode not in ("copy", "link"):
            raise ValueError(f"Unknown transfer mode: {mode}")

        self.library_root = Path(library_root)
        self.mode = mode
        self.hasher = hasher or ContentHasher()
        self.dry_run = dry_run
        self.logger = logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._claimed: Set[Path] = set()

    def place(self, source: Path, classification: Classification, content_hash: str) -> PlacementResult:
        """
        Place one file.

        Args:
            source: Source file
            classification: Classified artist, title and bucket
            content_hash: Digest of the source content

        Returns:
            PlacementResult describing the final canonical path

        Raises:
            TransferError: If directories or the file cannot be written
        """
        if self.dry_run:
            return self.plan(classification, source.suffix, content_hash)

        artist_dir = self.library_root / classification.artist
        album_dir = artist_dir / classification.album_bucket
        created_artist = self._ensure_directory(artist_dir)
        created_album = self._ensure_directory(album_dir)

        target, adopted, conflicts = self._claim_path(album_dir, classification.title,
                                                      source.suffix, content_hash)
        result = PlacementResult(
            canonical_path=target,
            adopted=adopted,
            created_artist_dir=created_artist,
            created_album_dir=created_album,
            conflicts=conflicts,
        )

        if adopted:
            self.logger.info(f"Adopting existing file with identical content: {target}")
            return result

        try:
            self._transfer(source, target)
        finally:
            with self._lock:
                self._claimed.discard(target)

        return result

    def plan(self, classification: Classification, suffix: str,
             content_hash: Optional[str] = None) -> PlacementResult:
        """
        Compute where a file would go without touching storage.

        Planned paths stay claimed for the lifetime of the placer, so two
        planned files with the same title get distinct suffixes just as they
        would in a real run.
        """
        artist_dir = self.library_root / classification.artist
        album_dir = artist_dir / classification.album_bucket
        target, adopted, conflicts = self._claim_path(album_dir, classification.title,
                                                      suffix, content_hash)
        return PlacementResult(
            canonical_path=target,
            adopted=adopted,
            created_artist_dir=not artist_dir.exists(),
            created_album_dir=not album_dir.exists(),
            conflicts=conflicts,
        )

    def _ensure_directory(self, directory: Path) -> bool:
        """Create one directory level; True if this call created it"""
        try:
            directory.mkdir()
            return True
        except FileExistsError:
            if not directory.is_dir():
                raise TransferError(f"Path exists and is not a directory: {directory}")
            return False
        except OSError as e:
            raise TransferError(f"Cannot create directory {directory}: {e}") from e

    def _claim_path(self, album_dir: Path, title: str, suffix: str,
                    content_hash: Optional[str]) -> Tuple[Path, bool, List[Path]]:
        """Pick the first free title variant, or an existing file with the same content"""
        conflicts = []
        for n in range(MAX_COLLISION_SUFFIX):
            name = f"{title}{suffix}" if n == 0 else f"{title} ({n}){suffix}"
            candidate = album_dir / name

            with self._lock:
                if candidate in self._claimed:
                    continue
                if not os.path.lexists(candidate):
                    self._claimed.add(candidate)
                    return candidate, False, conflicts

            if self._same_content(candidate, content_hash):
                return candidate, True, conflicts

            conflicts.append(candidate)
            self.logger.debug(f"Name collision at {candidate}, trying next suffix")

        raise TransferError(f"No free name for '{title}{suffix}' in {album_dir}")

    def _same_content(self, path: Path, content_hash: Optional[str]) -> bool:
        if content_hash is None or not path.is_file():
            return False
        try:
            return self.hasher.hash_file(path) == content_hash
        except OSError:
            return False

    def _transfer(self, source: Path, target: Path):
        """Copy or link into a temporary name, then rename over the final name"""
        temp_path = target.parent / f"{TEMP_FILE_PREFIX}{uuid.uuid4().hex}{TEMP_FILE_SUFFIX}"
        try:
            if self.mode == "copy":
                shutil.copy2(source, temp_path)
                if temp_path.stat().st_size != source.stat().st_size:
                    raise TransferError(f"Copy verification failed: size mismatch for {source}")
            else:
                os.symlink(os.path.abspath(source), temp_path)
            os.replace(temp_path, target)
        except (OSError, TransferError) as e:
            if os.path.lexists(temp_path):
                try:
                    temp_path.unlink()
                except OSError as cleanup_error:
                    self.logger.error(f"Could not remove temporary file {temp_path}: {cleanup_error}")
            if isinstance(e, TransferError):
                raise
            raise TransferError(f"Failed to {self.mode} {source} -> {target}: {e}") from e

    def sweep_temporary_files(self) -> int:
        """Remove temporaries left behind by an interrupted run"""
        if not self.library_root.exists():
            return 0

        removed = 0
        for temp_path in self.library_root.rglob(f"{TEMP_FILE_PREFIX}*{TEMP_FILE_SUFFIX}"):
            try:
                temp_path.unlink()
                removed += 1
            except OSError as e:
                self.logger.warning(f"Could not remove stale temporary file {temp_path}: {e}")

        if removed:
            self.logger.info(f"Removed {removed} stale temporary files")
        return removed

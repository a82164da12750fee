"""
Content Deduplicator

Exact-content duplicate detection: a streamed cryptographic digest per file
and a thread-safe index from digest to canonical path.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple, Union

from ..core.constants import DEFAULT_HASH_ALGORITHM, HASH_CHUNK_SIZE


class ContentHasher:
    """Streamed file digests; files are never loaded whole"""

    def __init__(self, algorithm: str = DEFAULT_HASH_ALGORITHM, chunk_size: int = HASH_CHUNK_SIZE):
        if algorithm not in hashlib.algorithms_available:
            raise ValueError(f"Hash algorithm not available: {algorithm}")
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def hash_file(self, file_path: Union[str, Path]) -> str:
        """
        Compute the digest of a file.

        Args:
            file_path: File to hash

        Returns:
            Hex digest
        """
        digest = hashlib.new(self.algorithm)
        with open(file_path, 'rb') as f:
            for chunk in iter(lambda: f.read(self.chunk_size), b''):
                digest.update(chunk)
        return digest.hexdigest()


class HashIndex:
    """
    Content hash to canonical path, safe for concurrent use.

    Workers call ``reserve`` before placing a file. It is an atomic
    check-and-claim, so two identical files seen in the same run cannot both
    be placed. While a claim is pending, other claimants of the same hash
    block until the owner either commits the placement (they become
    duplicates of it) or releases the claim after a failure (one of them
    takes over).
    """

    def __init__(self, items: Optional[Iterable[Tuple[str, str]]] = None):
        self._condition = threading.Condition()
        self._committed: Dict[str, str] = dict(items or ())
        self._pending: Dict[str, str] = {}

    def lookup(self, content_hash: str) -> Optional[str]:
        """Canonical path (or claiming source path) for a hash"""
        with self._condition:
            return self._committed.get(content_hash) or self._pending.get(content_hash)

    def reserve(self, content_hash: str, claimant: str) -> Optional[str]:
        """
        Claim a hash for placement, waiting out another worker's pending claim.

        Returns:
            None if the claim succeeded, otherwise the canonical path already
            holding this content
        """
        with self._condition:
            while content_hash in self._pending:
                self._condition.wait()
            existing = self._committed.get(content_hash)
            if existing is not None:
                return existing
            self._pending[content_hash] = claimant
            return None

    def release(self, content_hash: str):
        with self._condition:
            self._pending.pop(content_hash, None)
            self._condition.notify_all()

    def commit(self, content_hash: str, canonical_path: str):
        with self._condition:
            self._pending.pop(content_hash, None)
            self._committed[content_hash] = canonical_path
            self._condition.notify_all()

    def is_committed(self, content_hash: str) -> bool:
        with self._condition:
            return content_hash in self._committed

    def __contains__(self, content_hash: str) -> bool:
        return self.lookup(content_hash) is not None

    def __len__(self) -> int:
        with self._condition:
            return len(self._committed)


@dataclass
class DedupDecision:
    """Outcome of checking one file against the index"""
    content_hash: str
    is_duplicate: bool
    existing_path: Optional[str] = None


class Deduplicator:
    """Hashes a file and claims its content in the shared index"""

    def __init__(self, hasher: ContentHasher, index: HashIndex):
        self.hasher = hasher
        self.index = index
        self.logger = logging.getLogger(__name__)

    def check(self, file_path: Path) -> DedupDecision:
        """
        Hash a file and reserve its content.

        A non-duplicate decision holds a reservation; the caller must either
        commit it through the index or release it.
        """
        content_hash = self.hasher.hash_file(file_path)
        existing = self.index.reserve(content_hash, str(file_path))
        if existing is not None:
            self.logger.debug(f"Duplicate content: {file_path} matches {existing}")
            return DedupDecision(content_hash, True, existing)
        return DedupDecision(content_hash, False)

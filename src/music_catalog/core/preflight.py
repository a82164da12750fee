"""
Precondition Checks

Everything that must hold before a run mutates storage: the source exists,
the required capabilities are present, and the target has room for the
files that are about to be copied.
"""

import hashlib
import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from .catalog import fts5_available


class CheckStatus(Enum):
    """Result of a single check"""
    PASSED = "passed"
    FAILED = "failed"


@dataclass
class CheckResult:
    name: str
    status: CheckStatus
    message: str


class PreconditionError(Exception):
    """Raised when a run cannot start safely"""

    def __init__(self, failures: List[CheckResult]):
        self.failures = failures
        super().__init__("; ".join(f"{f.name}: {f.message}" for f in failures))


SPACE_SAFETY_MARGIN = 1.05


def existing_ancestor(path: Path) -> Path:
    """Closest existing directory at or above a path"""
    current = path.expanduser().absolute()
    while not current.exists() and current != current.parent:
        current = current.parent
    return current


class PreflightChecker:
    """
    Runs precondition checks and raises on fatal failures.

    Checks are grouped so the cheap ones (paths, capabilities) run before
    scanning and the space check runs once the candidate sizes are known.
    """

    def __init__(self, hash_algorithm: str = "sha256"):
        self.hash_algorithm = hash_algorithm
        self.logger = logging.getLogger(__name__)

    def check_source(self, source_root: Path) -> CheckResult:
        if not source_root.exists():
            return CheckResult("source", CheckStatus.FAILED, f"Source directory does not exist: {source_root}")
        if not source_root.is_dir():
            return CheckResult("source", CheckStatus.FAILED, f"Source path is not a directory: {source_root}")
        return CheckResult("source", CheckStatus.PASSED, str(source_root))

    def check_library_root(self, source_root: Path, library_root: Path) -> CheckResult:
        source = source_root.expanduser().resolve()
        library = library_root.expanduser().resolve()
        if library == source:
            return CheckResult("library", CheckStatus.FAILED, "Library directory must differ from the source")
        if library.exists() and not library.is_dir():
            return CheckResult("library", CheckStatus.FAILED, f"Library path is not a directory: {library}")
        if not library.exists() and not existing_ancestor(library).is_dir():
            return CheckResult("library", CheckStatus.FAILED, f"No writable parent for {library}")
        return CheckResult("library", CheckStatus.PASSED, str(library))

    def check_hash_algorithm(self) -> CheckResult:
        if self.hash_algorithm not in hashlib.algorithms_available:
            return CheckResult("hash", CheckStatus.FAILED,
                               f"Hash algorithm '{self.hash_algorithm}' is not available")
        return CheckResult("hash", CheckStatus.PASSED, self.hash_algorithm)

    def check_full_text_search(self) -> CheckResult:
        if not fts5_available():
            return CheckResult("fts5", CheckStatus.FAILED,
                               "SQLite was built without FTS5 full-text search")
        return CheckResult("fts5", CheckStatus.PASSED, "available")

    def check_free_space(self, target: Path, required_bytes: int) -> CheckResult:
        anchor = existing_ancestor(target)
        free = shutil.disk_usage(anchor).free
        needed = int(required_bytes * SPACE_SAFETY_MARGIN)
        if free < needed:
            return CheckResult(
                "space", CheckStatus.FAILED,
                f"Not enough free space at {anchor}: need {needed:,} bytes, have {free:,}"
            )
        return CheckResult("space", CheckStatus.PASSED, f"{free:,} bytes free at {anchor}")

    def run_initial_checks(self, source_root: Path, library_root: Path) -> List[CheckResult]:
        """Checks that do not depend on the scan"""
        return self._raise_on_failure([
            self.check_source(source_root),
            self.check_library_root(source_root, library_root),
            self.check_hash_algorithm(),
            self.check_full_text_search(),
        ])

    def run_space_check(self, library_root: Path, transfer_mode: str,
                        candidate_sizes: Iterable[int]) -> Optional[CheckResult]:
        """Copy mode needs room for every candidate; link mode needs none"""
        if transfer_mode != "copy":
            return None
        result = self.check_free_space(library_root, sum(candidate_sizes))
        self._raise_on_failure([result])
        return result

    def _raise_on_failure(self, results: List[CheckResult]) -> List[CheckResult]:
        for result in results:
            if result.status == CheckStatus.FAILED:
                self.logger.error(f"Precondition '{result.name}' failed: {result.message}")
            else:
                self.logger.debug(f"Precondition '{result.name}' {result.status.value}: {result.message}")

        failures = [r for r in results if r.status == CheckStatus.FAILED]
        if failures:
            raise PreconditionError(failures)
        return results

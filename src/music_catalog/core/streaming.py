"""
Streaming file discovery and bounded parallel processing.
"""

import logging
import os
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Generator, Iterable, Iterator, Optional, TypeVar

from .constants import WORK_QUEUE_FACTOR

T = TypeVar('T')
U = TypeVar('U')

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscoveredFile:
    """A regular file found under the source root"""
    path: Path
    size_bytes: int

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()


class FileDiscoveryStream:
    """
    Stream-based discovery of every regular file under a root.

    Nothing is filtered by extension here; the pipeline decides what to skip
    so skipped files are still counted. Excluded directories (the library,
    workspace and cache when they live inside the source) are never entered.
    """

    def __init__(self, excluded_paths: Optional[Iterable[Path]] = None):
        self.excluded_paths = [Path(p).resolve() for p in (excluded_paths or [])]

    def _is_excluded(self, directory: Path) -> bool:
        resolved = directory.resolve()
        return any(resolved == excluded or excluded in resolved.parents
                   for excluded in self.excluded_paths)

    def stream_files(self, source_root: Path) -> Generator[DiscoveredFile, None, None]:
        discovered = 0
        for root, dirs, files in os.walk(source_root):
            root_path = Path(root)
            dirs[:] = sorted(d for d in dirs if not self._is_excluded(root_path / d))

            for name in sorted(files):
                file_path = root_path / name
                try:
                    stat = file_path.stat()
                except OSError as e:
                    logger.warning(f"Cannot stat {file_path}: {e}")
                    continue
                if not file_path.is_file():
                    continue

                discovered += 1
                if discovered % 1000 == 0:
                    logger.debug(f"Discovered {discovered} files")
                yield DiscoveredFile(file_path, stat.st_size)


class ParallelStreamProcessor:
    """
    Process a stream on a bounded thread pool.

    At most ``max_workers * WORK_QUEUE_FACTOR`` items are submitted at once;
    the next item is only pulled from the stream when a result is yielded.
    Results are yielded in completion order to the single consuming thread.
    If the consumer stops early (interrupt or error), queued work is
    cancelled and only in-flight items run to completion.
    """

    def __init__(self, max_workers: int):
        self.max_workers = max_workers

    def process_parallel(self, stream: Iterable[T],
                         processor_func: Callable[[T], U]) -> Iterator[U]:
        items = iter(stream)
        executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                      thread_name_prefix="catalog-worker")
        in_flight: Dict[Future, T] = {}

        def submit_next() -> bool:
            try:
                item = next(items)
            except StopIteration:
                return False
            in_flight[executor.submit(processor_func, item)] = item
            return True

        try:
            for _ in range(self.max_workers * WORK_QUEUE_FACTOR):
                if not submit_next():
                    break

            while in_flight:
                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in done:
                    in_flight.pop(future)
                    yield future.result()
                    submit_next()
        finally:
            for future in in_flight:
                future.cancel()
            executor.shutdown(wait=True)

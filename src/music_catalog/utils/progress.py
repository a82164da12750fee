"""
Progress display for long-running operations
"""

import logging
from typing import Optional

from tqdm import tqdm


class ProgressTracker:
    """
    Console progress bar for the worker pipeline.

    Only the aggregating thread calls ``update``. With progress disabled no
    bar is created and updates are plain counters.
    """

    def __init__(self, total_items: Optional[int] = None, desc: str = "Processing",
                 enabled: bool = True):
        self.total_items = total_items
        self.desc = desc
        self.processed = 0
        self.errors = 0
        self.skipped = 0
        self.logger = logging.getLogger(__name__)

        self.pbar = None
        if enabled:
            self.pbar = tqdm(total=total_items, desc=desc, unit='files',
                             dynamic_ncols=True, leave=False)

    def update(self, n: int = 1, status: str = 'completed'):
        self.processed += n
        if status == 'failed':
            self.errors += 1
        elif status == 'skipped':
            self.skipped += 1

        if self.pbar is not None:
            self.pbar.update(n)
            postfix = {'errors': self.errors}
            if self.skipped:
                postfix['skipped'] = self.skipped
            self.pbar.set_postfix(postfix, refresh=False)

    def close(self):
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> 'ProgressTracker':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

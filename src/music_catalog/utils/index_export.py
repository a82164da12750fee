"""
Plain-text index export

Writes the catalog's distinct artists, albums, titles and file formats as
one-value-per-line text files for tools that cannot read the database.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ..core.catalog import CatalogStore
from .decorators import handle_errors

ARTISTS_FILE = "artists.txt"
ALBUMS_FILE = "albums.txt"
TITLES_FILE = "titles.txt"
FORMATS_FILE = "file_formats.txt"


def write_lines_atomic(path: Path, lines: Iterable[str]):
    """Write lines to a sibling temp file and rename it over the target"""
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.stem}-", suffix=".tmp")
    try:
        with os.fdopen(fd, 'w', encoding='utf-8', newline='\n') as f:
            for line in lines:
                f.write(line + '\n')
        os.replace(tmp_name, path)
    except OSError:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def _sorted_case_insensitive(values: Iterable[str]):
    return sorted(values, key=lambda value: (value.casefold(), value))


class IndexExporter:
    """Exports text indexes from the catalog into a directory"""

    def __init__(self, catalog: CatalogStore, index_dir: Union[str, Path]):
        self.catalog = catalog
        self.index_dir = Path(index_dir)
        self.logger = logging.getLogger(__name__)

    @handle_errors(log_level="warning", return_on_error=None)
    def export(self) -> Optional[Dict[str, int]]:
        """
        Write all index files.

        Returns:
            Line count per file, or None if the export failed (the failure is
            logged; a failed export never fails the run)
        """
        self.index_dir.mkdir(parents=True, exist_ok=True)

        contents = {
            ARTISTS_FILE: _sorted_case_insensitive(self.catalog.distinct_artists()),
            ALBUMS_FILE: _sorted_case_insensitive(self.catalog.distinct_albums()),
            TITLES_FILE: _sorted_case_insensitive(self.catalog.distinct_titles()),
            FORMATS_FILE: [f"{ext}\t{count}" for ext, count in self.catalog.format_counts()],
        }

        for filename, lines in contents.items():
            write_lines_atomic(self.index_dir / filename, lines)

        counts = {filename: len(lines) for filename, lines in contents.items()}
        self.logger.info(f"Exported indexes to {self.index_dir}: "
                         + ", ".join(f"{name}={count}" for name, count in counts.items()))
        return counts

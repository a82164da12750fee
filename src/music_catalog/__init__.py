"""
Music Catalog

Organizes a flat, unstructured collection of audio files into a canonical
Artist/Album/Title library and keeps a searchable catalog of it.

Features:
- Filename-based classification into artist, title and album bucket
- Exact-content deduplication
- Atomic placement with a crash-safe ledger
- SQLite catalog with full-text search
- Hot/recent cache tiers under a byte budget
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .core.config_manager import LibraryConfig, get_config_manager
from .core.catalog import CatalogStore, Track
from .core.orchestrator import LibraryOrchestrator
from .modules.classifier import Classification, FilenameClassifier

__all__ = [
    "__version__",
    "__license__",
    "LibraryConfig",
    "get_config_manager",
    "CatalogStore",
    "Track",
    "LibraryOrchestrator",
    "Classification",
    "FilenameClassifier",
]

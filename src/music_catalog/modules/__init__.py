"""Feature modules for Music Catalog."""

from .classifier import Classification, FilenameClassifier
from .deduplicator import ContentHasher, Deduplicator, HashIndex
from .organizer import FilePlacer, TransferError
from .cache_manager import CacheManager
from .cue_sheet import CueSheet, CueSheetParser

__all__ = [
    "Classification",
    "FilenameClassifier",
    "ContentHasher",
    "Deduplicator",
    "HashIndex",
    "FilePlacer",
    "TransferError",
    "CacheManager",
    "CueSheet",
    "CueSheetParser",
]

"""Core components for Music Catalog."""

from .config_manager import get_config_manager, LibraryConfig
from .catalog import CatalogError, CatalogStore, Track
from .ledger import Ledger, LedgerError, LedgerRecord
from .preflight import PreconditionError, PreflightChecker
from .streaming import DiscoveredFile, FileDiscoveryStream, ParallelStreamProcessor
from .orchestrator import LibraryOrchestrator

__all__ = [
    "LibraryConfig",
    "get_config_manager",
    "CatalogError",
    "CatalogStore",
    "Track",
    "Ledger",
    "LedgerError",
    "LedgerRecord",
    "PreconditionError",
    "PreflightChecker",
    "DiscoveredFile",
    "FileDiscoveryStream",
    "ParallelStreamProcessor",
    "LibraryOrchestrator",
]

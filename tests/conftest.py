"""
Shared pytest fixtures for Music Catalog tests.

Provides temporary source/library/workspace trees, fake audio files and a
ready-to-use configuration.
"""

import shutil
import tempfile
from pathlib import Path

import pytest

from music_catalog.core.catalog import CatalogStore, Track
from music_catalog.core.config_manager import LibraryConfig


def write_audio(path: Path, seed: str, size: int = 4096) -> Path:
    """Write a fake audio file whose content is determined by ``seed``"""
    path.parent.mkdir(parents=True, exist_ok=True)
    block = (seed + "|").encode("utf-8")
    path.write_bytes((block * (size // len(block) + 1))[:size])
    return path


def make_track(artist: str, title: str, bucket: str = "Singles", size: int = 1000,
               added_at: float = 1000.0, library: str = "/library") -> Track:
    return Track(
        canonical_path=f"{library}/{artist}/{bucket}/{title}.mp3",
        source_path=f"/source/{artist} - {title}.mp3",
        artist=artist,
        album_bucket=bucket,
        title=title,
        extension="mp3",
        size_bytes=size,
        content_hash=f"{artist}:{title}:{bucket}",
        added_at=added_at,
    )


SAMPLE_FILES = {
    "05 - Daft Punk - One More Time.mp3": "one-more-time",
    "Artist feat. Guest - Title (Club Remix).flac": "club-remix",
    "Artist - Title (Extended Mix).mp3": "extended-mix",
    "Nirvana - Lithium (Live at Reading).mp3": "lithium-live",
    "Various Artists - Summer Hit (Best Of 2020).mp3": "summer-hit",
    "Moby - Porcelain.m4a": "porcelain",
    "Moby - Porcelain (copy).m4a": "porcelain",
    "cover.jpg": "not-audio",
}


def build_collection(source: Path) -> Path:
    """
    Fill a source folder with the sample collection.

    9 files: 6 distinct audio tracks by 5 artists, one duplicate copy, one
    non-audio file and one audio file below the minimum size.
    """
    for name, seed in SAMPLE_FILES.items():
        write_audio(source / name, seed)
    write_audio(source / "Tiny - Placeholder.mp3", "tiny", size=100)
    return source


def make_workspace(base: Path) -> dict:
    paths = {
        'base': base,
        'source': base / "incoming",
        'library': base / "library",
        'workspace': base / "workspace",
        'cache': base / "cache",
    }
    paths['source'].mkdir(parents=True)
    return paths


def make_config(paths: dict) -> LibraryConfig:
    config = LibraryConfig(
        source_directory=str(paths['source']),
        library_directory=str(paths['library']),
        workspace_directory=str(paths['workspace']),
    )
    config.processing.max_workers = 2
    config.ui.progress_mode = "none"
    return config


@pytest.fixture
def audio_file_factory():
    return write_audio


@pytest.fixture
def track_factory():
    return make_track


@pytest.fixture
def collection_builder():
    return build_collection


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def workspace_factory():
    return make_workspace


@pytest.fixture
def temp_workspace():
    """Create temporary base directory with source, library and workspace."""
    base = Path(tempfile.mkdtemp())
    yield make_workspace(base)
    shutil.rmtree(base, ignore_errors=True)


@pytest.fixture
def library_config(temp_workspace):
    """Configuration pointing at the temporary tree, without progress bars."""
    return make_config(temp_workspace)


@pytest.fixture
def sample_collection(temp_workspace):
    """A flat collection covering every bucket, a duplicate and skipped files."""
    return build_collection(temp_workspace['source'])


@pytest.fixture
def catalog(temp_workspace):
    """An empty catalog store in the workspace."""
    store = CatalogStore(temp_workspace['workspace'] / "library.db")
    yield store
    store.close()

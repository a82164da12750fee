"""
Unit tests for the catalog store.
"""

import pytest

from music_catalog.core.catalog import CacheEntry, CatalogError, CatalogStore


@pytest.fixture
def populated(catalog, track_factory):
    catalog.upsert_batch([
        track_factory("Daft Punk", "One More Time", added_at=1000.0),
        track_factory("Daft Punk", "Aerodynamic", bucket="Remixes & Edits", added_at=2000.0),
        track_factory("Moby", "Porcelain", added_at=3000.0, size=500),
        track_factory("Nirvana", "Lithium", bucket="Live & Acoustic", added_at=4000.0),
    ])
    catalog.recompute_aggregates()
    return catalog


class TestUpsert:

    def test_insert_and_lookup(self, catalog, track_factory):
        track = track_factory("Moby", "Porcelain")
        assert catalog.upsert_batch([track]) == 1
        assert catalog.lookup_by_hash(track.content_hash) == track
        assert catalog.lookup_by_path(track.canonical_path) == track

    def test_reinsert_is_a_no_op(self, catalog, track_factory):
        tracks = [track_factory("Moby", "Porcelain"), track_factory("Moby", "Natural Blues")]
        catalog.upsert_batch(tracks)
        assert catalog.upsert_batch(tracks) == 0
        assert catalog.total_tracks() == 2

    def test_conflict_rolls_back_whole_batch(self, catalog, track_factory):
        original = track_factory("Moby", "Porcelain")
        catalog.upsert_batch([original])

        fresh = track_factory("Moby", "Natural Blues")
        clash = track_factory("Moby", "Porcelain Copy")
        clash.content_hash = original.content_hash

        with pytest.raises(CatalogError):
            catalog.upsert_batch([fresh, clash])

        assert catalog.total_tracks() == 1
        assert catalog.lookup_by_hash(fresh.content_hash) is None

    def test_hash_index_items(self, catalog, track_factory):
        track = track_factory("Moby", "Porcelain")
        catalog.upsert_batch([track])
        assert catalog.hash_index_items() == [(track.content_hash, track.canonical_path)]


class TestSearch:

    def test_keyword_prefix_match(self, populated):
        titles = {t.title for t in populated.search("daft")}
        assert titles == {"One More Time", "Aerodynamic"}

    def test_all_terms_must_match(self, populated):
        results = populated.search("daft aero")
        assert [t.title for t in results] == ["Aerodynamic"]

    def test_substring_fallback(self, populated):
        results = populated.search("orcel")
        assert [t.title for t in results] == ["Porcelain"]

    def test_matches_bucket_label(self, populated):
        assert [t.title for t in populated.search("acoustic")] == ["Lithium"]

    def test_case_and_diacritics_insensitive(self, populated):
        assert [t.title for t in populated.search("NÍRVANA")] == ["Lithium"]

    def test_empty_query(self, populated):
        assert populated.search("   ") == []
        assert populated.search("!!!") == []

    def test_paging_is_consistent(self, populated):
        everything = populated.search("singles")
        assert len(everything) == 2
        assert populated.search("singles", limit=1, offset=1) == everything[1:2]
        assert populated.search("singles", limit=10, offset=5) == []


class TestAggregates:

    def test_artist_counts_sum_to_tracks(self, populated):
        stats = populated.statistics()
        assert stats['tracks'] == 4
        assert stats['artists'] == 3
        assert stats['albums'] == 4
        assert stats['artist_track_sum'] == stats['tracks']

    def test_artist_summary(self, populated):
        daft = next(a for a in populated.artists() if a.name == "Daft Punk")
        assert daft.track_count == 2
        assert daft.album_count == 2
        assert daft.total_size == 2000
        assert daft.first_added == 1000.0
        assert daft.last_added == 2000.0

    def test_albums_for_artist(self, populated):
        labels = [a.bucket_label for a in populated.albums("Daft Punk")]
        assert labels == ["Remixes & Edits", "Singles"]

    def test_top_artists_ties_broken_by_name(self, populated):
        names = [a.name for a in populated.top_artists(3)]
        assert names == ["Daft Punk", "Moby", "Nirvana"]

    def test_recent_tracks_newest_first(self, populated):
        assert [t.title for t in populated.recent_tracks(2)] == ["Lithium", "Porcelain"]

    def test_format_counts(self, populated):
        assert populated.format_counts() == [("mp3", 4)]

    def test_popular_tracks_by_play_count(self, catalog, track_factory):
        played = track_factory("Moby", "Porcelain", added_at=1000.0)
        played.play_count = 7
        catalog.upsert_batch([track_factory("Daft Punk", "Aerodynamic", added_at=2000.0), played])

        assert [t.title for t in catalog.popular_tracks(2)] == ["Porcelain", "Aerodynamic"]


class TestReadOnly:

    def test_missing_catalog_is_not_created(self, temp_workspace):
        path = temp_workspace['workspace'] / "library.db"
        store = CatalogStore(path, read_only=True)
        try:
            assert store.total_tracks() == 0
            with pytest.raises(CatalogError):
                with store.transaction():
                    pass
        finally:
            store.close()
        assert not path.exists()

    def test_existing_catalog_is_readable(self, temp_workspace, track_factory):
        path = temp_workspace['workspace'] / "library.db"
        with CatalogStore(path) as store:
            store.upsert_batch([track_factory("Moby", "Porcelain")])

        with CatalogStore(path, read_only=True) as store:
            assert store.total_tracks() == 1
            with pytest.raises(CatalogError):
                store.upsert_batch([track_factory("Moby", "Natural Blues")])


class TestCacheEntriesAndRuns:

    def test_cache_entry_roundtrip(self, catalog):
        entry = CacheEntry("hot", "/cache/hot/a.mp3", "/library/a.mp3", 10, 1.0)
        catalog.add_cache_entry(entry)
        assert catalog.cache_entries("hot") == [entry]
        assert catalog.cache_entries("recent") == []
        catalog.remove_cache_entry(entry.cached_path)
        assert catalog.cache_entries() == []

    def test_clear_cache_entries(self, catalog):
        catalog.add_cache_entry(CacheEntry("hot", "/cache/hot/a.mp3", "/library/a.mp3", 10, 1.0))
        catalog.add_cache_entry(CacheEntry("recent", "/cache/recent/b.mp3", "/library/b.mp3", 20, 2.0))

        assert catalog.clear_cache_entries() == 2
        assert catalog.cache_entries() == []

    def test_undecodable_source_path_is_stored_escaped(self, catalog, track_factory):
        track = track_factory("Bj_rk", "Army of Me")
        track.source_path = "/source/Bj\udcf6rk - Army of Me.mp3"

        catalog.upsert_batch([track])

        stored = catalog.lookup_by_hash(track.content_hash)
        assert stored.source_path == "/source/Bj\\xf6rk - Army of Me.mp3"

    def test_record_run(self, catalog):
        catalog.record_run("run-1", 10.0, 20.0, "execute", {'organized': 3})
        runs = catalog.recent_runs()
        assert len(runs) == 1
        assert runs[0]['run_id'] == "run-1"
        assert runs[0]['statistics'] == {'organized': 3}

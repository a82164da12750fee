#!/usr/bin/env python3
"""
Test package structure and public imports of Music Catalog.
"""
import unittest


class TestPackageStructure(unittest.TestCase):
    """Test that the package structure is correct and imports work."""

    def test_main_package_import(self):
        import music_catalog
        self.assertEqual(music_catalog.__version__, "1.0.0")

    def test_top_level_exports(self):
        from music_catalog import (
            CatalogStore,
            Classification,
            FilenameClassifier,
            LibraryConfig,
            LibraryOrchestrator,
            Track,
            get_config_manager,
        )

        self.assertTrue(callable(CatalogStore))
        self.assertTrue(callable(LibraryOrchestrator))
        self.assertTrue(callable(FilenameClassifier))
        self.assertTrue(callable(get_config_manager))
        self.assertTrue(callable(Classification))
        self.assertTrue(callable(LibraryConfig))
        self.assertTrue(callable(Track))

    def test_modules_imports(self):
        from music_catalog.modules import (
            CacheManager,
            ContentHasher,
            CueSheetParser,
            Deduplicator,
            FilePlacer,
            HashIndex,
        )

        for cls in (CacheManager, ContentHasher, CueSheetParser, Deduplicator, FilePlacer, HashIndex):
            self.assertTrue(callable(cls))

    def test_utils_imports(self):
        from music_catalog.utils import handle_errors, track_performance

        self.assertTrue(callable(handle_errors))
        self.assertTrue(callable(track_performance))

    def test_cli_entry_point(self):
        from music_catalog.cli.main import main

        self.assertTrue(callable(main))


if __name__ == '__main__':
    unittest.main()

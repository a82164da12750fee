"""
Integration tests for CLI end-to-end workflows.

Tests the complete CLI functionality including all operational modes
and their integration with the orchestrator and underlying modules.
"""

import argparse
import json
import logging
from unittest.mock import patch

import pytest

from music_catalog.cli.main import create_parser, main, parse_size
from music_catalog.core.catalog import CatalogError
from music_catalog.core.constants import EXIT_FAILURE, EXIT_INTERRUPTED, EXIT_SUCCESS

CUT_SHEET = '''PERFORMER "DJ Example"
TITLE "Warmup Mix"
FILE "Warmup Mix.mp3" MP3
  TRACK 01 AUDIO
    TITLE "Intro"
    INDEX 01 00:00:00
  TRACK 02 AUDIO
    TITLE "Groove"
    INDEX 01 03:15:00
'''


@pytest.fixture(autouse=True)
def restore_root_handlers():
    """main() installs logging handlers; drop them after each test"""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def cli_paths(temp_workspace, sample_collection):
    return {
        'source': str(sample_collection),
        'library': str(temp_workspace['library']),
        'workspace': str(temp_workspace['workspace']),
        'cache': str(temp_workspace['cache']),
        'base': temp_workspace['base'],
    }


def organize(paths, *extra):
    return main([paths['source'], "-o", paths['library'], "--workspace", paths['workspace'],
                 "--progress", "none", "--max-workers", "2", *extra])


class TestOrganizeMode:

    def test_organize(self, cli_paths, temp_workspace, capsys):
        assert organize(cli_paths) == EXIT_SUCCESS

        assert (temp_workspace['library'] / "Moby" / "Singles").is_dir()
        assert (temp_workspace['workspace'] / "library.db").exists()
        assert "Organization completed" in capsys.readouterr().out

    def test_dry_run(self, cli_paths, temp_workspace, capsys):
        assert organize(cli_paths, "--dry-run") == EXIT_SUCCESS

        assert not temp_workspace['library'].exists()
        assert "DRY RUN" in capsys.readouterr().out

    def test_custom_report_path(self, cli_paths):
        report = cli_paths['base'] / "reports" / "run.json"
        assert organize(cli_paths, "--report", str(report)) == EXIT_SUCCESS
        assert report.exists()

    def test_missing_source(self, cli_paths, capsys):
        cli_paths['source'] = str(cli_paths['base'] / "does-not-exist")
        assert organize(cli_paths) == EXIT_FAILURE
        assert "does not exist" in capsys.readouterr().err

    def test_missing_library_argument(self, cli_paths):
        assert main([cli_paths['source']]) == EXIT_FAILURE

    def test_invalid_worker_count(self, cli_paths, capsys):
        assert main([cli_paths['source'], "-o", cli_paths['library'], "--workspace",
                     cli_paths['workspace'], "--max-workers", "0"]) == EXIT_FAILURE
        assert "max_workers" in capsys.readouterr().err

    def test_link_mode_with_yes(self, cli_paths, temp_workspace):
        assert organize(cli_paths, "--transfer", "link", "--yes") == EXIT_SUCCESS
        placed = list((temp_workspace['library'] / "Moby" / "Singles").iterdir())
        assert len(placed) == 1 and placed[0].is_symlink()

    def test_link_mode_declined(self, cli_paths, temp_workspace):
        with patch("music_catalog.cli.main.Confirm.ask", return_value=False):
            assert organize(cli_paths, "--transfer", "link") == EXIT_INTERRUPTED
        assert not temp_workspace['library'].exists()

    def test_catalog_failure_returns_1(self, cli_paths, capsys):
        with patch("music_catalog.core.catalog.CatalogStore.upsert_batch",
                   side_effect=CatalogError("disk I/O error")):
            assert organize(cli_paths) == EXIT_FAILURE
        assert "disk I/O error" in capsys.readouterr().err

    def test_log_level_from_config_file(self, cli_paths):
        settings = cli_paths['base'] / "quiet.json"
        settings.write_text(json.dumps({"ui": {"log_level": "WARNING"}}), encoding='utf-8')

        assert organize(cli_paths, "--config", str(settings)) == EXIT_SUCCESS
        assert logging.getLogger().level == logging.WARNING

    def test_interrupt_returns_130(self, cli_paths):
        with patch("music_catalog.cli.main.LibraryOrchestrator.run_organization_pipeline",
                   side_effect=KeyboardInterrupt):
            assert organize(cli_paths) == EXIT_INTERRUPTED


class TestCatalogModes:

    def test_search(self, cli_paths, capsys):
        organize(cli_paths)
        capsys.readouterr()

        assert main(["--mode", "search", "--query", "daft", "--workspace", cli_paths['workspace']]) == EXIT_SUCCESS
        assert "One More Time" in capsys.readouterr().out

    def test_search_without_results(self, cli_paths, capsys):
        organize(cli_paths)
        capsys.readouterr()

        assert main(["--mode", "search", "--query", "zzzz", "--workspace", cli_paths['workspace']]) == EXIT_SUCCESS
        assert "No tracks match" in capsys.readouterr().out

    def test_search_requires_query(self, cli_paths):
        assert main(["--mode", "search", "--workspace", cli_paths['workspace']]) == EXIT_FAILURE

    def test_export(self, cli_paths, temp_workspace):
        organize(cli_paths)
        (temp_workspace['workspace'] / "indexes" / "titles.txt").unlink()

        assert main(["--mode", "export", "--workspace", cli_paths['workspace']]) == EXIT_SUCCESS
        titles = (temp_workspace['workspace'] / "indexes" / "titles.txt").read_text(encoding='utf-8')
        assert len(titles.splitlines()) == 6

    def test_cache_refresh(self, cli_paths, temp_workspace, capsys):
        organize(cli_paths)
        capsys.readouterr()

        assert main(["--mode", "cache", "-o", cli_paths['library'], "--workspace", cli_paths['workspace'],
                     "--cache-dir", cli_paths['cache'], "--cache-budget", "8K"]) == EXIT_SUCCESS

        cached = [p for p in temp_workspace['cache'].rglob("*") if p.is_file()]
        assert len(cached) == 2
        assert "Cache refreshed" in capsys.readouterr().out

    def test_cache_requires_directory(self, cli_paths):
        assert main(["--mode", "cache", "-o", cli_paths['library'],
                     "--workspace", cli_paths['workspace']]) == EXIT_FAILURE


class TestCueMode:

    def test_prints_split_commands(self, tmp_path, capsys):
        cue = tmp_path / "Warmup Mix.cue"
        cue.write_text(CUT_SHEET, encoding='utf-8')

        assert main(["--mode", "cue", str(cue), "-o", str(tmp_path / "split")]) == EXIT_SUCCESS

        out = capsys.readouterr().out
        commands = [line for line in out.splitlines() if line.startswith("ffmpeg")]
        assert len(commands) == 2
        assert "-t 195.000" in commands[0]
        assert "02 - Groove.mp3" in commands[1]

    def test_malformed_sheet(self, tmp_path):
        cue = tmp_path / "broken.cue"
        cue.write_text('TRACK 01 AUDIO\n  INDEX 01 00:75:00\n', encoding='utf-8')
        assert main(["--mode", "cue", str(cue)]) == EXIT_FAILURE

    def test_missing_sheet(self, tmp_path):
        assert main(["--mode", "cue", str(tmp_path / "missing.cue")]) == EXIT_FAILURE


class TestArgumentParsing:

    @pytest.mark.parametrize("text,expected", [
        ("1048576", 1048576),
        ("512M", 512 * 1024 ** 2),
        ("30G", 30 * 1024 ** 3),
        ("1.5KiB", 1536),
        ("2 gb", 2 * 1024 ** 3),
    ])
    def test_parse_size(self, text, expected):
        assert parse_size(text) == expected

    def test_parse_size_rejects_garbage(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_size("lots")

    def test_defaults(self):
        args = create_parser().parse_args(["music"])
        assert args.mode == "organize"
        assert args.limit == 50
        assert not args.dry_run
        assert args.transfer is None

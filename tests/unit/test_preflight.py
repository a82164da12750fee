"""
Unit tests for precondition checks.
"""

import shutil
from collections import namedtuple

import pytest

from music_catalog.core.preflight import (
    CheckStatus,
    PreconditionError,
    PreflightChecker,
    existing_ancestor,
)

DiskUsage = namedtuple("DiskUsage", "total used free")


class TestInitialChecks:

    def test_valid_layout_passes(self, temp_workspace):
        results = PreflightChecker().run_initial_checks(temp_workspace['source'], temp_workspace['library'])
        assert all(r.status == CheckStatus.PASSED for r in results)

    def test_missing_source(self, temp_workspace):
        with pytest.raises(PreconditionError) as exc_info:
            PreflightChecker().run_initial_checks(temp_workspace['base'] / "nope", temp_workspace['library'])
        assert [f.name for f in exc_info.value.failures] == ["source"]

    def test_source_is_a_file(self, temp_workspace):
        path = temp_workspace['base'] / "file.mp3"
        path.write_bytes(b"x")
        with pytest.raises(PreconditionError):
            PreflightChecker().run_initial_checks(path, temp_workspace['library'])

    def test_library_equal_to_source(self, temp_workspace):
        with pytest.raises(PreconditionError) as exc_info:
            PreflightChecker().run_initial_checks(temp_workspace['source'], temp_workspace['source'])
        assert "differ" in str(exc_info.value)

    def test_library_is_a_file(self, temp_workspace):
        temp_workspace['library'].write_text("oops")
        with pytest.raises(PreconditionError):
            PreflightChecker().run_initial_checks(temp_workspace['source'], temp_workspace['library'])

    def test_unknown_hash_algorithm(self, temp_workspace):
        with pytest.raises(PreconditionError) as exc_info:
            PreflightChecker("not-a-hash").run_initial_checks(temp_workspace['source'],
                                                             temp_workspace['library'])
        assert [f.name for f in exc_info.value.failures] == ["hash"]


class TestSpaceCheck:

    def test_enough_space(self, temp_workspace, monkeypatch):
        monkeypatch.setattr(shutil, "disk_usage", lambda path: DiskUsage(10000, 0, 10000))
        result = PreflightChecker().run_space_check(temp_workspace['library'], "copy", [1000, 2000])
        assert result.status == CheckStatus.PASSED

    def test_not_enough_space(self, temp_workspace, monkeypatch):
        monkeypatch.setattr(shutil, "disk_usage", lambda path: DiskUsage(10000, 9000, 1000))
        with pytest.raises(PreconditionError) as exc_info:
            PreflightChecker().run_space_check(temp_workspace['library'], "copy", [1000])
        assert exc_info.value.failures[0].name == "space"

    def test_link_mode_needs_no_space(self, temp_workspace, monkeypatch):
        monkeypatch.setattr(shutil, "disk_usage", lambda path: DiskUsage(0, 0, 0))
        assert PreflightChecker().run_space_check(temp_workspace['library'], "link", [10 ** 12]) is None

    def test_existing_ancestor(self, temp_workspace):
        deep = temp_workspace['library'] / "a" / "b"
        assert existing_ancestor(deep) == temp_workspace['base'].absolute()

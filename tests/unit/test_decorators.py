"""
Unit tests for the shared decorators.
"""

import logging
from pathlib import Path

from music_catalog.utils.decorators import handle_errors, track_performance


class Exporter:
    def __init__(self):
        self.logger = logging.getLogger("tests.exporter")

    @handle_errors(log_level="warning", return_on_error="fallback")
    def export(self, target: Path):
        raise OSError("disk gone")

    @handle_errors()
    def ok(self):
        return 42

    @track_performance(threshold_ms=0)
    def slow(self):
        return "done"

    @track_performance(threshold_ms=60000)
    def fast(self):
        return "done"


class TestHandleErrors:

    def test_returns_fallback_and_logs_context(self, caplog):
        with caplog.at_level(logging.WARNING, logger="tests.exporter"):
            assert Exporter().export(Path("/indexes")) == "fallback"

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "Exporter.export (/indexes) failed: disk gone" in record.getMessage()

    def test_passes_through_results(self):
        assert Exporter().ok() == 42

    def test_plain_function_uses_module_logger(self, caplog):
        @handle_errors(return_on_error=0)
        def divide():
            return 1 / 0

        with caplog.at_level(logging.ERROR):
            assert divide() == 0
        assert "divide failed" in caplog.text


class TestTrackPerformance:

    def test_warns_over_threshold(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="tests.exporter"):
            assert Exporter().slow() == "done"
        assert any(r.levelno == logging.WARNING and "slow took" in r.getMessage() for r in caplog.records)

    def test_debug_under_threshold(self, caplog):
        with caplog.at_level(logging.DEBUG, logger="tests.exporter"):
            Exporter().fast()
        assert [r.levelno for r in caplog.records if "fast took" in r.getMessage()] == [logging.DEBUG]

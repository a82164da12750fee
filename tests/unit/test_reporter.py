"""
Unit tests for run statistics and the report writer.
"""

import json

from rich.console import Console

from music_catalog.utils.reporter import (
    FileOutcome,
    FileResult,
    RunReporter,
    RunStatistics,
    format_bytes,
    format_duration,
)


def _results(track_factory):
    track = track_factory("Moby", "Porcelain")
    return [
        FileResult("/s/a.mp3", FileOutcome.ORGANIZED, track=track, size_bytes=1000,
                    created_artist_dir=True, created_album_dir=True),
        FileResult("/s/b.mp3", FileOutcome.ORGANIZED, size_bytes=500, adopted=True),
        FileResult("/s/c.mp3", FileOutcome.DUPLICATE, existing_path="/s/a.mp3"),
        FileResult("/s/d.jpg", FileOutcome.SKIPPED, reason="unsupported format"),
        FileResult("/s/e.mp3", FileOutcome.SKIPPED, reason="below minimum size"),
        FileResult("/s/f.mp3", FileOutcome.FAILED, reason="permission denied"),
    ]


class TestRunStatistics:

    def test_counts(self, track_factory):
        stats = RunStatistics()
        for result in _results(track_factory):
            stats.record(result)

        assert stats.files_seen == 6
        assert stats.organized == 2
        assert stats.adopted == 1
        assert stats.duplicates == 1
        assert stats.skipped == 2
        assert stats.failed == 1
        assert stats.bytes_processed == 1500
        assert stats.artist_dirs_created == 1
        assert stats.skip_reasons == {"unsupported format": 1, "below minimum size": 1}
        assert stats.duplicate_pairs == [{'source_path': "/s/c.mp3", 'existing_path': "/s/a.mp3"}]
        assert stats.failures == [{'source_path': "/s/f.mp3", 'error': "permission denied"}]

    def test_outcomes_partition_files_seen(self, track_factory):
        stats = RunStatistics()
        for result in _results(track_factory):
            stats.record(result)
        assert stats.organized + stats.duplicates + stats.skipped + stats.failed == stats.files_seen

    def test_success_rate(self, track_factory):
        stats = RunStatistics()
        assert stats.success_rate == 100.0
        for result in _results(track_factory):
            stats.record(result)
        assert stats.success_rate == 33.33

    def test_recovered_track_counts_as_organized(self, track_factory):
        stats = RunStatistics()
        stats.record_recovered(track_factory("Moby", "Porcelain", size=700))
        assert stats.organized == 1
        assert stats.recovered == 1
        assert stats.bytes_processed == 700

    def test_planned_placements_recorded(self):
        stats = RunStatistics(mode="dry-run")
        stats.record(FileResult("/s/a.mp3", FileOutcome.ORGANIZED,
                                planned_path="/lib/A/Singles/a.mp3", conflicts=["/lib/A/Singles/x.mp3"]))
        assert stats.planned == [{
            'source_path': "/s/a.mp3",
            'target_path': "/lib/A/Singles/a.mp3",
            'conflicts': ["/lib/A/Singles/x.mp3"],
        }]

    def test_to_dict_sections(self, track_factory):
        stats = RunStatistics()
        for result in _results(track_factory):
            stats.record(result)
        stats.finish()

        data = stats.to_dict()

        assert data['file_processing']['total_files_found'] == 6
        assert data['file_processing']['skip_reasons'] == {"unsupported format": 1, "below minimum size": 1}
        assert data['organization_summary']['finished_at'] is not None
        assert data['storage_analysis']['bytes_processed'] == 1500
        assert json.loads(json.dumps(data)) == data


class TestFormatting:

    def test_format_duration(self):
        assert format_duration(5) == "5s"
        assert format_duration(125) == "2m 5s"
        assert format_duration(3725) == "1h 2m 5s"

    def test_format_bytes(self):
        assert format_bytes(512) == "512 B"
        assert format_bytes(2048) == "2.0 KB"
        assert format_bytes(3 * 1024 ** 3) == "3.0 GB"


class TestRunReporter:

    def test_write_json(self, tmp_path):
        stats = RunStatistics()
        path = RunReporter(Console(file=None, quiet=True)).write_json(stats, tmp_path / "out" / "run.json")

        data = json.loads(path.read_text(encoding='utf-8'))
        assert data['run_id'] == stats.run_id
        assert [p.name for p in (tmp_path / "out").iterdir()] == ["run.json"]

    def test_render_mentions_failures(self, track_factory):
        console = Console(record=True, width=120)
        stats = RunStatistics()
        for result in _results(track_factory):
            stats.record(result)

        RunReporter(console).render(stats)

        text = console.export_text()
        assert "Files found" in text
        assert "permission denied" in text

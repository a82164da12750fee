"""
Unit tests for cut sheet parsing and split command generation.
"""

import pytest

from music_catalog.modules.cue_sheet import (
    CueSheetError,
    CueSheetParser,
    CueTrack,
    cue_timestamp_to_seconds,
    format_command,
)

MIX_SHEET = '''REM GENRE Electronic
PERFORMER "DJ Example"
TITLE "Summer Mix 2020"
FILE "Summer Mix 2020.mp3" MP3
  TRACK 01 AUDIO
    TITLE "Opening"
    PERFORMER "Artist One"
    INDEX 01 00:00:00
  TRACK 02 AUDIO
    TITLE "Peak Time: Part 2"
    PERFORMER "Artist Two"
    INDEX 00 04:58:00
    INDEX 01 05:00:00
  TRACK 03 AUDIO
    TITLE "Closing"
    PERFORMER "Artist Three"
    INDEX 01 72:30:37
'''


@pytest.fixture
def sheet():
    return CueSheetParser().parse(MIX_SHEET)


class TestTimestamps:

    @pytest.mark.parametrize("timestamp,seconds", [
        ("00:00:00", 0.0),
        ("01:02:00", 62.0),
        ("00:00:75", None),
        ("00:01:15", 1.2),
        ("125:00:00", 7500.0),
    ])
    def test_conversion(self, timestamp, seconds):
        if seconds is None:
            with pytest.raises(CueSheetError):
                cue_timestamp_to_seconds(timestamp)
        else:
            assert cue_timestamp_to_seconds(timestamp) == pytest.approx(seconds)

    @pytest.mark.parametrize("timestamp", ["", "1:2", "aa:bb:cc", "00:60:00", "00:00:-1"])
    def test_malformed(self, timestamp):
        with pytest.raises(CueSheetError):
            cue_timestamp_to_seconds(timestamp)


class TestParse:

    def test_album_fields(self, sheet):
        assert sheet.performer == "DJ Example"
        assert sheet.title == "Summer Mix 2020"
        assert sheet.audio_file == "Summer Mix 2020.mp3"

    def test_tracks(self, sheet):
        assert [t.track_index for t in sheet.tracks] == [1, 2, 3]
        assert sheet.tracks[1].title == "Peak Time: Part 2"
        assert sheet.tracks[1].performer == "Artist Two"
        assert sheet.tracks[1].start_timestamp == "05:00:00"

    def test_durations_last_runs_to_end(self, sheet):
        durations = sheet.durations()
        assert durations[0] == pytest.approx(300.0)
        assert durations[1] == pytest.approx(4050.0 + 37 / 75, abs=1e-3)
        assert durations[2] is None

    def test_track_without_index_is_dropped(self, caplog):
        text = 'TRACK 01 AUDIO\n  TITLE "No Start"\nTRACK 02 AUDIO\n  INDEX 01 00:10:00\n'
        sheet = CueSheetParser().parse(text)
        assert [t.track_index for t in sheet.tracks] == [2]
        assert "no INDEX 01" in caplog.text

    def test_bad_index_raises(self):
        with pytest.raises(CueSheetError):
            CueSheetParser().parse('TRACK 01 AUDIO\n  INDEX 01 00:99:00\n')

    def test_defaults_without_header(self):
        sheet = CueSheetParser().parse('TRACK 01 AUDIO\n  INDEX 01 00:00:00\n')
        assert sheet.performer == "Unknown Artist"
        assert sheet.title == "Unknown Album"

    def test_parse_file_with_bom(self, tmp_path):
        path = tmp_path / "mix.cue"
        path.write_bytes(b"\xef\xbb\xbf" + MIX_SHEET.encode("utf-8"))
        assert CueSheetParser().parse_file(path).performer == "DJ Example"

    def test_parse_missing_file(self, tmp_path):
        with pytest.raises(CueSheetError):
            CueSheetParser().parse_file(tmp_path / "missing.cue")


class TestSplitCommands:

    def test_output_filename(self):
        assert CueTrack(2, "Peak Time: Part 2", "", "00:00:00").output_filename() == "02 - Peak Time Part 2.mp3"
        assert CueTrack(7, "???", "", "00:00:00").output_filename() == "07 - Track 07.mp3"

    def test_commands(self, sheet, tmp_path):
        commands = sheet.build_split_commands(tmp_path / "mix.mp3", tmp_path / "out")

        assert len(commands) == 3
        first = commands[0]
        assert first[:5] == ["ffmpeg", "-i", str(tmp_path / "mix.mp3"), "-ss", "0.000"]
        assert first[first.index("-t") + 1] == "300.000"
        assert "artist=Artist One" in first
        assert "album=Summer Mix 2020" in first
        assert first[-1] == str(tmp_path / "out" / "01 - Opening.mp3")
        assert "-t" not in commands[2]

    def test_format_command_quotes(self):
        assert format_command(["ffmpeg", "-i", "my mix.mp3"]) == "ffmpeg -i 'my mix.mp3'"

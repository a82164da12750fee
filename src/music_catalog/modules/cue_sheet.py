"""
Cut Sheet (CUE) Parsing

Reads the track layout of a continuous mix or compilation so it can be split
into individual files by an external encoder. Timestamps are MM:SS:FF with
75 frames per second.
"""

import logging
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from ..core.constants import CUE_FRAMES_PER_SECOND, CUE_SPLIT_BITRATE, CUE_SPLIT_CODEC


class CueSheetError(Exception):
    """Raised for unreadable cut sheets or malformed timestamps"""
    pass


TIMESTAMP = re.compile(r'^(\d+):(\d{1,2}):(\d{1,2})$')
QUOTED_VALUE = re.compile(r'^\s*(\w+)\s+"(.*)"')
FILE_LINE = re.compile(r'^\s*FILE\s+"(.*)"(?:\s+\S+)?\s*$', re.IGNORECASE)
TRACK_LINE = re.compile(r'^\s*TRACK\s+(\d+)\s+AUDIO\b', re.IGNORECASE)
INDEX_LINE = re.compile(r'^\s*INDEX\s+01\s+(\S+)', re.IGNORECASE)
UNSAFE_NAME_CHARACTERS = re.compile(r'[^A-Za-z0-9 _-]')


def cue_timestamp_to_seconds(timestamp: str) -> float:
    """
    Convert an MM:SS:FF timestamp to seconds.

    Minutes may exceed 59 (long mixes); seconds must be below 60 and frames
    below 75.
    """
    match = TIMESTAMP.match(timestamp.strip())
    if not match:
        raise CueSheetError(f"Malformed cue timestamp: {timestamp!r}")

    minutes, seconds, frames = (int(part) for part in match.groups())
    if seconds >= 60 or frames >= CUE_FRAMES_PER_SECOND:
        raise CueSheetError(f"Cue timestamp out of range: {timestamp!r}")

    return minutes * 60 + seconds + frames / CUE_FRAMES_PER_SECOND


def clean_name_part(value: str) -> str:
    value = UNSAFE_NAME_CHARACTERS.sub('', value)
    return re.sub(r'\s+', ' ', value).strip()


@dataclass
class CueTrack:
    """One track entry of a cut sheet"""
    track_index: int
    title: str
    performer: str
    start_timestamp: str

    @property
    def start_seconds(self) -> float:
        return cue_timestamp_to_seconds(self.start_timestamp)

    def output_filename(self) -> str:
        """Name the splitter gives this track: "NN - Title.mp3" """
        title = clean_name_part(self.title) or f"Track {self.track_index:02d}"
        return f"{self.track_index:02d} - {title}.mp3"


@dataclass
class CueSheet:
    """Parsed cut sheet"""
    performer: str = "Unknown Artist"
    title: str = "Unknown Album"
    audio_file: str = ""
    tracks: List[CueTrack] = field(default_factory=list)

    def durations(self) -> List[Optional[float]]:
        """Seconds per track; the last track runs to the end of the file (None)"""
        starts = [track.start_seconds for track in self.tracks]
        result: List[Optional[float]] = []
        for position, start in enumerate(starts):
            if position + 1 < len(starts):
                result.append(round(starts[position + 1] - start, 3))
            else:
                result.append(None)
        return result

    def build_split_commands(self, audio_path: Union[str, Path],
                             output_dir: Union[str, Path]) -> List[List[str]]:
        """
        Encoder invocations that would split the audio file, one per track.

        The commands are only built here; running them is up to the caller.
        """
        commands = []
        output_dir = Path(output_dir)
        for track, duration in zip(self.tracks, self.durations()):
            command = ["ffmpeg", "-i", str(audio_path), "-ss", f"{track.start_seconds:.3f}"]
            if duration is not None:
                command += ["-t", f"{duration:.3f}"]
            command += [
                "-acodec", CUE_SPLIT_CODEC,
                "-b:a", CUE_SPLIT_BITRATE,
                "-metadata", f"title={track.title}",
                "-metadata", f"artist={clean_name_part(track.performer) or self.performer}",
                "-metadata", f"album={self.title}",
                "-metadata", f"albumartist={self.performer}",
                "-metadata", f"track={track.track_index}",
                "-y", str(output_dir / track.output_filename()),
            ]
            commands.append(command)
        return commands


def format_command(command: List[str]) -> str:
    return " ".join(shlex.quote(part) for part in command)


class CueSheetParser:
    """Parser for the subset of the CUE format used by mix cut sheets"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def parse_file(self, cue_path: Union[str, Path]) -> CueSheet:
        cue_path = Path(cue_path)
        try:
            text = cue_path.read_text(encoding='utf-8-sig')
        except UnicodeDecodeError:
            text = cue_path.read_text(encoding='latin-1')
        except OSError as e:
            raise CueSheetError(f"Cannot read cut sheet {cue_path}: {e}") from e
        return self.parse(text)

    def parse(self, text: str) -> CueSheet:
        """
        Parse cut sheet text.

        Album-level PERFORMER and TITLE come before the first TRACK; the
        same keywords after a TRACK line belong to that track. Tracks
        without an INDEX 01 line are dropped with a warning.
        """
        sheet = CueSheet()
        current: Optional[CueTrack] = None
        pending: List[CueTrack] = []

        for line in text.splitlines():
            file_match = FILE_LINE.match(line)
            if file_match:
                sheet.audio_file = file_match.group(1)
                continue

            track_match = TRACK_LINE.match(line)
            if track_match:
                if current is not None:
                    pending.append(current)
                current = CueTrack(int(track_match.group(1)), "", "", "")
                continue

            index_match = INDEX_LINE.match(line)
            if index_match:
                if current is not None:
                    current.start_timestamp = index_match.group(1)
                continue

            value_match = QUOTED_VALUE.match(line)
            if not value_match:
                continue
            keyword, value = value_match.group(1).upper(), value_match.group(2)
            if keyword == "TITLE":
                if current is None:
                    sheet.title = value
                else:
                    current.title = value
            elif keyword == "PERFORMER":
                if current is None:
                    sheet.performer = value
                else:
                    current.performer = value

        if current is not None:
            pending.append(current)

        for track in pending:
            if not track.start_timestamp:
                self.logger.warning(f"Cut sheet track {track.track_index} has no INDEX 01, skipping")
                continue
            cue_timestamp_to_seconds(track.start_timestamp)
            sheet.tracks.append(track)

        self.logger.debug(f"Parsed cut sheet '{sheet.performer} - {sheet.title}' "
                          f"with {len(sheet.tracks)} tracks")
        return sheet

"""
Filename Classifier for Music Catalog

Derives (artist, title, album bucket) from a bare filename. Tags are never
read; the filename is the only input, so classification is lossy by nature
(featured artists are dropped) but always succeeds.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from ..core.constants import (
    ARTIST_TITLE_SEPARATOR,
    BUCKET_COMPILATIONS,
    BUCKET_LIVE,
    BUCKET_REMIXES,
    BUCKET_SINGLES,
    BUCKET_SINGLES_EDITS,
    UNKNOWN_ARTIST,
    UNTITLED,
)


@dataclass(frozen=True)
class Classification:
    """Result of classifying one filename"""
    artist: str
    title: str
    album_bucket: str


# "05 - ", "012-"
TRACK_NUMBER_PREFIX = re.compile(r'^\d+\s*-\s*')

# "Artist, Other", "Artist feat. Other", "Artist ft. Other"
SECONDARY_ARTIST = re.compile(r'(\s*,|\s+(?:feat(?:uring)?\b\.?|ft\.))\s*\S.*$', re.IGNORECASE)

# Version tags owned by the "Singles & Edits" bucket; removed before the
# remix rule, which otherwise matches any title containing "mix" or "edit"
EXTENDED_VERSION = re.compile(r'\b(?:extended|radio)[\s_-]+(?:mix|edit|version)\b', re.IGNORECASE)

BUCKET_RULES = (
    ('title', re.compile(r'remix|mix|edit|rework', re.IGNORECASE), BUCKET_REMIXES),
    ('title', re.compile(r'live|acoustic|unplugged', re.IGNORECASE), BUCKET_LIVE),
    ('filename', re.compile(r'compilation|collection|best[\s_-]of', re.IGNORECASE), BUCKET_COMPILATIONS),
    ('title', re.compile(r'extended|radio[\s_-]edit', re.IGNORECASE), BUCKET_SINGLES_EDITS),
)

ILLEGAL_CHARACTERS = re.compile(r'[<>:"/\\|?*\x00-\x1f\ud800-\udfff]')
WHITESPACE = re.compile(r'\s+')


def sanitize_component(value: str) -> str:
    """
    Make a string safe to use as a single path component.

    Illegal characters (including bytes of a filename that was not valid
    UTF-8) become underscores, whitespace runs collapse, and
    trailing dots are removed. A leading dot is replaced so the component
    never becomes a hidden file.
    """
    value = ILLEGAL_CHARACTERS.sub('_', value)
    value = WHITESPACE.sub(' ', value).strip()
    value = value.rstrip('. ').strip()
    if value.startswith('.'):
        value = '_' + value[1:]
    return value


class FilenameClassifier:
    """
    Heuristic filename classifier.

    Recognizes patterns like:
    - "05 - Daft Punk - One More Time.mp3"
    - "Artist feat. Guest - Title (Club Remix).flac"
    - "Artist - Title (Extended Mix).mp3"
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def classify(self, filename: str) -> Classification:
        """
        Classify a filename.

        Args:
            filename: Basename of the file; the extension is ignored

        Returns:
            Classification with sanitized artist, title and bucket label
        """
        basename = Path(filename).name
        stem = Path(basename).stem if Path(basename).suffix else basename
        remainder = TRACK_NUMBER_PREFIX.sub('', stem, count=1)

        if ARTIST_TITLE_SEPARATOR in remainder:
            left, right = remainder.split(ARTIST_TITLE_SEPARATOR, 1)
            artist = SECONDARY_ARTIST.sub('', left).strip()
            title = right.strip()
        else:
            self.logger.warning(f"No artist separator in '{basename}', filing under {UNKNOWN_ARTIST}")
            artist = UNKNOWN_ARTIST
            title = remainder

        bucket = self.bucket_for(title, basename)

        clean_artist = sanitize_component(artist)
        if not clean_artist:
            self.logger.warning(f"Artist of '{basename}' is empty after sanitizing")
            clean_artist = UNKNOWN_ARTIST

        clean_title = sanitize_component(title)
        if not clean_title:
            self.logger.warning(f"Title of '{basename}' is empty after sanitizing, using basename")
            clean_title = sanitize_component(stem) or UNTITLED

        return Classification(
            artist=clean_artist,
            title=clean_title,
            album_bucket=sanitize_component(bucket),
        )

    def bucket_for(self, title: str, filename: str) -> str:
        """Apply the ordered bucket rules; first match wins"""
        subjects = {
            'title': title,
            'filename': filename,
        }
        for subject, pattern, bucket in BUCKET_RULES:
            text = subjects[subject]
            if bucket == BUCKET_REMIXES:
                text = EXTENDED_VERSION.sub(' ', text)
            if pattern.search(text):
                return bucket
        return BUCKET_SINGLES

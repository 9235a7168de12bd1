import logging
import os
import re
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Optional

import exifread

from .. import config
from ..exceptions import MetadataReadError

_FILENAME_DATE_RE = re.compile(config.FILENAME_DATE_PATTERN)


def read_exif_tags(path: Path) -> Dict[str, object]:
    """
    Parses the EXIF container of a file with exifread.

    Returns an empty dict when the file simply carries no EXIF data.
    Raises MetadataReadError when the file can't be read or the container
    is corrupt.
    """
    try:
        with path.open('rb') as f:
            try:
                # details=False skips maker notes and thumbnails
                tags = exifread.process_file(f, details=False)
            except Exception as e:
                raise MetadataReadError(path, f"corrupt EXIF data: {e}") from e
    except OSError as e:
        raise MetadataReadError(path, str(e)) from e

    if not tags:
        logging.debug(f"No EXIF tags found for {path}")
        return {}
    return tags


def parse_exif_datetime(value) -> Optional[datetime]:
    """Parses an EXIF date string, usually "YYYY:MM:DD HH:MM:SS"."""
    dt_str = str(value).strip().strip('\x00')
    if not dt_str:
        return None

    # "YYYY:MM:DD" date part, optional time part, sub-seconds dropped
    dt_str = dt_str.replace(':', '-', 2)
    if '.' in dt_str:
        dt_str = dt_str.split('.')[0]

    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d"):
        try:
            return datetime.strptime(dt_str, fmt)
        except ValueError:
            continue
    return None


def exif_capture_date(tags: Dict[str, object]) -> Optional[date]:
    """First parsable date among config.DATE_TAGS, or None."""
    for tag in config.DATE_TAGS:
        if tag in tags:
            dt = parse_exif_datetime(tags[tag])
            if dt:
                return dt.date()
            logging.debug(f"Unparsable EXIF date in {tag}: {tags[tag]!s}")
    return None


def parse_filename_date(name: str) -> Optional[date]:
    """
    Extracts a date embedded in a file name (2022-11-01, 2022_11_01, 20221101).

    Candidates that are not real calendar dates (2021-02-30) are skipped.
    """
    for match in _FILENAME_DATE_RE.finditer(name):
        try:
            return date(int(match.group('year')), int(match.group('month')), int(match.group('day')))
        except ValueError:
            continue
    return None


def birth_time(stat_result: os.stat_result) -> Optional[datetime]:
    """
    Creation (birth) time from a stat result, in local time.

    Only some platforms/filesystems report it (macOS, BSD, Windows).
    """
    ts = getattr(stat_result, 'st_birthtime', None)
    if ts is None:
        return None
    return datetime.fromtimestamp(ts)

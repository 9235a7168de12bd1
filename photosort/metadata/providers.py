"""
Metadata providers.

A provider answers a fixed set of variable names for a FileHandle through
`lookup(name, handle)`, returning a str, an int, a date, or None when the
value is unavailable for that file. Providers never fail the run: missing
data is None, unreadable data raises MetadataReadError for the resolver to
downgrade.
"""
from datetime import date
from typing import Callable, Optional, Tuple, Union

from ..exceptions import MetadataReadError
from ..models import FileHandle
from .extract import birth_time, exif_capture_date, parse_filename_date

Value = Union[str, int, date]

DATE_FIELDS = ("year", "month", "day")


def split_date_field(name: str) -> Tuple[str, Optional[str]]:
    """'exif.date.year' -> ('exif.date', 'year'); 'exif.date' -> ('exif.date', None)"""
    base, _, last = name.rpartition('.')
    if base and last in DATE_FIELDS:
        return base, last
    return name, None


def extract_field(value: date, field: Optional[str]) -> Union[date, int]:
    if field is None:
        return value
    return getattr(value, field)


class PathProvider:
    """file.path, file.name, file.stem, file.extension: pure path operations."""

    names = ("file.path", "file.name", "file.stem", "file.extension")

    def lookup(self, name: str, handle: FileHandle) -> Optional[Value]:
        path = handle.path
        if name == "file.path":
            return str(path)
        if name == "file.name":
            return path.name
        if name == "file.stem":
            # "archive" has no extension, so no stem either
            return path.stem if path.suffix else None
        if name == "file.extension":
            return path.suffix[1:] if path.suffix else None
        raise KeyError(name)


class DateProvider:
    """
    Answers `<base>` with a date and `<base>.year|month|day` with an int.
    """

    def __init__(self, base: str, date_of: Callable[[FileHandle], Optional[date]]):
        self.base = base
        self.names = (base,) + tuple(f"{base}.{f}" for f in DATE_FIELDS)
        self._date_of = date_of

    def lookup(self, name: str, handle: FileHandle) -> Optional[Value]:
        base, field = split_date_field(name)
        if base != self.base:
            raise KeyError(name)
        value = self._date_of(handle)
        if value is None:
            return None
        return extract_field(value, field)

    def __repr__(self) -> str:
        return f"DateProvider({self.base!r})"


def _exif_date(handle: FileHandle) -> Optional[date]:
    return exif_capture_date(handle.exif.get())


def _filename_date(handle: FileHandle) -> Optional[date]:
    return parse_filename_date(handle.path.name)


def _creation_date(handle: FileHandle) -> Optional[date]:
    try:
        created = birth_time(handle.stat.get())
    except (OverflowError, OSError, ValueError) as e:
        raise MetadataReadError(handle.path, f"invalid creation time: {e}") from e
    return created.date() if created else None


path_provider = PathProvider()
exif_provider = DateProvider("exif.date", _exif_date)
filename_date_provider = DateProvider("file.name.date", _filename_date)
creation_date_provider = DateProvider("file.md.creation_date", _creation_date)

ALL_PROVIDERS = (path_provider, filename_date_provider, creation_date_provider, exif_provider)

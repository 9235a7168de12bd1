import os
import stat
import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from .exceptions import MetadataReadError
from .metadata.extract import read_exif_tags

T = TypeVar("T")

_UNSET = object()


class Memo(Generic[T]):
    """
    Resolved-on-first-use value. The loader runs at most once; its result,
    or the MetadataReadError it raised, is cached and replayed afterwards.
    """

    def __init__(self, loader: Callable[[], T]):
        self._loader = loader
        self._lock = threading.Lock()
        self._value = _UNSET
        self._error: Optional[MetadataReadError] = None

    def get(self) -> T:
        with self._lock:
            if self._value is _UNSET and self._error is None:
                try:
                    self._value = self._loader()
                except MetadataReadError as e:
                    self._error = e
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    @property
    def resolved(self) -> bool:
        return self._value is not _UNSET or self._error is not None


class FileHandle:
    """
    One source file going through the pipeline.

    Filesystem metadata and EXIF tags are fetched lazily and at most once.
    """

    def __init__(self, path: Path):
        self.path = Path(os.path.abspath(path))
        self.stat: Memo[os.stat_result] = Memo(self._read_stat)
        self.exif: Memo[Dict[str, object]] = Memo(lambda: read_exif_tags(self.path))
        # MetadataReadErrors downgraded to "unavailable" during resolution
        self.diagnostics: List[MetadataReadError] = []

    def _read_stat(self) -> os.stat_result:
        try:
            return self.path.stat()
        except OSError as e:
            raise MetadataReadError(self.path, str(e)) from e

    @property
    def is_dir(self) -> bool:
        try:
            return stat.S_ISDIR(self.stat.get().st_mode)
        except MetadataReadError:
            return False

    def __repr__(self) -> str:
        return f"FileHandle({str(self.path)!r})"


class OutcomeStatus(str, Enum):
    REPLICATED = "replicated"
    ALREADY_EXISTS = "already_exists"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class FileOutcome:
    """
    Result of running one file through the sort pipeline.
    """
    source: Path
    status: OutcomeStatus
    destination: Optional[Path] = None
    strategy: Optional[str] = None   # hardlink/softlink/copy when replicated
    error: Optional[str] = None      # reason when failed or skipped

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED


@dataclass
class SortReport:
    """
    Accumulator of file outcomes, safe to share between workers.

    Per-status counts always cover every recorded file. With
    `keep_successes=False` only failed outcomes are kept as objects, so a
    long-running watch stays bounded in memory.
    """
    outcomes: List[FileOutcome] = field(default_factory=list)
    keep_successes: bool = True
    _counts: Counter = field(default_factory=Counter, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self):
        self._counts.update(o.status for o in self.outcomes)

    def record(self, outcome: FileOutcome) -> None:
        with self._lock:
            self._counts[outcome.status] += 1
            if self.keep_successes or outcome.failed:
                self.outcomes.append(outcome)

    def merge(self, other: "SortReport") -> None:
        with other._lock:
            items = list(other.outcomes)
            counts = Counter(other._counts)
        with self._lock:
            self._counts.update(counts)
            self.outcomes.extend(o for o in items if self.keep_successes or o.failed)

    @property
    def failures(self) -> List[FileOutcome]:
        with self._lock:
            return [o for o in self.outcomes if o.failed]

    @property
    def ok(self) -> bool:
        return not self.failures

    def counts(self) -> Dict[OutcomeStatus, int]:
        with self._lock:
            return dict(self._counts)

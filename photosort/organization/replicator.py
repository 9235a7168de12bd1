import filecmp
import logging
import os
import shutil
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Iterator, Optional, Tuple

from ..exceptions import ConfigurationError, ReplicationConflictError, ReplicationError


class ReplicationStrategy(str, Enum):
    HARDLINK = "hardlink"
    SOFTLINK = "softlink"
    COPY = "copy"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ReplicationPlan:
    """
    Ordered, de-duplicated strategies. Left to right is the attempt order.
    """
    strategies: Tuple[ReplicationStrategy, ...]

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "ReplicationPlan":
        strategies = []
        for name in names:
            try:
                strategy = ReplicationStrategy(str(name).strip().lower())
            except ValueError:
                valid = ", ".join(s.value for s in ReplicationStrategy)
                raise ConfigurationError(f"unknown replication strategy {name!r} (expected one of: {valid})")
            if strategy not in strategies:
                strategies.append(strategy)

        if not strategies:
            raise ConfigurationError("at least one replication strategy is required")
        return cls(tuple(strategies))

    def __str__(self) -> str:
        return " -> ".join(s.value for s in self.strategies)


@dataclass(frozen=True)
class ReplicationResult:
    strategy: Optional[ReplicationStrategy]   # None when nothing had to be done
    already_exists: bool = False


def _hardlink(src: Path, dst: Path):
    os.link(src, dst)


def _softlink(src: Path, dst: Path):
    os.symlink(src.resolve(), dst)


def _copy(src: Path, dst: Path):
    try:
        shutil.copy2(src, dst)
    except BaseException:
        # Never leave a truncated copy behind
        if dst.exists() or dst.is_symlink():
            dst.unlink()
        raise


_REPLICATORS = {
    ReplicationStrategy.HARDLINK: _hardlink,
    ReplicationStrategy.SOFTLINK: _softlink,
    ReplicationStrategy.COPY: _copy,
}


class ReplicationEngine:
    """
    Places a source file at its destination, trying each strategy of the
    plan in order until one succeeds.

    Destinations sharing a parent directory are handled one at a time, so
    concurrent workers never race on the same directory or file.
    """

    def __init__(self, plan: ReplicationPlan, overwrite: bool = False):
        self.plan = plan
        self.overwrite = overwrite
        # directory -> [lock, number of threads using it]
        self._locks: Dict[Path, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _directory_lock(self, directory: Path) -> Iterator[None]:
        """Holds the lock of `directory`; the entry is dropped once no thread uses it."""
        with self._locks_guard:
            entry = self._locks.get(directory)
            if entry is None:
                entry = self._locks[directory] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[directory]

    def replicate(self, source: Path, destination: Path) -> ReplicationResult:
        """
        Raises:
            ReplicationConflictError: destination holds a different file and
                overwriting is disabled.
            ReplicationError: every strategy of the plan failed.
        """
        source = Path(source)
        destination = Path(os.path.abspath(destination))

        with self._directory_lock(destination.parent):
            if destination.exists() or destination.is_symlink():
                if self._same_content(source, destination):
                    logging.info(f"{destination} already exists, skipping {source}")
                    return ReplicationResult(strategy=None, already_exists=True)
                if not self.overwrite:
                    raise ReplicationConflictError(
                        source, destination, "destination exists with different content"
                    )
                self._remove_existing(source, destination)

            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ReplicationError(source, destination, f"cannot create {destination.parent}: {e}") from e

            last_error: Optional[OSError] = None
            for strategy in self.plan.strategies:
                try:
                    _REPLICATORS[strategy](source, destination)
                except OSError as e:
                    logging.warning(f"replicator error ({strategy} {source} -> {destination}): {e}")
                    last_error = e
                    continue

                logging.info(f"file {source} replicated to {destination} ({strategy})")
                return ReplicationResult(strategy=strategy)

        raise ReplicationError(source, destination, str(last_error)) from last_error

    def _same_content(self, source: Path, destination: Path) -> bool:
        """True when destination is the source itself (link) or a byte-identical copy."""
        try:
            if os.path.samefile(source, destination):
                return True
            if not destination.is_file():
                return False
            return filecmp.cmp(source, destination, shallow=False)
        except OSError:
            # Dangling symlink, unreadable file...
            return False

    def _remove_existing(self, source: Path, destination: Path):
        if destination.is_dir() and not destination.is_symlink():
            raise ReplicationError(source, destination, "destination is a directory, refusing to overwrite")
        logging.info(f"removing {destination} to replicate {source}")
        try:
            destination.unlink()
        except OSError as e:
            raise ReplicationError(source, destination, f"cannot remove existing file: {e}") from e

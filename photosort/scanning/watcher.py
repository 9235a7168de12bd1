"""
Filesystem watch adapter.

Turns watchdog notifications into a plain stream of "file created" paths.
A file being written produces a burst of created/modified/closed events;
the debouncer only lets a path through once it has been quiet for
`settle_delay` seconds.
"""
import logging
import os
import threading
import time
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .. import config
from ..exceptions import ConfigurationError


class EventDebouncer:
    def __init__(self, settle_delay: float = config.DEFAULT_SETTLE_DELAY):
        self.settle_delay = settle_delay
        self._last_seen: Dict[Path, float] = {}
        self._lock = threading.Lock()

    def push(self, path: Path, now: Optional[float] = None):
        now = time.monotonic() if now is None else now
        with self._lock:
            self._last_seen[Path(path)] = now

    def pop_ready(self, now: Optional[float] = None) -> List[Path]:
        """Paths quiet for at least settle_delay, oldest first. Each is returned once."""
        now = time.monotonic() if now is None else now
        with self._lock:
            ready = [p for p, seen in self._last_seen.items() if now - seen >= self.settle_delay]
            ready.sort(key=lambda p: self._last_seen[p])
            for p in ready:
                del self._last_seen[p]
        return ready

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_seen)


class CreatedFileHandler(FileSystemEventHandler):
    """Feeds file (never directory) activity into a debouncer."""

    def __init__(self, debouncer: EventDebouncer):
        super().__init__()
        self.debouncer = debouncer

    def _push(self, raw_path):
        path = Path(os.fsdecode(raw_path))
        logging.debug(f"activity on {path}")
        self.debouncer.push(path)

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self._push(event.src_path)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self._push(event.src_path)

    def on_closed(self, event: FileSystemEvent):
        if not event.is_directory:
            self._push(event.src_path)

    def on_moved(self, event: FileSystemEvent):
        # A file renamed into place (browser downloads, rsync) counts as created
        if not event.is_directory:
            self._push(event.dest_path)


def watch_sources(sources: Iterable[Path],
                  stop_event: threading.Event,
                  settle_delay: float = config.DEFAULT_SETTLE_DELAY,
                  poll_interval: float = config.WATCH_POLL_INTERVAL) -> Iterator[Path]:
    """
    Yields settled file paths under `sources` until `stop_event` is set.
    """
    debouncer = EventDebouncer(settle_delay)
    handler = CreatedFileHandler(debouncer)
    observer = Observer()

    for src in sources:
        if not Path(src).is_dir():
            raise ConfigurationError(f"cannot watch {src}: not a directory")
        logging.debug(f"adding {src} to watch list")
        observer.schedule(handler, str(src), recursive=True)

    observer.start()
    logging.info("start watching events")
    try:
        while not stop_event.is_set():
            stop_event.wait(poll_interval)
            for path in debouncer.pop_ready():
                yield path
    finally:
        pending = len(debouncer)
        if pending:
            logging.warning(f"stopping with {pending} file(s) not yet settled, they were not sorted")
        observer.stop()
        observer.join(timeout=10)
        logging.info("stopped watching events")

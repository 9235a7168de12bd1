import logging
import os
import re
from pathlib import Path
from typing import Iterator, Optional, Set


class SourceWalker:
    """
    Enumerates the regular files under a source root.

    Symlinked directories are followed, but a directory reached twice
    (through a link or a cycle) is only walked once.
    """

    def __init__(self, ignore_regex: Optional[re.Pattern] = None):
        self.ignore_regex = ignore_regex

    def is_ignored(self, path: Path) -> bool:
        return bool(self.ignore_regex and self.ignore_regex.search(str(path)))

    def iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir for speed."""
        visited: Set[str] = set()
        stack = [Path(root)]
        while stack:
            current = stack.pop()

            real = os.path.realpath(current)
            if real in visited:
                logging.debug(f"Already walked {real}, skipping {current}")
                continue
            visited.add(real)

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Cannot read directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                path = Path(e.path)
                if self.is_ignored(path):
                    logging.debug(f"Ignoring {path}")
                    continue
                try:
                    if e.is_dir(follow_symlinks=True):
                        dirs.append(path)
                    elif e.is_file(follow_symlinks=True):
                        files.append(path)
                    elif e.is_symlink():
                        logging.warning(f"Skipping dangling symlink {path}")
                except OSError as err:
                    logging.warning(f"Cannot stat {path}: {err}")

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f

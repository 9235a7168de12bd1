"""
Configuration constants and config-file loading for photosort.
"""
import logging
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigurationError

# --- Metadata Parsing ---
# Tried in order, the first parsable one wins.
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]

# RFC3339-like date embedded in a file name: 2022-11-01, 2022_11_01, 20221101
FILENAME_DATE_PATTERN = r'(?P<year>[0-9]{4})[-_]?(?P<month>0[1-9]|1[0-2])[-_]?(?P<day>0[1-9]|[12][0-9]|3[01])'

# --- Replication ---
DEFAULT_REPLICATORS = ["hardlink", "softlink", "copy"]

# --- Watch Mode ---
# Seconds a file must stay quiet before it is sorted (partial writes).
DEFAULT_SETTLE_DELAY = 2.0
# How often the event loop wakes up to check for settled files and cancellation.
WATCH_POLL_INTERVAL = 0.5

# --- Performance ---
DEFAULT_MAX_WORKERS = 1


@dataclass
class SortSettings:
    """
    Run settings, merged from the config file and the command line.
    """
    template: Optional[str] = None
    sources: List[Path] = field(default_factory=list)
    replicators: List[str] = field(default_factory=lambda: list(DEFAULT_REPLICATORS))
    overwrite: bool = False
    ignore_regex: Optional[re.Pattern] = None
    max_workers: int = DEFAULT_MAX_WORKERS
    settle_delay: float = DEFAULT_SETTLE_DELAY


# key -> accepted python types
_CONFIG_KEYS: Dict[str, tuple] = {
    "template": (str,),
    "sources": (list,),
    "replicators": (list,),
    "overwrite": (bool,),
    "ignore_regex": (str,),
    "max_workers": (int,),
    "settle_delay": (int, float),
}


def compile_ignore_regex(pattern: Optional[str]) -> Optional[re.Pattern]:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"invalid ignore regex {pattern!r}: {e}") from e


def load_config_file(config_path: Path) -> SortSettings:
    """
    Reads a TOML config file into SortSettings.

    Relative source paths are resolved against the config file's directory.
    """
    try:
        with config_path.open("rb") as fp:
            data: Dict[str, Any] = tomllib.load(fp)
    except OSError as e:
        raise ConfigurationError(f"cannot read config file {config_path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"invalid TOML in {config_path}: {e}") from e

    for key, value in data.items():
        if key not in _CONFIG_KEYS:
            raise ConfigurationError(f"unknown config key {key!r} in {config_path}")
        # bool is an int subclass, don't let `max_workers = true` through
        if isinstance(value, bool) and bool not in _CONFIG_KEYS[key]:
            raise ConfigurationError(f"config key {key!r} has wrong type")
        if not isinstance(value, _CONFIG_KEYS[key]):
            raise ConfigurationError(f"config key {key!r} has wrong type")

    settings = SortSettings()
    base_dir = config_path.parent

    if "template" in data:
        settings.template = data["template"]
    if "sources" in data:
        settings.sources = [base_dir / Path(str(s)).expanduser() for s in data["sources"]]
    if "replicators" in data:
        settings.replicators = [str(r) for r in data["replicators"]]
    if "overwrite" in data:
        settings.overwrite = data["overwrite"]
    if "ignore_regex" in data:
        settings.ignore_regex = compile_ignore_regex(data["ignore_regex"])
    if "max_workers" in data:
        settings.max_workers = data["max_workers"]
    if "settle_delay" in data:
        settings.settle_delay = float(data["settle_delay"])

    logging.debug(f"Loaded config file {config_path}: {settings}")
    return settings

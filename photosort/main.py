import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional

from . import config, reporting
from .config import SortSettings
from .core import Sorter
from .exceptions import ConfigurationError
from .organization.replicator import ReplicationPlan
from .scanning.watcher import watch_sources
from .template.engine import Template

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_CONFIG_ERROR = 2


def setup_logging(verbose: bool, log_file: Optional[Path] = None):
    """Sets up logging to the console and, optionally, to a file."""
    log_level = logging.DEBUG if verbose else logging.INFO

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("exifread").setLevel(logging.ERROR)
    logging.getLogger("watchdog").setLevel(logging.WARNING)


def _add_common_args(p: argparse.ArgumentParser):
    p.add_argument("sources", nargs="*", type=Path, help="Source files/directories to sort")
    p.add_argument("-c", "--config", type=Path, default=None, help="Load settings from a TOML config file")
    p.add_argument("-t", "--template", default=None,
                   help="Destination path template, e.g. '/photos/:date.year:/:date.month:/:file.name:'")
    p.add_argument("-r", "--replicator", dest="replicators", action="append", default=None,
                   help="Replication strategy (hardlink, softlink, copy); repeat to set the fallback order "
                        f"(default: {' '.join(config.DEFAULT_REPLICATORS)})")
    p.add_argument("-o", "--overwrite", action="store_true", default=None,
                   help="Replace destination files holding different content")
    p.add_argument("--ignore", dest="ignore_regex", default=None, help="Skip paths matching this regex")
    p.add_argument("-j", "--max-workers", type=int, default=None, help="Number of files sorted in parallel")
    p.add_argument("--report-csv", type=Path, default=None, help="Write a per-file report CSV")
    p.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="photosort", description="A pictures/files organizer.")
    sub = p.add_subparsers(dest="command", required=True)

    sort_p = sub.add_parser("sort", help="Sort all files once")
    _add_common_args(sort_p)

    watch_p = sub.add_parser("watch", help="Watch sources and sort files as they are added")
    _add_common_args(watch_p)
    watch_p.add_argument("--settle-delay", type=float, default=None,
                         help=f"Seconds a new file must stay unchanged before it is sorted "
                              f"(default: {config.DEFAULT_SETTLE_DELAY})")

    return p.parse_args(argv)


def build_settings(args: argparse.Namespace) -> SortSettings:
    """Config file values, overridden by command-line values."""
    settings = config.load_config_file(args.config) if args.config else SortSettings()

    if args.template is not None:
        settings.template = args.template
    if args.sources:
        settings.sources = list(args.sources)
    if args.replicators:
        settings.replicators = args.replicators
    if args.overwrite is not None:
        settings.overwrite = args.overwrite
    if args.ignore_regex is not None:
        settings.ignore_regex = config.compile_ignore_regex(args.ignore_regex)
    if args.max_workers is not None:
        settings.max_workers = args.max_workers
    if getattr(args, "settle_delay", None) is not None:
        settings.settle_delay = args.settle_delay

    if not settings.template:
        raise ConfigurationError("a destination template is required (--template or config file)")
    if not settings.sources:
        raise ConfigurationError("at least one source path is required")
    if settings.max_workers < 1:
        raise ConfigurationError("--max-workers must be at least 1")
    return settings


def build_sorter(settings: SortSettings) -> Sorter:
    template = Template.parse(settings.template)
    plan = ReplicationPlan.from_names(settings.replicators)
    return Sorter(
        template,
        plan,
        overwrite=settings.overwrite,
        ignore_regex=settings.ignore_regex,
        max_workers=settings.max_workers,
    )


def run_watch(sorter: Sorter, settings: SortSettings):
    stop_event = threading.Event()

    def _stop(signum, frame):
        logging.info(f"Received signal {signum}, stopping after the current file...")
        stop_event.set()

    previous = {sig: signal.signal(sig, _stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        events = watch_sources(settings.sources, stop_event, settle_delay=settings.settle_delay)
        return sorter.watch(events, stop_event)
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose, args.log_file)

    # 1. Configuration: any error here aborts before a single file is touched
    try:
        settings = build_settings(args)
        sorter = build_sorter(settings)
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    logging.info("=== photosort started ===")
    logging.info(f"Sources:  {', '.join(str(s) for s in settings.sources)}")
    logging.info(f"Template: {sorter.template}")

    # 2. Execution
    try:
        if args.command == "watch":
            report = run_watch(sorter, settings)
        else:
            report = sorter.sort(settings.sources)
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return EXIT_FAILURES

    reporting.log_summary(report)
    if args.report_csv:
        reporting.write_csv(report, args.report_csv)

    return EXIT_OK if report.ok else EXIT_FAILURES


if __name__ == "__main__":
    sys.exit(main())

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional

from tqdm import tqdm

from . import config
from .exceptions import ReplicationError, ResolutionError
from .models import FileHandle, FileOutcome, OutcomeStatus, SortReport
from .organization.replicator import ReplicationEngine, ReplicationPlan
from .scanning.filesystem import SourceWalker
from .template.engine import Template
from .template.variables import VariableResolver


class Sorter:
    """
    Runs files through the sort pipeline:
    render destination -> replicate -> record outcome.

    Per-file problems are recorded in the SortReport and never abort the run.
    """

    def __init__(self,
                 template: Template,
                 plan: ReplicationPlan,
                 overwrite: bool = False,
                 ignore_regex: Optional[re.Pattern] = None,
                 max_workers: int = config.DEFAULT_MAX_WORKERS,
                 resolver: Optional[VariableResolver] = None):
        self.template = template
        self.plan = plan
        self.resolver = resolver or VariableResolver()
        self.replicator = ReplicationEngine(plan, overwrite=overwrite)
        self.walker = SourceWalker(ignore_regex)
        self.max_workers = max(1, max_workers)

    def sort_file(self, path: Path, report: Optional[SortReport] = None) -> FileOutcome:
        handle = FileHandle(path)
        outcome = self._process(handle)
        if report is not None:
            report.record(outcome)
        return outcome

    def _process(self, handle: FileHandle) -> FileOutcome:
        source = handle.path

        if self.walker.is_ignored(source):
            logging.debug(f"Ignoring {source}")
            return FileOutcome(source, OutcomeStatus.SKIPPED, error="matched ignore regex")

        if handle.is_dir:
            logging.warning(f"Skipping {source}: is a directory")
            return FileOutcome(source, OutcomeStatus.SKIPPED, error="is a directory")

        # 1. Render destination
        try:
            destination = self.template.render(handle, self.resolver)
        except ResolutionError as e:
            reason = "; ".join([str(e)] + [str(d) for d in handle.diagnostics])
            logging.error(f"failed to render destination of {source}: {reason}")
            return FileOutcome(source, OutcomeStatus.FAILED, error=reason)

        # 2. Replicate
        try:
            result = self.replicator.replicate(source, destination)
        except ReplicationError as e:
            logging.error(str(e))
            return FileOutcome(source, OutcomeStatus.FAILED, destination=destination, error=str(e))

        if result.already_exists:
            return FileOutcome(source, OutcomeStatus.ALREADY_EXISTS, destination=destination)
        return FileOutcome(source, OutcomeStatus.REPLICATED, destination=destination,
                           strategy=result.strategy.value)

    def collect_files(self, sources: Iterable[Path], report: SortReport) -> List[Path]:
        files = []
        for src in sources:
            src = Path(src)
            if src.is_dir():
                logging.debug(f"sorting directory {src}")
                files.extend(self.walker.iter_files(src))
            elif src.exists():
                files.append(src)
            else:
                logging.error(f"Source {src} does not exist")
                report.record(FileOutcome(src, OutcomeStatus.FAILED, error="source does not exist"))
        return files

    def sort(self, sources: Iterable[Path], progress: bool = True) -> SortReport:
        """
        Batch mode: sorts every regular file under the given sources once.
        """
        report = SortReport()
        files = self.collect_files(sources, report)
        logging.info(f"Sorting {len(files)} files (template={self.template}, replicators={self.plan})")

        if self.max_workers <= 1:
            for path in tqdm(files, desc="Sorting", disable=not progress):
                self.sort_file(path, report)
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                outcomes = pool.map(self._process, (FileHandle(p) for p in files))
                for outcome in tqdm(outcomes, total=len(files), desc="Sorting", disable=not progress):
                    report.record(outcome)

        return report

    def watch(self, events: Iterable[Path], stop_event: Optional[threading.Event] = None) -> SortReport:
        """
        Watch mode: sorts each path of an (endless) event stream.

        `stop_event` is checked between files; a file is never interrupted
        half-way through replication. The report keeps counts for every
        file but outcome objects for failures only.
        """
        report = SortReport(keep_successes=False)
        for path in events:
            if stop_event is not None and stop_event.is_set():
                break
            path = Path(path)
            if not path.exists():
                # Temporary file, already gone
                logging.debug(f"{path} vanished before it could be sorted")
                continue
            self.sort_file(path, report)
            if stop_event is not None and stop_event.is_set():
                break
        return report

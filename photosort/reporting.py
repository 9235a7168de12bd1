import csv
import logging
from pathlib import Path

from .models import OutcomeStatus, SortReport

CSV_HEADERS = [
    "Source Path",
    "Status",
    "Strategy",
    "Destination Path",
    "Notes",
]


def log_summary(report: SortReport) -> None:
    """Logs per-status totals, then every failed file with its reason."""
    counts = report.counts()
    total = sum(counts.values())
    parts = [f"{counts.get(status, 0)} {status.value}" for status in OutcomeStatus]
    logging.info(f"Sorted {total} files: {', '.join(parts)}")

    failures = report.failures
    if failures:
        logging.error(f"{len(failures)} file(s) failed:")
        for outcome in failures:
            logging.error(f"  {outcome.source}: {outcome.error}")


def write_csv(report: SortReport, output_csv: Path) -> None:
    """Writes one row per processed file."""
    output_csv = Path(output_csv)
    output_csv.parent.mkdir(parents=True, exist_ok=True)

    with open(output_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADERS)
        for outcome in report.outcomes:
            writer.writerow([
                str(outcome.source),
                outcome.status.value,
                outcome.strategy or "",
                str(outcome.destination) if outcome.destination else "",
                outcome.error or "",
            ])

    logging.info(f"Report written to {output_csv}")

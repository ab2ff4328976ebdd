import csv
import logging
import math
from pathlib import Path
from typing import List, Union

from .models import RunReport


def format_run_summary(report: RunReport) -> List[str]:
    """
    Summary lines for a finished run. Always includes counts and elapsed time,
    so a partially failed run is legible from its own output.
    """
    lines = [
        "Processing complete!",
        f"   Processed: {report.processed}",
        f"   Failed: {report.failed}",
        f"   Total time: {math.ceil(report.elapsed)}s ({report.throughput:.1f} images/sec)",
    ]
    if report.failures:
        lines.append("   Failures:")
        for path, error in report.failures:
            lines.append(f"     {path.name}: {error}")
    return lines


def log_run_summary(report: RunReport):
    for line in format_run_summary(report):
        if report.failed and line.startswith("     "):
            logging.warning(line)
        else:
            logging.info(line)


def write_failure_csv(report: RunReport, output_csv: Union[str, Path]) -> int:
    """
    Writes one row per failed item (path, error). Returns the number of rows.
    """
    with open(output_csv, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["Source Path", "Error"])
        for path, error in report.failures:
            writer.writerow([str(path), error])

    logging.info(f"Failure report written: {output_csv} ({len(report.failures)} rows)")
    return len(report.failures)

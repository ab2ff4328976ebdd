import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from tqdm import tqdm

from . import config
from .models import RunReport


class BatchScheduler:
    """
    Drives candidates through a worker in fixed-size sequential batches.

    Items within a batch run concurrently; the next batch starts only when
    every item of the current one has succeeded or failed. A failing item is
    logged and counted, never fatal.
    """

    def __init__(self,
                 worker: Callable[[Path], Any],
                 batch_size: int = config.BATCH_SIZE,
                 progress: bool = True,
                 clock: Callable[[], float] = time.monotonic):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.worker = worker
        self.batch_size = batch_size
        self.progress = progress
        self.clock = clock

    @staticmethod
    def preview(candidates: Sequence[Path]) -> RunReport:
        """Dry run: lists what would be processed, touches nothing."""
        logging.info("Files that would be processed:")
        for path in candidates:
            logging.info(f"  {path}")
        logging.info(f"Total: {len(candidates)} files")
        return RunReport(total=len(candidates))

    def run(self, candidates: Sequence[Path]) -> RunReport:
        report = RunReport(total=len(candidates))
        if not candidates:
            return report

        batches = [candidates[i:i + self.batch_size] for i in range(0, len(candidates), self.batch_size)]
        total_batches = len(batches)
        start = self.clock()

        bar = tqdm(total=len(candidates), desc="Ingesting", unit="img", disable=not self.progress)
        try:
            for batch_num, batch in enumerate(batches, start=1):
                first = (batch_num - 1) * self.batch_size + 1
                logging.info(
                    f"Batch {batch_num}/{total_batches} "
                    f"({first}-{first + len(batch) - 1}/{len(candidates)})"
                )

                self._run_batch(batch, report)
                bar.update(len(batch))

                report.elapsed = self.clock() - start
                logging.info(f"  Progress: {report.processed} processed, {report.failed} failed | "
                             f"{report.throughput:.1f} img/sec | ETA: {self._format_eta(report.eta())}")
        finally:
            bar.close()

        report.elapsed = self.clock() - start
        return report

    def _run_batch(self, batch: List[Path], report: RunReport):
        # A fresh executor per batch: the batch is the unit of backpressure
        with ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="ingest") as executor:
            futures = [(path, executor.submit(self.worker, path)) for path in batch]

            for path, future in futures:
                try:
                    future.result()
                    report.processed += 1
                except Exception as e:
                    report.record_failure(path, str(e))
                    logging.error(f"  Failed: {path} - {e}")

    @staticmethod
    def _format_eta(eta: Optional[float]) -> str:
        if eta is None:
            return "unknown"
        return f"{math.ceil(eta)}s"

"""
Bounded pool of long-lived exiftool processes.

Each worker thread borrows one ExifToolHelper at a time, so at most `size`
exiftool processes exist no matter how many items a batch submits.
"""
import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from exiftool import ExifToolHelper

from .. import config
from ..exceptions import MetadataExtractionError


def default_helper_factory() -> ExifToolHelper:
    # No global -n or -G: numeric output is requested per tag (config.EXIFTOOL_TAGS)
    helper = ExifToolHelper(common_args=[])
    helper.run()
    return helper


class ExifToolPool:
    def __init__(self,
                 size: int = config.EXIFTOOL_PROCS,
                 helper_factory: Optional[Callable[[], Any]] = None,
                 tags: Optional[List[str]] = None):
        if size < 1:
            raise ValueError("ExifToolPool size must be >= 1")
        self.size = size
        self._factory = helper_factory or default_helper_factory
        self.tags = list(tags or config.EXIFTOOL_TAGS)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._idle: "queue.SimpleQueue[Any]" = queue.SimpleQueue()
        self._helpers: List[Any] = []
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._executor is not None

    @property
    def process_count(self) -> int:
        """Number of exiftool processes currently alive."""
        with self._lock:
            return len(self._helpers)

    def start(self) -> "ExifToolPool":
        if self._executor is None:
            logging.debug(f"Starting exiftool pool (max {self.size} processes)")
            self._executor = ThreadPoolExecutor(max_workers=self.size, thread_name_prefix="exiftool")
        return self

    def submit(self, path: Path) -> "Future[Dict[str, Any]]":
        if self._executor is None:
            raise MetadataExtractionError("ExifTool pool is not running")
        return self._executor.submit(self._read, Path(path))

    def read(self, path: Path) -> Dict[str, Any]:
        """Submit and wait."""
        return self.submit(path).result()

    def shutdown(self):
        """Waits for pending reads, then terminates every exiftool process."""
        if self._executor is None:
            return
        self._executor.shutdown(wait=True)
        self._executor = None

        with self._lock:
            helpers, self._helpers = self._helpers, []
        self._idle = queue.SimpleQueue()

        for helper in helpers:
            self._terminate(helper)
        logging.debug(f"Exiftool pool stopped ({len(helpers)} processes terminated)")

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    # --- Internal ---

    def _read(self, path: Path) -> Dict[str, Any]:
        helper = self._acquire()
        try:
            results = helper.get_tags([str(path)], tags=self.tags)
        except Exception:
            # State unknown after a failed call; never hand it out again
            self._discard(helper)
            raise
        self._release(helper)

        if not results:
            raise MetadataExtractionError(f"exiftool returned no metadata for {path}")
        return results[0]

    def _acquire(self) -> Any:
        while True:
            try:
                helper = self._idle.get_nowait()
            except queue.Empty:
                break
            if getattr(helper, "running", True):
                return helper
            # Process exited while idle
            self._discard(helper)

        # The executor never runs more than `size` tasks, so this stays bounded
        helper = self._factory()
        with self._lock:
            self._helpers.append(helper)
        return helper

    def _release(self, helper: Any):
        """Returns a healthy helper to the idle queue; drops a dead one."""
        if getattr(helper, "running", True):
            self._idle.put(helper)
            return
        self._discard(helper)

    def _discard(self, helper: Any):
        with self._lock:
            if helper in self._helpers:
                self._helpers.remove(helper)
        self._terminate(helper)

    @staticmethod
    def _terminate(helper: Any):
        try:
            if getattr(helper, "running", True):
                helper.terminate()
        except Exception as e:
            logging.debug(f"Failed to terminate exiftool process: {e}")

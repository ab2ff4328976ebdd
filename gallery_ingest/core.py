import logging
import shutil
from typing import Callable, List, Optional

from .config import IngestSettings
from .database.db import open_catalog
from .database.ops import CatalogWriter
from .derivatives.images import DerivativeGenerator
from .exceptions import RemoteSyncError
from .ingest import PhotoIngestor
from .metadata.exiftool_pool import ExifToolPool
from .metadata.extract import MetadataExtractor
from .models import RunReport
from .reporting import log_run_summary
from .scanning.filesystem import DirectoryScanner
from .scheduler import BatchScheduler
from .sync.remote import RemoteSyncAdapter

ConfirmFn = Callable[[str], bool]


class IngestionApp:
    def __init__(self,
                 settings: IngestSettings,
                 sync: Optional[RemoteSyncAdapter] = None,
                 pool_factory: Optional[Callable[[int], ExifToolPool]] = None,
                 progress: bool = True):
        self.settings = settings
        self.sync = sync or RemoteSyncAdapter()
        self.pool_factory = pool_factory or (lambda size: ExifToolPool(size=size))
        self.progress = progress

    def summary_lines(self) -> List[str]:
        s = self.settings
        lines = [
            f"  Mode:      {s.mode}",
            f"  Dry run:   {s.dry_run}",
            f"  Transfer:  {s.transfer_mode}",
            f"  Source:    {s.source_dir}",
            f"  Output:    {s.images_dir}",
            f"  Catalog:   {s.catalog_path}",
        ]
        if s.sync_enabled:
            lines.append(f"  Sync:      {s.ssh_host}:{s.destination_dir}")
        else:
            lines.append("  Sync:      skipped (local mode)")
        return lines

    def run(self, confirm: ConfirmFn) -> Optional[RunReport]:
        """
        Executes one ingestion run.
        1. Confirm (a "no" returns None with no side effects)
        2. Scan (fatal on any error)
        3. Pull catalog (production)
        4. Process in batches
        5. Reconcile catalog against stored images
        6. Push + clean staging (production)
        """
        s = self.settings

        logging.info("--- Photo Ingestion ---")
        for line in self.summary_lines():
            logging.info(line)

        if not confirm("Proceed with ingestion?"):
            logging.info("Aborted.")
            return None

        # --- Step 1: Scanning ---
        logging.info(f"Scanning {s.source_dir}...")
        scanner = DirectoryScanner(s.extensions, s.marker_suffix)
        candidates = scanner.scan(s.source_dir)

        if s.dry_run:
            return BatchScheduler.preview(candidates)

        s.images_dir.mkdir(parents=True, exist_ok=True)
        s.thumbnails_dir.mkdir(parents=True, exist_ok=True)

        # --- Step 2: Remote Catalog ---
        catalog_pulled = True
        if s.sync_enabled:
            catalog_pulled = self.sync.pull_catalog(s.ssh_host, s.remote_catalog_path, s.catalog_path)
            if not catalog_pulled:
                logging.warning("Remote catalog unavailable; results will stay in staging and nothing will be pushed.")

        # --- Step 3: Processing ---
        db_manager = open_catalog(s.catalog_path)
        with db_manager as conn:
            catalog = CatalogWriter(conn, write_lock=db_manager.write_lock)

            if not candidates:
                logging.info("No images found in SOURCE_DIR.")
                report = RunReport()
            else:
                with self.pool_factory(s.exiftool_procs) as pool:
                    ingestor = PhotoIngestor(
                        source_root=s.source_dir,
                        images_dir=s.images_dir,
                        thumbnails_dir=s.thumbnails_dir,
                        extractor=MetadataExtractor(pool, read_keywords=s.embedded_keywords),
                        derivatives=DerivativeGenerator(thumbnail_width=s.thumbnail_width),
                        catalog=catalog,
                        move=s.transfer_mode == 'move',
                    )
                    scheduler = BatchScheduler(ingestor, batch_size=s.batch_size, progress=self.progress)
                    report = scheduler.run(candidates)

            # --- Step 4: Reconciliation ---
            if catalog_pulled:
                self._reconcile(catalog)

        log_run_summary(report)

        # --- Step 5: Remote Push ---
        if s.sync_enabled and catalog_pulled:
            self._push_and_cleanup()

        return report

    def _reconcile(self, catalog: CatalogWriter):
        s = self.settings
        logging.info("Syncing catalog with images on disk...")

        remote_files: List[str] = []
        if s.sync_enabled:
            try:
                remote_files = self.sync.list_remote(s.ssh_host, s.remote_images_dir)
            except RemoteSyncError as e:
                logging.error(f"Cannot list remote images, skipping reconciliation: {e}")
                return

        catalog.reconcile(s.images_dir, extra_filenames=remote_files)

    def _push_and_cleanup(self):
        s = self.settings
        results = [
            self.sync.push_directory(s.images_dir, s.ssh_host, s.remote_images_dir),
            self.sync.push_directory(s.thumbnails_dir, s.ssh_host, s.remote_thumbnails_dir),
            self.sync.push_catalog(s.catalog_path, s.ssh_host, s.remote_catalog_path),
        ]

        if all(results):
            logging.info("Cleaning up staging directory...")
            shutil.rmtree(s.local_root, ignore_errors=True)
            logging.info("Staging directory removed.")
        else:
            logging.warning(f"Remote sync incomplete; staging kept at {s.local_root}")

import json
import logging
import shutil
import threading
from pathlib import Path
from typing import List, Optional

from .database.ops import CatalogWriter
from .derivatives.images import DerivativeGenerator, approximate_aspect_ratio
from .exceptions import IdentityCollisionError
from .metadata.extract import MetadataExtractor
from .models import PhotoRecord
from .scanning.filesystem import derive_keywords
from .scanning.identity import compute_identity, stored_filename, thumbnail_filename
from . import config


class PhotoIngestor:
    """
    Runs one candidate file through every stage:
    probe -> metadata -> identity -> thumbnail + placeholder -> store original -> upsert.

    Raises on any non-metadata failure; the scheduler counts it and moves on.
    """

    def __init__(self,
                 source_root: Path,
                 images_dir: Path,
                 thumbnails_dir: Path,
                 extractor: MetadataExtractor,
                 derivatives: DerivativeGenerator,
                 catalog: CatalogWriter,
                 move: bool = False):
        self.source_root = Path(source_root)
        self.images_dir = Path(images_dir)
        self.thumbnails_dir = Path(thumbnails_dir)
        self.extractor = extractor
        self.derivatives = derivatives
        self.catalog = catalog
        self.move = move

        # Identities claimed by this run
        self._seen = set()
        self._seen_lock = threading.Lock()

    def __call__(self, path: Path) -> PhotoRecord:
        return self.process(path)

    def process(self, path: Path) -> PhotoRecord:
        path = Path(path)
        filename = path.name

        # 1. Original dimensions and format
        info = self.derivatives.probe(path)

        # 2. Metadata (degrades to all-null, never raises)
        metadata = self.extractor.extract(path)

        # 3. Identity drives every output name
        identity = compute_identity(filename, metadata.date_captured)
        original_name = stored_filename(identity, path.suffix)
        thumb_name = thumbnail_filename(identity)

        self._claim(identity, path)

        stored_path = self.images_dir / original_name
        if stored_path.exists():
            logging.warning(f"Duplicate found: {filename} -> {identity} (already exists)")

        # 4. Derivatives from the source, before it is moved
        self.derivatives.thumbnail(path, self.thumbnails_dir / thumb_name)
        placeholder = self.derivatives.placeholder(path)

        # 5. Store the original under its identity name
        shutil.copy2(path, stored_path)

        record = PhotoRecord(
            identity=identity,
            filename=filename,
            original_path=original_name,
            thumbnail_path=f"{config.THUMBNAILS_SUBDIR}/{thumb_name}",
            blurhash=placeholder,
            width=info.width,
            height=info.height,
            aspect_ratio=approximate_aspect_ratio(info.width, info.height),
            file_size=info.file_size,
            mime_type=info.mime_type,
            metadata=metadata,
            keywords=self._encode_keywords(derive_keywords(path, self.source_root), metadata.keywords),
        )

        # 6. Catalog
        inserted = self.catalog.upsert(identity, record.to_row())
        logging.debug(f"{'Inserted' if inserted else 'Updated'} {identity} ({filename})")

        # Only drop the source once the catalog has the row
        if self.move:
            path.unlink()

        return record

    def _claim(self, identity: str, path: Path):
        """
        Reserves identity for the rest of the run. A second file with the same
        identity is refused before anything is written; its source stays put.
        """
        with self._seen_lock:
            if identity not in self._seen:
                self._seen.add(identity)
                return
        logging.warning(f"Duplicate in this run: {path} -> {identity}; source kept, nothing written")
        raise IdentityCollisionError(f"Identity {identity} already ingested in this run")

    @staticmethod
    def _encode_keywords(folder_tags: List[str], embedded: List[str]) -> Optional[str]:
        tags = list(dict.fromkeys(folder_tags + list(embedded)))
        return json.dumps(tags) if tags else None

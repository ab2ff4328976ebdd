import sqlite3
import logging
import threading
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set

from ..exceptions import CatalogError
from .schema import PHOTO_COLUMNS


def utc_now_epoch() -> int:
    return int(datetime.now(UTC).timestamp())


class CatalogWriter:
    """
    The only component that mutates `photos` rows.

    Per identity: absent -> present (first upsert) -> present (refreshed on
    every later upsert) -> absent (reconcile, once its file is gone).
    """

    def __init__(self,
                 conn: sqlite3.Connection,
                 write_lock: Optional[threading.Lock] = None,
                 clock: Optional[Callable[[], int]] = None):
        self.conn = conn
        self.write_lock = write_lock or threading.Lock()
        self.clock = clock or utc_now_epoch

    def upsert(self, identity: str, fields: Mapping[str, Any]) -> bool:
        """
        Inserts the row for identity, or replaces every field of the existing
        one and refreshes updated_at. Returns True when a row was inserted.

        Timestamps are unix seconds. updated_at always moves forward, even
        when two upserts land in the same second.
        """
        unknown = set(fields) - set(PHOTO_COLUMNS)
        if unknown:
            raise CatalogError(f"Unknown catalog columns: {sorted(unknown)}")

        values = {col: fields.get(col) for col in PHOTO_COLUMNS}
        now = self.clock()

        with self.write_lock:
            try:
                with self.conn:
                    cur = self.conn.cursor()
                    cur.execute("SELECT id, updated_at FROM photos WHERE uuid = ?", (identity,))
                    row = cur.fetchone()

                    if row is None:
                        columns = ('uuid',) + PHOTO_COLUMNS + ('created_at', 'updated_at')
                        placeholders = ", ".join("?" for _ in columns)
                        cur.execute(
                            f"INSERT INTO photos ({', '.join(columns)}) VALUES ({placeholders})",
                            (identity, *values.values(), now, now),
                        )
                        return True

                    previous = row[1]
                    if isinstance(previous, int) and previous >= now:
                        now = previous + 1

                    assignments = ", ".join(f"{col} = ?" for col in PHOTO_COLUMNS)
                    cur.execute(
                        f"UPDATE photos SET {assignments}, updated_at = ? WHERE uuid = ?",
                        (*values.values(), now, identity),
                    )
                    return False
            except sqlite3.Error as e:
                raise CatalogError(f"Upsert failed for {identity}: {e}") from e

    def reconcile(self, output_dir: Path, extra_filenames: Iterable[str] = ()) -> int:
        """
        Deletes every row whose identity has no backing file (matched by
        filename stem) in output_dir. An empty or missing directory means no
        row is valid. Returns the number of rows removed.

        extra_filenames are treated as present too (production runs pass the
        remote image listing, since staging only holds this run's files).
        """
        on_disk = self._stems_on_disk(Path(output_dir))
        on_disk.update(Path(name).stem for name in extra_filenames)

        with self.write_lock:
            try:
                with self.conn:
                    db_identities = self._identities()
                    stale = sorted(db_identities - on_disk)
                    for identity in stale:
                        self.conn.execute("DELETE FROM photos WHERE uuid = ?", (identity,))
                        logging.info(f"  Removed stale catalog row: {identity}")
            except sqlite3.Error as e:
                raise CatalogError(f"Reconciliation failed: {e}") from e

        logging.info(
            f"  Catalog rows: {len(db_identities)}, Images on disk: {len(on_disk)}, "
            f"Stale rows removed: {len(stale)}"
        )
        return len(stale)

    # --- Read Helpers ---

    def get(self, identity: str) -> Optional[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM photos WHERE uuid = ?", (identity,))
        row = cur.fetchone()
        if row is None:
            return None
        return {desc[0]: value for desc, value in zip(cur.description, row)}

    def identities(self) -> Set[str]:
        return self._identities()

    def count(self) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM photos")
        return cur.fetchone()[0]

    def _identities(self) -> Set[str]:
        cur = self.conn.cursor()
        cur.execute("SELECT uuid FROM photos")
        return {r[0] for r in cur.fetchall()}

    @staticmethod
    def _stems_on_disk(output_dir: Path) -> Set[str]:
        if not output_dir.is_dir():
            logging.warning(f"Output directory {output_dir} does not exist; treating it as empty.")
            return set()
        return {p.stem for p in output_dir.iterdir() if p.is_file()}

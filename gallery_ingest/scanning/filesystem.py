import os
import logging
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set, Tuple

from .. import config
from ..exceptions import ScanError


class DirectoryScanner:
    def __init__(self,
                 extensions: Optional[Iterable[str]] = None,
                 marker_suffix: str = config.DEFAULT_MARKER_SUFFIX,
                 follow_symlinks: bool = False):
        self.extensions = {e.lower() for e in (extensions or config.DEFAULT_IMAGE_EXTENSIONS)}
        self.marker_suffix = marker_suffix
        self.follow_symlinks = follow_symlinks

    def scan(self, root: Path) -> List[Path]:
        """
        Returns every candidate file under root (any depth).

        A candidate has an allowed extension and a stem ending in the marker
        suffix. Any error listing a directory aborts the scan with ScanError;
        an incomplete candidate list would silently under-ingest.
        """
        root = Path(root)
        if not root.is_dir():
            raise ScanError(f"Source directory not found or not a directory: {root}")

        candidates = [p for p in self._iter_files(root) if self.is_candidate(p)]
        logging.info(f"Scan complete. Found {len(candidates)} candidate files under {root}")
        return candidates

    def is_candidate(self, path: Path) -> bool:
        if path.suffix.lower() not in self.extensions:
            return False
        return path.stem.endswith(self.marker_suffix)

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir, no recursion."""
        visited: Set[Tuple[int, int]] = set()
        stack = [root]
        while stack:
            current = stack.pop()

            if self.follow_symlinks:
                key = self._dir_key(current)
                if key in visited:
                    raise ScanError(f"Symlink cycle detected at {current}")
                visited.add(key)

            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                raise ScanError(f"Cannot read directory {current}: {e}") from e

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name.lower())

            dirs = []
            files = []
            for e in entries:
                if e.is_dir(follow_symlinks=self.follow_symlinks):
                    dirs.append(Path(e.path))
                elif e.is_file(follow_symlinks=self.follow_symlinks):
                    files.append(Path(e.path))

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)

            for f in files:
                yield f

    @staticmethod
    def _dir_key(path: Path) -> Tuple[int, int]:
        try:
            st = path.stat()
        except OSError as e:
            raise ScanError(f"Cannot stat directory {path}: {e}") from e
        return st.st_dev, st.st_ino


def derive_keywords(path: Path, root: Path) -> List[str]:
    """
    Folder segments between root and the file, e.g.
    root/trips/japan/x.jpg -> ["trips", "japan"].
    """
    relative = Path(path).relative_to(root)
    return [part for part in relative.parent.parts if part not in ('', '.')]

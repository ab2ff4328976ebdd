from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Tuple


def to_epoch_seconds(dt: datetime) -> int:
    """Unix seconds, the catalog's timestamp format. Naive values are taken as local time."""
    return int(dt.timestamp())


@dataclass
class ExtractedMetadata:
    """
    Camera metadata read from a file. Every field is independently optional;
    a failed read yields ExtractedMetadata.empty().
    """
    camera: Optional[str] = None
    lens: Optional[str] = None
    date_captured: Optional[datetime] = None
    iso: Optional[int] = None
    shutter_speed: Optional[str] = None
    aperture: Optional[float] = None
    focal_length: Optional[float] = None
    rating: Optional[int] = None
    label: Optional[str] = None

    # Embedded keywords (only read when enabled)
    keywords: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls) -> "ExtractedMetadata":
        return cls()

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) in (None, []) for f in fields(self))


@dataclass
class PhotoRecord:
    """
    One catalog row, keyed by identity.
    """
    identity: str
    filename: str
    original_path: str
    thumbnail_path: str
    blurhash: str
    width: int
    height: int
    aspect_ratio: float
    file_size: Optional[int] = None
    mime_type: Optional[str] = None

    metadata: ExtractedMetadata = field(default_factory=ExtractedMetadata)

    # JSON array text, or None when the file sits directly under the source root
    keywords: Optional[str] = None

    def to_row(self) -> dict:
        """Column name -> value, excluding identity and timestamps."""
        m = self.metadata
        return {
            'filename': self.filename,
            'original_path': self.original_path,
            'thumbnail_path': self.thumbnail_path,
            'blurhash': self.blurhash,
            'width': self.width,
            'height': self.height,
            'aspect_ratio': self.aspect_ratio,
            'camera': m.camera,
            'lens': m.lens,
            'date_captured': to_epoch_seconds(m.date_captured) if m.date_captured else None,
            'iso': m.iso,
            'shutter_speed': m.shutter_speed,
            'aperture': m.aperture,
            'focal_length': m.focal_length,
            'keywords': self.keywords,
            'rating': m.rating,
            'label': m.label,
            'file_size': self.file_size,
            'mime_type': self.mime_type,
        }


@dataclass
class RunReport:
    """
    Counters for one ingestion run. Exists only for console/log output.
    """
    total: int = 0
    processed: int = 0
    failed: int = 0
    elapsed: float = 0.0
    failures: List[Tuple[Path, str]] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return self.processed + self.failed

    @property
    def remaining(self) -> int:
        return max(self.total - self.completed, 0)

    @property
    def throughput(self) -> float:
        """Successfully processed items per second."""
        if self.elapsed <= 0:
            return 0.0
        return self.processed / self.elapsed

    def eta(self) -> Optional[float]:
        """Seconds left at the observed rate, or None before any item succeeded."""
        rate = self.throughput
        if rate <= 0:
            return None
        return self.remaining / rate

    def record_failure(self, path: Path, error: str):
        self.failed += 1
        self.failures.append((path, error))

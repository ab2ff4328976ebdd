import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .. import config
from ..models import ExtractedMetadata
from .exiftool_pool import ExifToolPool


class MetadataExtractor:
    """
    Reads camera metadata through a shared ExifToolPool.

    Different encoders populate different tag names, so most fields take the
    first non-empty value from a list of aliases (see config).
    """

    def __init__(self, pool: ExifToolPool, read_keywords: bool = False):
        self.pool = pool
        self.read_keywords = read_keywords

    def extract(self, path: Path) -> ExtractedMetadata:
        """
        Returns the metadata for path. Never raises: any failure (corrupt file,
        unsupported format, exiftool crash) yields an all-null record.
        """
        try:
            tags = self.pool.read(path)
            return self.from_tags(tags)
        except Exception as e:
            logging.warning(f"Metadata extraction failed for {path}: {e}")
            return ExtractedMetadata.empty()

    def from_tags(self, tags: Dict[str, Any]) -> ExtractedMetadata:
        """Maps a raw exiftool tag dict (see config.EXIFTOOL_TAGS) onto ExtractedMetadata."""
        camera = " ".join(
            str(v).strip() for v in (tags.get('Make'), tags.get('Model')) if self._present(v)
        ).strip() or None

        lens = self._first(tags, config.LENS_TAGS)

        date_captured = None
        for tag in config.DATE_TAGS:
            if self._present(tags.get(tag)):
                date_captured = self._parse_flexible_date(str(tags[tag]))
                if date_captured:
                    break

        return ExtractedMetadata(
            camera=camera,
            lens=str(lens).strip() if lens is not None else None,
            date_captured=date_captured,
            iso=self._to_int(tags.get('ISO')),
            shutter_speed=self._format_shutter(self._first(tags, config.SHUTTER_TAGS)),
            aperture=self._to_float(self._first(tags, config.APERTURE_TAGS)),
            focal_length=self._to_float(tags.get('FocalLength')),
            rating=self._parse_rating(tags),
            label=self._parse_label(self._first(tags, config.LABEL_TAGS)),
            keywords=self._parse_keywords(tags) if self.read_keywords else [],
        )

    # --- Field Helpers ---

    @staticmethod
    def _present(value: Any) -> bool:
        return value is not None and str(value).strip() != ""

    def _first(self, tags: Dict[str, Any], aliases: Iterable[str]) -> Any:
        for alias in aliases:
            value = tags.get(alias)
            if self._present(value):
                return value
        return None

    @staticmethod
    def _to_int(value: Any) -> Optional[int]:
        if value is None:
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _to_float(value: Any) -> Optional[float]:
        if value is None:
            return None
        try:
            # Formatted values look like "50.0 mm"
            return float(str(value).split()[0])
        except (TypeError, ValueError, IndexError):
            return None

    def _format_shutter(self, value: Any) -> Optional[str]:
        """0.004 -> '1/250', 2.0 -> '2'. Already formatted strings pass through."""
        if value is None:
            return None
        seconds = self._to_float(value)
        if seconds is None or seconds <= 0:
            return str(value).strip() or None
        if seconds < 1:
            return f"1/{round(1 / seconds)}"
        return f"{seconds:g}"

    def _parse_rating(self, tags: Dict[str, Any]) -> Optional[int]:
        rating = self._to_int(tags.get('Rating'))
        if rating is None:
            percent = self._to_int(tags.get('RatingPercent'))
            if percent is not None:
                rating = round(percent / 20)
        if rating is None or not 0 <= rating <= 5:
            return None
        return rating

    @staticmethod
    def _parse_label(value: Any) -> Optional[str]:
        if value is None:
            return None
        wanted = str(value).strip().lower()
        for label in config.COLOR_LABELS:
            if label.lower() == wanted:
                return label
        return None

    def _parse_keywords(self, tags: Dict[str, Any]) -> List[str]:
        raw = self._first(tags, config.KEYWORD_TAGS)
        if raw is None:
            return []
        values = raw if isinstance(raw, (list, tuple)) else str(raw).split(',')
        keywords = [str(v).strip() for v in values if str(v).strip()]
        return list(dict.fromkeys(keywords))

    def _parse_flexible_date(self, dt_str: str) -> Optional[datetime]:
        """
        Handles ISO strings and exiftool's "YYYY:MM:DD HH:MM:SS[.ss][+TZ]".
        """
        if not dt_str:
            return None

        clean = dt_str.replace("UTC", "").strip()
        if clean.startswith("0000"):
            return None

        # 1. Try ISO format (e.g. 2020-01-01T12:00:00)
        try:
            return datetime.fromisoformat(clean)
        except ValueError:
            pass

        # 2. EXIF style: swap the date colons, then retry ISO (keeps offsets)
        clean_exif = clean.replace(":", "-", 2)
        try:
            return datetime.fromisoformat(clean_exif)
        except ValueError:
            pass

        # 3. Drop sub-second precision and any suffix
        try:
            return datetime.strptime(clean_exif[:19], "%Y-%m-%d %H:%M:%S")
        except ValueError:
            pass

        return None

import hashlib
from datetime import datetime, timezone
from typing import Optional

from .. import config


def format_capture_time(date_captured: datetime) -> str:
    """
    UTC with millisecond precision and a 'Z' suffix, e.g. 2024-01-15T10:30:00.000Z.
    Naive values are taken as local time.
    """
    utc = date_captured.astimezone(timezone.utc).replace(tzinfo=None)
    return f"{utc.isoformat(timespec='milliseconds')}Z"


def compute_identity(filename: str, date_captured: Optional[datetime]) -> str:
    """
    Deterministic identity for a photo, derived from its name and capture time.

    SHA-256 over "<filename>-<UTC timestamp or 'no-date'>", truncated to
    IDENTITY_LENGTH hex chars. The result is the dedup/upsert key and the stem
    of the stored original and thumbnail filenames. The same instant gives the
    same identity whatever offset it was recorded with.

    Two different images sharing a filename and capture time get the same identity.
    """
    date_str = format_capture_time(date_captured) if date_captured else config.NO_DATE_SENTINEL
    h = hashlib.sha256(f"{filename}-{date_str}".encode('utf-8'))
    return h.hexdigest()[:config.IDENTITY_LENGTH]


def stored_filename(identity: str, ext: str) -> str:
    return f"{identity}{ext}"


def thumbnail_filename(identity: str) -> str:
    return f"{config.THUMBNAIL_PREFIX}{identity}{config.THUMBNAIL_EXT}"

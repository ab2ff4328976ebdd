"""
Configuration constants and run settings for the ingestion pipeline.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from .exceptions import ConfigurationError

# --- File Selection ---
DEFAULT_IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.webp', '.tiff', '.gif', '.bmp')

# Files flagged as "prepared" by the export step carry this suffix on their stem
DEFAULT_MARKER_SUFFIX = "_exported_for_viewing_locally"

# --- Identity ---
IDENTITY_LENGTH = 32
NO_DATE_SENTINEL = "no-date"

# --- Derivatives ---
THUMBNAIL_WIDTH = 300
THUMBNAIL_QUALITY = 85
THUMBNAIL_PREFIX = "thumb_"
THUMBNAIL_EXT = ".jpg"

PLACEHOLDER_GRID = (32, 32)
BLURHASH_COMPONENTS_X = 4
BLURHASH_COMPONENTS_Y = 3

# (ratio, label) pairs, checked in order
COMMON_ASPECT_RATIOS = [
    (1.0, '1:1'),
    (1.33, '4:3'),
    (1.5, '3:2'),
    (1.78, '16:9'),
    (2.35, '21:9'),
    (0.8, '4:5'),
    (0.67, '2:3'),
    (0.56, '9:16'),
]
ASPECT_RATIO_TOLERANCE = 0.05

# --- Metadata ---
COLOR_LABELS = ('Red', 'Yellow', 'Green', 'Blue', 'Purple')

# Tag aliases, first non-empty wins
DATE_TAGS = ['DateTimeOriginal', 'CreateDate']
LENS_TAGS = ['LensModel', 'LensID']
SHUTTER_TAGS = ['ShutterSpeed', 'ExposureTime']
APERTURE_TAGS = ['FNumber', 'Aperture']
LABEL_TAGS = ['Label', 'ColorLabel']
KEYWORD_TAGS = ['Subject', 'Keywords']

# Tags requested from exiftool. A '#' suffix asks for the raw numeric value
# (0.004 rather than "1/250"); the rest stay as printed text so LensID
# resolves to a lens name instead of a lookup code.
NUMERIC_TAGS = ['ISO', 'FocalLength', 'Rating', 'RatingPercent'] + SHUTTER_TAGS + APERTURE_TAGS
TEXT_TAGS = ['Make', 'Model'] + DATE_TAGS + LENS_TAGS + LABEL_TAGS + KEYWORD_TAGS
EXIFTOOL_TAGS = [f"{tag}#" for tag in NUMERIC_TAGS] + TEXT_TAGS

# --- Scheduling ---
BATCH_SIZE = 20
EXIFTOOL_PROCS = 10

# --- Layout ---
IMAGES_SUBDIR = "images"
THUMBNAILS_SUBDIR = "thumbnails"
STAGING_DIR = ".staging"
CATALOG_FILENAME = "sqlite.db"
REMOTE_IMAGES_SUBDIR = "public/images"
REMOTE_THUMBNAILS_SUBDIR = "public/thumbnails"

MODES = ('local', 'production')
TRANSFER_MODES = ('copy', 'move')


@dataclass(frozen=True)
class IngestSettings:
    """
    Everything a run needs, resolved once at startup.
    """
    source_dir: Path
    destination_dir: str
    mode: str = 'local'
    dry_run: bool = False
    transfer_mode: str = 'move'
    ssh_host: Optional[str] = None
    database_url: Optional[str] = None
    extensions: Tuple[str, ...] = DEFAULT_IMAGE_EXTENSIONS
    marker_suffix: str = DEFAULT_MARKER_SUFFIX
    thumbnail_width: int = THUMBNAIL_WIDTH
    batch_size: int = BATCH_SIZE
    exiftool_procs: int = EXIFTOOL_PROCS
    embedded_keywords: bool = False
    staging_dir: Path = Path(STAGING_DIR)

    @property
    def is_production(self) -> bool:
        return self.mode == 'production'

    @property
    def sync_enabled(self) -> bool:
        """Production runs pull from and push to the remote host."""
        return self.is_production

    @property
    def local_root(self) -> Path:
        """Where images/thumbnails are written for this run."""
        if self.is_production:
            return Path(self.staging_dir).expanduser().resolve()
        return Path(self.destination_dir).expanduser().resolve()

    @property
    def images_dir(self) -> Path:
        return self.local_root / IMAGES_SUBDIR

    @property
    def thumbnails_dir(self) -> Path:
        return self.local_root / THUMBNAILS_SUBDIR

    @property
    def catalog_path(self) -> str:
        if self.is_production:
            return str(self.local_root / CATALOG_FILENAME)
        return str(self.database_url)

    @property
    def remote_catalog_path(self) -> str:
        return f"{self.destination_dir.rstrip('/')}/{CATALOG_FILENAME}"

    @property
    def remote_images_dir(self) -> str:
        return f"{self.destination_dir.rstrip('/')}/{REMOTE_IMAGES_SUBDIR}"

    @property
    def remote_thumbnails_dir(self) -> str:
        return f"{self.destination_dir.rstrip('/')}/{REMOTE_THUMBNAILS_SUBDIR}"


def parse_bool(value: Optional[str], name: str, default: bool = False) -> bool:
    if value is None or value.strip() == "":
        return default
    v = value.strip().lower()
    if v in ('1', 'true', 'yes', 'on'):
        return True
    if v in ('0', 'false', 'no', 'off'):
        return False
    raise ConfigurationError(f"{name} must be true/false, got {value!r}")


def parse_int(value: Optional[str], name: str, default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if parsed < 1:
        raise ConfigurationError(f"{name} must be >= 1, got {parsed}")
    return parsed


def parse_extensions(value: Optional[str]) -> Tuple[str, ...]:
    if not value or not value.strip():
        return DEFAULT_IMAGE_EXTENSIONS
    exts = []
    for raw in value.split(','):
        ext = raw.strip().lower()
        if not ext:
            continue
        exts.append(ext if ext.startswith('.') else f".{ext}")
    return tuple(exts)


def load_settings(env: Optional[Mapping[str, str]] = None, **overrides) -> IngestSettings:
    """
    Resolves environment variables (plus explicit overrides from the CLI)
    into an IngestSettings. Raises ConfigurationError when a required value
    is missing or malformed.
    """
    env = os.environ if env is None else env

    def get(name: str) -> Optional[str]:
        if overrides.get(name) is not None:
            return str(overrides[name])
        return env.get(name)

    source = get('SOURCE_DIR')
    if not source:
        raise ConfigurationError("SOURCE_DIR is required")

    destination = get('DESTINATION_DIRECTORY')
    if not destination:
        raise ConfigurationError("DESTINATION_DIRECTORY is required")

    mode = (get('INGEST_MODE') or 'local').strip().lower()
    if mode not in MODES:
        raise ConfigurationError(f"INGEST_MODE must be one of {MODES}, got {mode!r}")

    transfer_mode = (get('TRANSFER_MODE') or 'move').strip().lower()
    if transfer_mode not in TRANSFER_MODES:
        raise ConfigurationError(f"TRANSFER_MODE must be one of {TRANSFER_MODES}, got {transfer_mode!r}")

    ssh_host = get('SSH_HOST') or None
    database_url = get('DATABASE_URL') or None

    if mode == 'production' and not ssh_host:
        raise ConfigurationError("Production mode requires SSH_HOST")
    if mode == 'local' and not database_url:
        raise ConfigurationError("Local mode requires DATABASE_URL")

    return IngestSettings(
        source_dir=Path(source).expanduser().resolve(),
        destination_dir=destination,
        mode=mode,
        dry_run=parse_bool(get('DRY_RUN'), 'DRY_RUN'),
        transfer_mode=transfer_mode,
        ssh_host=ssh_host,
        database_url=database_url,
        extensions=parse_extensions(get('IMAGE_EXTENSIONS')),
        marker_suffix=get('MARKER_SUFFIX') or DEFAULT_MARKER_SUFFIX,
        thumbnail_width=parse_int(get('THUMBNAIL_WIDTH'), 'THUMBNAIL_WIDTH', THUMBNAIL_WIDTH),
        batch_size=parse_int(get('BATCH_SIZE'), 'BATCH_SIZE', BATCH_SIZE),
        exiftool_procs=parse_int(get('EXIFTOOL_PROCS'), 'EXIFTOOL_PROCS', EXIFTOOL_PROCS),
        embedded_keywords=parse_bool(get('EMBEDDED_KEYWORDS'), 'EMBEDDED_KEYWORDS'),
        staging_dir=Path(get('STAGING_DIR') or STAGING_DIR),
    )

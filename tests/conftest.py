import pytest
import sqlite3
import time
from pathlib import Path
from PIL import Image
from gallery_ingest.database.schema import init_schema
from gallery_ingest.database.ops import CatalogWriter

MARKER = "_exported_for_viewing_locally"


@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:", check_same_thread=False)
    init_schema(c)
    try:
        yield c
    finally:
        c.close()


@pytest.fixture
def catalog(conn):
    """Returns a CatalogWriter attached to the in-memory DB."""
    return CatalogWriter(conn)


def sample_fields(**overrides):
    """A complete set of catalog columns for a fake photo."""
    fields = {
        'filename': 'photo.jpg',
        'original_path': 'photo.jpg',
        'thumbnail_path': 'thumbnails/thumb_photo.jpg',
        'blurhash': 'LEHV6nWB2yk8pyo0adR*.7kCMdnj',
        'width': 600,
        'height': 400,
        'aspect_ratio': 1.5,
    }
    fields.update(overrides)
    return fields


def write_image(path: Path, size=(600, 400), mode='RGB', color=(200, 80, 40), fmt=None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, color).save(path, format=fmt)
    return path


@pytest.fixture
def make_image():
    return write_image


class FakeExifHelper:
    """Stands in for exiftool.ExifToolHelper."""

    def __init__(self, tags_by_name=None, delay=0.0):
        self.tags_by_name = tags_by_name or {}
        self.delay = delay
        self.running = True
        self.calls = []
        self.requested_tags = None

    def get_tags(self, files, tags):
        if self.delay:
            time.sleep(self.delay)
        self.calls.append(files)
        self.requested_tags = tags
        name = Path(files[0]).name
        return [dict(self.tags_by_name.get(name, {}), SourceFile=files[0])]

    def terminate(self):
        self.running = False


class FakePool:
    """ExifToolPool replacement returning canned tags by filename."""

    def __init__(self, tags_by_name=None, fail=False):
        self.tags_by_name = tags_by_name or {}
        self.fail = fail
        self.started = False
        self.stopped = False

    def read(self, path):
        if self.fail:
            raise RuntimeError("exiftool crashed")
        return dict(self.tags_by_name.get(Path(path).name, {}))

    def __enter__(self):
        self.started = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stopped = True

import json
import sqlite3
import pytest
from dataclasses import replace
from gallery_ingest.config import IngestSettings
from gallery_ingest.core import IngestionApp
from gallery_ingest.database.db import DBManager
from gallery_ingest.database.ops import CatalogWriter
from gallery_ingest.exceptions import RemoteSyncError, ScanError
from gallery_ingest.scanning.identity import compute_identity
from conftest import FakePool, MARKER, sample_fields


def yes(_msg):
    return True


def rows(db_path):
    c = sqlite3.connect(str(db_path))
    try:
        c.row_factory = sqlite3.Row
        return [dict(r) for r in c.execute("SELECT * FROM photos ORDER BY uuid")]
    finally:
        c.close()


@pytest.fixture
def local_settings(tmp_path):
    (tmp_path / "src").mkdir()
    return IngestSettings(
        source_dir=tmp_path / "src",
        destination_dir=str(tmp_path / "out"),
        mode='local',
        transfer_mode='copy',
        database_url=str(tmp_path / "catalog.db"),
    )


def make_app(settings, **kwargs):
    kwargs.setdefault('pool_factory', lambda size: FakePool())
    return IngestionApp(settings, progress=False, **kwargs)


def test_local_run_end_to_end(local_settings, tmp_path, make_image):
    name = f"sunset{MARKER}.jpg"
    make_image(tmp_path / "src" / "trips" / "japan" / name, size=(900, 600))
    make_image(tmp_path / "src" / "ignored.jpg")

    report = make_app(local_settings).run(confirm=yes)

    identity = compute_identity(name, None)
    assert (report.processed, report.failed) == (1, 0)
    assert (tmp_path / "out" / "images" / f"{identity}.jpg").exists()
    assert (tmp_path / "out" / "thumbnails" / f"thumb_{identity}.jpg").exists()

    [row] = rows(tmp_path / "catalog.db")
    assert row['uuid'] == identity
    assert json.loads(row['keywords']) == ["trips", "japan"]
    assert row['blurhash']


def test_repeat_run_keeps_one_row_per_photo(local_settings, tmp_path, make_image):
    for i in range(3):
        make_image(tmp_path / "src" / f"p{i}{MARKER}.jpg")

    make_app(local_settings).run(confirm=yes)
    first = rows(tmp_path / "catalog.db")
    make_app(local_settings).run(confirm=yes)
    second = rows(tmp_path / "catalog.db")

    assert len(first) == len(second) == 3
    assert [r['created_at'] for r in first] == [r['created_at'] for r in second]
    assert all(b['updated_at'] >= a['updated_at'] for a, b in zip(first, second))


def test_failed_item_does_not_stop_run(local_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"good{MARKER}.jpg")
    (tmp_path / "src" / f"bad{MARKER}.jpg").write_bytes(b"garbage")

    report = make_app(local_settings).run(confirm=yes)

    assert (report.processed, report.failed) == (1, 1)
    assert report.failures[0][0].name == f"bad{MARKER}.jpg"
    assert len(rows(tmp_path / "catalog.db")) == 1


def test_reconcile_drops_rows_for_deleted_images(local_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")
    make_image(tmp_path / "src" / f"b{MARKER}.jpg")
    make_app(local_settings).run(confirm=yes)

    gone = compute_identity(f"b{MARKER}.jpg", None)
    (tmp_path / "out" / "images" / f"{gone}.jpg").unlink()
    (tmp_path / "src" / f"b{MARKER}.jpg").unlink()
    make_app(local_settings).run(confirm=yes)

    assert [r['uuid'] for r in rows(tmp_path / "catalog.db")] == [compute_identity(f"a{MARKER}.jpg", None)]


def test_move_mode_empties_source(local_settings, tmp_path, make_image):
    src_file = make_image(tmp_path / "src" / f"a{MARKER}.jpg")

    make_app(replace(local_settings, transfer_mode='move')).run(confirm=yes)

    assert not src_file.exists()


def test_move_mode_keeps_source_of_in_run_duplicate(local_settings, tmp_path, make_image):
    name = f"a{MARKER}.jpg"
    sources = [make_image(tmp_path / "src" / folder / name) for folder in ("x", "y")]

    report = make_app(replace(local_settings, transfer_mode='move')).run(confirm=yes)

    assert (report.processed, report.failed) == (1, 1)
    assert sum(p.exists() for p in sources) == 1
    assert len(list((tmp_path / "out" / "images").iterdir())) == 1
    assert len(rows(tmp_path / "catalog.db")) == 1


def test_dry_run_writes_nothing(local_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")

    report = make_app(replace(local_settings, dry_run=True)).run(confirm=yes)

    assert report.total == 1
    assert report.processed == 0
    assert not (tmp_path / "out").exists()
    assert not (tmp_path / "catalog.db").exists()


def test_declined_confirmation_has_no_side_effects(local_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")

    assert make_app(local_settings).run(confirm=lambda msg: False) is None
    assert not (tmp_path / "out").exists()
    assert not (tmp_path / "catalog.db").exists()


def test_missing_source_is_fatal(local_settings, tmp_path):
    with pytest.raises(ScanError):
        make_app(replace(local_settings, source_dir=tmp_path / "missing")).run(confirm=yes)


def test_empty_source_still_reconciles(local_settings, tmp_path):
    db = DBManager(tmp_path / "catalog.db")
    with db as c:
        CatalogWriter(c).upsert("orphan", sample_fields())

    report = make_app(local_settings).run(confirm=yes)

    assert report.total == 0
    assert rows(tmp_path / "catalog.db") == []


# --- Production mode ---

class FakeSync:
    """Records transfers; pull seeds the local catalog from `remote_rows`."""

    def __init__(self, pull_ok=True, push_ok=True, remote_rows=(), remote_files=(), list_error=None):
        self.pull_ok = pull_ok
        self.push_ok = push_ok
        self.remote_rows = remote_rows
        self.remote_files = list(remote_files)
        self.list_error = list_error
        self.calls = []

    def pull_catalog(self, host, remote_path, local_path):
        self.calls.append(("pull", host, remote_path))
        if self.pull_ok and self.remote_rows:
            with DBManager(local_path) as c:
                writer = CatalogWriter(c)
                for identity in self.remote_rows:
                    writer.upsert(identity, sample_fields())
        return self.pull_ok

    def list_remote(self, host, remote_dir):
        self.calls.append(("list", host, remote_dir))
        if self.list_error:
            raise self.list_error
        return self.remote_files

    def push_directory(self, local_dir, host, remote_dir):
        self.calls.append(("push_dir", host, remote_dir))
        return self.push_ok

    def push_catalog(self, local_path, host, remote_path):
        self.calls.append(("push_db", host, remote_path))
        return self.push_ok


@pytest.fixture
def prod_settings(tmp_path):
    (tmp_path / "src").mkdir()
    return IngestSettings(
        source_dir=tmp_path / "src",
        destination_dir="/srv/gallery",
        mode='production',
        transfer_mode='copy',
        ssh_host="gallery",
        staging_dir=tmp_path / ".staging",
    )


def test_production_run_syncs_and_cleans_staging(prod_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")
    sync = FakeSync()

    report = make_app(prod_settings, sync=sync).run(confirm=yes)

    assert report.processed == 1
    assert [c[0] for c in sync.calls] == ["pull", "list", "push_dir", "push_dir", "push_db"]
    assert ("push_dir", "gallery", "/srv/gallery/public/images") in sync.calls
    assert ("push_dir", "gallery", "/srv/gallery/public/thumbnails") in sync.calls
    assert ("push_db", "gallery", "/srv/gallery/sqlite.db") in sync.calls
    assert not (tmp_path / ".staging").exists()


def test_production_reconcile_uses_remote_listing(prod_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")
    sync = FakeSync(remote_rows=["kept", "stale"], remote_files=["kept.jpg"])

    captured = {}
    original_push = sync.push_catalog

    def push_catalog(local_path, host, remote_path):
        captured['rows'] = rows(local_path)
        return original_push(local_path, host, remote_path)

    sync.push_catalog = push_catalog
    make_app(prod_settings, sync=sync).run(confirm=yes)

    uuids = {r['uuid'] for r in captured['rows']}
    assert uuids == {"kept", compute_identity(f"a{MARKER}.jpg", None)}


def test_production_listing_failure_skips_reconcile(prod_settings, tmp_path, make_image):
    sync = FakeSync(remote_rows=["remote-only"], list_error=RemoteSyncError("ssh exited with status 255"))

    captured = {}

    def push_catalog(local_path, host, remote_path):
        captured['rows'] = rows(local_path)
        return True

    sync.push_catalog = push_catalog
    make_app(prod_settings, sync=sync).run(confirm=yes)

    assert [r['uuid'] for r in captured['rows']] == ["remote-only"]


def test_production_pull_failure_keeps_staging(prod_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")
    sync = FakeSync(pull_ok=False)

    report = make_app(prod_settings, sync=sync).run(confirm=yes)

    assert report.processed == 1
    assert [c[0] for c in sync.calls] == ["pull"]
    assert (tmp_path / ".staging" / "images").is_dir()


def test_production_push_failure_keeps_staging(prod_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")
    sync = FakeSync(push_ok=False)

    make_app(prod_settings, sync=sync).run(confirm=yes)

    assert (tmp_path / ".staging" / "sqlite.db").exists()
    assert len(list((tmp_path / ".staging" / "images").iterdir())) == 1


def test_production_dry_run_never_contacts_remote(prod_settings, tmp_path, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")
    sync = FakeSync()

    make_app(replace(prod_settings, dry_run=True), sync=sync).run(confirm=yes)

    assert sync.calls == []
    assert not (tmp_path / ".staging").exists()

import pytest
from gallery_ingest import main as cli
from conftest import FakePool, MARKER

ENV_VARS = ('SOURCE_DIR', 'DESTINATION_DIRECTORY', 'INGEST_MODE', 'DRY_RUN', 'TRANSFER_MODE',
            'SSH_HOST', 'DATABASE_URL', 'IMAGE_EXTENSIONS', 'MARKER_SUFFIX', 'THUMBNAIL_WIDTH',
            'BATCH_SIZE', 'EXIFTOOL_PROCS', 'EMBEDDED_KEYWORDS', 'STAGING_DIR')


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in ENV_VARS:
        # setenv first so anything loaded from a .env is undone afterwards
        monkeypatch.setenv(var, "")
        monkeypatch.delenv(var)
    monkeypatch.chdir(tmp_path)
    # Keep pytest's log capture intact
    monkeypatch.setattr(cli, "setup_logging", lambda log_dir, verbose: None)


def test_missing_configuration_exits_2(tmp_path):
    assert cli.main(["--source", str(tmp_path), "--yes"]) == 2


def test_env_file_is_loaded(tmp_path, monkeypatch):
    (tmp_path / "src").mkdir()
    env_file = tmp_path / "custom.env"
    env_file.write_text(
        f"SOURCE_DIR={tmp_path / 'src'}\n"
        f"DESTINATION_DIRECTORY={tmp_path / 'out'}\n"
        f"DATABASE_URL={tmp_path / 'catalog.db'}\n"
    )

    assert cli.main(["--env-file", str(env_file), "--dry-run", "--yes"]) == 0
    assert not (tmp_path / "out").exists()


def test_full_local_run(tmp_path, monkeypatch, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")
    monkeypatch.setattr(cli, "IngestionApp",
                        lambda settings: cli_app(settings))

    code = cli.main([
        "--source", str(tmp_path / "src"),
        "--dest", str(tmp_path / "out"),
        "--db", str(tmp_path / "catalog.db"),
        "--transfer", "copy",
        "--report-csv", str(tmp_path / "failures.csv"),
        "--yes",
    ])

    assert code == 0
    assert len(list((tmp_path / "out" / "images").iterdir())) == 1
    assert (tmp_path / "failures.csv").exists()


def test_declined_prompt(tmp_path, monkeypatch, make_image):
    make_image(tmp_path / "src" / f"a{MARKER}.jpg")
    monkeypatch.setattr("builtins.input", lambda prompt: "n")

    code = cli.main([
        "--source", str(tmp_path / "src"),
        "--dest", str(tmp_path / "out"),
        "--db", str(tmp_path / "catalog.db"),
    ])

    assert code == 0
    assert not (tmp_path / "out").exists()


def test_fatal_error_exits_1(tmp_path):
    code = cli.main([
        "--source", str(tmp_path / "missing"),
        "--dest", str(tmp_path / "out"),
        "--db", str(tmp_path / "catalog.db"),
        "--yes",
    ])
    assert code == 1


def cli_app(settings):
    from gallery_ingest.core import IngestionApp
    return IngestionApp(settings, pool_factory=lambda size: FakePool(), progress=False)

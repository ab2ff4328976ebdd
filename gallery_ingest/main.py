import argparse
import logging
import sys
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

from .config import load_settings
from .core import IngestionApp
from .exceptions import ConfigurationError, GalleryIngestError
from .reporting import write_failure_csv


def setup_logging(log_dir: Path, verbose: bool):
    """Sets up logging to both console and a file in log_dir."""
    log_level = logging.DEBUG if verbose else logging.INFO

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "ingest.log"

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(log_file, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )

    # Silence chatty libraries
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("exiftool").setLevel(logging.WARNING)


def prompt_confirm(message: str) -> bool:
    """Interactive y/n prompt; anything but 'y'/'yes' is a no."""
    try:
        answer = input(f"{message} (y/n) ")
    except EOFError:
        return False
    return answer.strip().lower() in ('y', 'yes')


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Photo gallery ingestion: scan, extract, derive, catalog, sync.",
        epilog="Settings not given as flags are read from the environment (and .env).",
    )

    p.add_argument("--source", help="Source directory (SOURCE_DIR)")
    p.add_argument("--dest", help="Output directory, or remote root in production (DESTINATION_DIRECTORY)")
    p.add_argument("--mode", choices=["local", "production"], help="Execution mode (INGEST_MODE)")
    p.add_argument("--db", help="Catalog path or sqlite:/// URL, local mode (DATABASE_URL)")
    p.add_argument("--ssh-host", help="Remote host, production mode (SSH_HOST)")
    p.add_argument("--transfer", choices=["copy", "move"], help="Copy originals or move them (TRANSFER_MODE)")
    p.add_argument("--batch-size", type=int, help="Items processed concurrently per batch (BATCH_SIZE)")
    p.add_argument("--dry-run", action="store_true", help="List candidates without modifying anything")

    p.add_argument("--env-file", type=Path, default=None, help="Path to a .env file (default: ./.env)")
    p.add_argument("--log-dir", type=Path, default=Path("."), help="Directory for ingest.log")
    p.add_argument("--report-csv", type=Path, default=None, help="Write per-item failures to this CSV")
    p.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    load_dotenv(dotenv_path=args.env_file or find_dotenv(usecwd=True), override=False)

    setup_logging(args.log_dir.resolve(), args.verbose)

    # 1. Config (fail fast before any work)
    try:
        settings = load_settings(
            SOURCE_DIR=args.source,
            DESTINATION_DIRECTORY=args.dest,
            INGEST_MODE=args.mode,
            DATABASE_URL=args.db,
            SSH_HOST=args.ssh_host,
            TRANSFER_MODE=args.transfer,
            BATCH_SIZE=args.batch_size,
            DRY_RUN="true" if args.dry_run else None,
        )
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        return 2

    # 2. Execution
    app = IngestionApp(settings)
    confirm = (lambda _msg: True) if args.yes else prompt_confirm

    try:
        report = app.run(confirm=confirm)
    except KeyboardInterrupt:
        logging.warning("Operation cancelled by user.")
        return 1
    except GalleryIngestError as e:
        logging.error(f"Fatal: {e}")
        return 1
    except Exception:
        logging.exception("Fatal error during ingestion.")
        return 1

    if report is not None and args.report_csv:
        write_failure_csv(report, args.report_csv)

    return 0


if __name__ == "__main__":
    sys.exit(main())

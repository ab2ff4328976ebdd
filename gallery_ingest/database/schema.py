"""
Database schema definitions.

Only the `photos` table is owned by the ingestion pipeline; the gallery API
reads it but never writes it.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

# Every column CatalogWriter writes besides identity and timestamps
PHOTO_COLUMNS = (
    'filename',
    'original_path',
    'thumbnail_path',
    'blurhash',
    'width',
    'height',
    'aspect_ratio',
    'camera',
    'lens',
    'date_captured',
    'iso',
    'shutter_speed',
    'aperture',
    'focal_length',
    'keywords',
    'rating',
    'label',
    'file_size',
    'mime_type',
)


def init_schema(conn: sqlite3.Connection):
    """
    Applies the catalog schema to the database.
    Idempotent: safe to run on every startup and against a pulled remote copy.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Catalog Table (one row per identity)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS photos (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            uuid            TEXT NOT NULL UNIQUE,   -- content identity
            filename        TEXT NOT NULL,
            original_path   TEXT NOT NULL,
            thumbnail_path  TEXT NOT NULL,
            blurhash        TEXT NOT NULL,

            width           INTEGER NOT NULL,
            height          INTEGER NOT NULL,
            aspect_ratio    REAL NOT NULL,

            camera          TEXT,
            lens            TEXT,
            date_captured   INTEGER,                -- unix seconds
            iso             INTEGER,
            shutter_speed   TEXT,
            aperture        REAL,
            focal_length    REAL,
            keywords        TEXT,                   -- JSON array

            rating          INTEGER,                -- 0-5 stars
            label           TEXT,                   -- Red, Yellow, Green, Blue, Purple

            file_size       INTEGER,
            mime_type       TEXT,

            created_at      INTEGER,                -- unix seconds
            updated_at      INTEGER
        );
        """)

        # 3. Indices for the gallery's filters
        for column in ('date_captured', 'camera', 'lens', 'iso', 'aperture', 'rating',
                       'label', 'aspect_ratio', 'created_at', 'filename'):
            conn.execute(f"CREATE INDEX IF NOT EXISTS idx_photos_{column} ON photos({column});")

    logging.debug("Database schema initialized.")

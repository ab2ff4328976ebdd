#!/usr/bin/env python

import argparse
import sqlite3
from pathlib import Path
from typing import Optional


def connect_db(db_path: Path) -> sqlite3.Connection:
    if not db_path.exists():
        raise SystemExit(f"DB not found: {db_path}")
    return sqlite3.connect(db_path)


def list_photos(conn: sqlite3.Connection, limit: Optional[int] = None):
    cur = conn.cursor()
    sql = """
        SELECT uuid, strftime('%Y-%m-%dT%H:%M:%SZ', date_captured, 'unixepoch'), camera, width, height, filename
        FROM photos
        ORDER BY date_captured IS NULL, date_captured, filename
    """
    if limit:
        sql += " LIMIT ?"
        cur.execute(sql, (limit,))
    else:
        cur.execute(sql)
    rows = cur.fetchall()

    print(f"Photos in catalog: {len(rows)}")
    print("uuid                             | date_captured             | camera                    | size      | filename")
    print("---------------------------------+---------------------------+---------------------------+-----------+---------")
    for uuid, dt, cam, w, h, filename in rows:
        size = f"{w}x{h}"
        print(f"{uuid} | {(dt or '').ljust(25)} | {(cam or '').ljust(25)} | {size.ljust(9)} | {filename}")


def _resolve_identity_from_name(conn: sqlite3.Connection, name: str) -> Optional[str]:
    cur = conn.cursor()
    # Stored name (<uuid>.<ext>) first, then the source filename
    cur.execute("SELECT uuid FROM photos WHERE original_path = ?", (name,))
    row = cur.fetchone()
    if row:
        return row[0]
    cur.execute("SELECT uuid FROM photos WHERE filename = ? ORDER BY updated_at DESC", (name,))
    row = cur.fetchone()
    return row[0] if row else None


def show_photo(conn: sqlite3.Connection, identity: str):
    conn.row_factory = sqlite3.Row
    try:
        cur = conn.cursor()
        cur.execute("SELECT * FROM photos WHERE uuid = ?", (identity,))
        row = cur.fetchone()
    finally:
        conn.row_factory = None

    if not row:
        print(f"No photo with uuid={identity}")
        return

    print("Photo:")
    for key in row.keys():
        if key == 'id':
            continue
        value = row[key]
        print(f"  {(key + ':').ljust(16)}{'' if value is None else value}")


def list_missing_metadata(conn: sqlite3.Connection):
    cur = conn.cursor()
    cur.execute("""
        SELECT uuid, filename, original_path
        FROM photos
        WHERE date_captured IS NULL AND camera IS NULL
        ORDER BY filename
    """)
    rows = cur.fetchall()
    if not rows:
        print("Every photo has capture metadata.")
        return

    print("Photos without capture date or camera:")
    print("uuid                             | filename")
    print("---------------------------------+---------")
    for uuid, filename, _stored in rows:
        print(f"{uuid} | {filename}")


def list_keywords(conn: sqlite3.Connection):
    """Keyword -> photo count, using SQLite's JSON functions."""
    cur = conn.cursor()
    cur.execute("""
        SELECT j.value, COUNT(*)
        FROM photos, json_each(photos.keywords) AS j
        WHERE photos.keywords IS NOT NULL
        GROUP BY j.value
        ORDER BY COUNT(*) DESC, j.value
    """)
    rows = cur.fetchall()
    if not rows:
        print("No keywords in catalog.")
        return

    print("count | keyword")
    print("------+--------")
    for keyword, count in rows:
        print(f"{str(count).rjust(5)} | {keyword}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Query helper for the gallery SQLite catalog.")
    p.add_argument("--db", required=True, help="Path to the catalog database")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--list", action="store_true", help="List every photo")
    group.add_argument("--uuid", help="Show every column of one photo")
    group.add_argument("--name", help="Show a photo by stored or source filename")
    group.add_argument("--missing-metadata", action="store_true", help="List photos with no date and no camera")
    group.add_argument("--keywords", action="store_true", help="Count photos per keyword")
    p.add_argument("--limit", type=int, default=None, help="Limit for --list")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    db_path = Path(args.db).resolve()
    conn = connect_db(db_path)

    try:
        if args.list:
            list_photos(conn, args.limit)
        elif args.uuid:
            show_photo(conn, args.uuid)
        elif args.name:
            identity = _resolve_identity_from_name(conn, args.name)
            if identity is None:
                print(f"No photo found for name: {args.name}")
            else:
                show_photo(conn, identity)
        elif args.missing_metadata:
            list_missing_metadata(conn)
        elif args.keywords:
            list_keywords(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    main()

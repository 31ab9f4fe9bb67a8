import argparse
import os
import sqlite3
from pathlib import Path
from typing import Optional

# Every user-scoped table, children first so foreign keys never dangle.
USER_TABLES = [
    "plans",
    "meals",
    "workouts",
    "body_fat",
    "weights",
    "profiles",
]


def resolve_db_path(override: Optional[str]) -> Path:
    return Path(override or os.getenv("DB_PATH") or "/var/data/fitlog.db").expanduser().resolve()


def find_user_ids(conn: sqlite3.Connection, emails: list[str]) -> list[int]:
    if not emails:
        return []
    placeholders = ",".join("?" for _ in emails)
    rows = conn.execute(f"SELECT id FROM users WHERE lower(email) IN ({placeholders})", emails).fetchall()
    return [int(row[0]) for row in rows]


def purge_users(conn: sqlite3.Connection, user_ids: Optional[list[int]] = None) -> dict[str, int]:
    """Delete users and their rows; ``user_ids=None`` clears every user."""
    if user_ids is not None and not user_ids:
        return {table: 0 for table in USER_TABLES + ["users"]}

    if user_ids is None:
        where, params = "", []
    else:
        where = f" WHERE user_id IN ({','.join('?' for _ in user_ids)})"
        params = list(user_ids)

    counts: dict[str, int] = {}
    for table in USER_TABLES:
        cur = conn.execute(f"DELETE FROM {table}{where}", params)
        counts[table] = max(cur.rowcount or 0, 0)
    cur = conn.execute(f"DELETE FROM users{where.replace('user_id', 'id')}", params)
    counts["users"] = max(cur.rowcount or 0, 0)
    return counts


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Remove Fitlog users and everything they logged.")
    parser.add_argument("--email", action="append", default=[], help="User email to delete (repeatable).")
    parser.add_argument("--all", action="store_true", help="Delete every user.")
    parser.add_argument("--db-path", default=None, help="SQLite file. Defaults to DB_PATH or /var/data/fitlog.db.")
    parser.add_argument("--dry-run", action="store_true", help="Show matched users only; do not delete.")
    parser.add_argument("--yes", action="store_true", help="Confirm destructive operation.")
    args = parser.parse_args(argv)

    if not args.all and not args.email:
        parser.error("Use --email <addr> or --all")
    if not args.dry_run and not args.yes:
        parser.error("Add --yes to confirm deletion")

    db_path = resolve_db_path(args.db_path)
    if not db_path.exists():
        print(f"DB not found: {db_path}")
        return 1

    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        print(f"Target DB: {db_path}")
        if args.all:
            user_ids = None
            matched = conn.execute("SELECT COUNT(*) FROM users").fetchone()[0]
        else:
            user_ids = find_user_ids(conn, [e.strip().lower() for e in args.email if e.strip()])
            matched = len(user_ids)
        print(f"Matched users: {matched}{' (all)' if args.all else ''}")
        if args.dry_run:
            return 0

        counts = purge_users(conn, user_ids)
        conn.commit()
        print("Deleted rows:")
        for table, count in counts.items():
            print(f"  {table}: {count}")
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

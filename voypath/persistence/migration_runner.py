"""Versioned SQLite schema migrations.

Files named ``NNNN_description.sql`` under ``migrations/`` are applied in
number order. Each one runs in its own transaction together with its
``schema_migrations`` row, so a failing script leaves no partial schema
behind. The stored SHA-256 checksum makes an edited, already-applied
file an error instead of a silent divergence.
"""

from __future__ import annotations

import hashlib
import logging
import re
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_logger = logging.getLogger("voypath.persistence")

_MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"
_FILENAME = re.compile(r"^(\d{4})_[a-z0-9_]+\.sql$")


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path

    @property
    def sql(self) -> str:
        return self.path.read_text(encoding="utf-8")

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def discover_migrations(directory: Optional[Path] = None) -> list[Migration]:
    """Migration files in number order; two files sharing a number is an error."""
    root = directory or _MIGRATIONS_DIR
    if not root.is_dir():
        raise FileNotFoundError(f"migration directory missing: {root}")

    found: dict[str, Migration] = {}
    for path in sorted(root.glob("*.sql")):
        match = _FILENAME.match(path.name)
        if match is None:
            _logger.warning("ignoring migration file with unexpected name: %s", path.name)
            continue
        number = match.group(1)
        if number in found:
            raise RuntimeError(f"duplicate migration number {number}: {found[number].path.name}, {path.name}")
        found[number] = Migration(version=path.stem, path=path)
    return [found[number] for number in sorted(found)]


def ensure_migration_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            checksum TEXT NOT NULL,
            applied_at TEXT NOT NULL
        )
        """
    )


def list_applied_migrations(conn: sqlite3.Connection) -> dict[str, str]:
    ensure_migration_table(conn)
    rows = conn.execute("SELECT version, checksum FROM schema_migrations").fetchall()
    return {str(version): str(checksum) for version, checksum in rows}


def pending_migrations(conn: sqlite3.Connection, directory: Optional[Path] = None) -> list[Migration]:
    """Migrations not yet recorded; raises when an applied file was edited."""
    applied = list_applied_migrations(conn)
    pending: list[Migration] = []
    for migration in discover_migrations(directory):
        existing = applied.get(migration.version)
        if existing is None:
            pending.append(migration)
        elif existing != migration.checksum:
            raise RuntimeError(f"migration checksum mismatch for version={migration.version}")
    return pending


def _apply_one(conn: sqlite3.Connection, migration: Migration) -> None:
    # executescript commits whatever is open first, then the script runs inside BEGIN
    conn.executescript("BEGIN;\n" + migration.sql)
    try:
        conn.execute(
            "INSERT INTO schema_migrations(version, checksum, applied_at) VALUES (?, ?, ?)",
            (migration.version, migration.checksum, time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())),
        )
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise


def apply_sqlite_migrations(conn: sqlite3.Connection, directory: Optional[Path] = None) -> list[str]:
    """Apply pending migrations in order and return the versions applied now."""
    applied_now: list[str] = []
    for migration in pending_migrations(conn, directory):
        try:
            _apply_one(conn, migration)
        except sqlite3.Error:
            if conn.in_transaction:
                conn.rollback()
            _logger.error("migration %s failed", migration.version)
            raise
        _logger.info("applied migration %s", migration.version)
        applied_now.append(migration.version)
    return applied_now


__all__ = [
    "Migration",
    "apply_sqlite_migrations",
    "discover_migrations",
    "ensure_migration_table",
    "list_applied_migrations",
    "pending_migrations",
]

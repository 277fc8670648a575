"""Apply SQLite schema migrations to the VoyPath database."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from voypath.config.settings import resolve_db_path
from voypath.persistence.migration_runner import (
    apply_sqlite_migrations,
    list_applied_migrations,
    pending_migrations,
)


def run_migrations(db_value: str = "", *, dry_run: bool = False) -> dict:
    """Migrate the database; ``dry_run`` only reports what would be applied."""
    db_path = Path(db_value.strip()) if db_value.strip() else resolve_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        if dry_run:
            applied: list[str] = []
            pending = [m.version for m in pending_migrations(conn)]
            conn.commit()
        else:
            applied = apply_sqlite_migrations(conn)
            pending = []
        known = sorted(list_applied_migrations(conn))
    finally:
        conn.close()

    return {
        "db_path": str(db_path),
        "dry_run": dry_run,
        "applied_count": len(applied),
        "applied_versions": applied,
        "pending_versions": pending,
        "current_versions": known,
    }


def format_report(report: dict) -> str:
    return json.dumps(report, ensure_ascii=False, indent=2)

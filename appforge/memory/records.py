"""Append-only build history."""

from __future__ import annotations

import sqlite3
from typing import Optional

from ..models import BuildRecord, BuildStatus
from .database import Database

_COLUMNS = (
    "name", "framework", "prompt", "status", "exe_path", "source_dir",
    "provider", "model", "branded", "build_time", "created_at",
)


def _to_record(row: sqlite3.Row) -> BuildRecord:
    return BuildRecord(
        id=row["id"],
        name=row["name"],
        framework=row["framework"],
        prompt=row["prompt"],
        status=BuildStatus(row["status"]),
        exe_path=row["exe_path"],
        source_dir=row["source_dir"],
        provider=row["provider"],
        model=row["model"],
        branded=bool(row["branded"]),
        build_time=row["build_time"],
        created_at=row["created_at"],
    )


class BuildRecordStore:
    """Stores one row per build; many rows may share a name."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def add(self, record: BuildRecord) -> BuildRecord:
        """Persist *record* and return it with its new ``id``.

        When the database is unavailable the record is returned unsaved
        (``id`` stays ``None``).
        """
        values = (
            record.name,
            record.framework,
            record.prompt,
            BuildStatus(record.status).value,
            record.exe_path,
            record.source_dir,
            record.provider,
            record.model,
            int(record.branded),
            record.build_time,
            record.created_at,
        )
        placeholders = ", ".join("?" for _ in _COLUMNS)
        row_id = self.db.guarded(
            lambda: self.db.insert(
                f"INSERT INTO builds ({', '.join(_COLUMNS)}) VALUES ({placeholders})", values
            ),
            None,
        )
        return record if row_id is None else record.model_copy(update={"id": row_id})

    def list(self, name: Optional[str] = None) -> list[BuildRecord]:
        """All records, newest first; optionally only those named *name*."""
        if name is None:
            sql, params = "SELECT * FROM builds ORDER BY created_at DESC, id DESC", ()
        else:
            sql, params = "SELECT * FROM builds WHERE name = ? ORDER BY created_at DESC, id DESC", (name,)
        rows = self.db.guarded(lambda: self.db.query(sql, params), [])
        return [_to_record(row) for row in rows]

    def get(self, record_id: int) -> Optional[BuildRecord]:
        rows = self.db.guarded(lambda: self.db.query("SELECT * FROM builds WHERE id = ?", (record_id,)), [])
        return _to_record(rows[0]) if rows else None

    def remove(self, name: str) -> int:
        """Delete every record named *name*. Returns the number deleted."""
        return self.db.guarded(lambda: self.db.execute("DELETE FROM builds WHERE name = ?", (name,)), 0)

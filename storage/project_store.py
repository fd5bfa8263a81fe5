"""
SQLiteProjectStore: project metadata records keyed by sandbox id.

Methods are synchronous; async callers go through asyncio.to_thread.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

DEFAULT_DB_PATH = Path.home() / ".sandcastle" / "projects.db"

_UPDATABLE = {"name", "description", "preview_url"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ProjectRecord:
    id: str
    name: str
    description: str
    sandbox_id: str
    preview_url: str | None
    created_at: str
    updated_at: str

    def to_dict(self) -> dict:
        return asdict(self)


class SQLiteProjectStore:
    def __init__(self, db_path: str | Path | None = None):
        self.db_path = Path(db_path).expanduser() if db_path else DEFAULT_DB_PATH
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = self._init_db()

    def _init_db(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=10, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                sandbox_id TEXT NOT NULL,
                preview_url TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_projects_updated ON projects(updated_at DESC)")
        conn.commit()
        return conn

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Project store is closed")
        return self._conn

    @staticmethod
    def _row(row: sqlite3.Row | None) -> ProjectRecord | None:
        return ProjectRecord(**dict(row)) if row is not None else None

    def get(self, project_id: str) -> ProjectRecord | None:
        with self._lock:
            row = self.conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return self._row(row)

    def create(self, sandbox_id: str, description: str, preview_url: str | None = None) -> ProjectRecord:
        now = _now()
        record = ProjectRecord(
            id=sandbox_id,
            name=description[:100],
            description=description,
            sandbox_id=sandbox_id,
            preview_url=preview_url,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO projects (id, name, description, sandbox_id, preview_url, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (record.id, record.name, record.description, record.sandbox_id, record.preview_url, now, now),
            )
            self.conn.commit()
        return record

    def update(self, project_id: str, **fields: str | None) -> ProjectRecord | None:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if fields:
            assignments = ", ".join(f"{name} = ?" for name in fields)
            with self._lock:
                self.conn.execute(
                    f"UPDATE projects SET {assignments}, updated_at = ? WHERE id = ?",  # noqa: S608
                    (*fields.values(), _now(), project_id),
                )
                self.conn.commit()
        return self.get(project_id)

    def touch(self, project_id: str) -> None:
        with self._lock:
            self.conn.execute("UPDATE projects SET updated_at = ? WHERE id = ?", (_now(), project_id))
            self.conn.commit()

    def delete(self, project_id: str) -> bool:
        with self._lock:
            cursor = self.conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            self.conn.commit()
        return cursor.rowcount > 0

    def list(self) -> list[ProjectRecord]:
        with self._lock:
            rows = self.conn.execute("SELECT * FROM projects ORDER BY updated_at DESC").fetchall()
        return [ProjectRecord(**dict(row)) for row in rows]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

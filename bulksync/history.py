"""Persistent run history backed by SQLite.

The database lives in the per-user settings directory alongside
settings.json. Only run summaries are stored; a run in flight cannot be
resumed from here.
"""
from __future__ import annotations

import json
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import ImportSummary, RewriteSummary
from .settings import settings_dir


DB_FILE_NAME = "run_history.db"


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

@dataclass
class RunRecord:
    """One finished import or rewrite run."""
    run_id: str
    timestamp: str
    kind: str  # "import" | "rewrite"
    source: str
    total: int
    succeeded: int
    duplicates: int
    errors: int
    cancelled: bool
    error: str | None
    details: dict[str, Any]


# ---------------------------------------------------------------------------
# RunHistoryManager
# ---------------------------------------------------------------------------

class RunHistoryManager:
    """SQLite-backed persistent run history.

    Usage::

        mgr = RunHistoryManager()
        mgr.save_import("playlist.m3u", summary)
        for record in mgr.get_recent_runs(10):
            ...
    """

    def __init__(self, db_path: Path | None = None):
        self._db_path = db_path or settings_dir() / DB_FILE_NAME
        self._conn: sqlite3.Connection | None = None
        self._ensure_schema()

    # -- connection management -------------------------------------

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self._db_path),
                check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
        return self._conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS runs (
                run_id      TEXT PRIMARY KEY,
                timestamp   TEXT NOT NULL,
                kind        TEXT NOT NULL,
                source      TEXT NOT NULL DEFAULT '',
                total       INTEGER NOT NULL DEFAULT 0,
                succeeded   INTEGER NOT NULL DEFAULT 0,
                duplicates  INTEGER NOT NULL DEFAULT 0,
                errors      INTEGER NOT NULL DEFAULT 0,
                cancelled   INTEGER NOT NULL DEFAULT 0,
                error       TEXT,
                details     TEXT NOT NULL DEFAULT '{}'
            );

            CREATE INDEX IF NOT EXISTS idx_runs_timestamp
                ON runs(timestamp);
        """)
        conn.commit()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # -- public API ------------------------------------------------

    def save_run(
        self,
        kind: str,
        source: str,
        total: int,
        succeeded: int,
        duplicates: int = 0,
        errors: int = 0,
        cancelled: bool = False,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> str:
        """Persist one run and return its generated ``run_id``."""
        run_id = uuid.uuid4().hex[:12]
        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")

        conn = self._get_conn()
        conn.execute(
            "INSERT INTO runs (run_id, timestamp, kind, source, total, succeeded, "
            "duplicates, errors, cancelled, error, details) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                run_id, timestamp, kind, source, total, succeeded,
                duplicates, errors, int(cancelled), error,
                json.dumps(details or {}, ensure_ascii=False),
            ),
        )
        conn.commit()
        return run_id

    def save_import(self, source: str, summary: ImportSummary) -> str:
        return self.save_run(
            kind="import",
            source=source,
            total=summary.total,
            succeeded=summary.counters.get("total", 0),
            duplicates=summary.duplicates_found,
            errors=summary.errors,
            cancelled=summary.cancelled,
            error=summary.error,
            details=summary.as_dict(),
        )

    def save_rewrite(self, source: str, summary: RewriteSummary) -> str:
        return self.save_run(
            kind="rewrite",
            source=source,
            total=summary.matched,
            succeeded=summary.updated,
            errors=summary.failed,
            cancelled=summary.cancelled,
            error=summary.error,
            details=summary.as_dict(),
        )

    def get_recent_runs(self, limit: int = 20) -> list[RunRecord]:
        """Return recent runs, newest first."""
        conn = self._get_conn()
        rows = conn.execute(
            "SELECT run_id, timestamp, kind, source, total, succeeded, duplicates, "
            "errors, cancelled, error, details "
            "FROM runs ORDER BY timestamp DESC, rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()

        return [
            RunRecord(
                run_id=run_id,
                timestamp=timestamp,
                kind=kind,
                source=source,
                total=total,
                succeeded=succeeded,
                duplicates=duplicates,
                errors=errors,
                cancelled=bool(cancelled),
                error=error,
                details=json.loads(details or "{}"),
            )
            for (run_id, timestamp, kind, source, total, succeeded,
                 duplicates, errors, cancelled, error, details) in rows
        ]

    def clear(self) -> None:
        conn = self._get_conn()
        conn.execute("DELETE FROM runs")
        conn.commit()

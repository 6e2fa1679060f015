# bulksync test fixtures
from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Any

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from bulksync.baserow import TABLES, BaserowError, ConfigurationError, RowPage  # noqa: E402
from bulksync.settings import SettingsManager  # noqa: E402


def _matches(row: dict[str, Any], key: str, value: Any) -> bool:
    """Apply one ``field`` or ``field__type`` filter the way Baserow does."""
    field, _, kind = key.partition("__")
    if kind == "empty":
        return row.get(field) in (None, "")
    return row.get(field) == value


class FakeBaserow:
    """In-memory stand-in for BaserowClient.

    Rows live per logical table; every call is recorded in ``calls``.
    Failures are injected through ``fail_create`` (titles whose create
    fails), ``fail_update`` (row ids) and ``fail_list`` (tables whose
    listing fails).
    """

    def __init__(self, tables: tuple[str, ...] = TABLES):
        self.bound = set(tables)
        self.rows: dict[str, list[dict[str, Any]]] = {t: [] for t in TABLES}
        self.calls: list[tuple] = []
        self.fail_create: set[str] = set()
        self.fail_update: set[int] = set()
        self.fail_list: set[str] = set()
        self._next_id = 1
        self._lock = threading.Lock()

    # -- helpers for tests -----------------------------------------

    def seed(self, table: str, **fields: Any) -> dict[str, Any]:
        with self._lock:
            row = {"id": self._next_id, **fields}
            self._next_id += 1
            self.rows[table].append(row)
        return row

    def calls_of(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    # -- BaserowClient interface -----------------------------------

    def table_id(self, table: str) -> str:
        if table not in self.bound:
            raise ConfigurationError(f"No table id configured for '{table}'")
        return str(TABLES.index(table) + 100)

    def list_rows(self, table, page=1, size=100, filters=None, search=None) -> RowPage:
        self.table_id(table)
        with self._lock:
            self.calls.append(("list", table, page, size, dict(filters or {})))
            if table in self.fail_list:
                raise BaserowError("GET failed: HTTP 500", status=500)
            rows = [
                dict(r) for r in self.rows[table]
                if all(_matches(r, k, v) for k, v in (filters or {}).items())
            ]
        start = (page - 1) * size
        chunk = rows[start:start + size]
        return RowPage(results=chunk, count=len(rows), has_next=start + size < len(rows))

    def iter_rows(self, table, page_size=200, filters=None):
        page = 1
        while True:
            result = self.list_rows(table, page=page, size=page_size, filters=filters)
            yield from result.results
            if not result.has_next or not result.results:
                return
            page += 1

    def create_row(self, table, fields) -> dict[str, Any]:
        self.table_id(table)
        with self._lock:
            self.calls.append(("create", table, dict(fields)))
            if fields.get("Nome") in self.fail_create:
                raise BaserowError("POST failed: HTTP 400 ERROR_REQUEST_BODY_VALIDATION", status=400)
            row = {"id": self._next_id, **fields}
            self._next_id += 1
            self.rows[table].append(row)
        return dict(row)

    def update_row(self, table, row_id, fields) -> dict[str, Any]:
        self.table_id(table)
        with self._lock:
            self.calls.append(("update", table, row_id, dict(fields)))
            if row_id in self.fail_update:
                raise BaserowError("PATCH failed: HTTP 500", status=500)
            for row in self.rows[table]:
                if row["id"] == row_id:
                    row.update(fields)
                    return dict(row)
        raise BaserowError("PATCH failed: HTTP 404 ERROR_ROW_DOES_NOT_EXIST", status=404)

    def delete_row(self, table, row_id) -> bool:
        self.table_id(table)
        with self._lock:
            self.calls.append(("delete", table, row_id))
            self.rows[table] = [r for r in self.rows[table] if r["id"] != row_id]
        return True


@pytest.fixture()
def fake_client() -> FakeBaserow:
    return FakeBaserow()


@pytest.fixture()
def settings_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated settings directory with no inherited environment."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    for key in (
        "BASEROW_API_TOKEN", "BASEROW_BASE_URL", "BULKSYNC_TIMEOUT",
        "BULKSYNC_BATCH_SIZE", "BULKSYNC_DELAY_MS", "BULKSYNC_PROXY_URL",
    ):
        monkeypatch.delenv(key, raising=False)
    for table in TABLES:
        monkeypatch.delenv(f"BASEROW_TABLE_{table.upper()}", raising=False)
    monkeypatch.setattr(SettingsManager, "_instance", None)
    return tmp_path / "settings.json"

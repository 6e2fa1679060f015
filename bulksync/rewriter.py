"""Bulk rewrite of URL fields across a whole table.

Two phases: every row is scanned first so the number of matches is
known before the first update, then the matches are patched one at a
time. Each update replaces every occurrence of the source text in the
row's URL field and, when it holds the text too, its secondary URL field.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from .baserow import DEFAULT_PAGE_SIZE, BaserowClient, BaserowError
from .models import BatchRunState, RewriteSummary, RunInProgressError
from .rows import DEFAULT_FIELDS, FieldMap

log = logging.getLogger(__name__)


def replace_all(value: str, source: str, target: str) -> str:
    """Literal replacement of every occurrence of *source*."""
    return value.replace(source, target)


class UrlRewriter:
    """Rewrites a substring in the URL fields of every matching row.

    Constructor args:
        client:        BaserowClient used for every remote call.
        fields:        Column names of the catalog tables.
        page_size:     Rows fetched per page while scanning.
        on_progress:   ``(updated_or_attempted, total_matches)`` after each row.
        on_complete:   ``(RewriteSummary)``, also after cancel or failure.
        on_error:      ``(exception)`` for a run-level failure.
        should_cancel: Polled between pages and before every update.
    """

    def __init__(
        self,
        client: BaserowClient,
        fields: FieldMap = DEFAULT_FIELDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        on_progress: Callable[[int, int], None] | None = None,
        on_complete: Callable[[RewriteSummary], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ):
        self._client = client
        self._fields = fields
        self.page_size = page_size
        self._on_progress = on_progress or (lambda processed, total: None)
        self._on_complete = on_complete or (lambda summary: None)
        self._on_error = on_error or (lambda error: None)
        self._should_cancel = should_cancel or (lambda: False)
        self._state = BatchRunState()
        self._running = False
        self._guard = threading.Lock()

    @property
    def state(self) -> BatchRunState:
        return self._state.snapshot()

    def cancel(self) -> None:
        self._state.request_cancel()

    def _cancelled(self) -> bool:
        if self._state.cancel_requested:
            return True
        if self._should_cancel():
            self._state.request_cancel()
            return True
        return False

    def find_matches(self, table: str, source: str) -> tuple[list[dict[str, Any]], int]:
        """
        Scan every row of *table* for *source* in its URL field.

        Returns:
            ``(matching_rows, scanned_count)``; stops early on cancel.
        """
        url_field, _ = self._fields.url_fields(table)
        matches: list[dict[str, Any]] = []
        scanned = 0
        page = 1
        while True:
            result = self._client.list_rows(table, page=page, size=self.page_size)
            for row in result.results:
                scanned += 1
                value = row.get(url_field)
                if isinstance(value, str) and source in value:
                    matches.append(row)
            if not result.has_next or not result.results:
                break
            if self._cancelled():
                log.info("Scan of %s cancelled after %d row(s)", table, scanned)
                break
            page += 1
        return matches, scanned

    def rewrite_fields(self, row: dict[str, Any], table: str, source: str, target: str) -> dict[str, str]:
        """Fields to patch on *row* (only those containing *source*)."""
        patch: dict[str, str] = {}
        for name in self._fields.url_fields(table):
            value = row.get(name) if name else None
            if isinstance(value, str) and source in value:
                patch[name] = replace_all(value, source, target)
        return patch

    def run(self, table: str, source: str, target: str) -> RewriteSummary:
        """
        Replace *source* with *target* in every matching row of *table*.

        Cancellation is not an error: the summary reports the rows
        updated so far.

        Raises:
            ValueError: If *source* is empty
            RunInProgressError: If a rewrite is already running
        """
        if not source:
            raise ValueError("Source text must not be empty")
        with self._guard:
            if self._running:
                raise RunInProgressError("A rewrite is already running")
            self._running = True

        self._state = BatchRunState()
        scanned = matched = updated = failed = 0
        try:
            self._client.table_id(table)
            log.info("Scanning %s for '%s'", table, source)
            matches, scanned = self.find_matches(table, source)
            matched = len(matches)
            self._state.set_total(matched)
            log.info("%d of %d row(s) in %s match", matched, scanned, table)

            for row in matches:
                if self._cancelled():
                    log.info("Rewrite cancelled after %d update(s)", updated)
                    break
                patch = self.rewrite_fields(row, table, source, target)
                try:
                    self._client.update_row(table, row["id"], patch)
                    updated += 1
                except BaserowError as e:
                    failed += 1
                    self._state.add_errors()
                    log.error("Row %s of %s not updated: %s", row.get("id"), table, e)
                processed = self._state.add_processed()
                if matched:
                    self._state.set_progress(100.0 * processed / matched)
                self._on_progress(processed, matched)
        except Exception as e:
            log.error("Rewrite failed: %s", e)
            self._state.fail(str(e))
            self._on_error(e)
        finally:
            self._state.complete()
            self._running = False

        state = self._state.snapshot()
        summary = RewriteSummary(
            table=table,
            scanned=scanned,
            matched=matched,
            updated=updated,
            failed=failed,
            cancelled=state.cancel_requested,
            error=state.error,
        )
        log.info(
            "Rewrite finished: %d of %d row(s) updated, %d failed%s",
            updated, matched, failed, " (cancelled)" if summary.cancelled else "",
        )
        self._on_complete(summary)
        return summary


def rewrite_urls(
    client: BaserowClient,
    table: str,
    source: str,
    target: str,
    **callbacks: Any,
) -> int:
    """Rewrite URLs in *table* and return the number of rows updated."""
    return UrlRewriter(client, **callbacks).run(table, source, target).updated

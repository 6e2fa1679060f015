"""Bulk import of parsed playlist entries into the catalog tables.

Runs in two phases:

  Phase 1 -- series. One duplicate check per series name; a new parent
             content row per series, then its episodes as child rows
             through the batch engine.
  Phase 2 -- everything else still pending. Duplicate check by title,
             then one content row per entry.

Per-entry failures mark that entry ``error`` and never stop a phase.
A failure outside any entry (missing table id, unexpected exception)
ends the run and is reported as the run error.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from .baserow import BaserowClient, BaserowError, ConfigurationError
from .batch import DEFAULT_BATCH_SIZE, DEFAULT_DELAY_MS, BatchProcessor
from .duplicates import DuplicateCheckError, DuplicateResolver, find_duplicates
from .grouper import split_entries
from .models import (
    BatchRunState,
    ContentType,
    EntryStatus,
    ImportSummary,
    ParsedEntry,
    RunInProgressError,
    SeriesGroup,
)
from .parser import DEFAULT_PROXY_URL, extract_episode_info, parse_m3u
from .rows import DEFAULT_FIELDS, FieldMap, content_row, episode_row, series_row

log = logging.getLogger(__name__)

# Share of the progress bar taken by phase 1 when series are present
SERIES_PHASE_SHARE = 50.0


def summarize_playlist(entries: list[ParsedEntry]) -> dict[str, Any]:
    """Preview counts for a parsed playlist (no network)."""
    groups, standalone = split_entries(entries)
    by_type = {t: 0 for t in ContentType}
    for entry in standalone:
        by_type[entry.type] += 1
    repeated = find_duplicates(
        [{"title": e.title} for e in entries], "title",
    )
    return {
        "entries": len(entries),
        "movies": by_type[ContentType.MOVIE],
        "series": len(groups),
        "episodes": sum(len(g.episodes) for g in groups),
        "tv": by_type[ContentType.TV],
        "unknown": by_type[ContentType.UNKNOWN],
        "repeated_titles": [(g.key, len(g.rows)) for g in repeated],
    }


class BulkImporter:
    """Drives parsed entries to ``uploaded``, ``duplicate`` or ``error``.

    Constructor args:
        client:        BaserowClient used for every remote call.
        fields:        Column names of the catalog tables.
        batch_size:    Concurrent uploads in flight.
        delay_ms:      Pause between dispatch waves.
        proxy_url:     HTTPS endpoint for http:// URLs (``prepare`` only).
        on_progress:   ``(processed, total)``.
        on_complete:   ``(ImportSummary)``, also after cancel or failure.
        on_error:      ``(exception)`` for a run-level failure.
        should_cancel: Polled before every unit of work.

    All callbacks run on the thread that called ``run()``.
    """

    def __init__(
        self,
        client: BaserowClient,
        fields: FieldMap = DEFAULT_FIELDS,
        batch_size: int = DEFAULT_BATCH_SIZE,
        delay_ms: int = DEFAULT_DELAY_MS,
        proxy_url: str | None = DEFAULT_PROXY_URL,
        on_progress: Callable[[int, int], None] | None = None,
        on_complete: Callable[[ImportSummary], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ):
        self._client = client
        self._fields = fields
        self._resolver = DuplicateResolver(client, fields)
        self.batch_size = batch_size
        self.delay_ms = delay_ms
        self.proxy_url = proxy_url
        self._on_progress = on_progress or (lambda processed, total: None)
        self._on_complete = on_complete or (lambda summary: None)
        self._on_error = on_error or (lambda error: None)
        self._should_cancel = should_cancel or (lambda: False)

        self._state = BatchRunState()
        self._running = False
        self._guard = threading.Lock()

        # standalone titles already claimed by the current run
        self._claimed: set[str] = set()
        self._claim_lock = threading.Lock()

        # progress bookkeeping for the current phase
        self._phase_start = 0.0
        self._phase_span = 100.0
        self._phase_base = 0
        self._phase_total = 0

    # -- public API ------------------------------------------------

    @property
    def state(self) -> BatchRunState:
        """Read-only snapshot of the current (or last) run."""
        return self._state.snapshot()

    @property
    def is_running(self) -> bool:
        return self._running

    def prepare(self, text: str) -> list[ParsedEntry]:
        """Parse and classify playlist text for a fresh run."""
        return parse_m3u(text, proxy_url=self.proxy_url)

    def cancel(self) -> None:
        """Ask the active run to stop before its next unit of work."""
        self._state.request_cancel()

    def run(self, entries: list[ParsedEntry]) -> ImportSummary:
        """
        Import every pending entry.

        Raises:
            RunInProgressError: If this importer is already running
        """
        with self._guard:
            if self._running:
                raise RunInProgressError("An import is already running")
            self._running = True

        pending = [e for e in entries if e.status == EntryStatus.PENDING]
        groups, standalone = split_entries(pending)
        series_total = sum(len(g.episodes) for g in groups)
        self._state = BatchRunState(total_count=series_total + len(standalone))
        self._claimed = set()

        log.info(
            "Import started: %d series (%d episodes), %d other entries",
            len(groups), series_total, len(standalone),
        )

        try:
            self._require_tables(groups, standalone)

            if groups:
                self._begin_phase(0.0, SERIES_PHASE_SHARE, series_total)
                self._import_series(groups)
                phase2_start = SERIES_PHASE_SHARE
            else:
                phase2_start = 0.0

            if standalone and not self._cancelled():
                self._begin_phase(phase2_start, 100.0 - phase2_start, len(standalone))
                self._import_standalone(standalone)
        except Exception as e:
            log.error("Import failed: %s", e)
            self._state.fail(str(e))
            self._on_error(e)
        finally:
            self._state.complete()
            self._running = False

        summary = self._summary()
        log.info(
            "Import finished: %d uploaded, %d duplicate(s), %d error(s)%s",
            summary.counters["total"], summary.duplicates_found, summary.errors,
            " (cancelled)" if summary.cancelled else "",
        )
        self._on_complete(summary)
        return summary

    # -- run helpers -----------------------------------------------

    def check_configuration(self, entries: list[ParsedEntry]) -> None:
        """
        Verify the tables an import of *entries* writes to are bound.

        Raises:
            ConfigurationError: If a needed table has no id
        """
        self._require_tables(*split_entries(entries))

    def _require_tables(
        self, groups: list[SeriesGroup], standalone: list[ParsedEntry]
    ) -> None:
        if groups or standalone:
            self._client.table_id("contents")
        if groups:
            self._client.table_id("episodes")

    def _cancelled(self) -> bool:
        if self._state.cancel_requested:
            return True
        if self._should_cancel():
            self._state.request_cancel()
            return True
        return False

    def _summary(self) -> ImportSummary:
        state = self._state.snapshot()
        return ImportSummary(
            counters=state.counters.as_dict(),
            processed=state.processed_count,
            total=state.total_count,
            duplicates_found=state.duplicates_found,
            errors=state.errors,
            cancelled=state.cancel_requested,
            error=state.error,
        )

    def _begin_phase(self, start: float, span: float, total: int) -> None:
        self._phase_start = start
        self._phase_span = span
        self._phase_total = total
        self._phase_base = self._state.snapshot().processed_count

    def _report_progress(self) -> None:
        state = self._state.snapshot()
        if self._phase_total:
            done = state.processed_count - self._phase_base
            self._state.set_progress(
                self._phase_start + self._phase_span * done / self._phase_total
            )
        self._on_progress(state.processed_count, state.total_count)

    def _settle(self, entry: ParsedEntry, status: EntryStatus, error: str | None = None) -> None:
        entry.settle(status, error)
        if status == EntryStatus.ERROR:
            self._state.add_errors()
        elif status == EntryStatus.DUPLICATE:
            self._state.add_duplicates()
        self._state.add_processed()

    def _item_failed(self, error: BaseException, entry: ParsedEntry, index: int) -> None:
        """Batch-engine hook for failures a unit of work did not handle."""
        log.error("Unexpected failure for '%s': %s", entry.title, error)
        if not entry.status.is_terminal:
            entry.settle(EntryStatus.ERROR, str(error))
            self._state.add_errors()
            self._state.add_processed()

    def _processor(self) -> BatchProcessor:
        return BatchProcessor(
            batch_size=self.batch_size,
            delay_ms=self.delay_ms,
            on_progress=lambda processed, total: self._report_progress(),
            on_error=self._item_failed,
            should_cancel=self._cancelled,
        )

    # -- phase 1: series -------------------------------------------

    def _import_series(self, groups: list[SeriesGroup]) -> None:
        for group in groups:
            if self._cancelled():
                log.info("Import cancelled before series '%s'", group.name)
                return
            if not self._import_group(group):
                self._report_progress()

    def _fail_group(self, group: SeriesGroup, message: str) -> None:
        log.error("Series '%s': %s", group.name, message)
        for episode in group.episodes:
            self._settle(episode, EntryStatus.ERROR, message)

    def _import_group(self, group: SeriesGroup) -> bool:
        """Import one series; True when its episodes went through the batch engine."""
        try:
            exists = self._resolver.exists(group.name, "contents")
        except DuplicateCheckError as e:
            self._fail_group(group, str(e))
            return False

        if exists:
            log.info(
                "Series '%s' already exists, %d episode(s) skipped",
                group.name, len(group.episodes),
            )
            for episode in group.episodes:
                self._settle(episode, EntryStatus.DUPLICATE)
            return False

        try:
            parent = self._client.create_row("contents", series_row(group, self._fields))
        except ConfigurationError:
            raise
        except BaserowError as e:
            self._fail_group(group, f"Series row not created: {e}")
            return False

        self._state.count_series()
        parent_id = parent["id"]
        log.info(
            "Series '%s' created (id %s), uploading %d episode(s)",
            group.name, parent_id, len(group.episodes),
        )
        self._processor().run(
            group.episodes,
            lambda episode: self._upload_episode(episode, parent_id),
        )
        skipped = sum(e.status == EntryStatus.PENDING for e in group.episodes)
        if skipped:
            log.warning(
                "Series '%s' (id %s) left with %d of %d episode(s) not uploaded; "
                "a later import will treat the series as a duplicate",
                group.name, parent_id, skipped, len(group.episodes),
            )
        return True

    def _upload_episode(self, entry: ParsedEntry, parent_id: int) -> None:
        entry.transition(EntryStatus.PROCESSED)
        info = extract_episode_info(entry.title)
        try:
            self._client.create_row(
                "episodes", episode_row(entry, parent_id, info, self._fields),
            )
        except BaserowError as e:
            log.error("Episode '%s' failed: %s", entry.title, e)
            self._settle(entry, EntryStatus.ERROR, str(e))
            return
        self._state.count_upload(ContentType.SERIES)
        self._settle(entry, EntryStatus.UPLOADED)

    # -- phase 2: movies, tv and unclassified ----------------------

    def _import_standalone(self, entries: list[ParsedEntry]) -> None:
        self._processor().run(entries, self._upload_entry)

    def _claim(self, title: str) -> bool:
        with self._claim_lock:
            if title in self._claimed:
                return False
            self._claimed.add(title)
            return True

    def _upload_entry(self, entry: ParsedEntry) -> None:
        entry.transition(EntryStatus.PROCESSED)
        if not self._claim(entry.title):
            log.debug("'%s' repeats an earlier entry of this run", entry.title)
            self._settle(entry, EntryStatus.DUPLICATE)
            return
        try:
            if self._resolver.exists(entry.title, "contents"):
                log.debug("'%s' is a duplicate", entry.title)
                self._settle(entry, EntryStatus.DUPLICATE)
                return
            self._client.create_row("contents", content_row(entry, self._fields))
        except BaserowError as e:
            log.error("'%s' failed: %s", entry.title, e)
            self._settle(entry, EntryStatus.ERROR, str(e))
            return
        self._state.count_upload(entry.type)
        self._settle(entry, EntryStatus.UPLOADED)

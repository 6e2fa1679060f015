"""Data models for the bulksync package."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class ContentType(Enum):
    MOVIE = "movie"
    SERIES = "series"
    TV = "tv"
    UNKNOWN = "unknown"


class EntryStatus(Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    UPLOADED = "uploaded"
    DUPLICATE = "duplicate"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {EntryStatus.UPLOADED, EntryStatus.DUPLICATE, EntryStatus.ERROR}

# pending -> processed -> {uploaded | duplicate | error}
_TRANSITIONS: dict[EntryStatus, set[EntryStatus]] = {
    EntryStatus.PENDING: {EntryStatus.PROCESSED},
    EntryStatus.PROCESSED: set(_TERMINAL),
    EntryStatus.UPLOADED: set(),
    EntryStatus.DUPLICATE: set(),
    EntryStatus.ERROR: set(),
}


class InvalidTransition(ValueError):
    """Raised when an entry is moved to a status it cannot reach."""
    pass


class RunInProgressError(RuntimeError):
    """Raised when a run is started while another one is active."""
    pass


@dataclass
class ParsedEntry:
    """One ``#EXTINF`` + URL pair from a playlist."""
    title: str
    url: str
    tvg_id: str | None = None
    tvg_name: str | None = None
    tvg_logo: str | None = None
    group_title: str | None = None
    type: ContentType = ContentType.UNKNOWN
    status: EntryStatus = EntryStatus.PENDING
    error: str | None = None

    def transition(self, status: EntryStatus, error: str | None = None) -> None:
        """Move the entry along its lifecycle.

        Raises:
            InvalidTransition: if *status* is not reachable from the
                current status (terminal entries never change again).
        """
        if status not in _TRANSITIONS[self.status]:
            raise InvalidTransition(
                f"{self.title!r}: cannot go from {self.status.value} "
                f"to {status.value}"
            )
        self.status = status
        if error is not None:
            self.error = error

    def settle(self, status: EntryStatus, error: str | None = None) -> None:
        """Move a pending or processed entry to a terminal status."""
        if self.status == EntryStatus.PENDING:
            self.transition(EntryStatus.PROCESSED)
        self.transition(status, error)


@dataclass(frozen=True)
class EpisodeInfo:
    """Series name and numbering extracted from an episode title."""
    series_name: str
    season: int = 1
    episode: int = 1
    matched: bool = False


@dataclass
class SeriesGroup:
    """Episodes sharing one extracted series name, in input order."""
    name: str
    episodes: list[ParsedEntry] = field(default_factory=list)

    @property
    def representative(self) -> ParsedEntry:
        return self.episodes[0]


@dataclass(frozen=True)
class DuplicateGroup:
    """Rows sharing the same normalised key."""
    key: str
    rows: tuple[dict[str, Any], ...]

    @property
    def row_ids(self) -> list[int]:
        return [row.get("id") for row in self.rows]


# ---------------------------------------------------------------------------
# Run state -- mutated from worker threads, read through snapshots
# ---------------------------------------------------------------------------

@dataclass
class UploadCounters:
    total: int = 0
    movies: int = 0
    series: int = 0
    tv: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "movies": self.movies,
            "series": self.series,
            "tv": self.tv,
        }


@dataclass
class BatchRunState:
    """Transient state of one import or rewrite run.

    Every mutation goes through a method holding ``_lock``; callers
    outside the run only ever see copies returned by ``snapshot()``.
    """
    processed_count: int = 0
    total_count: int = 0
    duplicates_found: int = 0
    errors: int = 0
    progress_percent: float = 0.0
    is_complete: bool = False
    cancel_requested: bool = False
    error: str | None = None
    counters: UploadCounters = field(default_factory=UploadCounters)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False,
    )

    def set_total(self, total: int) -> None:
        with self._lock:
            self.total_count = total

    def add_processed(self, n: int = 1) -> int:
        with self._lock:
            self.processed_count += n
            return self.processed_count

    def add_duplicates(self, n: int = 1) -> int:
        with self._lock:
            self.duplicates_found += n
            return self.duplicates_found

    def add_errors(self, n: int = 1) -> int:
        with self._lock:
            self.errors += n
            return self.errors

    def count_upload(self, content_type: ContentType) -> None:
        """Count one uploaded entry (episodes count as entries)."""
        with self._lock:
            self.counters.total += 1
            if content_type == ContentType.MOVIE:
                self.counters.movies += 1
            elif content_type == ContentType.TV:
                self.counters.tv += 1

    def count_series(self) -> None:
        """Count one newly created series parent row."""
        with self._lock:
            self.counters.series += 1

    def set_progress(self, percent: float) -> None:
        with self._lock:
            # never moves backwards within a run
            self.progress_percent = max(
                self.progress_percent, min(100.0, max(0.0, percent)),
            )

    def request_cancel(self) -> None:
        with self._lock:
            self.cancel_requested = True

    def fail(self, message: str) -> None:
        with self._lock:
            if self.error is None:
                self.error = message

    def complete(self) -> None:
        with self._lock:
            self.is_complete = True
            if not self.cancel_requested and self.error is None:
                self.progress_percent = 100.0

    def snapshot(self) -> "BatchRunState":
        with self._lock:
            return replace(
                self,
                counters=replace(self.counters),
                _lock=threading.Lock(),
            )


@dataclass(frozen=True)
class ImportSummary:
    """Outcome of one bulk import run."""
    counters: dict[str, int]
    processed: int
    total: int
    duplicates_found: int
    errors: int
    cancelled: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.errors == 0 and not self.cancelled

    def as_dict(self) -> dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "processed": self.processed,
            "total": self.total,
            "duplicates_found": self.duplicates_found,
            "errors": self.errors,
            "cancelled": self.cancelled,
            "error": self.error,
        }


@dataclass(frozen=True)
class RewriteSummary:
    """Outcome of one bulk URL rewrite run."""
    table: str
    scanned: int
    matched: int
    updated: int
    failed: int = 0
    cancelled: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.failed == 0 and not self.cancelled

    def as_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "scanned": self.scanned,
            "matched": self.matched,
            "updated": self.updated,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "error": self.error,
        }

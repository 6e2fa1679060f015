"""Tests for entry lifecycle, run state and row payloads."""

import threading

import pytest

from bulksync.models import (
    BatchRunState,
    ContentType,
    EntryStatus,
    InvalidTransition,
    ParsedEntry,
    SeriesGroup,
)
from bulksync.rows import content_row, episode_row, series_row


def _entry(**kwargs) -> ParsedEntry:
    kwargs.setdefault("title", "Matrix (1999)")
    kwargs.setdefault("url", "https://cdn.example/m.mp4")
    return ParsedEntry(**kwargs)


# ---------------------------------------------------------------------------
# Entry lifecycle
# ---------------------------------------------------------------------------


class TestEntryStatus:
    def test_forward_path(self):
        entry = _entry()
        entry.transition(EntryStatus.PROCESSED)
        entry.transition(EntryStatus.UPLOADED)
        assert entry.status == EntryStatus.UPLOADED
        assert entry.status.is_terminal

    def test_pending_cannot_skip_processed(self):
        with pytest.raises(InvalidTransition):
            _entry().transition(EntryStatus.UPLOADED)

    def test_terminal_never_changes(self):
        entry = _entry()
        entry.settle(EntryStatus.DUPLICATE)
        with pytest.raises(InvalidTransition):
            entry.transition(EntryStatus.ERROR)

    def test_settle_records_error(self):
        entry = _entry()
        entry.settle(EntryStatus.ERROR, "HTTP 500")
        assert entry.status == EntryStatus.ERROR
        assert entry.error == "HTTP 500"


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------


class TestBatchRunState:
    def test_concurrent_increments(self):
        state = BatchRunState(total_count=4000)

        def work():
            for _ in range(1000):
                state.add_processed()
                state.count_upload(ContentType.MOVIE)

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        snap = state.snapshot()
        assert snap.processed_count == 4000
        assert snap.counters.total == 4000
        assert snap.counters.movies == 4000

    def test_snapshot_is_a_copy(self):
        state = BatchRunState()
        snap = state.snapshot()
        state.add_errors()
        state.count_series()
        assert snap.errors == 0
        assert snap.counters.series == 0

    def test_progress_never_decreases(self):
        state = BatchRunState()
        state.set_progress(60)
        state.set_progress(40)
        state.set_progress(140)
        assert state.progress_percent == 100.0

    def test_complete_sets_full_progress(self):
        state = BatchRunState()
        state.complete()
        assert state.is_complete
        assert state.progress_percent == 100.0

    def test_cancelled_run_not_at_full_progress(self):
        state = BatchRunState()
        state.set_progress(30)
        state.request_cancel()
        state.complete()
        assert state.is_complete
        assert state.progress_percent == 30.0

    def test_first_error_kept(self):
        state = BatchRunState()
        state.fail("first")
        state.fail("second")
        assert state.error == "first"

    def test_upload_counters_by_type(self):
        state = BatchRunState()
        for content_type in (ContentType.MOVIE, ContentType.TV, ContentType.UNKNOWN, ContentType.SERIES):
            state.count_upload(content_type)
        assert state.counters.as_dict() == {"total": 4, "movies": 1, "series": 0, "tv": 1}


# ---------------------------------------------------------------------------
# Row payloads
# ---------------------------------------------------------------------------


class TestRows:
    def test_content_row(self):
        entry = _entry(
            tvg_logo="https://img/m.jpg", group_title="Filmes", type=ContentType.MOVIE,
        )
        assert content_row(entry) == {
            "Nome": "Matrix (1999)",
            "Link": "https://cdn.example/m.mp4",
            "Capa": "https://img/m.jpg",
            "Categoria": "Filmes",
            "Tipo": "Filme",
        }

    def test_empty_values_left_out(self):
        row = content_row(_entry(type=ContentType.UNKNOWN))
        assert "Capa" not in row
        assert "Categoria" not in row
        assert row["Tipo"] == "Outro"

    def test_series_row_from_first_episode(self):
        first = _entry(title="Show T1|EP1", tvg_logo="https://img/s.jpg", group_title="Séries")
        second = _entry(title="Show T1|EP2", tvg_logo="https://img/other.jpg")
        row = series_row(SeriesGroup(name="Show", episodes=[first, second]))
        assert row == {
            "Nome": "Show",
            "Capa": "https://img/s.jpg",
            "Categoria": "Séries",
            "Tipo": "Série",
        }

    def test_episode_row(self):
        row = episode_row(_entry(title="Show S02E07"), parent_id=42)
        assert row["Temporada"] == 2
        assert row["Episódio"] == 7
        assert row["Conteúdo"] == [42]
        assert row["Nome"] == "Show S02E07"

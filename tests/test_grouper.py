"""Unit tests for series grouping."""

from bulksync.grouper import group_series, series_name, split_entries
from bulksync.models import ContentType, ParsedEntry


def _entry(title: str, type_: ContentType = ContentType.SERIES) -> ParsedEntry:
    return ParsedEntry(title=title, url=f"https://cdn.example/{len(title)}", type=type_)


class TestGroupSeries:
    def test_episodes_grouped_by_name(self):
        groups = group_series([
            _entry("Lost S01E01"),
            _entry("Dark S01E01"),
            _entry("Lost S01E02"),
        ])
        assert [g.name for g in groups] == ["Lost", "Dark"]
        assert [e.title for e in groups[0].episodes] == ["Lost S01E01", "Lost S01E02"]

    def test_input_order_kept(self):
        groups = group_series([_entry("Lost S02E01"), _entry("Lost S01E01")])
        assert [e.title for e in groups[0].episodes] == ["Lost S02E01", "Lost S01E01"]

    def test_non_series_ignored(self):
        groups = group_series([_entry("Matrix (1999)", ContentType.MOVIE), _entry("Show T1|EP1")])
        assert [g.name for g in groups] == ["Show"]

    def test_mixed_marker_styles_share_group(self):
        groups = group_series([_entry("Show T1|EP1"), _entry("Show S01E02")])
        assert len(groups) == 1
        assert len(groups[0].episodes) == 2

    def test_representative_is_first_episode(self):
        groups = group_series([_entry("Lost S01E05"), _entry("Lost S01E01")])
        assert groups[0].representative.title == "Lost S01E05"

    def test_empty(self):
        assert group_series([]) == []


def test_series_name():
    assert series_name("Chaves - Episódio 3") == "Chaves"


def test_split_entries():
    movie = _entry("Matrix (1999)", ContentType.MOVIE)
    tv = _entry("Globo", ContentType.TV)
    groups, standalone = split_entries([movie, _entry("Lost S01E01"), tv])
    assert [g.name for g in groups] == ["Lost"]
    assert standalone == [movie, tv]

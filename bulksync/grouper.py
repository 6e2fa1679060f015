"""Grouping of series episodes by extracted series name."""
from .models import ContentType, ParsedEntry, SeriesGroup
from .parser import extract_episode_info


def series_name(title: str) -> str:
    """Series name for an episode title (the whole title if unmarked)."""
    return extract_episode_info(title).series_name


def group_series(entries: list[ParsedEntry]) -> list[SeriesGroup]:
    """
    Partition series entries into SeriesGroup objects.

    Entries whose type is not ``series`` are ignored. Groups appear in
    order of their first episode and keep episodes in input order;
    nothing is re-sorted by season or episode number.
    """
    groups: dict[str, SeriesGroup] = {}
    for entry in entries:
        if entry.type != ContentType.SERIES:
            continue
        name = series_name(entry.title)
        group = groups.get(name)
        if group is None:
            group = groups[name] = SeriesGroup(name=name)
        group.episodes.append(entry)
    return list(groups.values())


def split_entries(
    entries: list[ParsedEntry],
) -> tuple[list[SeriesGroup], list[ParsedEntry]]:
    """Return ``(series_groups, standalone_entries)`` for an import run."""
    groups = group_series(entries)
    standalone = [e for e in entries if e.type != ContentType.SERIES]
    return groups, standalone

"""Content-type classification for playlist entries.

Rules are evaluated in order and the first match wins. Series markers
are checked before movie markers: an episode title often carries a
parenthesised year as well.
"""
import re

from .models import ContentType, ParsedEntry


# Season / episode markers in a title or group title
SERIES_MARKERS = [
    re.compile(r'\bS\d{1,3}(?:\s*E\d{1,4})?\b', re.IGNORECASE),
    re.compile(r'\bT\d{1,3}\s*E\d{1,4}\b', re.IGNORECASE),
    re.compile(r'\bT\d{1,3}\s*\|\s*EP?\s*\d{1,4}\b', re.IGNORECASE),
    re.compile(r'\btemporada\b.*\bepis[oó]dio\b', re.IGNORECASE),
    re.compile(r'\btemporada\b', re.IGNORECASE),
    re.compile(r'\bepis[oó]dio\b', re.IGNORECASE),
    re.compile(r'\bep\.', re.IGNORECASE),
]

SERIES_GROUP_KEYWORDS = ("série", "series", "show")
MOVIE_GROUP_KEYWORDS = ("filme", "movie", "cinema")
TV_GROUP_KEYWORDS = ("tv", "channel", "canal", "ao vivo", "live")

YEAR_IN_PARENS = re.compile(r'\(\s*(?:19|20)\d{2}\s*\)')
PARENTHETICAL = re.compile(r'\([^)]*\)')


def has_episode_markers(text: str | None) -> bool:
    """Check whether *text* contains a season or episode marker."""
    if not text:
        return False
    return any(pattern.search(text) for pattern in SERIES_MARKERS)


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def classify_text(title: str | None, group_title: str | None = None) -> ContentType:
    """Classify from raw title and group-title strings."""
    title = title or ""
    group = (group_title or "").lower()

    if has_episode_markers(title) or has_episode_markers(group):
        return ContentType.SERIES
    if _contains_any(group, SERIES_GROUP_KEYWORDS):
        return ContentType.SERIES

    if _contains_any(group, MOVIE_GROUP_KEYWORDS):
        return ContentType.MOVIE
    if YEAR_IN_PARENS.search(title) or PARENTHETICAL.search(title):
        return ContentType.MOVIE

    if _contains_any(group, TV_GROUP_KEYWORDS):
        return ContentType.TV

    return ContentType.UNKNOWN


def classify(entry: ParsedEntry) -> ContentType:
    """Classify a parsed entry as movie, series, tv or unknown."""
    return classify_text(entry.title, entry.group_title)

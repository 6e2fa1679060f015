"""Parser module for M3U playlists and episode titles."""
import logging
import re
from urllib.parse import urlencode, urlparse

from .classifier import classify
from .models import EpisodeInfo, ParsedEntry

log = logging.getLogger(__name__)


# http:// streams and logos are routed through this HTTPS endpoint,
# which fetches the original URL given in its ``url`` query parameter.
DEFAULT_PROXY_URL = "https://corsproxy.io/"

EXTINF_PREFIX = "#EXTINF"

# key="value" attributes read from #EXTINF lines
_ATTR_RE = re.compile(r'([A-Za-z0-9_-]+)\s*=\s*"([^"]*)"')
KNOWN_ATTRIBUTES = {
    "tvg-id": "tvg_id",
    "tvg-name": "tvg_name",
    "tvg-logo": "tvg_logo",
    "group-title": "group_title",
}

# Episode patterns (order matters - more specific first)
EPISODE_PATTERNS = [
    # S01E04 / T1E4 / s1 e4
    re.compile(r'\b[ST](\d{1,3})\s*E(\d{1,4})\b', re.IGNORECASE),
    # T1|EP4, T01 | E04
    re.compile(r'\bT(\d{1,3})\s*\|\s*EP?\s*(\d{1,4})\b', re.IGNORECASE),
    # Temporada 1 ... Episódio 4
    re.compile(
        r'\btemporada\s*(\d{1,3})\b.*?\bepis[oó]dio\s*(\d{1,4})\b',
        re.IGNORECASE,
    ),
]

# "Show - Episódio 4" carries no season number
EPISODE_ONLY_PATTERN = re.compile(r'[-–]\s*epis[oó]dio\s*(\d{1,4})\b', re.IGNORECASE)

# separators left dangling once the season/episode suffix is cut off
_TRAILING_SEPARATORS = " \t-–|:_."


def is_valid_url(url: str) -> bool:
    """Check that *url* is a well-formed absolute http(s) URL."""
    if not url or any(ch.isspace() for ch in url):
        return False
    try:
        parsed = urlparse(url)
        # .port raises ValueError on a malformed port
        parsed.port
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def upgrade_url(url: str | None, proxy_url: str | None = DEFAULT_PROXY_URL) -> str | None:
    """
    Route a plain ``http://`` URL through the HTTPS proxy endpoint.

    HTTPS URLs, empty values and a disabled proxy (``None`` or empty)
    leave *url* unchanged.
    """
    if not url or not proxy_url or not url.lower().startswith("http://"):
        return url
    joiner = "&" if "?" in proxy_url else "?"
    return f"{proxy_url}{joiner}{urlencode({'url': url})}"


def _title_offset(line: str) -> int | None:
    """Index of the comma that separates attributes from the title.

    Commas inside quoted attribute values are skipped.
    """
    in_quotes = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            return i
    return None


def parse_extinf(line: str) -> dict[str, str | None]:
    """
    Extract the title and known attributes of an ``#EXTINF`` line.

    Returns:
        Dict with ``title`` (empty when none is present) and the
        ``tvg_id``, ``tvg_name``, ``tvg_logo``, ``group_title`` keys
        (``None`` when the attribute is absent).
    """
    info: dict[str, str | None] = {name: None for name in KNOWN_ATTRIBUTES.values()}

    comma = _title_offset(line)
    if comma is None:
        head, title = line, ""
    else:
        head, title = line[:comma], line[comma + 1:]

    for key, value in _ATTR_RE.findall(head):
        name = KNOWN_ATTRIBUTES.get(key.lower())
        if name and value.strip():
            info[name] = value.strip()

    info["title"] = title.strip()
    return info


def parse_m3u(text: str, proxy_url: str | None = DEFAULT_PROXY_URL) -> list[ParsedEntry]:
    """
    Parse M3U playlist text into classified entries.

    An ``#EXTINF`` directive opens a pending entry; the next line starting
    with ``http://`` or ``https://`` closes it. Malformed URL lines drop
    the pending entry with a warning instead of failing the parse.

    Args:
        text: Full playlist text
        proxy_url: HTTPS endpoint used for ``http://`` stream and logo
            URLs. ``None`` keeps URLs untouched.

    Returns:
        List of ParsedEntry in playlist order
    """
    entries: list[ParsedEntry] = []
    pending: dict[str, str | None] | None = None
    pending_line = 0

    for lineno, raw in enumerate(text.splitlines(), 1):
        line = raw.strip()
        if not line:
            continue

        if line.upper().startswith(EXTINF_PREFIX):
            if pending is not None:
                log.debug("Line %d: directive without URL replaced", pending_line)
            pending = parse_extinf(line)
            pending_line = lineno
            continue

        if pending is None or not line.lower().startswith(("http://", "https://")):
            continue

        if not is_valid_url(line):
            log.warning(
                "Line %d: invalid URL for '%s', entry skipped",
                lineno, pending.get("title") or "",
            )
            pending = None
            continue

        entry = ParsedEntry(
            title=pending["title"] or "",
            url=upgrade_url(line, proxy_url),
            tvg_id=pending["tvg_id"],
            tvg_name=pending["tvg_name"],
            tvg_logo=upgrade_url(pending["tvg_logo"], proxy_url),
            group_title=pending["group_title"],
        )
        entry.type = classify(entry)
        entries.append(entry)
        pending = None

    log.debug("Parsed %d playlist entries", len(entries))
    return entries


def _strip_suffix(title: str, start: int) -> str:
    name = title[:start].rstrip(_TRAILING_SEPARATORS).strip()
    return name or title.strip()


def extract_episode_info(title: str) -> EpisodeInfo:
    """
    Extract series name, season and episode from an episode title.

    Used both to group episodes into series and to number the episode
    rows, so both always agree. Season and episode default to 1 when
    the title carries no recognisable marker; the series name is then
    the whole title.
    """
    for pattern in EPISODE_PATTERNS:
        match = pattern.search(title)
        if match:
            return EpisodeInfo(
                series_name=_strip_suffix(title, match.start()),
                season=int(match.group(1)),
                episode=int(match.group(2)),
                matched=True,
            )

    match = EPISODE_ONLY_PATTERN.search(title)
    if match:
        return EpisodeInfo(
            series_name=_strip_suffix(title, match.start()),
            season=1,
            episode=int(match.group(1)),
            matched=True,
        )

    return EpisodeInfo(series_name=title.strip())

"""Duplicate detection against the row-store and within row lists."""
import logging
from typing import Any, Iterable

from .baserow import BaserowClient, BaserowError, ConfigurationError
from .models import DuplicateGroup
from .rows import DEFAULT_FIELDS, FieldMap

log = logging.getLogger(__name__)


class DuplicateCheckError(BaserowError):
    """The existence check itself failed; the verdict is unknown."""
    pass


class DuplicateResolver:
    """Answers "is there already a row with this title?" for one table."""

    def __init__(self, client: BaserowClient, fields: FieldMap = DEFAULT_FIELDS):
        self._client = client
        self._fields = fields

    def exists(self, title: str, table: str = "contents") -> bool:
        """
        Check for a row whose identity field equals *title* exactly.
        A blank *title* matches rows whose identity field is empty.

        The comparison runs server-side and only one row is requested.

        Raises:
            ConfigurationError: If *table* has no id bound
            DuplicateCheckError: If the remote query fails. Never
                reported as "not found".
        """
        field = self._fields.identity_field(table)
        # an empty equal filter is ignored server-side and matches every row
        if title.strip():
            filters = {field: title}
        else:
            filters = {f"{field}__empty": ""}
        try:
            page = self._client.list_rows(table, page=1, size=1, filters=filters)
        except ConfigurationError:
            raise
        except BaserowError as e:
            raise DuplicateCheckError(
                f"Duplicate check for '{title}' failed: {e}",
                status=e.status,
                code=e.code,
            ) from e
        found = bool(page.results)
        if found:
            log.debug("'%s' already exists in %s", title, table)
        return found


# ---------------------------------------------------------------------------
# Local duplicate audits over already-fetched rows
# ---------------------------------------------------------------------------

def _normalize(value: Any) -> str:
    return str(value if value is not None else "").strip().lower()


def _repeated(buckets: dict[str, list[dict[str, Any]]]) -> list[DuplicateGroup]:
    return [
        DuplicateGroup(key=key, rows=tuple(rows))
        for key, rows in buckets.items()
        if len(rows) > 1
    ]


def find_duplicates(rows: Iterable[dict[str, Any]], field: str) -> list[DuplicateGroup]:
    """
    Group rows sharing the same value of *field*.

    Values are compared trimmed and case-insensitively; blank values are
    ignored. Only groups with more than one row are returned.
    """
    buckets: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        key = _normalize(row.get(field))
        if key:
            buckets.setdefault(key, []).append(row)
    return _repeated(buckets)


def find_episode_duplicates(
    rows: Iterable[dict[str, Any]], fields: FieldMap = DEFAULT_FIELDS
) -> list[DuplicateGroup]:
    """Group episode rows sharing season, episode and name."""
    buckets: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        name = _normalize(row.get(fields.episode_title))
        season = row.get(fields.episode_season)
        episode = row.get(fields.episode_number)
        if not name or season in (None, "") or episode in (None, ""):
            continue
        buckets.setdefault(f"T{season}-E{episode}-{name}", []).append(row)
    return _repeated(buckets)


def scan_table(
    client: BaserowClient,
    table: str,
    field: str | None = None,
    fields: FieldMap = DEFAULT_FIELDS,
) -> list[DuplicateGroup]:
    """
    Fetch every row of *table* and report duplicate groups.

    Without *field*, episodes are keyed by season/episode/name and other
    tables by their identity field.
    """
    rows = list(client.iter_rows(table))
    log.info("Scanned %d rows of %s", len(rows), table)
    if field is None and table == "episodes":
        return find_episode_duplicates(rows, fields)
    return find_duplicates(rows, field or fields.identity_field(table))

"""Row payloads sent to the catalog tables."""
from dataclasses import dataclass
from typing import Any

from .models import ContentType, EpisodeInfo, ParsedEntry, SeriesGroup
from .parser import extract_episode_info


@dataclass(frozen=True)
class FieldMap:
    """Column names of the catalog tables (Baserow user field names)."""
    content_title: str = "Nome"
    content_cover: str = "Capa"
    content_category: str = "Categoria"
    content_link: str = "Link"
    content_type: str = "Tipo"

    episode_title: str = "Nome"
    episode_link: str = "Link"
    episode_cover: str = "Capa"
    episode_season: str = "Temporada"
    episode_number: str = "Episódio"
    episode_parent: str = "Conteúdo"

    def identity_field(self, table: str) -> str:
        """Column holding the title used for duplicate detection."""
        if table == "episodes":
            return self.episode_title
        return self.content_title

    def url_fields(self, table: str) -> tuple[str, str | None]:
        """``(url_field, secondary_url_field)`` rewritten for *table*."""
        if table == "episodes":
            return self.episode_link, self.episode_cover
        return self.content_link, self.content_cover


DEFAULT_FIELDS = FieldMap()

# Values of the content "Tipo" single-select
TYPE_LABELS = {
    ContentType.MOVIE: "Filme",
    ContentType.SERIES: "Série",
    ContentType.TV: "TV",
    ContentType.UNKNOWN: "Outro",
}


def _compact(row: dict[str, Any]) -> dict[str, Any]:
    """Drop empty optional values so remote defaults apply."""
    return {k: v for k, v in row.items() if v not in (None, "")}


def content_row(entry: ParsedEntry, fields: FieldMap = DEFAULT_FIELDS) -> dict[str, Any]:
    """Content row for a movie, tv channel or unclassified entry."""
    return _compact({
        fields.content_title: entry.title,
        fields.content_link: entry.url,
        fields.content_cover: entry.tvg_logo,
        fields.content_category: entry.group_title,
        fields.content_type: TYPE_LABELS[entry.type],
    })


def series_row(group: SeriesGroup, fields: FieldMap = DEFAULT_FIELDS) -> dict[str, Any]:
    """Parent content row of a series; artwork and group come from its first episode."""
    first = group.representative
    return _compact({
        fields.content_title: group.name,
        fields.content_cover: first.tvg_logo,
        fields.content_category: first.group_title,
        fields.content_type: TYPE_LABELS[ContentType.SERIES],
    })


def episode_row(
    entry: ParsedEntry,
    parent_id: int,
    info: EpisodeInfo | None = None,
    fields: FieldMap = DEFAULT_FIELDS,
) -> dict[str, Any]:
    """Episode row linked to the series parent row *parent_id*."""
    info = info or extract_episode_info(entry.title)
    row = _compact({
        fields.episode_title: entry.title,
        fields.episode_link: entry.url,
        fields.episode_cover: entry.tvg_logo,
    })
    row[fields.episode_season] = info.season
    row[fields.episode_number] = info.episode
    row[fields.episode_parent] = [parent_id]
    return row

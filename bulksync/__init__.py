"""
bulksync - Baserow catalog bulk import and sync

Imports M3U playlists into Baserow catalog tables and rewrites URLs
across whole tables.
"""
from .models import (
    ContentType,
    EntryStatus,
    ParsedEntry,
    SeriesGroup,
    BatchRunState,
    ImportSummary,
    RewriteSummary,
)
from .parser import parse_m3u, extract_episode_info
from .classifier import classify
from .grouper import group_series
from .baserow import BaserowClient, BaserowConfig, BaserowError, ConfigurationError
from .duplicates import DuplicateResolver, DuplicateCheckError, find_duplicates
from .batch import BatchProcessor
from .importer import BulkImporter
from .rewriter import UrlRewriter, rewrite_urls

__version__ = "0.4.0"
__all__ = [
    "ContentType",
    "EntryStatus",
    "ParsedEntry",
    "SeriesGroup",
    "BatchRunState",
    "ImportSummary",
    "RewriteSummary",
    "parse_m3u",
    "extract_episode_info",
    "classify",
    "group_series",
    "BaserowClient",
    "BaserowConfig",
    "BaserowError",
    "ConfigurationError",
    "DuplicateResolver",
    "DuplicateCheckError",
    "find_duplicates",
    "BatchProcessor",
    "BulkImporter",
    "UrlRewriter",
    "rewrite_urls",
]

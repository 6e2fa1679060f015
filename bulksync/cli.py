#!/usr/bin/env python3
"""
bulksync - Baserow catalog bulk import and sync

A CLI tool for importing M3U playlists into Baserow catalog tables and
for rewriting URLs across a whole table.
"""
import argparse
import logging
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

import requests

from . import __version__
from .baserow import DEFAULT_TIMEOUT, TABLES, BaserowClient, BaserowError, ConfigurationError
from .duplicates import scan_table
from .history import RunHistoryManager
from .importer import BulkImporter, summarize_playlist
from .logs import setup_logging
from .models import EntryStatus, ImportSummary, RewriteSummary
from .parser import parse_m3u
from .rewriter import UrlRewriter
from .settings import SettingsManager, load_config, load_settings, masked

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130


def print_progress(processed: int, total: int) -> None:
    """Print a one-line progress counter."""
    percent = 100 * processed // total if total else 100
    print(f"  Progress: {processed}/{total} ({percent}%)")


def confirm_proceed(message: str) -> bool:
    """
    Ask user to confirm proceeding.

    Returns:
        True if user confirms, False otherwise
    """
    while True:
        response = input(f"\n{message} (y/n): ").strip().lower()
        if response in ('y', 'yes'):
            return True
        if response in ('n', 'no'):
            return False
        print("Please enter 'y' or 'n'.")


@contextmanager
def cancel_on_interrupt(cancel: Callable[[], None]) -> Iterator[None]:
    """Turn Ctrl-C into a cooperative cancellation request."""
    def handler(signum, frame):
        print("\nCancelling... waiting for in-flight requests.")
        cancel()

    previous = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def read_playlist(source: str, timeout: float = DEFAULT_TIMEOUT) -> str:
    """
    Read playlist text from a file path, '-' (stdin) or an http(s) URL.

    Raises:
        OSError: If the file cannot be read
        requests.RequestException: If the URL cannot be fetched
    """
    if source == "-":
        return sys.stdin.read()
    if source.lower().startswith(("http://", "https://")):
        log.info("Downloading playlist from %s", source)
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        response.encoding = response.encoding or "utf-8"
        return response.text
    return Path(source).read_text(encoding="utf-8", errors="replace")


def make_client(settings: dict) -> BaserowClient:
    return BaserowClient(load_config(settings))


def exit_code(summary: ImportSummary | RewriteSummary) -> int:
    if summary.error:
        return EXIT_FAILED
    if summary.cancelled:
        return EXIT_CANCELLED
    return EXIT_OK if summary.ok else EXIT_FAILED


def record_history(save: Callable[[], str], enabled: bool) -> None:
    if not enabled:
        return
    try:
        save()
    except Exception as e:  # best effort
        log.warning("Run history not saved: %s", e)


# ---------------------------------------------------------------------------
# Sub-commands
# ---------------------------------------------------------------------------

def print_preview(preview: dict) -> None:
    print(f"Entries:  {preview['entries']}")
    print(f"  Movies:   {preview['movies']}")
    print(f"  Series:   {preview['series']} ({preview['episodes']} episodes)")
    print(f"  TV:       {preview['tv']}")
    print(f"  Unknown:  {preview['unknown']}")
    repeated = preview["repeated_titles"]
    if repeated:
        print(f"Titles repeated in the playlist: {len(repeated)}")
        for title, count in repeated[:10]:
            print(f"  \"{title}\" ({count}x)")
        if len(repeated) > 10:
            print(f"  + {len(repeated) - 10} more")


def print_import_summary(summary: ImportSummary) -> None:
    counters = summary.counters
    print("-" * 50)
    print(
        f"Uploaded: {counters['total']} "
        f"(movies {counters['movies']}, series {counters['series']}, tv {counters['tv']}) | "
        f"Duplicates: {summary.duplicates_found} | Errors: {summary.errors}"
    )
    if summary.cancelled:
        print(f"Cancelled after {summary.processed} of {summary.total} entries.")
    if summary.error:
        print(f"Error: {summary.error}")


def cmd_import(args: argparse.Namespace, settings: dict) -> int:
    try:
        text = read_playlist(args.source, settings["request_timeout"])
    except (OSError, requests.RequestException) as e:
        print(f"Error: could not read playlist: {e}")
        return EXIT_FAILED

    proxy_url = None if args.no_proxy else (settings.get("proxy_url") or None)

    if args.dry_run:
        entries = parse_m3u(text, proxy_url=proxy_url)
        print("[DRY RUN - nothing will be uploaded]\n")
        print_preview(summarize_playlist(entries))
        return EXIT_OK

    try:
        client = make_client(settings)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG

    importer = BulkImporter(
        client,
        batch_size=args.batch_size or settings["batch_size"],
        delay_ms=args.delay_ms if args.delay_ms is not None else settings["delay_ms"],
        proxy_url=proxy_url,
        on_progress=print_progress,
    )
    entries = importer.prepare(text)
    if not entries:
        print("No entries found in the playlist.")
        return EXIT_OK

    print_preview(summarize_playlist(entries))
    try:
        importer.check_configuration(entries)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG

    if args.confirm and not confirm_proceed(f"Upload {len(entries)} entries?"):
        print("Cancelled.")
        return EXIT_OK

    print("\nUploading...")
    with cancel_on_interrupt(importer.cancel):
        summary = importer.run(entries)

    for entry in entries:
        if entry.status == EntryStatus.ERROR:
            print(f"  [ERROR] {entry.title}: {entry.error}")

    print_import_summary(summary)
    record_history(
        lambda: RunHistoryManager().save_import(args.source, summary),
        not args.no_history,
    )
    return exit_code(summary)


def cmd_rewrite(args: argparse.Namespace, settings: dict) -> int:
    try:
        client = make_client(settings)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG

    try:
        client.table_id(args.table)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG

    rewriter = UrlRewriter(client, on_progress=print_progress)

    if args.dry_run:
        try:
            matches, scanned = rewriter.find_matches(args.table, args.source)
        except BaserowError as e:
            print(f"Error: {e}")
            return EXIT_FAILED
        print("[DRY RUN - no rows will be updated]\n")
        for row in matches[:20]:
            for name, value in rewriter.rewrite_fields(row, args.table, args.source, args.target).items():
                print(f"Row {row.get('id')} {name}:")
                print(f"  {row.get(name)}")
                print(f"  -> {value}")
        if len(matches) > 20:
            print(f"+ {len(matches) - 20} more rows")
        print("-" * 50)
        print(f"Would update: {len(matches)} of {scanned} rows")
        return EXIT_OK

    if args.confirm and not confirm_proceed(
        f"Replace '{args.source}' with '{args.target}' in {args.table}?"
    ):
        print("Cancelled.")
        return EXIT_OK

    with cancel_on_interrupt(rewriter.cancel):
        summary = rewriter.run(args.table, args.source, args.target)

    print("-" * 50)
    print(
        f"Updated: {summary.updated} of {summary.matched} matching rows "
        f"({summary.scanned} scanned) | Errors: {summary.failed}"
    )
    if summary.cancelled:
        print("Cancelled.")
    if summary.error:
        print(f"Error: {summary.error}")
    record_history(
        lambda: RunHistoryManager().save_rewrite(
            f"{args.table}: {args.source} -> {args.target}", summary,
        ),
        not args.no_history,
    )
    return exit_code(summary)


def cmd_duplicates(args: argparse.Namespace, settings: dict) -> int:
    try:
        client = make_client(settings)
        groups = scan_table(client, args.table, args.field)
    except ConfigurationError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG
    except BaserowError as e:
        print(f"Error: {e}")
        return EXIT_FAILED

    if not groups:
        print(f"No duplicates found in {args.table}.")
        return EXIT_OK

    for group in groups:
        ids = ", ".join(str(i) for i in group.row_ids)
        print(f"\"{group.key}\" ({len(group.rows)} rows): {ids}")
    print("-" * 50)
    print(f"Duplicate groups: {len(groups)}")
    return EXIT_OK


def cmd_history(args: argparse.Namespace, settings: dict) -> int:
    records = RunHistoryManager().get_recent_runs(args.limit)
    if not records:
        print("No runs recorded yet.")
        return EXIT_OK
    for record in records:
        flags = ""
        if record.cancelled:
            flags += " [CANCELLED]"
        if record.error:
            flags += f" [ERROR] {record.error}"
        print(
            f"{record.timestamp}  {record.kind:<7} {record.source}\n"
            f"    total {record.total}, ok {record.succeeded}, "
            f"duplicates {record.duplicates}, errors {record.errors}{flags}"
        )
    return EXIT_OK


def cmd_config(args: argparse.Namespace, settings: dict) -> int:
    if args.action == "show":
        for key, value in masked(settings).items():
            if isinstance(value, dict):
                for name, sub in value.items():
                    print(f"{key}.{name} = {sub}")
            else:
                print(f"{key} = {value}")
        return EXIT_OK

    if not args.key or args.value is None:
        print("Usage: bulksync config set KEY VALUE")
        return EXIT_FAILED
    mgr = SettingsManager()
    try:
        mgr.set(args.key, args.value)
    except (KeyError, ValueError):
        print(f"Error: unknown or invalid setting: {args.key}")
        return EXIT_FAILED
    if not mgr.save():
        print(f"Error: could not write {mgr.path}")
        return EXIT_FAILED
    print(f"Saved {args.key}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bulksync",
        description="Bulk import M3U playlists into Baserow and rewrite URLs in bulk",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed debug information"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_import = sub.add_parser("import", help="Import an M3U playlist")
    p_import.add_argument(
        "source",
        help="Playlist file, '-' for stdin, or an http(s) URL"
    )
    p_import.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and classify only, upload nothing"
    )
    p_import.add_argument(
        "--batch-size",
        type=int,
        default=None,
        metavar="N",
        help="Concurrent uploads (default: from settings)"
    )
    p_import.add_argument(
        "--delay-ms",
        type=int,
        default=None,
        metavar="MS",
        help="Pause between upload waves (default: from settings)"
    )
    p_import.add_argument(
        "--no-proxy",
        action="store_true",
        help="Keep http:// URLs as they are"
    )
    p_import.add_argument(
        "--confirm",
        action="store_true",
        help="Ask for confirmation before uploading"
    )
    p_import.add_argument(
        "--no-history",
        action="store_true",
        help="Don't record this run in the history"
    )
    p_import.set_defaults(func=cmd_import)

    p_rewrite = sub.add_parser("rewrite", help="Replace text in the URL fields of a table")
    p_rewrite.add_argument("--table", choices=TABLES, default="contents")
    p_rewrite.add_argument("--from", dest="source", required=True, help="Text to replace")
    p_rewrite.add_argument("--to", dest="target", required=True, help="Replacement text")
    p_rewrite.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the rows that would change"
    )
    p_rewrite.add_argument(
        "--confirm",
        action="store_true",
        help="Ask for confirmation before updating"
    )
    p_rewrite.add_argument(
        "--no-history",
        action="store_true",
        help="Don't record this run in the history"
    )
    p_rewrite.set_defaults(func=cmd_rewrite)

    p_dupes = sub.add_parser("duplicates", help="List duplicate rows of a table")
    p_dupes.add_argument("--table", choices=TABLES, default="contents")
    p_dupes.add_argument(
        "--field",
        default=None,
        help="Field to compare (default: title; episodes use season/episode/name)"
    )
    p_dupes.set_defaults(func=cmd_duplicates)

    p_history = sub.add_parser("history", help="Show recent import and rewrite runs")
    p_history.add_argument("--limit", type=int, default=20, metavar="N")
    p_history.set_defaults(func=cmd_history)

    p_config = sub.add_parser("config", help="Show or change settings")
    p_config.add_argument("action", choices=("show", "set"))
    p_config.add_argument("key", nargs="?")
    p_config.add_argument("value", nargs="?")
    p_config.set_defaults(func=cmd_config)

    return parser


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parsed_args = build_parser().parse_args(args)
    setup_logging(parsed_args.verbose)

    try:
        settings = load_settings()
    except ValueError as e:
        print(f"Error: invalid setting: {e}")
        return EXIT_CONFIG

    return parsed_args.func(parsed_args, settings)


if __name__ == "__main__":
    sys.exit(main())

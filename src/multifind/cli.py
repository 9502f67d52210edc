#  Copyright (c) 2025 Tom Villani, Ph.D.

"""Command-line interface for multifind.

Two subcommands drive the library end to end:

``multifind highlight PAGE -t TERM ...``
    Load an HTML page into a tab, commit each term through a Query Surface,
    optionally run a live preview search, and report per-term match counts.
    The highlighted page can be written out with ``-o``.

``multifind log``
    Print the audit log of past searches kept in a storage file.
"""

import argparse
import asyncio
import json
import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from multifind.background import BackgroundService
from multifind.config import CONFIG_ENV_VAR, MultiFindConfig, load_config_with_priority
from multifind.exceptions import MultiFindError
from multifind.logging_utils import VALID_LOG_LEVELS, configure_logging
from multifind.logstore import JsonFileStorage, SearchLogStore
from multifind.protocol import SearchLogEntry
from multifind.runtime import BrowserRuntime

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_VALIDATION_ERROR = 3
EXIT_FILE_ERROR = 4

USAGE = """Usage: multifind <command> [OPTIONS]

Find and highlight several search terms in an HTML page at once.

Commands:
  highlight          Highlight search terms in an HTML page
  log                Show the audit log of past searches

Use 'multifind <command> --help' for more information.

Examples:
  multifind highlight page.html -t cat -t mat -o highlighted.html
  multifind log --storage searches.json --limit 20
"""


@dataclass
class TermResult:
    """Outcome of committing one term from the command line."""

    query: str
    theme: str
    match_count: int
    status: str

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query, "theme": self.theme, "matchCount": self.match_count, "status": self.status}


@dataclass
class HighlightReport:
    url: str
    terms: list[TermResult]
    preview: dict[str, Any] | None
    html: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "terms": [term.to_dict() for term in self.terms],
            "preview": self.preview,
        }


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--storage", help="JSON file holding the search audit log")
    parser.add_argument("--config", help="Configuration file (.toml, .yaml, .json or pyproject.toml)")
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")
    parser.add_argument("--rich", action="store_true", help="Enable rich-style output formatting")
    parser.add_argument(
        "--log-level",
        choices=VALID_LOG_LEVELS,
        type=str.upper,
        help="Logging level (overrides configuration)",
    )


def _load_config(parsed: argparse.Namespace) -> MultiFindConfig:
    config = load_config_with_priority(explicit_path=parsed.config, env_var_path=os.environ.get(CONFIG_ENV_VAR))
    if parsed.storage:
        config = replace(config, log_store=config.log_store.create_updated(storage_path=parsed.storage))
    return config


async def _run_highlight(
    config: MultiFindConfig, url: str, html: str, terms: list[str], preview: str | None
) -> HighlightReport:
    background = BackgroundService(options=config.log_store)
    # Running from the command line is an update, not a fresh install; keep earlier history
    background.on_installed("update")
    runtime = BrowserRuntime(
        background,
        engine_options=config.engine,
        injection_options=config.injection,
        surface_options=config.surface,
    )
    tab = runtime.open_tab(url, html)
    surface = await runtime.open_query_surface(tab.tab_id)
    if not surface.view.input_enabled:
        raise MultiFindError(surface.view.error or surface.view.placeholder)

    results: list[TermResult] = []
    for query in terms:
        theme = surface.current_theme
        surface.on_input(query)
        view = await surface.commit()
        if view.limit_reached:
            status = view.limit_reason or "limit"
            results.append(TermResult(query, theme, 0, status))
        elif view.match_count == 0:
            results.append(TermResult(query, theme, 0, "no_matches"))
        else:
            results.append(TermResult(query, theme, view.match_count, "committed"))

    preview_result = None
    if preview:
        surface.on_input(preview)
        view = await surface.settle()
        preview_result = {"query": preview, "matchCount": view.match_count, "currentMatch": view.current_match}

    # Let queued log messages reach the background before reporting
    await asyncio.sleep(0)
    return HighlightReport(url=url, terms=results, preview=preview_result, html=tab.html())


def _print_highlight_report(report: HighlightReport, use_rich: bool) -> None:
    if use_rich:
        from rich.console import Console
        from rich.table import Table

        table = Table(title=report.url)
        table.add_column("#", justify="right", style="dim")
        table.add_column("Term", style="bold")
        table.add_column("Theme", style="cyan")
        table.add_column("Matches", justify="right")
        table.add_column("Status")
        for index, term in enumerate(report.terms, start=1):
            style = "green" if term.status == "committed" else "yellow"
            table.add_row(str(index), term.query, term.theme, str(term.match_count), f"[{style}]{term.status}[/]")
        console = Console()
        console.print(table)
        if report.preview is not None:
            console.print(
                f"Preview [bold]{report.preview['query']}[/]: {report.preview['matchCount']} matches", highlight=False
            )
        return

    print(report.url)
    for index, term in enumerate(report.terms, start=1):
        print(f"  {index}. {term.query} [{term.theme}] {term.match_count} matches ({term.status})")
    if report.preview is not None:
        print(f"  preview: {report.preview['query']} {report.preview['matchCount']} matches")


def handle_highlight_command(args: list[str] | None = None) -> int:
    """Handle ``multifind highlight``."""
    parser = argparse.ArgumentParser(
        prog="multifind highlight",
        description="Highlight up to four search terms in an HTML page.",
    )
    parser.add_argument("page", help="HTML file to search")
    parser.add_argument(
        "-t",
        "--term",
        dest="terms",
        action="append",
        default=[],
        help="Search term to commit (repeatable, in commit order)",
    )
    parser.add_argument("--preview", help="Live search to run after committing the terms")
    parser.add_argument("-o", "--out", help="Write the highlighted HTML to this file")
    parser.add_argument("--url", help="URL the page is loaded at (default: file URI of PAGE)")
    _add_common_arguments(parser)

    try:
        parsed = parser.parse_args(args or [])
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0

    if not parsed.terms and not parsed.preview:
        print("Error: at least one --term or --preview is required", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    try:
        config = _load_config(parsed)
    except argparse.ArgumentTypeError as exc:
        print(f"Error loading configuration: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    configure_logging(parsed.log_level or config.log_level)

    page_path = Path(parsed.page)
    try:
        html = page_path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"Error reading {page_path}: {exc}", file=sys.stderr)
        return EXIT_FILE_ERROR

    url = parsed.url or page_path.resolve().as_uri()
    try:
        report = asyncio.run(_run_highlight(config, url, html, parsed.terms, parsed.preview))
    except MultiFindError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    if parsed.out:
        try:
            Path(parsed.out).write_text(report.html, encoding="utf-8")
        except OSError as exc:
            print(f"Error writing {parsed.out}: {exc}", file=sys.stderr)
            return EXIT_FILE_ERROR

    if parsed.json:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        _print_highlight_report(report, parsed.rich)
    return EXIT_SUCCESS


def _print_log_entries(entries: list[SearchLogEntry], use_rich: bool) -> None:
    if not entries:
        print("No searches logged.")
        return

    if use_rich:
        from rich.console import Console
        from rich.table import Table

        table = Table(title="Search log")
        table.add_column("Time", style="dim")
        table.add_column("Query", style="bold")
        table.add_column("Matches", justify="right")
        table.add_column("Page")
        for entry in entries:
            table.add_row(entry.timestamp, entry.query, str(entry.match_count), entry.title or entry.url)
        Console().print(table)
        return

    for entry in entries:
        print(f"{entry.timestamp}\t{entry.match_count}\t{entry.query}\t{entry.url}")


def handle_log_command(args: list[str] | None = None) -> int:
    """Handle ``multifind log``."""
    parser = argparse.ArgumentParser(prog="multifind log", description="Show the audit log of past searches.")
    parser.add_argument("--limit", type=int, help="Show only the most recent N entries")
    _add_common_arguments(parser)

    try:
        parsed = parser.parse_args(args or [])
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else 0

    if parsed.limit is not None and parsed.limit < 0:
        print("Error: --limit must be non-negative", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    try:
        config = _load_config(parsed)
    except argparse.ArgumentTypeError as exc:
        print(f"Error loading configuration: {exc}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    configure_logging(parsed.log_level or config.log_level)

    storage_path = config.log_store.storage_path
    if not storage_path:
        print("Error: no log storage configured; pass --storage or set log_store.storage_path", file=sys.stderr)
        return EXIT_VALIDATION_ERROR
    if not Path(storage_path).is_file():
        print(f"Error: log storage file does not exist: {storage_path}", file=sys.stderr)
        return EXIT_FILE_ERROR

    store = SearchLogStore(JsonFileStorage(storage_path), config.log_store)
    entries = store.entries(parsed.limit)

    if parsed.json:
        print(json.dumps([entry.to_dict() for entry in entries], indent=2, ensure_ascii=False))
    else:
        _print_log_entries(entries, parsed.rich)
    return EXIT_SUCCESS


COMMANDS = {
    "highlight": handle_highlight_command,
    "log": handle_log_command,
}


def main(args: list[str] | None = None) -> int:
    """Run the multifind command line."""
    if args is None:
        args = sys.argv[1:]

    if not args or args[0] in ("-h", "--help", "help"):
        print(USAGE)
        return EXIT_SUCCESS

    handler = COMMANDS.get(args[0])
    if handler is None:
        print(f"Error: Unknown command '{args[0]}'", file=sys.stderr)
        print(f"Valid commands: {', '.join(COMMANDS)}", file=sys.stderr)
        return EXIT_ERROR
    return handler(args[1:])

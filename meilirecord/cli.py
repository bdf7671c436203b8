"""CLI entry point for meilirecord.

Handles argument parsing and dispatches one index-scoped command against the
configured Meilisearch server. Results are printed to stdout as JSON.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from meilirecord.config_loader import ConfigError, load_connection_config
from meilirecord.connection import Connection, MeilisearchError
from meilirecord.indexes_command import SETTINGS_ROUTES, IndexesCommand
from meilirecord.models import NOT_FOUND


@dataclass
class CommonArgs:
    """Arguments shared by every subcommand."""

    config: Path
    verbose: bool
    index: str


@dataclass
class InfoArgs(CommonArgs):
    """Parsed arguments for info mode."""


@dataclass
class StatsArgs(CommonArgs):
    """Parsed arguments for stats mode."""


@dataclass
class SearchArgs(CommonArgs):
    """Parsed arguments for search mode."""

    query: str
    limit: int | None
    filter: str | None


@dataclass
class GetDocumentArgs(CommonArgs):
    """Parsed arguments for get-document mode."""

    document_id: str


@dataclass
class AddDocumentsArgs(CommonArgs):
    """Parsed arguments for add-documents mode."""

    file: Path
    primary_key: str | None
    update: bool


@dataclass
class SettingsArgs(CommonArgs):
    """Parsed arguments for settings mode."""

    name: str | None


@dataclass
class TasksArgs(CommonArgs):
    """Parsed arguments for tasks mode."""

    uid: int | None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="meilirecord",
        description="Run index commands against a Meilisearch server.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("meilisearch.yaml"),
        help="Path to connection config YAML (default: meilisearch.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log every request and response at DEBUG level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Operation")

    info_parser = subparsers.add_parser("info", help="Show information about an index")
    info_parser.add_argument("index", help="Index uid")

    stats_parser = subparsers.add_parser("stats", help="Show stats of an index")
    stats_parser.add_argument("index", help="Index uid")

    search_parser = subparsers.add_parser("search", help="Search an index")
    search_parser.add_argument("index", help="Index uid")
    search_parser.add_argument("query", help="Search terms")
    search_parser.add_argument("--limit", type=int, default=None, help="Maximum number of hits")
    search_parser.add_argument("--filter", default=None, help="Filter expression")

    get_document_parser = subparsers.add_parser("get-document", help="Fetch one document")
    get_document_parser.add_argument("index", help="Index uid")
    get_document_parser.add_argument("document_id", help="Primary key value of the document")

    add_documents_parser = subparsers.add_parser(
        "add-documents",
        help="Add documents from a JSON file (a single object or an array)",
    )
    add_documents_parser.add_argument("index", help="Index uid")
    add_documents_parser.add_argument("file", type=Path, help="Path to JSON file")
    add_documents_parser.add_argument("--primary-key", default=None, help="Primary key field")
    add_documents_parser.add_argument(
        "--update",
        action="store_true",
        help="Merge into existing documents instead of replacing them",
    )

    settings_parser = subparsers.add_parser("settings", help="Show index settings")
    settings_parser.add_argument("index", help="Index uid")
    settings_parser.add_argument(
        "--name",
        choices=SETTINGS_ROUTES,
        default=None,
        help="Show only one settings sub-resource",
    )

    tasks_parser = subparsers.add_parser("tasks", help="List tasks of an index")
    tasks_parser.add_argument("index", help="Index uid")
    tasks_parser.add_argument("--uid", type=int, default=None, help="Show a single task")

    return parser


def parse_args(argv: list[str] | None = None) -> CommonArgs:
    parser = build_parser()
    namespace = parser.parse_args(argv)
    common = {"config": namespace.config, "verbose": namespace.verbose, "index": namespace.index}

    if namespace.command == "info":
        return InfoArgs(**common)
    elif namespace.command == "stats":
        return StatsArgs(**common)
    elif namespace.command == "search":
        return SearchArgs(**common, query=namespace.query, limit=namespace.limit, filter=namespace.filter)
    elif namespace.command == "get-document":
        return GetDocumentArgs(**common, document_id=namespace.document_id)
    elif namespace.command == "add-documents":
        return AddDocumentsArgs(
            **common,
            file=namespace.file,
            primary_key=namespace.primary_key,
            update=namespace.update,
        )
    elif namespace.command == "settings":
        return SettingsArgs(**common, name=namespace.name)
    elif namespace.command == "tasks":
        return TasksArgs(**common, uid=namespace.uid)
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def run_info(command: IndexesCommand, args: InfoArgs) -> Any:
    return command.get_info()


def run_stats(command: IndexesCommand, args: StatsArgs) -> Any:
    return command.get_stats()


def run_search(command: IndexesCommand, args: SearchArgs) -> Any:
    query: dict[str, Any] = {"q": args.query}
    if args.limit is not None:
        query["limit"] = args.limit
    if args.filter:
        query["filter"] = args.filter
    return command.search(query)


def run_get_document(command: IndexesCommand, args: GetDocumentArgs) -> Any:
    return command.get_document(args.document_id)


def run_add_documents(command: IndexesCommand, args: AddDocumentsArgs) -> Any:
    documents = load_documents(args.file)
    if args.update:
        return command.update_documents(documents, args.primary_key)
    return command.add_documents(documents, args.primary_key)


def run_settings(command: IndexesCommand, args: SettingsArgs) -> Any:
    if args.name:
        return command.get_setting(args.name)
    return command.get_settings()


def run_tasks(command: IndexesCommand, args: TasksArgs) -> Any:
    if args.uid is not None:
        return command.get_task(args.uid)
    return command.get_tasks()


RUNNERS: dict[type, Callable[[IndexesCommand, Any], Any]] = {
    InfoArgs: run_info,
    StatsArgs: run_stats,
    SearchArgs: run_search,
    GetDocumentArgs: run_get_document,
    AddDocumentsArgs: run_add_documents,
    SettingsArgs: run_settings,
    TasksArgs: run_tasks,
}


def load_documents(path: Path) -> list[dict[str, Any]]:
    """Load documents from a JSON file holding one object or an array of objects."""
    if not path.exists():
        raise ConfigError(f"Documents file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in documents file: {e}") from e

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list) or not all(isinstance(doc, dict) for doc in data):
        raise ConfigError("Documents file must contain a JSON object or an array of objects")
    return data


def run(args: CommonArgs, connection_factory: Callable[..., Connection] = Connection) -> int:
    """Run one parsed command. Returns the process exit code."""
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = load_connection_config(args.config)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    runner = RUNNERS[type(args)]
    with connection_factory(config) as connection:
        try:
            result = runner(connection.create_command(args.index), args)
        except (ConfigError, MeilisearchError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    if result is NOT_FOUND:
        print("Not found", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 0


def main() -> int:
    """Main entry point."""
    try:
        return run(parse_args())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""CLI entry point for paperindex index administration."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from paperindex.config.settings import Settings
    from paperindex.core.engine import PaperIndexEngine
    from paperindex.models.query import PaperQuery


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paperindex",
        description="paperindex: search index administration for scholarly papers",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--backend",
        type=str,
        choices=["meilisearch", "opensearch"],
        default=None,
        help="Search backend (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Log level (overrides config)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"paperindex {_get_version()}",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show index existence, document count and settings")
    commands.add_parser("ensure-index", help="Create the index or re-apply its settings")
    commands.add_parser("delete-index", help="Drop the index")
    commands.add_parser("optimize", help="Refresh and compact the index")

    reindex = commands.add_parser("reindex", help="Drop the index and rebuild it from the database")
    reindex.add_argument("--batch-size", type=int, default=None, help="Papers per batch (overrides config)")

    search = commands.add_parser("search", help="Run a paper listing query")
    search.add_argument("query", nargs="?", default=None, help="Free-text search term")
    search.add_argument("--category", action="append", default=[], help="Category filter (repeatable)")
    search.add_argument("--author", action="append", default=[], help="Author filter (repeatable)")
    search.add_argument("--year", type=int, default=None, help="Publication year")
    search.add_argument(
        "--sort-by",
        choices=["createdAt", "issuedAt", "likeCount", "totalViewCount"],
        default="createdAt",
    )
    search.add_argument("--order", choices=["asc", "desc"], default="desc")
    search.add_argument("--page", type=int, default=1)
    search.add_argument("--limit", type=int, default=20)
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    """Build settings from ``--config`` and apply CLI overrides."""
    from paperindex.config.settings import Settings

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: Config file not found: {config_path}", file=sys.stderr)
            sys.exit(1)
        settings = Settings.from_yaml(config_path)
    else:
        settings = Settings()

    if args.backend:
        settings.search.backend = args.backend
    if args.log_level:
        settings.observability.log_level = args.log_level
    return settings


def build_query(args: argparse.Namespace) -> PaperQuery:
    """Build the listing query of the ``search`` subcommand.

    Raises:
        pydantic.ValidationError: An argument is out of range.
    """
    from paperindex.models.query import PaperQuery

    return PaperQuery(
        search_query=args.query,
        categories=args.category,
        authors=args.author,
        year=args.year,
        sort_by=args.sort_by,
        sort_order=args.order,
        page=args.page,
        limit=args.limit,
    )


async def run_command(engine: PaperIndexEngine, args: argparse.Namespace) -> Any:
    """Execute one subcommand against an initialized engine and return a JSON-able result."""
    repository = engine.repository
    if args.command == "status":
        status = (await repository.index_status()).model_dump()
        status["health"] = (await engine.backend.health_check()).model_dump()
        return status
    if args.command == "ensure-index":
        return {"index": engine.backend.index_name, "ready": await engine.backend.ensure_index_exists()}
    if args.command == "delete-index":
        await engine.backend.delete_index()
        return {"index": engine.backend.index_name, "deleted": True}
    if args.command == "optimize":
        await repository.optimize_index()
        return {"index": engine.backend.index_name, "optimized": True}
    if args.command == "reindex":
        batch_size = args.batch_size or engine.settings.reindex.batch_size
        return (await repository.reindex_all(batch_size=batch_size)).model_dump()
    if args.command == "search":
        return (await repository.list(build_query(args))).model_dump(mode="json")
    raise ValueError(f"Unknown command: {args.command}")


async def _main(settings: Settings, args: argparse.Namespace) -> Any:
    from paperindex.core.engine import PaperIndexEngine

    async with PaperIndexEngine(settings) as engine:
        return await run_command(engine, args)


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = load_settings(args)

    from pydantic import ValidationError

    from paperindex.adapters.base.exceptions import AdapterError
    from paperindex.observability.logging import setup_logging

    setup_logging(settings.observability)

    try:
        if args.command == "search":
            # Reject bad arguments before any connection is opened.
            build_query(args)
        result = asyncio.run(_main(settings, args))
    except AdapterError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValidationError as e:
        print(f"Invalid arguments: {e}", file=sys.stderr)
        sys.exit(2)

    print(json.dumps(result, indent=2, ensure_ascii=False, default=str))


def _get_version() -> str:
    """Get the package version."""
    from paperindex import __version__

    return __version__


if __name__ == "__main__":
    main()

"""Command-line utilities for the retrieval core."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from kb_retrieval.config import RetrievalConfig
from kb_retrieval.engine import RetrievalEngine
from kb_retrieval.exceptions import RetrievalError
from kb_retrieval.models import AccessFilter
from kb_retrieval.storage.db import PostgresSourceStore

logger = logging.getLogger("kb_retrieval.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Knowledge-base retrieval maintenance and search")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sync", help="Index records changed since the last sync")
    subparsers.add_parser("init", help="Clear the indexes and rebuild them from scratch")
    subparsers.add_parser("drop", help="Clear the vector store and keyword index")

    search = subparsers.add_parser("search", help="Run a hybrid search and print the results")
    search.add_argument("query", help="Free-text query")
    search.add_argument("--k", type=int, default=5, help="Number of results (default: 5)")
    search.add_argument(
        "--role",
        default="public",
        help="User role whose access levels apply (default: public)",
    )
    return parser


def _build_engine(config: RetrievalConfig) -> RetrievalEngine:
    return RetrievalEngine(config, source_store=PostgresSourceStore(config.db_dsn))


async def _run_sync(engine: RetrievalEngine, args: argparse.Namespace) -> Any:
    stats = await engine.sync_from_db()
    return stats.to_dict()


async def _run_init(engine: RetrievalEngine, args: argparse.Namespace) -> Any:
    stats = await engine.init_vector_db()
    return stats.to_dict()


async def _run_drop(engine: RetrievalEngine, args: argparse.Namespace) -> Any:
    await engine.drop_vector_db()
    return {"dropped": True}


async def _run_search(engine: RetrievalEngine, args: argparse.Namespace) -> Any:
    await engine.start()
    access_filter = AccessFilter.for_role(args.role)
    results = await engine.hybrid_search(args.query, args.k, access_filter)
    return [result.to_dict() for result in results]


Handler = Callable[[RetrievalEngine, argparse.Namespace], Awaitable[Any]]

COMMANDS: dict[str, Handler] = {
    "sync": _run_sync,
    "init": _run_init,
    "drop": _run_drop,
    "search": _run_search,
}


async def _dispatch(handler: Handler, args: argparse.Namespace) -> Any:
    engine = _build_engine(RetrievalConfig())
    try:
        return await handler(engine, args)
    finally:
        await engine.close()


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.error("Unknown command")
        return 1

    try:
        output = asyncio.run(_dispatch(handler, args))
    except (RetrievalError, ValidationError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1

    print(json.dumps(output, indent=2, ensure_ascii=False, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

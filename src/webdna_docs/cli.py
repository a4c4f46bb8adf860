"""CLI for webdna-docs: serve, worker, scrape and init-db commands."""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Sequence

import uvicorn

from webdna_docs import __version__
from webdna_docs.config import ScraperConfig, Settings
from webdna_docs.obs.logging import setup_logging

logger = logging.getLogger(__name__)


def cmd_serve(settings: Settings, args: argparse.Namespace) -> int:
    from webdna_docs.api.main import create_app

    setup_logging("http-server", level=settings.log_level, log_dir=settings.log_dir)
    logger.info("Starting WebDNA docs HTTP server on %s:%d", settings.host, settings.port)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=int(settings.shutdown_grace_seconds),
    )
    return 0


def cmd_worker(settings: Settings, args: argparse.Namespace) -> int:
    from webdna_docs.worker import stdio

    return stdio.main(settings)


def cmd_scrape(settings: Settings, args: argparse.Namespace) -> int:
    from webdna_docs.ingest.fetcher import DocFetcher
    from webdna_docs.ingest.pipeline import IngestPipeline
    from webdna_docs.store.database import DocStore

    setup_logging("scraper", level=settings.log_level, log_dir=settings.log_dir)
    config = ScraperConfig(base_url=args.base_url) if args.base_url else ScraperConfig()

    async def _run() -> None:
        async with DocFetcher(config) as fetcher:
            pipeline = IngestPipeline(DocStore(settings.database_path), fetcher, config)
            stats = await pipeline.run()
        print(
            f"Scraped {stats.inserted} instruction(s) in {stats.categories} categories "
            f"({stats.skipped} skipped, {stats.failed} failed)"
        )

    asyncio.run(_run())
    return 0


def cmd_init_db(settings: Settings, args: argparse.Namespace) -> int:
    from webdna_docs.store.database import DocStore

    setup_logging("init-db", level=settings.log_level, log_dir=settings.log_dir)
    counts = asyncio.run(DocStore(settings.database_path).initialize())
    print(
        f"Database ready at {settings.database_path}: "
        f"{counts.get('categories', 0)} categories, {counts.get('documentation', 0)} entries"
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webdna-docs",
        description="WebDNA documentation lookup server",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--database", default=None, help="Override the SQLite database path")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP bridge and its worker")
    serve_parser.add_argument("--host", default=None)
    serve_parser.add_argument("--port", type=int, default=None)
    serve_parser.set_defaults(func=cmd_serve)

    worker_parser = subparsers.add_parser("worker", help="Run the stdio worker")
    worker_parser.set_defaults(func=cmd_worker)

    scrape_parser = subparsers.add_parser("scrape", help="Scrape docs.webdna.us into the database")
    scrape_parser.add_argument("--base-url", default=None, help="Documentation site root")
    scrape_parser.set_defaults(func=cmd_scrape)

    init_parser = subparsers.add_parser("init-db", help="Create the database schema")
    init_parser.set_defaults(func=cmd_init_db)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    overrides = {}
    if args.database:
        overrides["database_path"] = args.database
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None):
        overrides["port"] = args.port
    settings = Settings(**overrides)

    return args.func(settings, args)

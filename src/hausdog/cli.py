"""Hausdog CLI.

Usage:
    python -m hausdog serve [--host HOST] [--port PORT]
    python -m hausdog worker
    python -m hausdog migrate [--revision REV]
    python -m hausdog ingest-address <property name>

Exit codes:
    0: Success
    1: Configuration or runtime error
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from hausdog.config import HAUSDOG_DATABASE_URL_ENV, AppConfig
from hausdog.errors import ConfigError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from hausdog.api.main import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_level=args.log_level)
    return 0


def cmd_worker(args: argparse.Namespace) -> int:
    """Run the Temporal worker until interrupted."""
    from hausdog.context import build_context
    from hausdog.pipeline.temporal import run_worker

    config = AppConfig.from_env()
    context = build_context(config)
    try:
        asyncio.run(run_worker(config, context.orchestrator))
    except KeyboardInterrupt:
        logger.info("Worker stopped")
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    from hausdog.persistence.db import get_engine
    from hausdog.persistence.migrate import run_upgrade

    config = AppConfig.from_env()
    url = config.require(config.database_url, HAUSDOG_DATABASE_URL_ENV, "migrations")
    run_upgrade(get_engine(url), revision=args.revision)
    return 0


def cmd_ingest_address(args: argparse.Namespace) -> int:
    """Print a fresh ingest token and address for a property name."""
    from hausdog.services.ingestion.ingest_token import (
        build_ingest_address,
        generate_ingest_token,
    )

    config = AppConfig.from_env()
    token = generate_ingest_token(args.name)
    print(token)
    print(build_ingest_address(token, config.ingest_domain))
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="hausdog",
        description="Hausdog document ingestion pipeline",
    )
    parser.add_argument("--log-level", default="info", help="Logging level (default: info)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.set_defaults(handler=cmd_serve)

    worker_parser = subparsers.add_parser("worker", help="Run the Temporal pipeline worker")
    worker_parser.set_defaults(handler=cmd_worker)

    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate_parser.add_argument("--revision", default="head")
    migrate_parser.set_defaults(handler=cmd_migrate)

    address_parser = subparsers.add_parser(
        "ingest-address", help="Generate an ingest token and address for a property"
    )
    address_parser.add_argument("name", help="Property name used as the token prefix")
    address_parser.set_defaults(handler=cmd_ingest_address)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(), format=LOG_FORMAT)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return int(args.handler(args))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())

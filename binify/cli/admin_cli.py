#!/usr/bin/env python3
"""Binify Admin CLI.

Deployment and maintenance commands run against the configured stores.

Usage:
    binify init-db
    binify sweep --limit 500
    binify sweep --all --format json

Exit Codes:
    0 - Success
    1 - Operation failed (store unavailable or partial sweep)
    2 - Configuration error
"""

import argparse
import asyncio
import json
import sys

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from binify.config import Settings
from binify.core.lifecycle import PasteLifecycle, StoreUnavailableError, SweepResult
from binify.core.logging import setup_logging
from binify.core.stores import StoreError, build_stores
from binify.database import close_db, create_engine, init_db


# =============================================================================
# Terminal Colors
# =============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    @classmethod
    def disable(cls):
        for attr in ["RED", "GREEN", "YELLOW", "BOLD", "RESET"]:
            setattr(cls, attr, "")


def colored(text: str, color: str) -> str:
    return f"{color}{text}{Colors.RESET}"


def load_settings() -> Settings | None:
    try:
        return Settings()
    except ValidationError as e:
        print(colored(f"Configuration error: {e}", Colors.RED), file=sys.stderr)
        return None


# =============================================================================
# Command: init-db
# =============================================================================

async def _init_db(settings: Settings) -> None:
    engine = create_engine(settings)
    try:
        await init_db(engine)
    finally:
        await close_db(engine)


def cmd_init_db(args) -> int:
    """Create the pastes table and its indexes."""
    settings = load_settings()
    if settings is None:
        return 2

    try:
        asyncio.run(_init_db(settings))
    except (SQLAlchemyError, OSError) as e:
        print(colored(f"Error: database initialization failed: {e}", Colors.RED), file=sys.stderr)
        return 1

    print(colored("Database initialized successfully", Colors.GREEN))
    return 0


# =============================================================================
# Command: sweep
# =============================================================================

async def _sweep(settings: Settings, limit: int, run_all: bool) -> SweepResult:
    try:
        stores = build_stores(settings)
    except StoreError as e:
        raise StoreUnavailableError(str(e), store=e.store) from e

    total = SweepResult()
    try:
        lifecycle = PasteLifecycle(stores.metadata, stores.payload)
        while True:
            batch = await lifecycle.sweep(limit)
            total.scanned += batch.scanned
            total.purged += batch.purged
            total.failed += batch.failed
            # A batch that purged nothing would be listed again forever
            if not run_all or batch.scanned < limit or batch.purged == 0:
                break
    finally:
        await stores.close()
    return total


def cmd_sweep(args) -> int:
    """Purge expired, burned and exhausted pastes."""
    settings = load_settings()
    if settings is None:
        return 2

    limit = args.limit if args.limit is not None else settings.sweep_batch_size
    if limit < 1:
        print(colored("Error: --limit must be at least 1", Colors.RED), file=sys.stderr)
        return 2

    try:
        result = asyncio.run(_sweep(settings, limit, args.all))
    except StoreUnavailableError as e:
        print(colored(f"Error: {e.message}", Colors.RED), file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps({
            "scanned": result.scanned,
            "purged": result.purged,
            "failed": result.failed,
        }, indent=2))
    else:
        print(f"Scanned {colored(str(result.scanned), Colors.BOLD)} expired pastes")
        print(f"  {colored('Purged', Colors.GREEN)}: {result.purged}")
        if result.failed:
            print(f"  {colored('Failed', Colors.YELLOW)}: {result.failed}")

    return 0 if result.failed == 0 else 1


# =============================================================================
# Main
# =============================================================================

def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="binify",
        description="Binify paste service administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the schema before first deploy
  binify init-db

  # Purge one batch of expired pastes (e.g. from cron)
  binify sweep --limit 1000

  # Purge everything currently expired
  binify sweep --all
        """
    )

    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create the pastes table and indexes")

    sweep_parser = subparsers.add_parser("sweep", help="Purge expired pastes")
    sweep_parser.add_argument("--limit", type=int, default=None, help="Batch size (default: SWEEP_BATCH_SIZE)")
    sweep_parser.add_argument("--all", action="store_true", help="Repeat batches until nothing is left")
    sweep_parser.add_argument("--format", choices=["text", "json"], default="text")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.no_color or not sys.stdout.isatty():
        Colors.disable()

    if not args.command:
        parser.print_help()
        return 0

    # stdout is reserved for command output
    setup_logging(level="WARNING", stream=sys.stderr)

    if args.command == "init-db":
        return cmd_init_db(args)
    elif args.command == "sweep":
        return cmd_sweep(args)
    else:
        parser.print_help()
        return 2


if __name__ == "__main__":
    sys.exit(main())

"""
Command-line interface for sheetsync.

Available commands:
- sheets: List the worksheets of a spreadsheet
- connect: Create or widen the table and load it if empty
- reconcile: Connect and run one pass
- view: Show both sides side by side
- run: Sync on an interval until interrupted
- serve: Serve the HTTP API
- sample-row: Insert a generated row into the table
- delete-row: Delete a row from both sides
"""

import logging
import sys

from sheetsync import __version__
from sheetsync.config import Settings
from sheetsync.errors import SheetSyncError
from utils.logging import configure_from_env, setup_logging
from utils.metrics import initialize_metrics
from utils.tracing import initialize_tracing, instrument_psycopg2, shutdown_tracing

from .commands import (
    cmd_connect,
    cmd_delete_row,
    cmd_reconcile,
    cmd_run,
    cmd_sample_row,
    cmd_serve,
    cmd_sheets,
    cmd_view,
)
from .credentials import resolve_settings
from .parser import create_parser

logger = logging.getLogger(__name__)

COMMANDS = {
    "sheets": cmd_sheets,
    "connect": cmd_connect,
    "reconcile": cmd_reconcile,
    "view": cmd_view,
    "run": cmd_run,
    "serve": cmd_serve,
    "sample-row": cmd_sample_row,
    "delete-row": cmd_delete_row,
}


def _configure_logging(args) -> None:
    if args.log_level or args.log_file or args.log_json:
        setup_logging(
            level=args.log_level or "INFO",
            log_file=args.log_file,
            json_format=args.log_json,
        )
    else:
        configure_from_env()


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the sheetsync CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command not in COMMANDS:
        parser.print_help()
        sys.exit(1)

    _configure_logging(args)

    try:
        settings = resolve_settings(args, Settings.from_env())

        metrics = initialize_metrics(port=settings.metrics_port, version=__version__)
        if settings.tracing_enabled:
            initialize_tracing(otlp_endpoint=settings.otlp_endpoint)
            instrument_psycopg2()

        COMMANDS[args.command](args, settings, metrics["sync"])
    except SheetSyncError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)
    except RuntimeError as e:
        # metrics port in use
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)
    finally:
        shutdown_tracing()


__all__ = ["main", "create_parser", "resolve_settings"]


if __name__ == "__main__":
    main()

"""
Command-line argument parser configuration.

Every command that works on a session takes the same three positionals:
the spreadsheet (URL or id), the worksheet name and the table name.
"""

import argparse


def _session_arguments() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("source", help="Spreadsheet URL or id")
    parent.add_argument("sheet_name", help="Worksheet name")
    parent.add_argument("table_name", help="PostgreSQL table name ([schema.]table)")
    return parent


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="sheetsync",
        description="Two-way sync between a Google Sheets worksheet and a PostgreSQL table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List the worksheets of a spreadsheet
  sheetsync sheets https://docs.google.com/spreadsheets/d/1AbC/edit

  # Connect and run one pass
  sheetsync reconcile 1AbC Tasks tasks

  # Keep syncing every 10 seconds until Ctrl+C
  sheetsync run 1AbC Tasks tasks --interval-ms 10000

  # Serve the HTTP API
  sheetsync serve --port 8000

  # Use Vault for PostgreSQL credentials
  sheetsync --use-vault reconcile 1AbC Tasks tasks
        """,
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument("--log-file", help="Also log to this rotating file")
    parser.add_argument("--log-json", action="store_true", help="Log as JSON lines")

    parser.add_argument(
        "--credentials-file",
        help="Service account JSON key (default: GOOGLE_APPLICATION_CREDENTIALS)",
    )
    parser.add_argument("--pg-host", help="PostgreSQL host (default: POSTGRES_HOST)")
    parser.add_argument("--pg-port", type=int, help="PostgreSQL port (default: POSTGRES_PORT)")
    parser.add_argument("--pg-database", help="PostgreSQL database (default: POSTGRES_DB)")
    parser.add_argument("--pg-user", help="PostgreSQL user (default: POSTGRES_USER)")
    parser.add_argument("--pg-password", help="PostgreSQL password (default: POSTGRES_PASSWORD)")
    parser.add_argument(
        "--use-vault",
        action="store_true",
        help="Fetch PostgreSQL credentials from Vault (VAULT_ADDR, VAULT_TOKEN)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        help="Expose Prometheus metrics on this port; 0 disables (default: METRICS_PORT)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")
    session_args = _session_arguments()

    sheets_parser = subparsers.add_parser("sheets", help="List worksheet names")
    sheets_parser.add_argument("source", help="Spreadsheet URL or id")

    subparsers.add_parser(
        "connect",
        parents=[session_args],
        help="Create or widen the table and load it if empty",
    )

    subparsers.add_parser(
        "reconcile",
        parents=[session_args],
        help="Connect, then run one reconciliation pass",
    )

    view_parser = subparsers.add_parser(
        "view",
        parents=[session_args],
        help="Show both sides side by side",
    )
    view_parser.add_argument(
        "--format",
        choices=["console", "json"],
        default="console",
        help="Output format (default: console)",
    )

    run_parser = subparsers.add_parser(
        "run",
        parents=[session_args],
        help="Connect and sync on a fixed interval until interrupted",
    )
    run_parser.add_argument(
        "--interval-ms",
        type=int,
        help="Milliseconds between passes (default: SYNC_INTERVAL_MS or 5000)",
    )

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", help="Bind address (default: API_HOST)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: API_PORT)")

    subparsers.add_parser(
        "sample-row",
        parents=[session_args],
        help="Insert a generated row into the table",
    )

    delete_parser = subparsers.add_parser(
        "delete-row",
        parents=[session_args],
        help="Delete the row at a position from both sides",
    )
    delete_parser.add_argument("position", type=int, help="Sheet row number (>= 2)")

    return parser

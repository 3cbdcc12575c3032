"""Command-line entry point.

Usage:
    mcp-workflow [--env FILE] [-v] <command> [options]
    python -m mcp_workflow <command> [options]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import mysql.connector

from . import __version__, database
from .config import Config, load_server_specs
from .dependencies import DependencyError, check_and_install_dependencies
from .formatter import print_rows, print_tables
from .interactive import InteractiveSession
from .process_manager.runner import run_servers, serve
from .process_manager.server import DEFAULT_PORT
from .process_manager.supervisor import ConfigurationError, ProcessSupervisor
from .setup_servers import setup_mcp_servers

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-workflow",
        description="Workflow management for MCP servers and the project database",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--env", default=None, help=".env file to load (default: ./.env)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    sub.add_parser("check-deps", help="Check and install required dependencies")
    setup = sub.add_parser("setup-mcp", help="Set up MCP servers for the editor")
    setup.add_argument("--no-install", action="store_true", help="Skip npm installs")

    run = sub.add_parser("run-mcp", help="Run MCP servers until Ctrl+C")
    run.add_argument("--servers", default=None, help="JSON servers file")
    run.add_argument(
        "--force-kill", action="store_true",
        help="SIGKILL servers still running after the stop grace period",
    )
    run.add_argument(
        "--skip-deps-check", action="store_true", help="Don't run check-deps first",
    )

    sub.add_parser("stop-mcp", help="Stop MCP servers started by this process")

    daemon = sub.add_parser("serve", help="Run MCP servers behind an MCP control daemon")
    daemon.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )
    daemon.add_argument("--servers", default=None, help="JSON servers file")

    sub.add_parser("list-tables", help="List all tables in the database")
    structure = sub.add_parser("show-structure", help="Show the structure of a table")
    structure.add_argument("table")
    data = sub.add_parser("show-data", help="Show the data in a table")
    data.add_argument("table")
    data.add_argument(
        "-l", "--limit", type=int, default=10,
        help="Maximum number of records to show (default: 10)",
    )
    query = sub.add_parser("query", help="Execute a custom SQL query")
    query.add_argument("sql")

    sub.add_parser("interactive", help="Run in interactive mode")
    return parser


def _supervisor(config: Config, servers_file: str | None) -> ProcessSupervisor:
    if servers_file:
        specs = load_server_specs(servers_file, config.augment_path)
    else:
        specs = config.server_specs()
    return ProcessSupervisor(specs)


def _run_database_command(args: argparse.Namespace, config: Config) -> int:
    try:
        if args.command == "list-tables":
            log.info("Listing database tables...")
            print_tables(database.get_tables(config))
        elif args.command == "show-structure":
            log.info("Showing structure of table '%s'...", args.table)
            print_rows(database.get_table_structure(config, args.table))
        elif args.command == "show-data":
            log.info("Showing data in table '%s' (limit %d)...", args.table, args.limit)
            print_rows(database.get_table_data(config, args.table, args.limit))
        else:
            log.info("Executing SQL query: %s", args.sql)
            print_rows(database.execute_query(config, args.sql))
    except mysql.connector.Error as exc:
        log.error("Database error: %s", exc)
        return 1
    except ValueError as exc:
        log.error("%s", exc)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [mcp-workflow] %(levelname)s %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = Config.from_env(args.env)
    except ConfigurationError as exc:
        log.error("%s", exc)
        return 1

    try:
        if args.command == "check-deps":
            check_and_install_dependencies()
            return 0

        if args.command == "setup-mcp":
            if not args.no_install:
                check_and_install_dependencies()
            failed = setup_mcp_servers(
                config, args.env or ".env", install=not args.no_install
            )
            return 1 if failed else 0

        if args.command == "run-mcp":
            supervisor = _supervisor(config, args.servers)
            if not args.skip_deps_check:
                check_and_install_dependencies()
            return asyncio.run(
                run_servers(supervisor, grace=config.stop_grace, force_kill=args.force_kill)
            )

        if args.command == "stop-mcp":
            # The registry lives in the process that started the servers;
            # a fresh process has nothing registered.
            if not _supervisor(config, None).stop_all():
                log.info("No MCP servers are running in this process. "
                         "Stop run-mcp with Ctrl+C, or use the serve daemon's stop_server tool.")
            return 0

        if args.command == "serve":
            supervisor = _supervisor(config, args.servers)
            log.info("Starting process-manager on http://127.0.0.1:%d/mcp", args.port)
            return asyncio.run(serve(supervisor, port=args.port, grace=config.stop_grace))

        if args.command == "interactive":
            session = InteractiveSession(config, _supervisor(config, None), env_path=args.env)
            return asyncio.run(session.run())
    except DependencyError as exc:
        log.error("%s", exc)
        return 1
    except ConfigurationError as exc:
        log.error("%s", exc)
        return 1

    return _run_database_command(args, config)


if __name__ == "__main__":
    sys.exit(main())

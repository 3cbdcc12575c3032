"""Run the process manager as a persistent MCP daemon over HTTP.

Starts the configured MCP servers (or the ones listed in a JSON servers
file) and exposes them as MCP tools until SIGINT / SIGTERM.

Usage:
    python -m mcp_workflow.process_manager [--port PORT] [--servers FILE] [--env FILE]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from mcp_workflow.config import Config, load_server_specs
from mcp_workflow.process_manager.runner import serve
from mcp_workflow.process_manager.server import DEFAULT_PORT
from mcp_workflow.process_manager.supervisor import ConfigurationError, ProcessSupervisor

log = logging.getLogger(__name__)


class _SuppressDisconnect(logging.Filter):
    """Downgrade the MCP SDK's traceback for clients that hang up early."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.exc_info and record.exc_info[1] is not None:
            if "ClosedResourceError" in str(record.exc_info[1]):
                record.levelno = logging.DEBUG
                record.levelname = "DEBUG"
                record.msg = "Client disconnected before response completed"
                record.exc_info = None
                record.exc_text = None
        return True


def main() -> int:
    parser = argparse.ArgumentParser(description="MCP workflow process manager daemon")
    parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help=f"Port to listen on (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--servers", type=Path, default=None,
        help="JSON servers file (default: the built-in think and MySQL servers)",
    )
    parser.add_argument("--env", type=Path, default=None, help=".env file to load")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [process-manager] %(levelname)s %(message)s",
    )
    logging.getLogger("mcp.server.streamable_http_manager").addFilter(
        _SuppressDisconnect()
    )

    config = Config.from_env(args.env)
    try:
        specs = (
            load_server_specs(args.servers, config.augment_path)
            if args.servers else config.server_specs()
        )
        supervisor = ProcessSupervisor(specs)
    except ConfigurationError as exc:
        log.error("%s", exc)
        return 1

    log.info("Starting process-manager on http://127.0.0.1:%d/mcp", args.port)
    return asyncio.run(serve(supervisor, port=args.port, grace=config.stop_grace))


if __name__ == "__main__":
    sys.exit(main())

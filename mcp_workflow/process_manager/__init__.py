"""MCP process manager: runs the project's MCP servers as supervised children.

The supervisor starts every configured server, streams its stdout/stderr
into an append-only log file, and stops the children on request or on
SIGINT / SIGTERM.

Exposes four MCP tools when run as a daemon:
  - list_servers: Configured and running servers
  - start_server: Start one configured server
  - stop_server:  Signal a running server to terminate
  - get_log:      Read the end of a server's log file

Can run standalone:
    python -m mcp_workflow.process_manager
"""

from mcp_workflow.process_manager.runner import run_servers, serve
from mcp_workflow.process_manager.server import create_server
from mcp_workflow.process_manager.supervisor import ProcessSupervisor

__all__ = ["ProcessSupervisor", "create_server", "run_servers", "serve"]

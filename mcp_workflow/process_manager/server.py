"""MCP server exposing the supervised MCP servers as tools over HTTP."""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

from mcp_workflow.process_manager.supervisor import ProcessSupervisor, SupervisorError

# Default port for the persistent HTTP daemon
DEFAULT_PORT = 8902


def create_server(
    supervisor: ProcessSupervisor | None = None,
    port: int = DEFAULT_PORT,
) -> FastMCP:
    """Create and configure the workflow process manager server."""

    sv = supervisor or ProcessSupervisor()

    mcp = FastMCP(
        name="mcp-workflow",
        instructions=(
            "Controls the project's MCP servers (think, MySQL). "
            "Use list_servers for status, start_server / stop_server to "
            "control one server, and get_log to read its log file."
        ),
        host="127.0.0.1",
        port=port,
        stateless_http=True,
    )

    # ------------------------------------------------------------------
    # Tool: list_servers
    # ------------------------------------------------------------------
    @mcp.tool()
    async def list_servers() -> dict:
        """List configured servers and the ones currently running."""
        running = sv.describe()
        return {
            "configured": [spec.name for spec in sv.specs],
            "running_count": len(running),
            "running": running,
        }

    # ------------------------------------------------------------------
    # Tool: start_server
    # ------------------------------------------------------------------
    @mcp.tool()
    async def start_server(name: str) -> dict:
        """Start a configured server by name.

        Fails if the server is already running, or if its launcher does
        not exist (run setup-mcp first).

        Args:
            name: Configured server name (e.g. "mysql-mcp-server").
        """
        try:
            spec = sv.spec(name)
        except KeyError:
            return {"name": name, "status": "not_found", "error": f"No server named '{name}'"}
        try:
            managed = await sv.start(spec)
        except SupervisorError as exc:
            return {"name": name, "status": "error", "error": str(exc)}
        return {
            "name": managed.name,
            "pid": managed.pid,
            "status": "running",
            "log_file": str(spec.log_file_path),
        }

    # ------------------------------------------------------------------
    # Tool: stop_server
    # ------------------------------------------------------------------
    @mcp.tool()
    async def stop_server(name: str, force: bool = False) -> dict:
        """Send a termination signal to a running server.

        Returns as soon as the signal is sent; use list_servers to see
        when it has gone.

        Args:
            name: Name of the server to stop.
            force: If True, send SIGKILL instead of SIGTERM.
        """
        outcome = sv.stop(name, force=force)
        return {"name": name, "status": outcome.value}

    # ------------------------------------------------------------------
    # Tool: get_log
    # ------------------------------------------------------------------
    @mcp.tool()
    async def get_log(name: str, tail: int = 2000) -> dict:
        """Read the end of a server's log file.

        Args:
            name: Configured server name.
            tail: Number of characters to return from the end of the log.
        """
        try:
            text = sv.log_tail(name, tail=tail)
        except KeyError:
            return {"name": name, "status": "not_found", "error": f"No server named '{name}'"}
        return {"name": name, "running": name in sv, "log": text}

    return mcp

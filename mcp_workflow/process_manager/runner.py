"""Foreground runners: keep the supervised servers alive until a signal."""

from __future__ import annotations

import asyncio
import logging
import signal

import uvicorn

from mcp_workflow.process_manager.server import DEFAULT_PORT, create_server
from mcp_workflow.process_manager.supervisor import ProcessSupervisor

log = logging.getLogger(__name__)


def install_signal_handlers(shutdown: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)


def remove_signal_handlers() -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.remove_signal_handler(sig)


async def shutdown_servers(
    supervisor: ProcessSupervisor,
    grace: float,
    force_kill: bool = False,
) -> list[str]:
    """Stop everything, wait up to `grace` seconds, optionally SIGKILL the rest."""
    supervisor.stop_all()
    remaining = await supervisor.drain(grace)
    if remaining and force_kill:
        log.warning("Force-killing: %s", ", ".join(remaining))
        supervisor.stop_all(force=True)
        remaining = await supervisor.drain(grace)
    if remaining:
        log.warning("Still running after stop request: %s", ", ".join(remaining))
    return remaining


async def run_servers(
    supervisor: ProcessSupervisor,
    grace: float = 5.0,
    force_kill: bool = False,
) -> int:
    """Start all servers and block until a signal or until they all exit."""
    shutdown = asyncio.Event()
    install_signal_handlers(shutdown)
    try:
        report = await supervisor.start_all()

        signalled = asyncio.create_task(shutdown.wait())
        exited = asyncio.create_task(supervisor.drain())
        await asyncio.wait({signalled, exited}, return_when=asyncio.FIRST_COMPLETED)
        signalled.cancel()
        exited.cancel()

        if shutdown.is_set():
            log.info("Received signal. Stopping all MCP servers...")
            await shutdown_servers(supervisor, grace, force_kill)
            return 0

        log.info("All MCP servers have exited")
        return 0 if report.ready else 1
    finally:
        remove_signal_handlers()


async def _run_http(uvi: uvicorn.Server) -> int:
    # uvicorn reports startup failures (port in use) with sys.exit(); a
    # SystemExit escaping a task would tear down the event loop.
    try:
        await uvi._serve()
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) and exc.code else 1
    return 0


async def serve(
    supervisor: ProcessSupervisor,
    port: int = DEFAULT_PORT,
    grace: float = 5.0,
) -> int:
    """Run the servers behind the process-manager MCP daemon.

    Returns 0 after a signal, non-zero when the HTTP server fails or stops
    by itself. The supervised servers are stopped either way.
    """
    server = create_server(supervisor=supervisor, port=port)

    # Run uvicorn in the same event loop so the supervisor's async
    # tasks (stream readers, log writers, exit waiters) stay alive.
    app = server.streamable_http_app()
    config = uvicorn.Config(
        app, host="127.0.0.1", port=port, log_level="info",
    )
    uvi = uvicorn.Server(config)

    # _serve() instead of serve(): serve() installs its own signal
    # handlers with signal.signal(), which would replace ours.
    shutdown = asyncio.Event()
    install_signal_handlers(shutdown)
    try:
        await supervisor.start_all()

        http = asyncio.create_task(_run_http(uvi))
        signalled = asyncio.create_task(shutdown.wait())
        await asyncio.wait({http, signalled}, return_when=asyncio.FIRST_COMPLETED)
        signalled.cancel()

        if shutdown.is_set():
            log.info("Signal received, shutting down")
            uvi.should_exit = True
            await http
            return 0

        code = http.result()
        log.error("HTTP server on port %d stopped (code %d)", port, code)
        return code or 1
    finally:
        remove_signal_handlers()
        await shutdown_servers(supervisor, grace)

"""Interactive menu.

The session owns a ProcessSupervisor for its whole lifetime, so servers
started from the menu keep running (and logging) while the user picks the
next action. Prompts block on stdin, so they run on a daemon thread and the
event loop stays free to drain child output.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading
from collections.abc import Callable
from typing import Any, TypeVar

import mysql.connector
from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt

from . import database
from .config import Config
from .dependencies import DependencyError, check_and_install_dependencies
from .formatter import print_rows, print_tables, servers_table
from .process_manager.runner import shutdown_servers
from .process_manager.supervisor import ConfigurationError, ProcessSupervisor
from .setup_servers import setup_mcp_servers

log = logging.getLogger(__name__)

T = TypeVar("T")

MENU = [
    ("setup-mcp", "Set up MCP servers"),
    ("run-mcp", "Run MCP servers"),
    ("stop-mcp", "Stop MCP servers"),
    ("status", "Show running MCP servers"),
    ("list-tables", "List database tables"),
    ("show-structure", "Show table structure"),
    ("show-data", "Show table data"),
    ("query", "Execute custom SQL query"),
    ("exit", "Exit"),
]


class SessionInterrupted(Exception):
    """SIGINT / SIGTERM arrived while waiting for input."""


def _in_daemon_thread(fn: Callable[..., T], *args: Any, **kwargs: Any) -> asyncio.Future[T]:
    """Run a blocking call on a daemon thread and expose it as a future.

    A daemon thread can be abandoned mid-prompt without blocking exit.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[T] = loop.create_future()

    def _resolve(result: Any, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def _runner() -> None:
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            loop.call_soon_threadsafe(_resolve, None, exc)
        else:
            loop.call_soon_threadsafe(_resolve, result, None)

    threading.Thread(target=_runner, daemon=True).start()
    return future


class InteractiveSession:
    def __init__(
        self,
        config: Config,
        supervisor: ProcessSupervisor,
        *,
        console: Console | None = None,
        env_path: str | None = None,
    ) -> None:
        self.config = config
        self.supervisor = supervisor
        self.console = console or Console()
        self.env_path = env_path or ".env"
        self._shutdown = asyncio.Event()

    async def run(self) -> int:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._on_signal)

        self.console.print("Welcome to the MCP Workflow Interactive Mode")
        try:
            while True:
                action = await self._choose_action()
                if action == "exit":
                    break
                await self._dispatch(action)
                if not await self._ask(
                    Confirm.ask, "Would you like to perform another action?", default=True
                ):
                    break
        except SessionInterrupted:
            log.info("Received signal. Stopping all MCP servers...")
        except EOFError:
            # stdin closed
            self.console.print()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            # Children run in their own sessions and would outlive us
            await shutdown_servers(self.supervisor, self.config.stop_grace)

        self.console.print("Thank you for using the MCP Workflow Interactive Mode")
        return 0

    def _on_signal(self) -> None:
        self.supervisor.stop_all()
        self._shutdown.set()

    async def _ask(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        answer = _in_daemon_thread(fn, *args, console=self.console, **kwargs)
        interrupted = asyncio.ensure_future(self._shutdown.wait())
        await asyncio.wait({answer, interrupted}, return_when=asyncio.FIRST_COMPLETED)
        interrupted.cancel()
        if self._shutdown.is_set():
            answer.cancel()
            raise SessionInterrupted()
        return answer.result()

    async def _choose_action(self) -> str:
        self.console.print()
        for index, (_, label) in enumerate(MENU, start=1):
            self.console.print(f"{index}. {label}", highlight=False)
        choice = await self._ask(
            Prompt.ask,
            "What would you like to do?",
            choices=[str(i) for i in range(1, len(MENU) + 1)],
            show_choices=False,
        )
        return MENU[int(choice) - 1][0]

    async def _dispatch(self, action: str) -> None:
        try:
            if action == "setup-mcp":
                await asyncio.to_thread(check_and_install_dependencies)
                await asyncio.to_thread(setup_mcp_servers, self.config, self.env_path)
            elif action == "run-mcp":
                self.console.print("Running MCP servers in the background...")
                await self.supervisor.start_all()
            elif action == "stop-mcp":
                if not self.supervisor.stop_all():
                    self.console.print("No MCP servers are running.")
            elif action == "status":
                self._show_status()
            elif action == "list-tables":
                await self._list_tables()
            elif action == "show-structure":
                table = await self._pick_table("Which table would you like to see the structure of?")
                if table:
                    rows = await asyncio.to_thread(database.get_table_structure, self.config, table)
                    print_rows(rows, self.console)
            elif action == "show-data":
                await self._show_data()
            elif action == "query":
                sql = await self._ask_non_empty("Enter your SQL query")
                rows = await asyncio.to_thread(database.execute_query, self.config, sql)
                print_rows(rows, self.console)
        except (mysql.connector.Error, ValueError) as exc:
            log.error("Database error: %s", exc)
        except (DependencyError, ConfigurationError) as exc:
            log.error("%s", exc)
        except OSError as exc:
            log.error("%s failed: %s", action, exc)

    def _show_status(self) -> None:
        servers = self.supervisor.describe()
        if not servers:
            self.console.print("No MCP servers are running.")
            return
        self.console.print(servers_table(servers))

    async def _list_tables(self) -> list[str]:
        tables = await asyncio.to_thread(database.get_tables, self.config)
        print_tables(tables, self.console)
        return tables

    async def _pick_table(self, question: str) -> str | None:
        tables = await self._list_tables()
        if not tables:
            return None
        return await self._ask(Prompt.ask, question, choices=tables)

    async def _show_data(self) -> None:
        table = await self._pick_table("Which table would you like to see the data of?")
        if not table:
            return
        while True:
            limit = await self._ask(
                IntPrompt.ask, "How many records would you like to see?", default=10
            )
            if limit > 0:
                break
            self.console.print("Please enter a valid positive number")
        rows = await asyncio.to_thread(database.get_table_data, self.config, table, limit)
        print_rows(rows, self.console)

    async def _ask_non_empty(self, question: str) -> str:
        while True:
            answer = await self._ask(Prompt.ask, question)
            if answer.strip():
                return answer
            self.console.print("Please enter a valid SQL query")

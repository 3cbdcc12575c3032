"""Console rendering for query results and the server registry."""

from __future__ import annotations

import datetime
from typing import Any

from rich.console import Console
from rich.table import Table


def _to_json(value: Any) -> Any:
    """Fallback for values the json module can't encode (MySQL column types)."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return str(value)


def print_rows(rows: list[dict[str, Any]], console: Console | None = None) -> None:
    (console or Console()).print_json(data=rows, default=_to_json)


def print_tables(names: list[str], console: Console | None = None) -> None:
    console = console or Console()
    if not names:
        console.print("No tables found.")
        return
    console.print("Tables:")
    for index, name in enumerate(names, start=1):
        console.print(f"{index}. {name}", markup=False, highlight=False)


def servers_table(servers: list[dict[str, Any]]) -> Table:
    table = Table(title="MCP servers", box=None)
    table.add_column("Server", style="bold")
    table.add_column("PID")
    table.add_column("Uptime (s)")
    table.add_column("Log file")
    for server in servers:
        table.add_row(
            server["name"],
            str(server["pid"]),
            str(server["uptime_seconds"]),
            server["log_file"],
        )
    return table

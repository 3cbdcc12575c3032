"""Process Supervisor: spawns, tracks, and stops the configured MCP servers."""

from __future__ import annotations

import asyncio
import codecs
import json
import logging
import os
import signal
import sys
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import IO, Any

from rich.console import Console

from mcp_workflow.models import ServerSpec, StartReport

log = logging.getLogger(__name__)

READ_CHUNK = 4096


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class SupervisorError(Exception):
    """Base class for failures localized to a single server."""


class ConfigurationError(SupervisorError):
    """Executable not found, unwritable log, or an invalid server definition."""


class SpawnError(SupervisorError):
    """The OS refused to create the child process."""


class ProcessRuntimeError(SupervisorError):
    """The child failed after it was spawned."""


class AlreadyRunning(SupervisorError):
    """A server with this name is already registered."""


class StopOutcome(str, Enum):
    SIGNALLED = "signalled"
    NOT_RUNNING = "not_running"


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _error_details(exc: BaseException) -> str:
    return json.dumps(
        {
            "name": type(exc).__name__,
            "message": str(exc),
            "errno": getattr(exc, "errno", None),
            "filename": getattr(exc, "filename", None),
        },
        default=str,
    )


def _session_kwargs() -> dict[str, Any]:
    # Own process group so a stop reaches the shell and everything it spawned
    if sys.platform == "win32":
        return {}
    return {"start_new_session": True}


def _send_stop(process: asyncio.subprocess.Process, force: bool) -> None:
    if sys.platform == "win32":
        if force:
            process.kill()
        else:
            process.terminate()
        return
    sig = signal.SIGKILL if force else signal.SIGTERM
    try:
        os.killpg(process.pid, sig)
    except ProcessLookupError:
        # Already gone; the exit waiter cleans up the registry.
        pass


@dataclass
class ManagedProcess:
    """A live child, its log file, and the channel feeding the log writer."""

    spec: ServerSpec
    process: asyncio.subprocess.Process
    log_file: IO[str]
    start_time: float = field(default_factory=time.time)
    channel: asyncio.Queue[tuple[str, Any]] = field(default_factory=asyncio.Queue)
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    _tasks: list[asyncio.Task[None]] = field(default_factory=list, repr=False)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def pid(self) -> int:
        return self.process.pid


class ProcessSupervisor:
    """Owns the server specs and the registry of running children."""

    def __init__(
        self,
        specs: Iterable[ServerSpec] = (),
        *,
        stdout: Console | None = None,
        stderr: Console | None = None,
    ) -> None:
        self.specs: list[ServerSpec] = []
        for spec in specs:
            if any(existing.name == spec.name for existing in self.specs):
                raise ConfigurationError(f"Duplicate server name: {spec.name}")
            self.specs.append(spec)
        self._processes: dict[str, ManagedProcess] = {}
        self._out = stdout or Console(soft_wrap=True)
        self._err = stderr or Console(stderr=True, soft_wrap=True)

    def __contains__(self, name: object) -> bool:
        return name in self._processes

    @property
    def running(self) -> list[str]:
        return list(self._processes)

    def get(self, name: str) -> ManagedProcess | None:
        return self._processes.get(name)

    def spec(self, name: str) -> ServerSpec:
        for spec in self.specs:
            if spec.name == name:
                return spec
        raise KeyError(f"No server named '{name}'")

    # ------------------------------------------------------------------
    # Starting
    # ------------------------------------------------------------------

    async def start_all(self) -> StartReport:
        """Start every configured server, in order.

        A failure only affects its own server; the batch always runs to
        the end and the outcome is returned as a StartReport.
        """
        log.info("Starting all MCP servers...")
        report = StartReport()
        for spec in self.specs:
            try:
                await self.start(spec)
            except AlreadyRunning as exc:
                log.info("%s", exc)
                report.already_running.append(spec.name)
            except SupervisorError as exc:
                report.failed[spec.name] = str(exc)
            else:
                report.started.append(spec.name)

        if report.ready:
            log.info("All MCP servers started successfully. Press Ctrl+C to stop.")
        else:
            log.error(
                "Failed to start the following MCP servers: %s",
                ", ".join(report.failed),
            )
            log.info("Check the log files for more information.")
        return report

    async def start(self, spec: ServerSpec) -> ManagedProcess:
        """Start one server and register it under its name."""
        existing = self._processes.get(spec.name)
        if existing is not None:
            raise AlreadyRunning(
                f"{spec.name} is already running (pid={existing.pid})"
            )

        args = " ".join(spec.arguments)
        log.info("Starting %s...", spec.name)
        log.info("Command: %s", spec.executable_path)
        log.info("Args: %s", args)

        log_path = Path(spec.log_file_path)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_file = open(log_path, "a", encoding="utf-8", buffering=1)
        except OSError as exc:
            log.error("Cannot open log file %s: %s", log_path, exc)
            raise ConfigurationError(f"Cannot open log file {log_path}: {exc}") from exc

        log_file.write(f"\n--- {_timestamp()} - Starting {spec.name} ---\n")
        log_file.write(f"Command: {spec.executable_path}\n")
        log_file.write(f"Args: {args}\n")

        if not os.path.exists(spec.executable_path):
            message = f"Error: Command not found: {spec.executable_path}"
            log.error("%s", message)
            log_file.write(f"{message}\n")
            log_file.close()
            raise ConfigurationError(message)

        env = os.environ.copy()
        env.update(spec.environment_overrides)

        try:
            process = await asyncio.create_subprocess_shell(
                spec.command_line,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                **_session_kwargs(),
            )
        except (OSError, ValueError) as exc:
            message = f"Error starting {spec.name}: {exc}"
            log.error("%s", message)
            log_file.write(f"{message}\n")
            log_file.write(f"Error details: {_error_details(exc)}\n")
            log_file.close()
            raise SpawnError(message) from exc

        managed = ManagedProcess(spec=spec, process=process, log_file=log_file)
        self._processes[spec.name] = managed

        readers = [
            asyncio.create_task(
                self._read_stream(process.stdout, "stdout", managed.channel),  # type: ignore[arg-type]
                name=f"{spec.name}-stdout",
            ),
            asyncio.create_task(
                self._read_stream(process.stderr, "stderr", managed.channel),  # type: ignore[arg-type]
                name=f"{spec.name}-stderr",
            ),
        ]
        managed._tasks = [
            *readers,
            asyncio.create_task(self._write_log(managed), name=f"{spec.name}-log"),
            asyncio.create_task(
                self._wait_for_exit(managed, readers), name=f"{spec.name}-waiter"
            ),
        ]
        log.debug("%s running (pid=%s)", spec.name, process.pid)
        return managed

    # ------------------------------------------------------------------
    # Stopping
    # ------------------------------------------------------------------

    def stop(self, name: str, force: bool = False) -> StopOutcome:
        """Ask a server to terminate. Does not wait for it to exit."""
        managed = self._processes.get(name)
        if managed is None:
            log.info("%s is not running", name)
            return StopOutcome.NOT_RUNNING

        log.info("Stopping %s...", name)
        _send_stop(managed.process, force)
        return StopOutcome.SIGNALLED

    def stop_all(self, force: bool = False) -> dict[str, StopOutcome]:
        """Stop every registered server."""
        if not self._processes:
            return {}

        log.info("Stopping all MCP servers...")
        outcomes: dict[str, StopOutcome] = {}
        for name in list(self._processes):
            try:
                outcomes[name] = self.stop(name, force=force)
            except OSError:
                log.exception("Failed to stop %s", name)
        return outcomes

    async def wait(self, name: str, timeout: float | None = None) -> bool:
        """Wait until `name` has exited. Returns False on timeout."""
        managed = self._processes.get(name)
        if managed is None:
            return True
        try:
            await asyncio.wait_for(managed.closed.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def drain(self, timeout: float | None = None) -> list[str]:
        """Wait for every registered server to exit; return the stragglers."""
        pending = list(self._processes.values())
        if not pending:
            return []
        waiters = [asyncio.create_task(m.closed.wait()) for m in pending]
        _, unfinished = await asyncio.wait(waiters, timeout=timeout)
        for task in unfinished:
            task.cancel()
        return [m.name for m in pending if not m.closed.is_set()]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def describe(self) -> list[dict[str, Any]]:
        """Summary of every registered server."""
        now = time.time()
        return [
            {
                "name": managed.name,
                "pid": managed.pid,
                "command": managed.spec.executable_path,
                "args": list(managed.spec.arguments),
                "log_file": str(managed.spec.log_file_path),
                "uptime_seconds": round(now - managed.start_time, 1),
            }
            for managed in self._processes.values()
        ]

    def log_tail(self, name: str, tail: int = 2000) -> str:
        """Return the last `tail` characters of a server's log file."""
        path = Path(self.spec(name).log_file_path)
        if not path.exists():
            return ""
        text = path.read_text(encoding="utf-8", errors="replace")
        return text[-tail:] if tail > 0 else ""

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _read_stream(
        stream: asyncio.StreamReader,
        tag: str,
        channel: asyncio.Queue[tuple[str, Any]],
    ) -> None:
        """Forward decoded chunks of one pipe into the process channel."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                channel.put_nowait((tag, text))
        tail = decoder.decode(b"", final=True)
        if tail:
            channel.put_nowait((tag, tail))

    @staticmethod
    async def _wait_for_exit(
        managed: ManagedProcess,
        readers: list[asyncio.Task[None]],
    ) -> None:
        code = await managed.process.wait()
        # Drain both pipes before the exit line so nothing lands after it
        results = await asyncio.gather(*readers, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                managed.channel.put_nowait(("error", result))
        managed.channel.put_nowait(("exit", code))

    async def _write_log(self, managed: ManagedProcess) -> None:
        """Sole writer of a server's log file."""
        name = managed.name
        log_file = managed.log_file
        try:
            while True:
                kind, payload = await managed.channel.get()
                if kind == "stdout":
                    log_file.write(f"[stdout] {payload}")
                    line = payload.rstrip("\n")
                    self._out.print(
                        f"[{name}] {line}", markup=False, highlight=False, emoji=False
                    )
                elif kind == "stderr":
                    log_file.write(f"[stderr] {payload}")
                    line = payload.rstrip("\n")
                    self._err.print(
                        f"[{name}] Error: {line}",
                        markup=False, highlight=False, emoji=False,
                    )
                elif kind == "error":
                    self._record_error(managed, payload)
                elif kind == "exit":
                    log.info("%s exited with code %s", name, payload)
                    log_file.write(
                        f"--- {_timestamp()} - {name} exited with code {payload} ---\n"
                    )
                    break
        except OSError:
            log.exception("Log writer for %s failed", name)
        finally:
            log_file.close()
            self._forget(managed)
            managed.closed.set()

    def _record_error(self, managed: ManagedProcess, exc: BaseException) -> None:
        error = ProcessRuntimeError(str(exc))
        log.error("[%s] Process error: %s", managed.name, error)
        managed.log_file.write(f"[error] Process error: {error}\n")
        managed.log_file.write(f"Error details: {_error_details(exc)}\n")
        self._forget(managed)

    def _forget(self, managed: ManagedProcess) -> None:
        if self._processes.get(managed.name) is managed:
            del self._processes[managed.name]

from __future__ import annotations

import shlex
import subprocess
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path


# ---------------------------------------------------------------------------
# ServerSpec: static launch configuration for one MCP server
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerSpec:
    name: str
    executable_path: str
    log_file_path: Path
    arguments: tuple[str, ...] = ()
    environment_overrides: Mapping[str, str] = field(default_factory=dict)

    @property
    def command_line(self) -> str:
        """The command as handed to the shell."""
        parts = [self.executable_path, *self.arguments]
        if sys.platform == "win32":
            return subprocess.list2cmdline(parts)
        return shlex.join(parts)


# ---------------------------------------------------------------------------
# StartReport: outcome of a batch start
# ---------------------------------------------------------------------------

@dataclass
class StartReport:
    started: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)  # name -> reason
    already_running: list[str] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return not self.failed

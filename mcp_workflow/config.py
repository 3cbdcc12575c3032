from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from dotenv import load_dotenv

from mcp_workflow.models import ServerSpec
from mcp_workflow.process_manager.supervisor import ConfigurationError

THINK_SERVER = "think-mcp-server"
MYSQL_SERVER = "mysql-mcp-server"

SMITHERY_CLI = "@smithery/cli"
THINK_PACKAGE = "@PhillipRt/think-mcp-server"
MYSQL_PACKAGE = "@benborla29/mcp-server-mysql"

LAUNCHER_SUFFIX = ".bat" if sys.platform == "win32" else ".sh"

T = TypeVar("T", int, float)


def _number(name: str, default: str, kind: type[T]) -> T:
    value = os.getenv(name, default)
    try:
        return kind(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


@dataclass(frozen=True)
class Config:
    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_user: str = "root"
    mysql_password: str = ""
    mysql_database: str = ""
    smithery_key: str = ""
    augment_dir: str = ".augment"
    vscode_dir: str = ".vscode"
    stop_grace: float = 5.0

    @property
    def augment_path(self) -> Path:
        """Working directory for logs and launchers, relative to the cwd."""
        return Path.cwd() / self.augment_dir

    @property
    def vscode_path(self) -> Path:
        return Path.cwd() / self.vscode_dir

    def mysql_env(self) -> dict[str, str]:
        """MySQL settings in the variable names the MySQL MCP server reads."""
        return {
            "MYSQL_HOST": self.mysql_host,
            "MYSQL_PORT": str(self.mysql_port),
            "MYSQL_USER": self.mysql_user,
            "MYSQL_PASS": self.mysql_password,
            "MYSQL_DB": self.mysql_database,
        }

    def launcher_path(self, stem: str) -> Path:
        return self.augment_path / f"{stem}{LAUNCHER_SUFFIX}"

    def think_args(self) -> list[str]:
        args = [SMITHERY_CLI, "run", THINK_PACKAGE]
        if self.smithery_key:
            args += ["--key", self.smithery_key]
        return args

    def mysql_args(self) -> list[str]:
        return ["-y", MYSQL_PACKAGE]

    def server_specs(self) -> list[ServerSpec]:
        """The MCP servers run-mcp launches, through their generated launchers."""
        return [
            ServerSpec(
                name=THINK_SERVER,
                executable_path=str(self.launcher_path("run-think-mcp")),
                log_file_path=self.augment_path / "think-mcp.log",
            ),
            ServerSpec(
                name=MYSQL_SERVER,
                executable_path=str(self.launcher_path("run-mysql-mcp")),
                log_file_path=self.augment_path / "mysql-mcp.log",
                environment_overrides=self.mysql_env(),
            ),
        ]

    def editor_servers(self) -> list[dict[str, Any]]:
        """MCP server entries for the editor's settings files."""
        return [
            {"name": THINK_SERVER, "command": "npx", "args": self.think_args()},
            {
                "name": MYSQL_SERVER,
                "command": "npx",
                "args": self.mysql_args(),
                "env": self.mysql_env(),
            },
        ]

    @classmethod
    def from_env(cls, env_path: str | Path | None = None) -> Config:
        load_dotenv(env_path)

        return cls(
            mysql_host=os.getenv("MYSQL_HOST", "localhost"),
            mysql_port=_number("MYSQL_PORT", "3306", int),
            mysql_user=os.getenv("MYSQL_USER", "root"),
            mysql_password=os.getenv("MYSQL_PASS", ""),
            mysql_database=os.getenv("MYSQL_DB", ""),
            smithery_key=os.getenv("SMITHERY_KEY", ""),
            augment_dir=os.getenv("AUGMENT_DIR", ".augment"),
            vscode_dir=os.getenv("VSCODE_DIR", ".vscode"),
            stop_grace=_number("MCP_STOP_GRACE", "5", float),
        )


def load_server_specs(config_path: str | Path, log_dir: str | Path) -> list[ServerSpec]:
    """Read server definitions from a JSON file.

    Format:
        {
            "server-name": {
                "command": "/path/to/launcher.sh",
                "args": ["--flag"],
                "env": {"KEY": "VALUE"},
                "log_file": "logs/server-name.log"
            }
        }

    ``log_file`` defaults to ``<log_dir>/<server-name>.log``.
    """
    path = Path(config_path)
    try:
        with open(path, encoding="utf-8") as f:
            servers = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read server file {path}: {exc}") from exc

    if not isinstance(servers, dict):
        raise ConfigurationError(f"{path}: expected an object of server definitions")

    specs = []
    for name, svc in servers.items():
        if not isinstance(svc, dict) or "command" not in svc:
            raise ConfigurationError(f"{path}: server '{name}' has no command")
        specs.append(
            ServerSpec(
                name=name,
                executable_path=str(svc["command"]),
                arguments=tuple(str(a) for a in svc.get("args", [])),
                environment_overrides={
                    str(k): str(v) for k, v in svc.get("env", {}).items()
                },
                log_file_path=Path(svc.get("log_file") or Path(log_dir) / f"{name}.log"),
            )
        )
    return specs

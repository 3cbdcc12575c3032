"""Editor setup: MCP config files, launcher scripts, and persisted settings.

Running ``setup-mcp`` leaves the working directory looking like this:

    .vscode/settings.json        augment.advanced.mcpServers
    .augment/config.json         augment.advanced.mcpServers
    .augment/run-think-mcp.sh    launcher used by run-mcp
    .augment/run-mysql-mcp.sh    launcher used by run-mcp
    .env                         MYSQL_* settings (only keys not already set)

On Windows the launchers are ``.bat`` files.
"""

from __future__ import annotations

import json
import logging
import shlex
import subprocess
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from dotenv import dotenv_values, set_key

from .config import MYSQL_PACKAGE, SMITHERY_CLI, Config
from .dependencies import install_package_globally, is_package_installed_globally

log = logging.getLogger(__name__)

SETTINGS_SECTION = "augment.advanced"


def ensure_directory(path: Path) -> Path:
    if not path.is_dir():
        path.mkdir(parents=True, exist_ok=True)
        log.info("Created directory: %s", path)
    return path


def update_mcp_config(path: Path, servers: list[dict[str, Any]]) -> dict[str, Any]:
    """Write ``servers`` into the settings file, keeping every other key."""
    settings: dict[str, Any] = {}
    if path.exists():
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            log.error("Error reading %s: %s", path, exc)
        else:
            if isinstance(loaded, dict):
                settings = loaded
            else:
                log.error("Ignoring %s: top level is not an object", path)

    section = settings.get(SETTINGS_SECTION)
    if not isinstance(section, dict):
        section = {}
    section["mcpServers"] = servers
    settings[SETTINGS_SECTION] = section

    path.write_text(json.dumps(settings, indent=2), encoding="utf-8")
    log.info("Updated %s with MCP server configuration", path)
    return settings


def write_launcher(path: Path, command: str, args: list[str]) -> Path:
    """Write a script that runs ``command args...`` and passes extra args on."""
    if sys.platform == "win32":
        content = (
            "@echo off\r\n"
            f"call {subprocess.list2cmdline([command, *args])} %*\r\n"
        )
    else:
        content = f"#!/bin/sh\nexec {shlex.join([command, *args])} \"$@\"\n"

    path.write_text(content, encoding="utf-8")
    path.chmod(0o755)
    log.info("Created %s", path)
    return path


def install_packages(packages: Iterable[str]) -> list[str]:
    """Install missing global packages; return the ones that failed."""
    failed = []
    for package in packages:
        if is_package_installed_globally(package):
            continue
        if not install_package_globally(package):
            failed.append(package)
    return failed


def persist_environment(config: Config, env_path: str | Path = ".env") -> list[str]:
    """Add the MySQL settings to the .env file; existing keys are left alone."""
    path = Path(env_path)
    path.touch(exist_ok=True)
    present = dotenv_values(path)
    written = []
    for key, value in config.mysql_env().items():
        if key in present:
            continue
        set_key(str(path), key, value)
        written.append(key)
    if written:
        log.info("Wrote %s to %s", ", ".join(written), path)
    return written


def setup_mcp_servers(
    config: Config,
    env_path: str | Path = ".env",
    install: bool = True,
) -> list[str]:
    """Prepare the working directory for run-mcp and the editor.

    Returns the npm packages that could not be installed.
    """
    log.info("Setting up MCP servers...")

    ensure_directory(config.vscode_path)
    ensure_directory(config.augment_path)

    servers = config.editor_servers()
    update_mcp_config(config.vscode_path / "settings.json", servers)
    update_mcp_config(config.augment_path / "config.json", servers)

    write_launcher(config.launcher_path("run-think-mcp"), "npx", config.think_args())
    write_launcher(config.launcher_path("run-mysql-mcp"), "npx", config.mysql_args())

    failed = install_packages((MYSQL_PACKAGE, SMITHERY_CLI)) if install else []
    for package in failed:
        log.error("Could not install %s", package)

    persist_environment(config, env_path)

    log.info("MCP servers setup complete!")
    log.info("Please restart your editor for the changes to take effect.")
    return failed

"""Checks for the Node.js tooling the MCP servers are launched with."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from collections.abc import Iterable
from pathlib import Path

from .config import MYSQL_PACKAGE, SMITHERY_CLI

log = logging.getLogger(__name__)

REQUIRED_PACKAGES = (SMITHERY_CLI, MYSQL_PACKAGE)


class DependencyError(Exception):
    """Required tooling is missing and could not be installed."""


def _npm() -> str:
    return shutil.which("npm") or "npm"


def is_npx_available() -> bool:
    npx = shutil.which("npx")
    if npx is None:
        return False
    try:
        subprocess.run([npx, "--version"], capture_output=True, check=True)
    except (OSError, subprocess.CalledProcessError):
        return False
    return True


def npx_path() -> str | None:
    """Locate npx, preferring the one installed next to node."""
    node = shutil.which("node")
    if node:
        candidate = Path(node).parent / ("npx.cmd" if sys.platform == "win32" else "npx")
        if candidate.exists():
            return str(candidate)
    return shutil.which("npx")


def is_package_installed_globally(package: str) -> bool:
    try:
        result = subprocess.run(
            [_npm(), "list", "-g", package, "--depth=0"],
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return False
    return "(empty)" not in result.stdout and "npm ERR!" not in result.stdout


def install_package_globally(package: str) -> bool:
    log.info("Installing %s globally...", package)
    try:
        subprocess.run([_npm(), "install", "-g", package], check=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        log.error("Error installing %s globally: %s", package, exc)
        return False
    return True


def check_and_install_dependencies(packages: Iterable[str] = REQUIRED_PACKAGES) -> str:
    """Make sure npx and the global npm packages are present.

    Returns the path to npx. Raises DependencyError when something is
    missing and cannot be installed.
    """
    log.info("Checking dependencies...")

    if not is_npx_available():
        raise DependencyError("npx is not available. Please install Node.js and npm.")

    npx = npx_path()
    if not npx:
        raise DependencyError("Could not find the npx executable.")
    log.info("npx found at: %s", npx)

    for package in packages:
        if is_package_installed_globally(package):
            log.info("%s is already installed globally.", package)
            continue
        log.info("%s is not installed globally. Installing...", package)
        if not install_package_globally(package):
            raise DependencyError(f"Failed to install {package} globally.")

    log.info("All dependencies are installed.")
    return npx

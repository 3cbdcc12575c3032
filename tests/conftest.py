from __future__ import annotations

import io
import os
import stat

import pytest
from rich.console import Console

from mcp_workflow.models import ServerSpec
from mcp_workflow.process_manager.supervisor import ProcessSupervisor

CONFIG_VARS = (
    "MYSQL_HOST", "MYSQL_PORT", "MYSQL_USER", "MYSQL_PASS", "MYSQL_DB",
    "SMITHERY_KEY", "AUGMENT_DIR", "VSCODE_DIR", "MCP_STOP_GRACE",
)


@pytest.fixture
def clean_env():
    """Hide the workflow's settings; drop whatever load_dotenv adds."""
    saved = {name: os.environ.pop(name) for name in CONFIG_VARS if name in os.environ}
    yield
    for name in CONFIG_VARS:
        os.environ.pop(name, None)
    os.environ.update(saved)


@pytest.fixture
def make_script(tmp_path):
    """Write an executable /bin/sh script standing in for an MCP server."""

    def _make(name: str, body: str) -> str:
        path = tmp_path / "bin" / f"{name}.sh"
        path.parent.mkdir(exist_ok=True)
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def spec_factory(tmp_path):
    def _spec(name: str, executable: str, **kwargs) -> ServerSpec:
        kwargs.setdefault("log_file_path", tmp_path / "logs" / f"{name}.log")
        return ServerSpec(name=name, executable_path=executable, **kwargs)

    return _spec


class Captured:
    def __init__(self) -> None:
        self.out = io.StringIO()
        self.err = io.StringIO()
        self.stdout = Console(file=self.out, width=200, color_system=None)
        self.stderr = Console(file=self.err, width=200, color_system=None)


@pytest.fixture
def captured():
    return Captured()


@pytest.fixture
def supervisor_factory(captured):
    created: list[ProcessSupervisor] = []

    def _make(*specs: ServerSpec) -> ProcessSupervisor:
        sv = ProcessSupervisor(specs, stdout=captured.stdout, stderr=captured.stderr)
        created.append(sv)
        return sv

    yield _make

    # Never leave a sleeping child behind if a test fails midway
    for sv in created:
        for name in sv.running:
            managed = sv.get(name)
            if managed is not None:
                try:
                    os.killpg(managed.pid, 9)
                except ProcessLookupError:
                    pass

from __future__ import annotations

import asyncio
import os
import signal
import socket
import sys

import pytest

from mcp_workflow.process_manager.runner import run_servers, serve, shutdown_servers

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals and /bin/sh")

SLEEPER = "exec sleep 30"
IGNORES_TERM = "trap '' TERM\nwhile :; do sleep 1; done"


def send_sigint(delay: float) -> None:
    asyncio.get_running_loop().call_later(delay, os.kill, os.getpid(), signal.SIGINT)


@pytest.mark.asyncio
async def test_sigint_stops_all_servers_and_exits_zero(
    make_script, spec_factory, supervisor_factory
):
    specs = [spec_factory(n, make_script(n, SLEEPER)) for n in ("svc-a", "svc-b")]
    sv = supervisor_factory(*specs)

    send_sigint(0.5)
    code = await run_servers(sv, grace=5)

    assert code == 0
    assert sv.running == []
    for spec in specs:
        assert f"{spec.name} exited with code" in spec.log_file_path.read_text()


@pytest.mark.asyncio
async def test_run_servers_returns_nonzero_when_a_server_failed_to_start(
    make_script, spec_factory, supervisor_factory, tmp_path
):
    quick = spec_factory("quick", make_script("quick", "echo done"))
    missing = spec_factory("missing", str(tmp_path / "nope.sh"))
    sv = supervisor_factory(quick, missing)

    assert await run_servers(sv, grace=5) == 1
    assert sv.running == []


@pytest.mark.asyncio
async def test_shutdown_without_force_leaves_stubborn_server(
    make_script, spec_factory, supervisor_factory
):
    spec = spec_factory("stubborn", make_script("stubborn", IGNORES_TERM))
    sv = supervisor_factory(spec)
    await sv.start(spec)
    await asyncio.sleep(0.5)  # let the trap install

    remaining = await shutdown_servers(sv, grace=0.5)

    assert remaining == ["stubborn"]
    assert "stubborn" in sv

    sv.stop_all(force=True)
    assert await sv.drain(10) == []


@pytest.mark.asyncio
async def test_force_kill_escalates_after_grace(make_script, spec_factory, supervisor_factory):
    spec = spec_factory("stubborn", make_script("stubborn", IGNORES_TERM))
    sv = supervisor_factory(spec)
    managed = await sv.start(spec)
    await asyncio.sleep(0.5)  # let the trap install

    remaining = await shutdown_servers(sv, grace=0.5, force_kill=True)

    assert remaining == []
    assert sv.running == []
    assert managed.process.returncode == -signal.SIGKILL


@pytest.mark.asyncio
async def test_serve_stops_servers_when_port_is_taken(
    make_script, spec_factory, supervisor_factory
):
    spec = spec_factory("svc", make_script("svc", SLEEPER))
    sv = supervisor_factory(spec)

    with socket.socket() as busy:
        busy.bind(("127.0.0.1", 0))
        busy.listen()
        port = busy.getsockname()[1]

        code = await serve(sv, port=port, grace=5)

    assert code != 0
    assert sv.running == []
    assert "svc exited with code" in spec.log_file_path.read_text()

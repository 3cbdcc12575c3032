from __future__ import annotations

import json
from pathlib import Path

import pytest

from mcp_workflow.config import (
    LAUNCHER_SUFFIX,
    MYSQL_SERVER,
    THINK_SERVER,
    Config,
    load_server_specs,
)
from mcp_workflow.process_manager.supervisor import ConfigurationError


def test_from_env_defaults(clean_env, tmp_path):
    config = Config.from_env(tmp_path / "absent.env")

    assert config.mysql_host == "localhost"
    assert config.mysql_port == 3306
    assert config.mysql_user == "root"
    assert config.mysql_password == ""
    assert config.augment_dir == ".augment"
    assert config.stop_grace == 5.0


def test_from_env_reads_dotenv_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "MYSQL_HOST=db.internal\n"
        "MYSQL_PORT=3307\n"
        "MYSQL_PASS=secret\n"
        "MYSQL_DB=shop\n"
        "SMITHERY_KEY=abc123\n"
        "MCP_STOP_GRACE=1.5\n"
    )

    config = Config.from_env(env_file)

    assert config.mysql_host == "db.internal"
    assert config.mysql_port == 3307
    assert config.mysql_password == "secret"
    assert config.mysql_database == "shop"
    assert config.smithery_key == "abc123"
    assert config.stop_grace == 1.5


def test_process_environment_wins_over_dotenv(clean_env, tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("MYSQL_HOST=from-file\n")
    monkeypatch.setenv("MYSQL_HOST", "from-env")

    assert Config.from_env(env_file).mysql_host == "from-env"


def test_server_specs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = Config(mysql_password="pw", mysql_database="shop")

    think, mysql = config.server_specs()

    assert think.name == THINK_SERVER
    assert think.executable_path == str(tmp_path / ".augment" / f"run-think-mcp{LAUNCHER_SUFFIX}")
    assert think.log_file_path == tmp_path / ".augment" / "think-mcp.log"
    assert not think.environment_overrides

    assert mysql.name == MYSQL_SERVER
    assert mysql.log_file_path == tmp_path / ".augment" / "mysql-mcp.log"
    assert mysql.environment_overrides == {
        "MYSQL_HOST": "localhost",
        "MYSQL_PORT": "3306",
        "MYSQL_USER": "root",
        "MYSQL_PASS": "pw",
        "MYSQL_DB": "shop",
    }


def test_think_args_only_carry_a_key_when_configured():
    assert "--key" not in Config().think_args()
    assert Config(smithery_key="k").think_args()[-2:] == ["--key", "k"]


def test_editor_servers_use_npx():
    servers = Config().editor_servers()

    assert [s["name"] for s in servers] == [THINK_SERVER, MYSQL_SERVER]
    assert all(s["command"] == "npx" for s in servers)
    assert servers[1]["args"] == ["-y", "@benborla29/mcp-server-mysql"]


def test_load_server_specs(tmp_path):
    servers_file = tmp_path / "servers.json"
    servers_file.write_text(json.dumps({
        "alpha": {"command": "/opt/alpha.sh", "args": ["--port", 9000], "env": {"A": 1}},
        "beta": {"command": "/opt/beta.sh", "log_file": "custom/beta.log"},
    }))

    alpha, beta = load_server_specs(servers_file, tmp_path / "logs")

    assert alpha.arguments == ("--port", "9000")
    assert alpha.environment_overrides == {"A": "1"}
    assert alpha.log_file_path == tmp_path / "logs" / "alpha.log"
    assert beta.arguments == ()
    assert beta.log_file_path == Path("custom/beta.log")


@pytest.mark.parametrize("content", ["not json", "[1, 2]", '{"x": {"args": []}}'])
def test_load_server_specs_rejects_bad_files(tmp_path, content):
    servers_file = tmp_path / "servers.json"
    servers_file.write_text(content)

    with pytest.raises(ConfigurationError):
        load_server_specs(servers_file, tmp_path)


def test_load_server_specs_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_server_specs(tmp_path / "nope.json", tmp_path)


@pytest.mark.parametrize("name,value", [("MYSQL_PORT", "33o6"), ("MCP_STOP_GRACE", "soon")])
def test_from_env_rejects_non_numeric_values(clean_env, tmp_path, monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ConfigurationError, match=name):
        Config.from_env(tmp_path / "absent.env")

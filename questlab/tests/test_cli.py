"""Tests for the questlab command line."""
from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner
from docker.errors import DockerException

from questlab.cli import main
from questlab.config import settings
from questlab.errors import ReadinessTimeout
from questlab.providers.base import NodeInfo, NodeStatus
from questlab.quest import SetupResult


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging replaces root handlers; put the originals back."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def mock_runner():
    runner = MagicMock()
    runner.setup = AsyncMock()
    runner.teardown = AsyncMock(return_value=[])
    runner.refresh_hosts = AsyncMock(return_value={})
    runner.status = AsyncMock(return_value=[])
    with patch("questlab.cli.build_runner", return_value=runner):
        yield runner


def test_quests_lists_catalog(catalog_file):
    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "quests"])

    assert result.exit_code == 0
    assert result.output.split() == ["hello_puppet", "power_of_puppet", "welcome"]


def test_quests_missing_catalog(tmp_path):
    result = CliRunner().invoke(main, ["--catalog", str(tmp_path / "nope.json"), "quests"])

    assert result.exit_code == 1
    assert "Fatal" in result.output


def test_setup_unknown_quest_is_fatal(catalog_file):
    """Test the real wiring: an unknown quest fails before Docker is touched."""
    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "setup", "nope"])

    assert result.exit_code == 1
    assert "Fatal: Unknown quest: nope" in result.output


def test_setup_prints_nodes(catalog_file, mock_runner):
    mock_runner.setup.return_value = SetupResult(
        quest="hello_puppet",
        nodes=[NodeInfo(name="hello.puppet.vm", status=NodeStatus.RUNNING, ip_address="172.17.0.2")],
    )

    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "setup", "hello_puppet"])

    assert result.exit_code == 0
    assert "hello.puppet.vm\t172.17.0.2" in result.output
    mock_runner.setup.assert_awaited_once_with("hello_puppet", run_puppet=True)


def test_setup_skip_puppet(catalog_file, mock_runner):
    mock_runner.setup.return_value = SetupResult(quest="hello_puppet")

    result = CliRunner().invoke(
        main, ["--catalog", str(catalog_file), "setup", "hello_puppet", "--skip-puppet"]
    )

    assert result.exit_code == 0
    mock_runner.setup.assert_awaited_once_with("hello_puppet", run_puppet=False)


def test_setup_readiness_timeout_exits_1(catalog_file, mock_runner):
    mock_runner.setup.side_effect = ReadinessTimeout("hello.puppet.vm port 22", 30)

    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "setup", "hello_puppet"])

    assert result.exit_code == 1
    assert "hello.puppet.vm port 22" in result.output


def test_setup_requires_quest(catalog_file):
    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "setup"])

    assert result.exit_code == 2


def test_teardown(catalog_file, mock_runner):
    mock_runner.teardown.return_value = ["a.vm", "b.vm"]

    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "teardown"])

    assert result.exit_code == 0
    assert "Removed 2 node(s)" in result.output


def test_hosts(catalog_file, mock_runner):
    mock_runner.refresh_hosts.return_value = {"a.vm": "172.17.0.2"}

    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "hosts"])

    assert result.exit_code == 0
    assert "172.17.0.2\ta.vm" in result.output


def test_status(catalog_file, mock_runner):
    mock_runner.status.return_value = [
        NodeInfo(name="a.vm", status=NodeStatus.RUNNING, ip_address="172.17.0.2", quest="q"),
        NodeInfo(name="b.vm", status=NodeStatus.STOPPED),
    ]

    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "status"])

    assert result.exit_code == 0
    assert "a.vm\trunning\t172.17.0.2\tq" in result.output
    assert "b.vm\tstopped\t-\t-" in result.output


def test_status_empty(catalog_file, mock_runner):
    result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "status"])

    assert "No nodes" in result.output


def test_status_docker_unavailable_is_fatal(catalog_file):
    with patch(
        "questlab.providers.docker.docker.from_env",
        side_effect=DockerException("daemon down"),
    ):
        result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "status"])

    assert result.exit_code == 1
    assert "Fatal: Cannot connect to Docker: daemon down" in result.output


def test_hosts_unwritable_is_fatal(catalog_file, tmp_path):
    hosts_path = tmp_path / "hosts"
    hosts_path.write_text("127.0.0.1\tlocalhost\n")
    client = MagicMock()
    client.containers.list.return_value = []

    with patch("questlab.providers.docker.docker.from_env", return_value=client), \
            patch.object(settings, "hosts_path", str(hosts_path)), \
            patch("questlab.hosts.os.replace", side_effect=PermissionError(13, "Permission denied")):
        result = CliRunner().invoke(main, ["--catalog", str(catalog_file), "hosts"])

    assert result.exit_code == 1
    assert "Fatal: Cannot update" in result.output
    assert "Permission denied" in result.output
    assert hosts_path.read_text() == "127.0.0.1\tlocalhost\n"

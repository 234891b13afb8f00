"""Shared pytest fixtures for questlab tests."""
from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from questlab.errors import NodeProvisionError
from questlab.hosts import HostsFile
from questlab.providers.base import NodeInfo, NodeProvider, NodeStatus
from questlab.puppet import PuppetMaster
from questlab.schemas import NodeOptions, QuestCatalog


CATALOG = {
    "welcome": [],
    "hello_puppet": [
        {"name": "hello.puppet.vm", "image": "agent", "sign_cert": True},
    ],
    "power_of_puppet": [
        {"name": "pasture-app.beauvine.vm", "image": "agent", "sign_cert": True, "run_puppet": True},
        {"name": "pasture-db.auroch.vm", "image": "agent", "sign_cert": True, "run_puppet": True},
        {"name": "workstation", "image": "no_agent"},
    ],
}


class FakeProvider(NodeProvider):
    """In-memory provider for testing without Docker."""

    def __init__(self):
        self.nodes: dict[str, NodeInfo] = {}
        self.created: list[str] = []
        self.removed: list[str] = []
        self.exec_results: dict[str, tuple[int, str] | Exception] = {}
        self.commands: list[tuple[str, list[str]]] = []
        self._next_ip = 2

    @property
    def name(self) -> str:
        return "fake"

    def add(self, name: str, quest: str | None = None, status=NodeStatus.RUNNING, ip: str | None = "auto"):
        if ip == "auto":
            ip = f"172.17.0.{self._next_ip}"
            self._next_ip += 1
        self.nodes[name] = NodeInfo(name=name, status=status, ip_address=ip, quest=quest)
        return self.nodes[name]

    async def create_node(self, options: NodeOptions, quest: str) -> NodeInfo:
        self.created.append(options.name)
        self.nodes.pop(options.name, None)
        return self.add(options.name, quest=quest)

    async def remove_node(self, name: str) -> bool:
        self.removed.append(name)
        return self.nodes.pop(name, None) is not None

    async def list_nodes(self) -> list[NodeInfo]:
        return sorted(self.nodes.values(), key=lambda n: n.name)

    async def exec_in_node(self, name, command, timeout=None):
        self.commands.append((name, command))
        if name not in self.nodes:
            raise NodeProvisionError(name, "container does not exist")
        result = self.exec_results.get(name, (0, ""))
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def catalog() -> QuestCatalog:
    return QuestCatalog.model_validate(CATALOG)


@pytest.fixture
def catalog_file(tmp_path: Path) -> Path:
    path = tmp_path / "quests.json"
    path.write_text(json.dumps(CATALOG), encoding="utf-8")
    return path


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def puppet() -> MagicMock:
    return MagicMock(spec=PuppetMaster)


@pytest.fixture
def hosts_file(tmp_path: Path) -> HostsFile:
    path = tmp_path / "hosts"
    path.write_text("127.0.0.1\tlocalhost\n::1\tlocalhost ip6-localhost\n", encoding="utf-8")
    return HostsFile(path)

"""Base provider interface for lab node containers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from questlab.schemas import NodeOptions


class NodeStatus(str, Enum):
    """Status of a node."""
    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


@dataclass
class NodeInfo:
    """Information about a provisioned node."""
    name: str
    status: NodeStatus
    container_id: str | None = None
    image: str | None = None
    ip_address: str | None = None
    quest: str | None = None


class NodeProvider(ABC):
    """Abstract base class for the runtime that hosts lab nodes."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (e.g., 'docker')."""
        ...

    @abstractmethod
    async def create_node(self, options: NodeOptions, quest: str) -> NodeInfo:
        """Create and start a node, replacing any existing one with that name.

        Args:
            options: Node options from the quest catalog
            quest: Quest the node belongs to

        Returns:
            NodeInfo for the started node
        """
        ...

    @abstractmethod
    async def remove_node(self, name: str) -> bool:
        """Force-remove a node.

        Returns:
            True if a node was removed, False if it did not exist
        """
        ...

    @abstractmethod
    async def list_nodes(self) -> list[NodeInfo]:
        """List all managed nodes."""
        ...

    @abstractmethod
    async def exec_in_node(
        self,
        name: str,
        command: list[str],
        timeout: float | None = None,
    ) -> tuple[int, str]:
        """Run a command inside a node.

        Returns:
            Tuple of (exit_code, combined output)
        """
        ...

    async def node_addresses(self) -> dict[str, str]:
        """Map node name -> IP address for running nodes that have one."""
        return {
            node.name: node.ip_address
            for node in await self.list_nodes()
            if node.status == NodeStatus.RUNNING and node.ip_address
        }

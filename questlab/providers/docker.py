"""Docker provider for lab node containers.

Nodes are plain containers found again through their labels, so a later
run (including a teardown from a fresh process) sees the same set of nodes
without any local state.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import docker
from docker.errors import APIError, DockerException, NotFound

from questlab.config import settings
from questlab.errors import CommandTimeout, NodeProvisionError, ProviderError
from questlab.providers.base import NodeInfo, NodeProvider, NodeStatus
from questlab.schemas import NodeOptions


logger = logging.getLogger(__name__)


# Label keys for container metadata
LABEL_MANAGED = "questlab.managed"
LABEL_NODE_NAME = "questlab.node_name"
LABEL_QUEST = "questlab.quest"


class DockerProvider(NodeProvider):
    """Lab node management through the Docker SDK."""

    def __init__(self, client: docker.DockerClient | None = None):
        self._docker = client

    @property
    def name(self) -> str:
        return "docker"

    @property
    def docker(self) -> docker.DockerClient:
        """Lazy-initialize Docker client with extended timeout for image pulls."""
        if self._docker is None:
            try:
                self._docker = docker.from_env(timeout=settings.docker_client_timeout)
            except DockerException as e:
                raise ProviderError(f"Cannot connect to Docker: {e}") from e
        return self._docker

    def container_name(self, node_name: str) -> str:
        """Generate container name for a node.

        Format: {prefix}-{node_name}, with characters Docker rejects removed.
        """
        safe_node = re.sub(r'[^a-zA-Z0-9_.-]', '', node_name)
        return f"{settings.container_prefix}-{safe_node}"

    def _container_config(self, options: NodeOptions, quest: str) -> dict[str, Any]:
        """Build keyword arguments for docker.containers.run()."""
        config: dict[str, Any] = {
            "image": options.image,
            "name": self.container_name(options.name),
            "hostname": options.name,
            "labels": {
                LABEL_MANAGED: "true",
                LABEL_NODE_NAME: options.name,
                LABEL_QUEST: quest,
            },
            "network": settings.docker_network,
            "detach": True,
            "tty": True,
            "stdin_open": True,
        }
        if settings.puppet_master_address:
            config["extra_hosts"] = {"puppet": settings.puppet_master_address}
        return config

    def _get_container_status(self, container) -> NodeStatus:
        """Map Docker container status to NodeStatus."""
        status = container.status.lower()
        if status == "running":
            return NodeStatus.RUNNING
        elif status == "created":
            return NodeStatus.PENDING
        elif status in ("exited", "dead", "paused"):
            return NodeStatus.STOPPED
        elif status == "restarting":
            return NodeStatus.STARTING
        else:
            return NodeStatus.UNKNOWN

    def _get_container_ip(self, container) -> str | None:
        """Extract the node's address, preferring the configured network."""
        networks = container.attrs.get("NetworkSettings", {}).get("Networks") or {}
        preferred = networks.get(settings.docker_network) or {}
        if preferred.get("IPAddress"):
            return preferred["IPAddress"]
        for net_info in networks.values():
            if net_info and net_info.get("IPAddress"):
                return net_info["IPAddress"]
        return None

    def _node_from_container(self, container) -> NodeInfo:
        """Convert Docker container to NodeInfo."""
        labels = container.labels or {}
        # container.image would be another API round trip per node
        image = container.attrs.get("Config", {}).get("Image")
        return NodeInfo(
            name=labels.get(LABEL_NODE_NAME, container.name),
            status=self._get_container_status(container),
            container_id=container.short_id,
            image=image,
            ip_address=self._get_container_ip(container),
            quest=labels.get(LABEL_QUEST),
        )

    async def _find_container(self, node_name: str):
        """Get a node's container, or None if it does not exist."""
        try:
            return await asyncio.to_thread(
                self.docker.containers.get, self.container_name(node_name)
            )
        except NotFound:
            return None
        except APIError as e:
            raise ProviderError(f"Cannot look up container for {node_name}: {e}") from e

    async def create_node(self, options: NodeOptions, quest: str) -> NodeInfo:
        existing = await self._find_container(options.name)
        if existing is not None:
            logger.info(f"Removing existing container for {options.name}")
            try:
                await asyncio.to_thread(existing.remove, force=True, v=True)
            except NotFound:
                pass
            except APIError as e:
                raise NodeProvisionError(options.name, f"cannot remove old container: {e}") from e

        config = self._container_config(options, quest)
        logger.info(f"Creating node {options.name} from image {options.image}")
        try:
            container = await asyncio.to_thread(
                lambda cfg=config: self.docker.containers.run(**cfg)
            )
            # run() returns before the network settings are filled in
            await asyncio.to_thread(container.reload)
        except APIError as e:
            raise NodeProvisionError(options.name, str(e)) from e

        node = self._node_from_container(container)
        logger.info(f"Node {options.name} started ({node.container_id}, ip={node.ip_address})")
        return node

    async def remove_node(self, name: str) -> bool:
        container = await self._find_container(name)
        if container is None:
            logger.debug(f"Node {name} has no container, nothing to remove")
            return False
        try:
            await asyncio.to_thread(container.remove, force=True, v=True)
        except NotFound:
            return False
        except APIError as e:
            raise ProviderError(f"Cannot remove node {name}: {e}") from e
        logger.info(f"Removed node {name}")
        return True

    async def list_nodes(self) -> list[NodeInfo]:
        try:
            containers = await asyncio.to_thread(
                self.docker.containers.list,
                all=True,
                filters={"label": f"{LABEL_MANAGED}=true"},
            )
        except APIError as e:
            raise ProviderError(f"Cannot list containers: {e}") from e
        nodes = [self._node_from_container(c) for c in containers]
        return sorted(nodes, key=lambda n: n.name)

    async def exec_in_node(
        self,
        name: str,
        command: list[str],
        timeout: float | None = None,
    ) -> tuple[int, str]:
        container = await self._find_container(name)
        if container is None:
            raise NodeProvisionError(name, "container does not exist")

        logger.debug(f"Running in {name}: {' '.join(command)}")
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(container.exec_run, command),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            # The exec keeps running inside the container; Docker has no
            # API to cancel it.
            logger.error(f"Command timed out after {timeout}s in {name}: {' '.join(command)}")
            raise CommandTimeout(command, timeout) from None
        except APIError as e:
            raise NodeProvisionError(name, f"exec failed: {e}") from e

        output = result.output.decode(errors="replace") if result.output else ""
        return result.exit_code or 0, output

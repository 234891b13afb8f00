"""Quest setup and teardown sequencing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from questlab.errors import QuestNotFound
from questlab.hosts import HostsFile
from questlab.providers.base import NodeInfo, NodeProvider
from questlab.puppet import AgentRunResult, PuppetMaster, run_agents
from questlab.readiness import wait_for_nodes
from questlab.schemas import QuestCatalog

logger = logging.getLogger(__name__)


@dataclass
class SetupResult:
    """What a quest setup did."""
    quest: str
    nodes: list[NodeInfo] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    signed: list[str] = field(default_factory=list)
    agent_runs: dict[str, AgentRunResult] = field(default_factory=dict)


class QuestRunner:
    """Brings the set of running lab nodes in line with one quest."""

    def __init__(
        self,
        catalog: QuestCatalog,
        provider: NodeProvider,
        puppet: PuppetMaster,
        hosts: HostsFile,
    ):
        self.catalog = catalog
        self.provider = provider
        self.puppet = puppet
        self.hosts = hosts

    async def setup(self, quest: str, run_puppet: bool = True) -> SetupResult:
        """Provision every node of a quest and wait until all are reachable.

        Steps:
        1. Look up the quest's nodes
        2. Remove managed nodes the quest does not list
        3. Create each node (existing containers are replaced)
        4. Sign certificates for nodes with sign_cert
        5. Rewrite the hosts block
        6. Trigger puppet agent runs on nodes with run_puppet
        7. Wait for every node's login port

        Raises:
            QuestNotFound: If the quest is not in the catalog
            ReadinessTimeout: If a node never becomes reachable
        """
        wanted = self.catalog.nodes_for(quest)
        wanted_names = {node.name for node in wanted}
        result = SetupResult(quest=quest)
        logger.info(f"Setting up quest {quest} with {len(wanted)} node(s)")

        existing = set()
        for node in await self.provider.list_nodes():
            if node.name not in wanted_names:
                await self._retire(node)
                result.removed.append(node.name)
            else:
                existing.add(node.name)

        for options in wanted:
            # A recreated node generates a new key, the old cert must go
            if options.sign_cert and options.name in existing:
                await self.puppet.clean(options.name)
            result.nodes.append(await self.provider.create_node(options, quest))

        for options in wanted:
            if options.sign_cert:
                await self.puppet.register(options.name)
                result.signed.append(options.name)

        await self.refresh_hosts()

        if run_puppet:
            agent_nodes = [options.name for options in wanted if options.run_puppet]
            result.agent_runs = await run_agents(self.provider, agent_nodes)
            failed = [name for name, run in result.agent_runs.items() if not run.success]
            if failed:
                logger.warning(f"Puppet agent runs failed on: {', '.join(failed)}")

        # Addresses are read fresh; create_node output may predate a restart
        addresses = await self.provider.node_addresses()
        await wait_for_nodes({options.name: addresses.get(options.name) for options in wanted})

        logger.info(f"Quest {quest} is ready")
        return result

    async def teardown(self) -> list[str]:
        """Remove every managed node and its host entries.

        Returns:
            Names of the nodes that were removed
        """
        removed = []
        for node in await self.provider.list_nodes():
            await self._retire(node)
            removed.append(node.name)
        self.hosts.clear()
        logger.info(f"Teardown removed {len(removed)} node(s)")
        return removed

    async def refresh_hosts(self) -> dict[str, str]:
        """Rewrite the hosts block from current container state."""
        addresses = await self.provider.node_addresses()
        self.hosts.update(addresses)
        return addresses

    async def status(self) -> list[NodeInfo]:
        return await self.provider.list_nodes()

    async def _retire(self, node: NodeInfo) -> None:
        await self.provider.remove_node(node.name)
        if self._signs_cert(node):
            await self.puppet.clean(node.name)

    def _signs_cert(self, node: NodeInfo) -> bool:
        if not node.quest:
            return False
        try:
            options = self.catalog.nodes_for(node.quest)
        except QuestNotFound:
            return False
        return any(o.name == node.name and o.sign_cert for o in options)

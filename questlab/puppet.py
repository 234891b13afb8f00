"""Puppet master and agent collaboration.

Registration runs the Puppet CLI on the master host (this machine); agent
runs are triggered inside each node through the provider.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from questlab.config import settings
from questlab.errors import CommandError, CommandTimeout, CommandUnavailable, QuestLabError
from questlab.providers.base import NodeProvider
from questlab.readiness import poll

logger = logging.getLogger(__name__)

# --test already implies --detailed-exitcodes: 0 no changes, 2 changes applied
AGENT_COMMAND = ["puppet", "agent", "--test", "--color=false"]
AGENT_SUCCESS_CODES = (0, 2)


@dataclass
class AgentRunResult:
    """Outcome of one puppet agent run."""
    node_name: str
    exit_code: int | None = None
    output: str = ""
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.exit_code in AGENT_SUCCESS_CODES


class PuppetMaster:
    """Certificate management through the puppetserver CLI."""

    def __init__(self, puppet_bin: str | None = None, timeout: float | None = None):
        self.puppet_bin = puppet_bin or settings.puppet_bin
        self.timeout = settings.puppet_command_timeout if timeout is None else timeout

    async def _run(self, args: list[str]) -> str:
        """Run a puppetserver command and return its stdout.

        Raises:
            CommandUnavailable: If the binary cannot be started
            CommandTimeout: If the command exceeds self.timeout
            CommandError: If the command exits non-zero
        """
        cmd = [self.puppet_bin] + args
        logger.debug(f"Running: {' '.join(cmd)} (timeout={self.timeout}s)")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CommandUnavailable(cmd, str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Command timed out after {self.timeout}s: {' '.join(cmd)}")
            try:
                process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
            raise CommandTimeout(cmd, self.timeout) from None

        if process.returncode:
            raise CommandError(cmd, process.returncode, stderr.decode(errors="replace"))
        return stdout.decode(errors="replace")

    async def pending_requests(self) -> list[str]:
        """Certnames with an outstanding signing request."""
        output = await self._run(["ca", "list"])
        return self.parse_pending(output)

    @staticmethod
    def parse_pending(output: str) -> list[str]:
        """Parse `puppetserver ca list` output.

        Requested certificates are listed as
        ``    agent.puppet.vm   (SHA256)  AB:CD:...`` below a
        ``Requested Certificates:`` heading.
        """
        names = []
        in_requested = False
        for line in output.splitlines():
            if not line.strip():
                continue
            if not line[0].isspace():
                in_requested = line.strip().startswith("Requested Certificates")
                continue
            if in_requested:
                names.append(line.split()[0])
        return names

    async def wait_for_request(
        self,
        certname: str,
        retries: int | None = None,
        interval: float | None = None,
    ) -> None:
        """Block until certname has submitted a signing request."""

        async def requested() -> bool:
            return certname in await self.pending_requests()

        await poll(
            requested,
            retries=settings.csr_retries if retries is None else retries,
            interval=settings.csr_interval if interval is None else interval,
            description=f"certificate request from {certname}",
        )

    async def sign(self, certname: str) -> None:
        await self._run(["ca", "sign", "--certname", certname])
        logger.info(f"Signed certificate for {certname}")

    async def register(self, certname: str) -> None:
        """Wait for a node's signing request and sign it."""
        await self.wait_for_request(certname)
        await self.sign(certname)

    async def clean(self, certname: str) -> bool:
        """Revoke and remove a node's certificate; failures are only logged."""
        try:
            await self._run(["ca", "clean", "--certname", certname])
        except QuestLabError as e:
            logger.warning(f"Could not clean certificate for {certname}: {e}")
            return False
        logger.info(f"Cleaned certificate for {certname}")
        return True


async def _run_agent(provider: NodeProvider, name: str, timeout: float) -> AgentRunResult:
    try:
        exit_code, output = await provider.exec_in_node(name, AGENT_COMMAND, timeout=timeout)
    except Exception as e:
        logger.error(f"Puppet agent run on {name} failed: {e}")
        return AgentRunResult(node_name=name, error=str(e))

    result = AgentRunResult(node_name=name, exit_code=exit_code, output=output)
    if result.success:
        logger.info(f"Puppet agent run on {name} finished (exit code {exit_code})")
    else:
        logger.warning(f"Puppet agent run on {name} exited with {exit_code}")
    return result


async def run_agents(
    provider: NodeProvider,
    names: list[str],
    timeout: float | None = None,
) -> dict[str, AgentRunResult]:
    """Run puppet agent once on every node concurrently and wait for all.

    A failing node does not affect the others; outcomes are reported per node.
    """
    if timeout is None:
        timeout = settings.agent_run_timeout
    if not names:
        return {}

    logger.info(f"Triggering puppet agent runs on {len(names)} node(s)")
    results = await asyncio.gather(
        *(_run_agent(provider, name, timeout) for name in names)
    )
    return {result.node_name: result for result in results}

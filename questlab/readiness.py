"""Polling-based readiness gating.

Every wait in questlab has the same shape: check a condition, sleep a fixed
interval, try again, and give up with ReadinessTimeout after a fixed number
of attempts.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

from questlab.config import settings
from questlab.errors import CommandUnavailable, NodeAddressMissing, ReadinessTimeout

logger = logging.getLogger(__name__)

Check = Callable[[], "bool | Awaitable[bool]"]


async def poll(
    check: Check,
    retries: int,
    interval: float,
    description: str,
) -> Any:
    """Call check until it returns something truthy.

    Args:
        check: Sync or async callable; exceptions count as a failed attempt,
            except CommandUnavailable, which no retry can fix
        retries: Maximum number of attempts (at least one is always made)
        interval: Seconds to sleep between attempts
        description: What is being waited for, used in logs and errors

    Returns:
        The first truthy value returned by check

    Raises:
        ReadinessTimeout: If no attempt succeeded
        CommandUnavailable: If check needs a command that cannot be started
    """
    attempts = max(retries, 1)
    for attempt in range(1, attempts + 1):
        try:
            result = check()
            if inspect.isawaitable(result):
                result = await result
        except CommandUnavailable:
            raise
        except Exception as e:
            logger.debug(f"Check for {description} raised on attempt {attempt}: {e}")
            result = None

        if result:
            logger.debug(f"{description} ready after {attempt} attempt(s)")
            return result

        if attempt < attempts:
            logger.debug(f"Waiting for {description} ({attempt}/{attempts})")
            await asyncio.sleep(interval)

    raise ReadinessTimeout(description, attempts)


async def port_open(host: str, port: int, timeout: float | None = None) -> bool:
    """Try a single TCP connection to host:port."""
    if timeout is None:
        timeout = settings.connect_timeout
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout
        )
    except (OSError, asyncio.TimeoutError):
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


async def wait_for_port(
    host: str,
    port: int,
    retries: int | None = None,
    interval: float | None = None,
    description: str | None = None,
) -> None:
    """Block until host:port accepts TCP connections."""
    await poll(
        lambda: port_open(host, port),
        retries=settings.ready_retries if retries is None else retries,
        interval=settings.ready_interval if interval is None else interval,
        description=description or f"{host}:{port}",
    )


async def wait_for_nodes(
    addresses: dict[str, str | None],
    port: int | None = None,
    retries: int | None = None,
    interval: float | None = None,
) -> None:
    """Gate on every node's login port, one node after another.

    Args:
        addresses: Node name -> IP address; a missing address fails at once
        port: TCP port to connect to (default: settings.login_port)

    Raises:
        NodeAddressMissing: For a node without an address
        ReadinessTimeout: For the first node that never became reachable
    """
    if port is None:
        port = settings.login_port

    for name, address in addresses.items():
        if not address:
            raise NodeAddressMissing(name)
        logger.info(f"Waiting for {name} ({address}) to accept connections on port {port}")
        await wait_for_port(
            address,
            port,
            retries=retries,
            interval=interval,
            description=f"{name} port {port}",
        )
        logger.info(f"Node {name} is ready")

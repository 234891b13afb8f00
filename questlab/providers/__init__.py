"""Container runtimes that host lab nodes."""

from questlab.providers.base import (
    NodeInfo,
    NodeProvider,
    NodeStatus,
)
from questlab.providers.docker import DockerProvider

__all__ = [
    # Base classes and types
    "NodeProvider",
    "NodeInfo",
    "NodeStatus",
    # Provider implementations
    "DockerProvider",
]

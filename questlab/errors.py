"""Exceptions raised by questlab."""

from __future__ import annotations


class QuestLabError(Exception):
    """Base class for errors that abort a questlab run."""


class CatalogError(QuestLabError):
    """The quest catalog could not be read or is invalid."""


class QuestNotFound(QuestLabError):
    """Raised when a quest is not defined in the catalog."""

    def __init__(self, quest: str):
        self.quest = quest
        super().__init__(f"Unknown quest: {quest}")


class CommandError(QuestLabError):
    """An external command exited with a non-zero status."""

    def __init__(self, command: list[str], returncode: int, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed with exit code {returncode}: {' '.join(command)}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        super().__init__(message)


class CommandTimeout(QuestLabError):
    """An external command did not finish in time and was killed."""

    def __init__(self, command: list[str], timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout}s: {' '.join(command)}")


class ReadinessTimeout(QuestLabError):
    """A polled condition never became true within its retry budget."""

    def __init__(self, description: str, attempts: int):
        self.description = description
        self.attempts = attempts
        super().__init__(f"Timed out waiting for {description} after {attempts} attempts")


class NodeProvisionError(QuestLabError):
    """The container runtime failed to create or start a node."""

    def __init__(self, node_name: str, reason: str):
        self.node_name = node_name
        self.reason = reason
        super().__init__(f"Failed to provision node {node_name}: {reason}")


class CommandUnavailable(QuestLabError):
    """An external command could not be started at all."""

    def __init__(self, command: list[str], reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"Cannot run {command[0]}: {reason}")


class ProviderError(QuestLabError):
    """The container runtime could not be reached or rejected a request."""


class HostsFileError(QuestLabError):
    """The hosts file could not be rewritten."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot update {path}: {reason}")


class NodeAddressMissing(ReadinessTimeout):
    """A node has no IP address, so it cannot be reached."""

    def __init__(self, node_name: str):
        self.node_name = node_name
        self.description = f"an IP address for {node_name}"
        self.attempts = 0
        QuestLabError.__init__(self, f"Node {node_name} has no IP address")

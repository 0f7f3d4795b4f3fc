"""Abstract base class for container runtime providers."""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field

from agentpod.providers.base import Provider, ProviderError


class RuntimeProviderError(ProviderError):
    """A container runtime call failed."""


class ContainerNotFoundError(RuntimeProviderError):
    """The runtime has no container for the requested sandbox."""


@dataclass
class ContainerSpec:
    """Everything the runtime needs to provision a sandbox container."""

    id: str
    name: str
    image: str
    workdir: str = "/workspace"
    labels: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    cpu_cores: float | None = None
    memory_gb: float | None = None
    memory_reservation_gb: float | None = None
    repo_name: str | None = None


@dataclass
class ContainerRef:
    container_id: str
    name: str


@dataclass
class ExecResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


@dataclass
class ContainerStats:
    cpu_percent: float = 0.0
    memory_usage: int = 0
    memory_limit: int = 0
    memory_percent: float = 0.0
    network_rx: int = 0
    network_tx: int = 0
    block_read: int = 0
    block_write: int = 0


@dataclass
class RuntimeInfo:
    version: str
    api_version: str
    os: str = ""
    arch: str = ""
    cpus: int = 0
    total_memory: int = 0
    containers_running: int = 0
    containers_stopped: int = 0
    images: int = 0


class RuntimeProvider(Provider):
    """Interface for managing the container behind each sandbox.

    Every method addresses the container by *sandbox* id; mapping that id
    to a concrete container is the implementation's business.  Failures
    are reported as :class:`RuntimeProviderError`, and as
    :class:`ContainerNotFoundError` when the container does not exist.
    """

    @abstractmethod
    async def create(self, spec: ContainerSpec) -> ContainerRef:
        """Create (but do not start) the container described by *spec*."""

    @abstractmethod
    async def start(self, sandbox_id: str) -> None:
        """Start a stopped container."""

    @abstractmethod
    async def stop(self, sandbox_id: str, timeout: int | None = None) -> None:
        """Stop a running container, waiting at most *timeout* seconds."""

    @abstractmethod
    async def restart(self, sandbox_id: str, timeout: int | None = None) -> None:
        """Restart the container."""

    @abstractmethod
    async def pause(self, sandbox_id: str) -> None:
        """Freeze all processes in the container."""

    @abstractmethod
    async def unpause(self, sandbox_id: str) -> None:
        """Resume a paused container."""

    @abstractmethod
    async def delete(self, sandbox_id: str, remove_volumes: bool = False) -> None:
        """Stop and remove the container."""

    @abstractmethod
    async def exec(
        self,
        sandbox_id: str,
        command: list[str],
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
        user: str | None = None,
    ) -> ExecResult:
        """Run *command* inside the container and capture its output."""

    @abstractmethod
    async def get_logs(self, sandbox_id: str, tail: int | None = None) -> list[str]:
        """Return container log lines, optionally only the last *tail*."""

    @abstractmethod
    async def get_stats(self, sandbox_id: str) -> ContainerStats:
        """Return a one-shot resource usage sample."""

    @abstractmethod
    async def get_state(self, sandbox_id: str) -> str:
        """Return the live container state (``running``, ``exited``, ...)."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return ``True`` if the runtime daemon answers."""

    @abstractmethod
    async def get_info(self) -> RuntimeInfo:
        """Return version and capacity information about the daemon."""

"""Docker runtime provider built on the docker SDK."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from functools import partial
from typing import Any

import docker
from docker.errors import DockerException, NotFound

from agentpod.providers.base import HealthStatus
from agentpod.providers.runtime.base import (
    ContainerNotFoundError,
    ContainerRef,
    ContainerSpec,
    ContainerStats,
    ExecResult,
    RuntimeInfo,
    RuntimeProvider,
    RuntimeProviderError,
)

logger = logging.getLogger(__name__)

MANAGED_LABEL = "agentpod.managed"
SANDBOX_ID_LABEL = "agentpod.sandbox.id"


class ContainerCache:
    """Sandbox id -> docker container object.

    Owned by one provider instance.  Entries are dropped when the
    container is deleted or turns out to be gone.
    """

    def __init__(self) -> None:
        self._containers: dict[str, Any] = {}

    def get(self, sandbox_id: str) -> Any | None:
        return self._containers.get(sandbox_id)

    def put(self, sandbox_id: str, container: Any) -> None:
        self._containers[sandbox_id] = container

    def invalidate(self, sandbox_id: str) -> None:
        self._containers.pop(sandbox_id, None)

    def clear(self) -> None:
        self._containers.clear()

    def __contains__(self, sandbox_id: str) -> bool:
        return sandbox_id in self._containers

    def __len__(self) -> int:
        return len(self._containers)


def parse_stats(stats: dict[str, Any]) -> ContainerStats:
    """Turn a raw ``docker stats`` sample into :class:`ContainerStats`."""
    cpu = stats.get("cpu_stats") or {}
    precpu = stats.get("precpu_stats") or {}
    cpu_delta = (cpu.get("cpu_usage", {}).get("total_usage", 0)
                 - precpu.get("cpu_usage", {}).get("total_usage", 0))
    system_delta = cpu.get("system_cpu_usage", 0) - precpu.get("system_cpu_usage", 0)
    cpu_count = cpu.get("online_cpus") or 1
    cpu_percent = (cpu_delta / system_delta) * cpu_count * 100 if system_delta > 0 else 0.0

    memory = stats.get("memory_stats") or {}
    memory_usage = memory.get("usage", 0)
    memory_limit = memory.get("limit", 0)
    memory_percent = (memory_usage / memory_limit) * 100 if memory_limit > 0 else 0.0

    network_rx = network_tx = 0
    for net in (stats.get("networks") or {}).values():
        network_rx += net.get("rx_bytes", 0)
        network_tx += net.get("tx_bytes", 0)

    block_read = block_write = 0
    for io in (stats.get("blkio_stats") or {}).get("io_service_bytes_recursive") or []:
        op = str(io.get("op", "")).lower()
        if op == "read":
            block_read += io.get("value", 0)
        elif op == "write":
            block_write += io.get("value", 0)

    return ContainerStats(
        cpu_percent=cpu_percent,
        memory_usage=memory_usage,
        memory_limit=memory_limit,
        memory_percent=memory_percent,
        network_rx=network_rx,
        network_tx=network_tx,
        block_read=block_read,
        block_write=block_write,
    )


class DockerRuntimeProvider(RuntimeProvider):
    """Runs each sandbox as one docker container.

    Config keys:

    - ``base_url`` -- docker daemon URL; defaults to the environment
      (``DOCKER_HOST`` or the local socket).
    - ``container_prefix`` -- container name prefix (default ``agentpod``).
    - ``network`` -- docker network to attach containers to (optional).
    - ``repos_dir`` -- host directory holding sandbox repositories; when
      set, ``{repos_dir}/{repo_name}`` is bind-mounted at the workdir.
    - ``remove_stop_timeout`` -- grace period before removal (default 5).
    """

    def __init__(self, config: dict[str, Any] | None = None, client: Any = None) -> None:
        super().__init__(config)
        self._client = client
        self._prefix: str = self.config.get("container_prefix", "agentpod")
        self._network: str | None = self.config.get("network")
        self._repos_dir: str | None = self.config.get("repos_dir")
        self._remove_stop_timeout: int = int(self.config.get("remove_stop_timeout", 5))
        self.cache = ContainerCache()

    async def initialize(self) -> None:
        if self._client is not None:
            return
        base_url = self.config.get("base_url")
        try:
            if base_url:
                self._client = docker.DockerClient(base_url=base_url)
            else:
                self._client = docker.from_env()
        except DockerException as e:
            raise RuntimeProviderError(f"Failed to connect to Docker: {e}") from e
        logger.info("Docker client ready (%s)", base_url or "from env")

    async def cleanup(self) -> None:
        self.cache.clear()
        if self._client is not None:
            self._client.close()
            self._client = None

    async def health_check(self) -> HealthStatus:
        start = time.monotonic()
        ok = await self.ping()
        latency = int((time.monotonic() - start) * 1000)
        return HealthStatus(
            healthy=ok,
            message="docker daemon reachable" if ok else "docker daemon unreachable",
            latency_ms=latency,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def client(self) -> Any:
        if self._client is None:
            raise RuntimeProviderError("Docker client not initialised")
        return self._client

    def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking function in the default executor."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, partial(func, *args, **kwargs))

    def container_name(self, sandbox_id: str) -> str:
        return f"{self._prefix}-{sandbox_id}"

    def _lookup(self, sandbox_id: str) -> Any:
        """Find the container by name, then by sandbox label (blocking)."""
        try:
            return self.client.containers.get(self.container_name(sandbox_id))
        except NotFound:
            pass
        matches = self.client.containers.list(
            all=True, filters={"label": f"{SANDBOX_ID_LABEL}={sandbox_id}"}
        )
        if not matches:
            raise NotFound(f"No container for sandbox {sandbox_id}")
        return matches[0]

    async def _container(self, sandbox_id: str) -> Any:
        container = self.cache.get(sandbox_id)
        if container is None:
            container = await self._call(sandbox_id, "lookup", self._lookup, sandbox_id)
            self.cache.put(sandbox_id, container)
        return container

    async def _call(self, sandbox_id: str, operation: str, func: Any, *args: Any,
                    **kwargs: Any) -> Any:
        """Run a docker SDK call, translating its errors."""
        try:
            return await self._run_sync(func, *args, **kwargs)
        except NotFound as e:
            self.cache.invalidate(sandbox_id)
            raise ContainerNotFoundError(
                f"{operation}: container for sandbox {sandbox_id} not found"
            ) from e
        except (DockerException, OSError) as e:
            raise RuntimeProviderError(f"{operation} failed for sandbox {sandbox_id}: {e}") from e

    def _create_kwargs(self, spec: ContainerSpec) -> dict[str, Any]:
        labels = {
            **spec.labels,
            SANDBOX_ID_LABEL: spec.id,
            MANAGED_LABEL: "true",
        }
        kwargs: dict[str, Any] = {
            "image": spec.image,
            "name": spec.name,
            "labels": labels,
            "environment": dict(spec.env),
            "working_dir": spec.workdir,
            "tty": True,
            "stdin_open": True,
            "restart_policy": {"Name": "unless-stopped"},
        }
        if spec.cpu_cores:
            kwargs["nano_cpus"] = int(float(spec.cpu_cores) * 1_000_000_000)
        if spec.memory_gb:
            kwargs["mem_limit"] = f"{int(float(spec.memory_gb) * 1024)}m"
        if spec.memory_reservation_gb:
            kwargs["mem_reservation"] = f"{int(float(spec.memory_reservation_gb) * 1024)}m"
        if self._network:
            kwargs["network"] = self._network
        if self._repos_dir and spec.repo_name:
            host_path = os.path.join(self._repos_dir, spec.repo_name)
            kwargs["volumes"] = {host_path: {"bind": spec.workdir, "mode": "rw"}}
        return kwargs

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create(self, spec: ContainerSpec) -> ContainerRef:
        kwargs = self._create_kwargs(spec)
        logger.info("Creating container %s from %s", spec.name, spec.image)
        container = await self._call(spec.id, "create", self.client.containers.create, **kwargs)
        self.cache.put(spec.id, container)
        return ContainerRef(container_id=container.id, name=spec.name)

    async def start(self, sandbox_id: str) -> None:
        container = await self._container(sandbox_id)
        await self._call(sandbox_id, "inspect", container.reload)
        if container.status == "paused":
            await self._call(sandbox_id, "unpause", container.unpause)
        else:
            await self._call(sandbox_id, "start", container.start)

    async def stop(self, sandbox_id: str, timeout: int | None = None) -> None:
        container = await self._container(sandbox_id)
        if timeout is None:
            await self._call(sandbox_id, "stop", container.stop)
        else:
            await self._call(sandbox_id, "stop", container.stop, timeout=timeout)

    async def restart(self, sandbox_id: str, timeout: int | None = None) -> None:
        container = await self._container(sandbox_id)
        if timeout is None:
            await self._call(sandbox_id, "restart", container.restart)
        else:
            await self._call(sandbox_id, "restart", container.restart, timeout=timeout)

    async def pause(self, sandbox_id: str) -> None:
        container = await self._container(sandbox_id)
        await self._call(sandbox_id, "pause", container.pause)

    async def unpause(self, sandbox_id: str) -> None:
        container = await self._container(sandbox_id)
        await self._call(sandbox_id, "inspect", container.reload)
        if container.status == "paused":
            await self._call(sandbox_id, "unpause", container.unpause)
        elif container.status != "running":
            # Stopped underneath the pause, e.g. by a daemon restart.
            await self._call(sandbox_id, "start", container.start)

    async def delete(self, sandbox_id: str, remove_volumes: bool = False) -> None:
        container = await self._container(sandbox_id)
        try:
            await self._call(sandbox_id, "stop", container.stop,
                             timeout=self._remove_stop_timeout)
        except ContainerNotFoundError:
            raise
        except RuntimeProviderError as e:
            # Already stopped or paused; removal below is forced anyway.
            logger.debug("Stop before delete failed for %s: %s", sandbox_id, e)
        try:
            await self._call(sandbox_id, "delete", container.remove, v=remove_volumes, force=True)
        finally:
            self.cache.invalidate(sandbox_id)
        logger.info("Removed container for sandbox %s (volumes=%s)", sandbox_id, remove_volumes)

    # ------------------------------------------------------------------
    # Commands, logs, stats
    # ------------------------------------------------------------------

    async def exec(
        self,
        sandbox_id: str,
        command: list[str],
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
        user: str | None = None,
    ) -> ExecResult:
        container = await self._container(sandbox_id)
        kwargs: dict[str, Any] = {"demux": True}
        if working_dir is not None:
            kwargs["workdir"] = working_dir
        if env is not None:
            kwargs["environment"] = env
        if user is not None:
            kwargs["user"] = user
        result = await self._call(sandbox_id, "exec", container.exec_run, command, **kwargs)
        stdout, stderr = result.output if result.output else (None, None)
        return ExecResult(
            exit_code=result.exit_code if result.exit_code is not None else -1,
            stdout=(stdout or b"").decode("utf-8", errors="replace"),
            stderr=(stderr or b"").decode("utf-8", errors="replace"),
        )

    async def get_logs(self, sandbox_id: str, tail: int | None = None) -> list[str]:
        container = await self._container(sandbox_id)
        raw = await self._call(
            sandbox_id, "logs", container.logs,
            stdout=True, stderr=True, tail=tail if tail is not None else "all",
        )
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        return raw.splitlines()

    async def get_stats(self, sandbox_id: str) -> ContainerStats:
        container = await self._container(sandbox_id)
        raw = await self._call(sandbox_id, "stats", container.stats, stream=False)
        return parse_stats(raw)

    async def get_state(self, sandbox_id: str) -> str:
        container = await self._container(sandbox_id)
        await self._call(sandbox_id, "inspect", container.reload)
        return container.status

    # ------------------------------------------------------------------
    # Daemon
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        try:
            return bool(await self._run_sync(self.client.ping))
        except (DockerException, OSError, RuntimeProviderError) as e:
            logger.warning("Docker ping failed: %s", e)
            return False

    async def get_info(self) -> RuntimeInfo:
        info = await self._call("-", "info", self.client.info)
        version = await self._call("-", "version", self.client.version)
        return RuntimeInfo(
            version=version.get("Version", ""),
            api_version=version.get("ApiVersion", ""),
            os=info.get("OperatingSystem", ""),
            arch=info.get("Architecture", ""),
            cpus=info.get("NCPU", 0),
            total_memory=info.get("MemTotal", 0),
            containers_running=info.get("ContainersRunning", 0),
            containers_stopped=info.get("ContainersStopped", 0),
            images=info.get("Images", 0),
        )

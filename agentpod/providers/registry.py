"""Backend registry: maps the provider names in config to port implementations.

Built-in backends are kept as dotted paths and imported on first use, so
the docker SDK is loaded only when the docker runtime is selected.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Type

from agentpod.config import ProviderConfig
from agentpod.providers.base import Provider, ProviderError
from agentpod.providers.git.base import GitProvider
from agentpod.providers.runtime.base import RuntimeProvider

logger = logging.getLogger(__name__)

PORTS: dict[str, Type[Provider]] = {
    "runtime": RuntimeProvider,
    "git": GitProvider,
}

_BUILTIN_BACKENDS: dict[str, dict[str, str]] = {
    "runtime": {"docker": "agentpod.providers.runtime.docker.DockerRuntimeProvider"},
    "git": {"filesystem": "agentpod.providers.git.filesystem.FileSystemGitProvider"},
}


class UnknownBackendError(ProviderError, LookupError):
    """Config names a port or backend nobody registered."""


def _import_class(dotted_path: str) -> type:
    module_path, _, class_name = dotted_path.rpartition(".")
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


class ProviderRegistry:
    """Resolves ``(port, backend)`` names to initialised provider instances.

    Usage::

        registry = ProviderRegistry()
        registry.register("runtime", "podman", PodmanRuntimeProvider)
        runtime = await registry.runtime(ProviderConfig(provider="podman"))
    """

    def __init__(self) -> None:
        self._backends: dict[str, dict[str, type | str]] = {
            port: dict(names) for port, names in _BUILTIN_BACKENDS.items()
        }

    def _port(self, port: str) -> Type[Provider]:
        try:
            return PORTS[port]
        except KeyError:
            raise UnknownBackendError(f"Unknown provider port '{port}'") from None

    def _check(self, port: str, cls: type) -> None:
        base = self._port(port)
        if not (isinstance(cls, type) and issubclass(cls, base)):
            raise TypeError(f"{cls!r} is not a {base.__name__}")

    def register(self, port: str, name: str, cls: type) -> None:
        """Register *cls* as the *name* backend of *port*, replacing any previous one."""
        self._check(port, cls)
        backends = self._backends[port]
        if name in backends:
            logger.info("Overriding %s backend '%s' with %s", port, name, cls.__name__)
        backends[name] = cls

    async def create(self, port: str, name: str, config: dict[str, Any] | None = None) -> Provider:
        self._port(port)
        backends = self._backends[port]
        entry = backends.get(name)
        if entry is None:
            raise UnknownBackendError(
                f"Unknown {port} backend '{name}'; "
                f"available: {', '.join(sorted(backends)) or 'none'}"
            )
        if isinstance(entry, str):
            entry = _import_class(entry)
            self._check(port, entry)
            backends[name] = entry

        instance = entry(config or {})
        await instance.initialize()
        logger.info("Using %s backend '%s'", port, name)
        return instance

    async def runtime(self, cfg: ProviderConfig) -> RuntimeProvider:
        return await self.create("runtime", cfg.provider, cfg.config)

    async def git(self, cfg: ProviderConfig) -> GitProvider:
        return await self.create("git", cfg.provider, cfg.config)

"""Container runtime port."""

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

__all__ = [
    "ContainerNotFoundError",
    "ContainerRef",
    "ContainerSpec",
    "ContainerStats",
    "ExecResult",
    "RuntimeInfo",
    "RuntimeProvider",
    "RuntimeProviderError",
]

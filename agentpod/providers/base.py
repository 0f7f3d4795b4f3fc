"""Base provider abstraction for AgentPod."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class HealthStatus:
    """Result of a provider health check."""

    healthy: bool
    message: str = ""
    latency_ms: int = 0
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ProviderError(Exception):
    """Base class for errors raised by provider implementations."""


class Provider(ABC):
    """Base class for all providers.

    Every provider receives a configuration dict at construction time
    and may optionally implement async ``initialize`` / ``cleanup``
    lifecycle hooks.
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}

    async def initialize(self) -> None:
        """Optional async initialization hook.

        Called once after the provider instance is created and before it
        is used for the first time.  Subclasses may override this to
        open connections, validate credentials, etc.
        """

    async def cleanup(self) -> None:
        """Optional async cleanup hook.

        Called when the application is shutting down.  Subclasses may
        override this to close connections, flush buffers, etc.
        """

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Check if this provider is healthy and reachable."""

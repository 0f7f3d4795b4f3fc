"""Provider ports (container runtime, git backend) and their registry."""

from agentpod.providers.base import HealthStatus, Provider, ProviderError
from agentpod.providers.registry import ProviderRegistry

__all__ = ["HealthStatus", "Provider", "ProviderError", "ProviderRegistry"]

"""Persistence ports used by the orchestrator and the catalog."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from agentpod.db.models import SandboxStatus
from agentpod.models.schemas import (
    Addon,
    ContainerFlavor,
    ResourceTier,
    Sandbox,
    SandboxFilter,
)


class SandboxRepository(ABC):
    """Storage of sandbox records.

    Reads return ``None`` for a missing row; writes touch a single row by
    id and report whether it existed.
    """

    @abstractmethod
    async def insert(self, sandbox: Sandbox) -> bool:
        """Insert *sandbox*; ``False`` if its id or (user, slug) is taken."""

    @abstractmethod
    async def get_by_id(self, sandbox_id: str) -> Sandbox | None: ...

    @abstractmethod
    async def list_by_user(self, user_id: str) -> list[Sandbox]: ...

    @abstractmethod
    async def list_all(self, filter: SandboxFilter | None = None) -> list[Sandbox]:
        """Return sandboxes matching every given criterion, newest first."""

    @abstractmethod
    async def update_fields(self, sandbox_id: str, **fields: Any) -> bool: ...

    @abstractmethod
    async def update_status(
        self, sandbox_id: str, status: SandboxStatus, error_message: str | None = None
    ) -> bool: ...

    @abstractmethod
    async def touch(self, sandbox_id: str) -> bool:
        """Record an access by bumping ``last_accessed_at``."""

    @abstractmethod
    async def delete(self, sandbox_id: str) -> bool: ...

    @abstractmethod
    async def slug_exists(self, user_id: str, slug: str) -> bool: ...


class CatalogRepository(ABC):
    """Read access to resource tiers, flavors and addons."""

    @abstractmethod
    async def list_resource_tiers(self) -> list[ResourceTier]: ...

    @abstractmethod
    async def list_flavors(self) -> list[ContainerFlavor]:
        """Return all flavors, including disabled ones."""

    @abstractmethod
    async def list_addons(self) -> list[Addon]: ...

"""Resource catalog: tiers, flavors and addons.

The catalog is read-only reference data.  :class:`ResourceCatalog` loads
it once and serves every lookup from memory for the rest of its life.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from agentpod.db.models import (
    AddonCategory,
    ContainerAddonRow,
    ContainerFlavorRow,
    ResourceTierRow,
)
from agentpod.models.schemas import Addon, ContainerFlavor, ResourceTier
from agentpod.repositories.base import CatalogRepository

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

DEFAULT_RESOURCE_TIERS: list[dict[str, Any]] = [
    {"id": "starter", "name": "Starter", "description": "Perfect for learning and small projects",
     "cpu_cores": 1, "memory_gb": 2, "storage_gb": 20, "is_default": True, "sort_order": 1},
    {"id": "builder", "name": "Builder", "description": "For active development and medium projects",
     "cpu_cores": 2, "memory_gb": 4, "storage_gb": 30, "is_default": False, "sort_order": 2},
    {"id": "creator", "name": "Creator",
     "description": "For professional development and larger projects",
     "cpu_cores": 4, "memory_gb": 8, "storage_gb": 50, "is_default": False, "sort_order": 3},
    {"id": "power", "name": "Power", "description": "Maximum resources for demanding workloads",
     "cpu_cores": 8, "memory_gb": 16, "storage_gb": 100, "is_default": False, "sort_order": 4},
]

DEFAULT_FLAVORS: list[dict[str, Any]] = [
    {"id": "js", "name": "JavaScript", "description": "JavaScript and TypeScript development",
     "languages": ["javascript", "typescript"], "is_default": False, "enabled": True,
     "sort_order": 1},
    {"id": "python", "name": "Python", "description": "Python development with data science tools",
     "languages": ["python"], "is_default": False, "enabled": True, "sort_order": 2},
    {"id": "go", "name": "Go", "description": "Go development environment",
     "languages": ["go"], "is_default": False, "enabled": False, "sort_order": 3},
    {"id": "rust", "name": "Rust", "description": "Rust development environment",
     "languages": ["rust"], "is_default": False, "enabled": True, "sort_order": 4},
    {"id": "fullstack", "name": "Fullstack",
     "description": "JavaScript + Python for full-stack development",
     "languages": ["javascript", "typescript", "python"], "is_default": True, "enabled": True,
     "sort_order": 5},
    {"id": "polyglot", "name": "Polyglot", "description": "All languages for maximum flexibility",
     "languages": ["javascript", "typescript", "python", "go", "rust"], "is_default": False,
     "enabled": False, "sort_order": 6},
]

DEFAULT_ADDONS: list[dict[str, Any]] = [
    {"id": "gui", "name": "Desktop GUI", "description": "Full desktop environment via KasmVNC",
     "category": AddonCategory.interface, "port": 6080, "requires_gpu": False, "sort_order": 1},
    {"id": "code-server", "name": "VS Code", "description": "VS Code in browser via code-server",
     "category": AddonCategory.interface, "port": 8080, "requires_gpu": False, "sort_order": 2},
    {"id": "databases", "name": "Databases", "description": "PostgreSQL, Redis, and DuckDB",
     "category": AddonCategory.storage, "port": None, "requires_gpu": False, "sort_order": 3},
    {"id": "cloud", "name": "Cloud Tools", "description": "AWS CLI, gcloud, Terraform, kubectl",
     "category": AddonCategory.devops, "port": None, "requires_gpu": False, "sort_order": 4},
    {"id": "gpu", "name": "GPU Support", "description": "NVIDIA CUDA toolkit for ML/AI workloads",
     "category": AddonCategory.compute, "port": None, "requires_gpu": True, "sort_order": 5},
]


async def seed_catalog(session: AsyncSession) -> int:
    """Insert any missing seed rows and commit.  Returns the number added."""
    added = 0
    for model, rows in (
        (ResourceTierRow, DEFAULT_RESOURCE_TIERS),
        (ContainerFlavorRow, DEFAULT_FLAVORS),
        (ContainerAddonRow, DEFAULT_ADDONS),
    ):
        for data in rows:
            if await session.get(model, data["id"]) is None:
                session.add(model(**data))
                added += 1
    await session.commit()
    if added:
        logger.info("Seeded %d catalog entries", added)
    return added


def resource_limits(tier: ResourceTier) -> dict[str, float]:
    """Container limits for *tier*: cpus, memory and a 75% memory reservation."""
    return {
        "cpu_cores": float(tier.cpu_cores),
        "memory_gb": float(tier.memory_gb),
        "memory_reservation_gb": float(math.floor(tier.memory_gb * 0.75)),
    }


# ---------------------------------------------------------------------------
# Catalog service
# ---------------------------------------------------------------------------


class ResourceCatalog:
    """Cached read access to the catalog.

    Entries are loaded on first use and never refreshed; restart the
    process to pick up catalog changes.
    """

    def __init__(self, repository: CatalogRepository) -> None:
        self._repository = repository
        self._lock = asyncio.Lock()
        self._loaded = False
        self._tiers: dict[str, ResourceTier] = {}
        self._flavors: dict[str, ContainerFlavor] = {}
        self._addons: dict[str, Addon] = {}

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        async with self._lock:
            if self._loaded:
                return
            self._tiers = {t.id: t for t in await self._repository.list_resource_tiers()}
            self._flavors = {f.id: f for f in await self._repository.list_flavors()}
            self._addons = {a.id: a for a in await self._repository.list_addons()}
            self._loaded = True
            logger.info(
                "Catalog loaded: %d tiers, %d flavors, %d addons",
                len(self._tiers), len(self._flavors), len(self._addons),
            )

    # --- Resource tiers ---

    async def get_resource_tier(self, tier_id: str) -> ResourceTier | None:
        await self._ensure_loaded()
        return self._tiers.get(tier_id)

    async def get_default_resource_tier(self) -> ResourceTier | None:
        tiers = await self.list_resource_tiers()
        return next((t for t in tiers if t.is_default), tiers[0] if tiers else None)

    async def list_resource_tiers(self) -> list[ResourceTier]:
        await self._ensure_loaded()
        return list(self._tiers.values())

    # --- Flavors ---

    async def get_flavor(self, flavor_id: str) -> ContainerFlavor | None:
        """Return the flavor, enabled or not."""
        await self._ensure_loaded()
        return self._flavors.get(flavor_id)

    async def get_default_flavor(self) -> ContainerFlavor | None:
        flavors = await self.list_flavors()
        return next((f for f in flavors if f.is_default), flavors[0] if flavors else None)

    async def list_flavors(self) -> list[ContainerFlavor]:
        await self._ensure_loaded()
        return [f for f in self._flavors.values() if f.enabled]

    # --- Addons ---

    async def get_addon(self, addon_id: str) -> Addon | None:
        await self._ensure_loaded()
        return self._addons.get(addon_id)

    async def list_addons(self) -> list[Addon]:
        await self._ensure_loaded()
        return list(self._addons.values())

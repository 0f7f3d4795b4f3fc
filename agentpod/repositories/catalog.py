"""SQLAlchemy implementation of :class:`CatalogRepository`."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentpod.db.models import ContainerAddonRow, ContainerFlavorRow, ResourceTierRow
from agentpod.models.schemas import Addon, ContainerFlavor, ResourceTier
from agentpod.repositories.base import CatalogRepository


class SqlCatalogRepository(CatalogRepository):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_resource_tiers(self) -> list[ResourceTier]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ResourceTierRow).order_by(ResourceTierRow.sort_order, ResourceTierRow.id)
            )
            return [ResourceTier.model_validate(r) for r in result.scalars().all()]

    async def list_flavors(self) -> list[ContainerFlavor]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ContainerFlavorRow).order_by(
                    ContainerFlavorRow.sort_order, ContainerFlavorRow.id
                )
            )
            return [ContainerFlavor.model_validate(r) for r in result.scalars().all()]

    async def list_addons(self) -> list[Addon]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ContainerAddonRow).order_by(ContainerAddonRow.sort_order, ContainerAddonRow.id)
            )
            return [Addon.model_validate(r) for r in result.scalars().all()]

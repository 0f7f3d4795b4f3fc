"""SQLAlchemy implementation of :class:`SandboxRepository`."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agentpod.db.models import SandboxRow, SandboxStatus
from agentpod.models.schemas import Sandbox, SandboxFilter
from agentpod.repositories.base import SandboxRepository
from agentpod.utils import utcnow

logger = logging.getLogger(__name__)

# Columns fixed at creation time.
IMMUTABLE_FIELDS = frozenset({
    "id",
    "user_id",
    "slug",
    "github_url",
    "repo_name",
    "resource_tier_id",
    "flavor_id",
    "addon_ids",
    "created_at",
})

_COLUMNS = frozenset(c.name for c in SandboxRow.__table__.columns)


class SqlSandboxRepository(SandboxRepository):
    """Sandbox records in the relational database.

    Every call opens its own session, so each write is its own
    transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def insert(self, sandbox: Sandbox) -> bool:
        data = sandbox.model_dump(exclude={"updated_at"})
        now = utcnow()
        data["created_at"] = data.get("created_at") or now
        data["updated_at"] = now
        async with self._session_factory() as db:
            db.add(SandboxRow(**data))
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.debug("Insert conflict for sandbox %s (%s/%s)",
                             sandbox.id, sandbox.user_id, sandbox.slug)
                return False
        return True

    async def get_by_id(self, sandbox_id: str) -> Sandbox | None:
        async with self._session_factory() as db:
            row = await db.get(SandboxRow, sandbox_id)
            return Sandbox.model_validate(row) if row else None

    async def list_by_user(self, user_id: str) -> list[Sandbox]:
        return await self.list_all(SandboxFilter(user_id=user_id))

    async def list_all(self, filter: SandboxFilter | None = None) -> list[Sandbox]:
        stmt = select(SandboxRow)
        if filter is not None:
            if filter.user_id is not None:
                stmt = stmt.where(SandboxRow.user_id == filter.user_id)
            if filter.status is not None:
                stmt = stmt.where(SandboxRow.status.in_(filter.status))
        stmt = stmt.order_by(SandboxRow.created_at.desc())
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            return [Sandbox.model_validate(row) for row in result.scalars().all()]

    async def update_fields(self, sandbox_id: str, **fields: Any) -> bool:
        frozen = IMMUTABLE_FIELDS.intersection(fields)
        if frozen:
            raise ValueError(f"Cannot update immutable sandbox fields: {sorted(frozen)}")
        unknown = set(fields) - _COLUMNS
        if unknown:
            raise ValueError(f"Unknown sandbox fields: {sorted(unknown)}")
        if not fields:
            return await self.get_by_id(sandbox_id) is not None
        values = {**fields, "updated_at": utcnow()}
        async with self._session_factory() as db:
            result = await db.execute(
                update(SandboxRow).where(SandboxRow.id == sandbox_id).values(**values)
            )
            await db.commit()
            return result.rowcount > 0

    async def update_status(
        self, sandbox_id: str, status: SandboxStatus, error_message: str | None = None
    ) -> bool:
        # Leaving the error state clears any stale message.
        if status != SandboxStatus.error:
            error_message = None
        return await self.update_fields(sandbox_id, status=status, error_message=error_message)

    async def touch(self, sandbox_id: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                update(SandboxRow)
                .where(SandboxRow.id == sandbox_id)
                .values(last_accessed_at=utcnow())
            )
            await db.commit()
            return result.rowcount > 0

    async def delete(self, sandbox_id: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(delete(SandboxRow).where(SandboxRow.id == sandbox_id))
            await db.commit()
            return result.rowcount > 0

    async def slug_exists(self, user_id: str, slug: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                select(SandboxRow.id)
                .where(SandboxRow.user_id == user_id, SandboxRow.slug == slug)
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

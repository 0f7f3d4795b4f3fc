"""Database models for AgentPod."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# --- Enums ---


class SandboxStatus(str, enum.Enum):
    created = "created"
    running = "running"
    stopped = "stopped"
    paused = "paused"
    error = "error"


class AddonCategory(str, enum.Enum):
    interface = "interface"
    compute = "compute"
    storage = "storage"
    devops = "devops"


# --- Models ---


class SandboxRow(Base):
    __tablename__ = "sandboxes"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_sandboxes_user_slug"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    github_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    repo_name: Mapped[str | None] = mapped_column(String(300), nullable=True)
    status: Mapped[SandboxStatus] = mapped_column(
        Enum(SandboxStatus), default=SandboxStatus.created, nullable=False
    )
    resource_tier_id: Mapped[str] = mapped_column(String(50), nullable=False)
    flavor_id: Mapped[str] = mapped_column(String(50), nullable=False)
    addon_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    container_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    container_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    opencode_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    vnc_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    code_server_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    error_message: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
    last_accessed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class ResourceTierRow(Base):
    __tablename__ = "resource_tiers"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    cpu_cores: Mapped[int] = mapped_column(Integer, nullable=False)
    memory_gb: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_gb: Mapped[int] = mapped_column(Integer, default=0)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class ContainerFlavorRow(Base):
    __tablename__ = "container_flavors"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    languages: Mapped[list] = mapped_column(JSON, default=list)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class ContainerAddonRow(Base):
    __tablename__ = "container_addons"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[AddonCategory] = mapped_column(Enum(AddonCategory), nullable=False)
    port: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requires_gpu: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_flavor: Mapped[str | None] = mapped_column(String(50), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

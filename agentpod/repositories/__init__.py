"""Persistence ports and their SQLAlchemy implementations."""

from agentpod.repositories.base import CatalogRepository, SandboxRepository
from agentpod.repositories.catalog import SqlCatalogRepository
from agentpod.repositories.sandbox import IMMUTABLE_FIELDS, SqlSandboxRepository

__all__ = [
    "CatalogRepository",
    "IMMUTABLE_FIELDS",
    "SandboxRepository",
    "SqlCatalogRepository",
    "SqlSandboxRepository",
]

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from agentpod.db.models import AddonCategory, SandboxStatus
from agentpod.providers.git.base import Author, Repository


# ---------------------------------------------------------------------------
# Catalog schemas
# ---------------------------------------------------------------------------

class ResourceTier(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    description: str | None = None
    cpu_cores: int
    memory_gb: int
    storage_gb: int = 0
    is_default: bool = False
    sort_order: int = 0


class ContainerFlavor(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    description: str | None = None
    languages: list[str] = Field(default_factory=list)
    is_default: bool = False
    enabled: bool = True
    sort_order: int = 0


class Addon(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    description: str | None = None
    category: AddonCategory
    port: int | None = None
    requires_gpu: bool = False
    requires_flavor: str | None = None
    sort_order: int = 0


# ---------------------------------------------------------------------------
# Sandbox schemas
# ---------------------------------------------------------------------------

class Sandbox(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    name: str
    slug: str
    description: str | None = None
    github_url: str | None = None
    repo_name: str | None = None
    status: SandboxStatus = SandboxStatus.created
    resource_tier_id: str
    flavor_id: str
    addon_ids: list[str] = Field(default_factory=list)
    container_id: str | None = None
    container_name: str | None = None
    opencode_url: str | None = None
    vnc_url: str | None = None
    code_server_url: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_accessed_at: datetime | None = None

    @property
    def urls(self) -> dict[str, str]:
        """Published service endpoints, keyed by service name."""
        urls = {
            "opencode": self.opencode_url,
            "code-server": self.code_server_url,
            "vnc": self.vnc_url,
        }
        return {k: v for k, v in urls.items() if v}


class CreateSandboxOptions(BaseModel):
    name: str
    user_id: str
    description: str | None = None
    # Clone this repository instead of starting from an empty one.
    github_url: str | None = None
    flavor: str | None = None
    resource_tier: str | None = None
    addons: list[str] | None = None
    auto_start: bool = True


class SandboxFilter(BaseModel):
    user_id: str | None = None
    status: list[SandboxStatus] | None = None


class SandboxWithRepository(BaseModel):
    sandbox: Sandbox
    repository: Repository


class SandboxInfo(BaseModel):
    sandbox: Sandbox
    repository: Repository | None = None


class SandboxStatusInfo(BaseModel):
    sandbox_id: str
    status: SandboxStatus
    container_state: str | None = None
    error_message: str | None = None


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class LifecycleRequest(BaseModel):
    timeout: int | None = Field(default=None, ge=0)


class ExecRequest(BaseModel):
    command: list[str]
    working_dir: str | None = None
    env: dict[str, str] | None = None
    user: str | None = None


class CommitRequest(BaseModel):
    message: str
    author: Author | None = None

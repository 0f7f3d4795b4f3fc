"""Sandbox orchestration engine.

The :class:`SandboxOrchestrator` owns the lifecycle of a sandbox and keeps
three independently failing systems consistent: the sandbox record, the
container runtime and the git backend.  It talks to them only through
:class:`SandboxRepository`, :class:`RuntimeProvider` and
:class:`GitProvider`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from agentpod.catalog import ResourceCatalog, resource_limits
from agentpod.config import SandboxSettings
from agentpod.db.models import SandboxStatus
from agentpod.engine.errors import (
    CatalogReferenceError,
    ConflictError,
    ContainerRuntimeError,
    GitBackendError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from agentpod.engine.locks import KeyedLock
from agentpod.engine.state_machine import StateMachine
from agentpod.models.schemas import (
    Addon,
    ContainerFlavor,
    CreateSandboxOptions,
    ResourceTier,
    Sandbox,
    SandboxFilter,
    SandboxInfo,
    SandboxStatusInfo,
    SandboxWithRepository,
)
from agentpod.providers.git.base import (
    Author,
    CommitResult,
    GitLog,
    GitProvider,
    GitProviderError,
    GitStatus,
    Repository,
)
from agentpod.providers.runtime.base import (
    ContainerNotFoundError,
    ContainerSpec,
    ContainerStats,
    ExecResult,
    RuntimeInfo,
    RuntimeProvider,
    RuntimeProviderError,
)
from agentpod.repositories.base import SandboxRepository
from agentpod.utils import generate_id, slugify, truncate_string

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Addon id -> (service name, record field) for published URLs.
_ADDON_SERVICES: dict[str, tuple[str, str]] = {
    "code-server": ("code-server", "code_server_url"),
    "gui": ("vnc", "vnc_url"),
}

_ERROR_MESSAGE_MAX = 2000


class SandboxOrchestrator:
    """Drives sandboxes through their lifecycle.

    Parameters
    ----------
    sandboxes:
        Storage of sandbox records.
    catalog:
        Resource tiers, flavors and addons.
    runtime:
        Container runtime provider.
    git:
        Git backend provider.
    settings:
        Provisioning knobs (image template, URL template, limits).
    """

    def __init__(
        self,
        sandboxes: SandboxRepository,
        catalog: ResourceCatalog,
        runtime: RuntimeProvider,
        git: GitProvider,
        settings: SandboxSettings | None = None,
    ) -> None:
        self.sandboxes = sandboxes
        self.catalog = catalog
        self.runtime = runtime
        self.git = git
        self.settings = settings or SandboxSettings()
        self.sm = StateMachine()
        self._locks = KeyedLock()
        self._user_locks = KeyedLock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _require(self, sandbox_id: str, operation: str) -> Sandbox:
        sandbox = await self.sandboxes.get_by_id(sandbox_id)
        if sandbox is None:
            raise NotFoundError(
                f"Sandbox {sandbox_id} not found", sandbox_id=sandbox_id, operation=operation
            )
        return sandbox

    def _require_container(self, sandbox: Sandbox, operation: str) -> None:
        if not sandbox.container_id:
            raise PreconditionError(
                f"Sandbox {sandbox.id} has no container",
                sandbox_id=sandbox.id,
                operation=operation,
            )

    def _require_repo(self, sandbox: Sandbox, operation: str) -> str:
        if not sandbox.repo_name:
            raise PreconditionError(
                "sandbox has no repository", sandbox_id=sandbox.id, operation=operation
            )
        return sandbox.repo_name

    async def _runtime(
        self,
        sandbox_id: str,
        operation: str,
        call: Callable[[], Awaitable[T]],
        mark_missing: bool = False,
    ) -> T:
        """Run a runtime call, wrapping its errors.

        With *mark_missing*, a container that no longer exists moves the
        sandbox to ``error`` before the error is raised.
        """
        try:
            return await call()
        except ContainerNotFoundError as e:
            if mark_missing:
                message = truncate_string(str(e), _ERROR_MESSAGE_MAX)
                await self.sandboxes.update_status(sandbox_id, SandboxStatus.error, message)
                logger.error("Container for sandbox %s is gone (%s)", sandbox_id, operation)
            raise ContainerRuntimeError(
                f"{operation} failed: {e}", sandbox_id=sandbox_id, operation=operation
            ) from e
        except RuntimeProviderError as e:
            raise ContainerRuntimeError(
                f"{operation} failed: {e}", sandbox_id=sandbox_id, operation=operation
            ) from e

    async def _git(self, sandbox_id: str, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except GitProviderError as e:
            raise GitBackendError(
                f"{operation} failed: {e}", sandbox_id=sandbox_id, operation=operation
            ) from e

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _validate_name(self, name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Sandbox name must not be empty", operation="create")
        limit = self.settings.name_max_length
        if len(name) > limit:
            raise ValidationError(
                f"Sandbox name must be at most {limit} characters", operation="create"
            )
        return name

    async def _resolve_catalog(
        self, options: CreateSandboxOptions
    ) -> tuple[ResourceTier, ContainerFlavor, list[Addon]]:
        if options.resource_tier:
            tier = await self.catalog.get_resource_tier(options.resource_tier)
            if tier is None:
                raise CatalogReferenceError(
                    f"Unknown resource tier '{options.resource_tier}'", operation="create"
                )
        else:
            tier = await self.catalog.get_default_resource_tier()
            if tier is None:
                raise CatalogReferenceError("No default resource tier", operation="create")

        if options.flavor:
            flavor = await self.catalog.get_flavor(options.flavor)
            if flavor is None:
                raise CatalogReferenceError(
                    f"Unknown flavor '{options.flavor}'", operation="create"
                )
            if not flavor.enabled:
                raise CatalogReferenceError(
                    f"Flavor '{options.flavor}' is not enabled", operation="create"
                )
        else:
            flavor = await self.catalog.get_default_flavor()
            if flavor is None:
                raise CatalogReferenceError("No default flavor", operation="create")

        addon_ids = options.addons if options.addons is not None else self.settings.default_addons
        addons: list[Addon] = []
        for addon_id in dict.fromkeys(addon_ids):
            addon = await self.catalog.get_addon(addon_id)
            if addon is None:
                raise CatalogReferenceError(f"Unknown addon '{addon_id}'", operation="create")
            if addon.requires_flavor and addon.requires_flavor != flavor.id:
                raise CatalogReferenceError(
                    f"Addon '{addon_id}' requires flavor '{addon.requires_flavor}'",
                    operation="create",
                )
            addons.append(addon)
        return tier, flavor, addons

    async def _next_free_slug(self, user_id: str, base: str) -> str:
        """First of ``base``, ``base-1``, ``base-2``, ... not used by *user_id*."""
        if not await self.sandboxes.slug_exists(user_id, base):
            return base
        n = 1
        while await self.sandboxes.slug_exists(user_id, f"{base}-{n}"):
            n += 1
        return f"{base}-{n}"

    async def _insert_record(
        self,
        options: CreateSandboxOptions,
        name: str,
        tier: ResourceTier,
        flavor: ContainerFlavor,
        addons: list[Addon],
    ) -> Sandbox:
        """Pick a slug and insert the record, retrying on insert conflicts."""
        base = slugify(name)
        async with self._user_locks.hold(options.user_id):
            for attempt in range(1, self.settings.slug_retry_limit + 1):
                slug = await self._next_free_slug(options.user_id, base)
                sandbox_id = generate_id()
                sandbox = Sandbox(
                    id=sandbox_id,
                    user_id=options.user_id,
                    name=name,
                    slug=slug,
                    description=options.description,
                    github_url=options.github_url or None,
                    repo_name=f"{slug}-{sandbox_id}",
                    status=SandboxStatus.created,
                    resource_tier_id=tier.id,
                    flavor_id=flavor.id,
                    addon_ids=[a.id for a in addons],
                )
                if await self.sandboxes.insert(sandbox):
                    return sandbox
                logger.warning(
                    "Slug %s for user %s taken concurrently (attempt %d)",
                    slug, options.user_id, attempt,
                )
        raise ConflictError(
            f"Could not reserve a unique slug for '{name}'", operation="create"
        )

    def _published_urls(self, sandbox: Sandbox) -> dict[str, str | None]:
        def url(service: str) -> str:
            return self.settings.url_template.format(
                service=service, slug=sandbox.slug, id=sandbox.id
            )

        urls: dict[str, str | None] = {
            "opencode_url": url("opencode"),
            "code_server_url": None,
            "vnc_url": None,
        }
        for addon_id, (service, field_name) in _ADDON_SERVICES.items():
            if addon_id in sandbox.addon_ids:
                urls[field_name] = url(service)
        return urls

    def _container_spec(
        self, sandbox: Sandbox, tier: ResourceTier, flavor: ContainerFlavor
    ) -> ContainerSpec:
        labels = {
            "agentpod.managed": "true",
            "agentpod.sandbox.id": sandbox.id,
            "agentpod.sandbox.name": sandbox.name,
            "agentpod.sandbox.slug": sandbox.slug,
            "agentpod.sandbox.user": sandbox.user_id,
            "agentpod.sandbox.repo": sandbox.repo_name or "",
        }
        if sandbox.github_url:
            labels["agentpod.sandbox.github"] = sandbox.github_url
        return ContainerSpec(
            id=sandbox.id,
            name=f"{self.settings.container_prefix}-{sandbox.id}",
            image=self.settings.image_template.format(flavor=flavor.id),
            workdir=self.settings.workdir,
            labels=labels,
            env={
                "AGENTPOD_SANDBOX_ID": sandbox.id,
                "AGENTPOD_FLAVOR": flavor.id,
                "AGENTPOD_ADDONS": ",".join(sandbox.addon_ids),
            },
            repo_name=sandbox.repo_name,
            **resource_limits(tier),
        )

    async def _discard_record(self, sandbox_id: str) -> None:
        try:
            await self.sandboxes.delete(sandbox_id)
        except Exception:
            logger.exception("Failed to delete record of sandbox %s during rollback", sandbox_id)

    async def _discard_container(self, sandbox_id: str) -> None:
        try:
            await self.runtime.delete(sandbox_id, remove_volumes=True)
        except (RuntimeProviderError, OSError) as e:
            logger.error(
                "Orphaned container for sandbox %s needs manual cleanup: %s", sandbox_id, e
            )

    async def _discard_repo(self, sandbox_id: str, repo_name: str) -> None:
        try:
            await self.git.delete_repo(repo_name)
        except (GitProviderError, OSError) as e:
            logger.error(
                "Orphaned repository %s of sandbox %s needs manual cleanup: %s",
                repo_name, sandbox_id, e,
            )

    async def create_sandbox(self, options: CreateSandboxOptions) -> SandboxWithRepository:
        """Provision a sandbox: record, container and repository.

        Nothing is left behind when the container or the repository cannot
        be created.  A container that fails to auto-start is kept with
        status ``error`` so the caller can restart or delete it.
        """
        name = self._validate_name(options.name)
        tier, flavor, addons = await self._resolve_catalog(options)

        sandbox = await self._insert_record(options, name, tier, flavor, addons)
        sid = sandbox.id
        logger.info("Creating sandbox %s (%s) for user %s", sid, sandbox.slug, sandbox.user_id)

        spec = self._container_spec(sandbox, tier, flavor)
        try:
            ref = await self.runtime.create(spec)
        except RuntimeProviderError as e:
            await self._discard_record(sid)
            raise ContainerRuntimeError(
                f"create failed: {e}", sandbox_id=sid, operation="create"
            ) from e

        try:
            if sandbox.github_url:
                repository = await self.git.clone_repo(sandbox.github_url, sandbox.repo_name)
            else:
                repository = await self.git.create_repo(
                    sandbox.repo_name, description=sandbox.description
                )
        except GitProviderError as e:
            await self._discard_container(sid)
            await self._discard_record(sid)
            step = "clone_repo" if sandbox.github_url else "create_repo"
            raise GitBackendError(
                f"{step} failed: {e}", sandbox_id=sid, operation="create"
            ) from e

        status = SandboxStatus.stopped
        error_message = None
        if options.auto_start:
            try:
                await self.runtime.start(sid)
                status = SandboxStatus.running
            except RuntimeProviderError as e:
                status = SandboxStatus.error
                error_message = truncate_string(f"auto-start failed: {e}", _ERROR_MESSAGE_MAX)
                logger.warning("Sandbox %s created but failed to start: %s", sid, e)

        updated = await self.sandboxes.update_fields(
            sid,
            container_id=ref.container_id,
            container_name=ref.name,
            status=status,
            error_message=error_message,
            **self._published_urls(sandbox),
        )
        if not updated:
            await self._discard_container(sid)
            await self._discard_repo(sid, sandbox.repo_name)
            raise PreconditionError(
                f"Sandbox {sid} was deleted during creation", sandbox_id=sid, operation="create"
            )

        logger.info("Sandbox %s ready (status=%s)", sid, status.value)
        return SandboxWithRepository(
            sandbox=await self._require(sid, "create"), repository=repository
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _transition(
        self,
        sandbox_id: str,
        operation: str,
        call: Callable[[], Awaitable[Any]],
    ) -> Sandbox:
        async with self._locks.hold(sandbox_id):
            sandbox = await self._require(sandbox_id, operation)
            target = self.sm.transition(sandbox.status, operation, sandbox_id)
            self._require_container(sandbox, operation)
            await self._runtime(sandbox_id, operation, call, mark_missing=True)
            if not await self.sandboxes.update_status(sandbox_id, target):
                raise NotFoundError(
                    f"Sandbox {sandbox_id} not found",
                    sandbox_id=sandbox_id,
                    operation=operation,
                )
            if target == SandboxStatus.running:
                await self.sandboxes.touch(sandbox_id)
            logger.info("Sandbox %s: %s -> %s", sandbox_id, operation, target.value)
            return await self._require(sandbox_id, operation)

    async def start_sandbox(self, sandbox_id: str) -> Sandbox:
        return await self._transition(
            sandbox_id, "start", lambda: self.runtime.start(sandbox_id)
        )

    async def stop_sandbox(self, sandbox_id: str, timeout: int | None = None) -> Sandbox:
        return await self._transition(
            sandbox_id, "stop", lambda: self.runtime.stop(sandbox_id, timeout=timeout)
        )

    async def restart_sandbox(self, sandbox_id: str, timeout: int | None = None) -> Sandbox:
        return await self._transition(
            sandbox_id, "restart", lambda: self.runtime.restart(sandbox_id, timeout=timeout)
        )

    async def pause_sandbox(self, sandbox_id: str) -> Sandbox:
        return await self._transition(
            sandbox_id, "pause", lambda: self.runtime.pause(sandbox_id)
        )

    async def unpause_sandbox(self, sandbox_id: str) -> Sandbox:
        return await self._transition(
            sandbox_id, "unpause", lambda: self.runtime.unpause(sandbox_id)
        )

    async def delete_sandbox(
        self,
        sandbox_id: str,
        delete_repo: bool = False,
        remove_volumes: bool = False,
    ) -> None:
        """Remove the container, optionally the repository, then the record.

        The record survives any runtime failure other than the container
        already being gone, so the delete can be retried.
        """
        async with self._locks.hold(sandbox_id):
            sandbox = await self._require(sandbox_id, "delete")
            if sandbox.container_id:
                try:
                    await self.runtime.delete(sandbox_id, remove_volumes=remove_volumes)
                except ContainerNotFoundError:
                    logger.warning("Container of sandbox %s already gone", sandbox_id)
                except RuntimeProviderError as e:
                    raise ContainerRuntimeError(
                        f"delete failed: {e}", sandbox_id=sandbox_id, operation="delete"
                    ) from e
            if delete_repo and sandbox.repo_name:
                try:
                    await self.git.delete_repo(sandbox.repo_name)
                except GitProviderError as e:
                    logger.warning(
                        "Failed to delete repository %s of sandbox %s: %s",
                        sandbox.repo_name, sandbox_id, e,
                    )
            await self.sandboxes.delete(sandbox_id)
        logger.info("Deleted sandbox %s (repo=%s, volumes=%s)", sandbox_id, delete_repo, remove_volumes)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_sandbox(self, sandbox_id: str) -> Sandbox | None:
        return await self.sandboxes.get_by_id(sandbox_id)

    async def get_sandbox_info(self, sandbox_id: str) -> SandboxInfo:
        sandbox = await self._require(sandbox_id, "info")
        repository: Repository | None = None
        if sandbox.repo_name:
            repository = await self._git(
                sandbox_id, "info", lambda: self.git.get_repo(sandbox.repo_name)
            )
        await self.sandboxes.touch(sandbox_id)
        return SandboxInfo(sandbox=sandbox, repository=repository)

    async def list_sandboxes(self, filter: SandboxFilter | None = None) -> list[Sandbox]:
        return await self.sandboxes.list_all(filter)

    async def get_sandbox_status(self, sandbox_id: str) -> SandboxStatusInfo:
        sandbox = await self._require(sandbox_id, "status")
        container_state = None
        if sandbox.container_id:
            container_state = await self._runtime(
                sandbox_id, "status", lambda: self.runtime.get_state(sandbox_id)
            )
        return SandboxStatusInfo(
            sandbox_id=sandbox_id,
            status=sandbox.status,
            container_state=container_state,
            error_message=sandbox.error_message,
        )

    async def get_sandbox_logs(self, sandbox_id: str, tail: int | None = None) -> list[str]:
        sandbox = await self._require(sandbox_id, "logs")
        self._require_container(sandbox, "logs")
        return await self._runtime(
            sandbox_id, "logs", lambda: self.runtime.get_logs(sandbox_id, tail=tail)
        )

    async def get_sandbox_stats(self, sandbox_id: str) -> ContainerStats:
        sandbox = await self._require(sandbox_id, "stats")
        self._require_container(sandbox, "stats")
        return await self._runtime(sandbox_id, "stats", lambda: self.runtime.get_stats(sandbox_id))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def exec(
        self,
        sandbox_id: str,
        command: list[str],
        working_dir: str | None = None,
        env: dict[str, str] | None = None,
        user: str | None = None,
    ) -> ExecResult:
        if not command:
            raise ValidationError(
                "Command must not be empty", sandbox_id=sandbox_id, operation="exec"
            )
        sandbox = await self._require(sandbox_id, "exec")
        self._require_container(sandbox, "exec")
        return await self._runtime(
            sandbox_id,
            "exec",
            lambda: self.runtime.exec(
                sandbox_id, command, working_dir=working_dir, env=env, user=user
            ),
        )

    # ------------------------------------------------------------------
    # Git
    # ------------------------------------------------------------------

    async def commit_changes(
        self, sandbox_id: str, message: str, author: Author | None = None
    ) -> CommitResult:
        if not message or not message.strip():
            raise ValidationError(
                "Commit message must not be empty", sandbox_id=sandbox_id, operation="commit"
            )
        sandbox = await self._require(sandbox_id, "commit")
        repo_name = self._require_repo(sandbox, "commit")
        result = await self._git(
            sandbox_id, "commit", lambda: self.git.commit(repo_name, message, author=author)
        )
        logger.info("Sandbox %s: committed %s", sandbox_id, result.sha)
        return result

    async def get_git_status(self, sandbox_id: str) -> GitStatus:
        sandbox = await self._require(sandbox_id, "git_status")
        repo_name = self._require_repo(sandbox, "git_status")
        return await self._git(sandbox_id, "git_status", lambda: self.git.get_status(repo_name))

    async def get_git_log(self, sandbox_id: str, limit: int | None = None) -> GitLog:
        sandbox = await self._require(sandbox_id, "git_log")
        repo_name = self._require_repo(sandbox, "git_log")
        return await self._git(
            sandbox_id, "git_log", lambda: self.git.get_log(repo_name, limit=limit)
        )

    # ------------------------------------------------------------------
    # Runtime
    # ------------------------------------------------------------------

    async def health_check(self) -> bool:
        return await self.runtime.ping()

    async def get_docker_info(self) -> RuntimeInfo:
        try:
            return await self.runtime.get_info()
        except RuntimeProviderError as e:
            raise ContainerRuntimeError(f"info failed: {e}", operation="docker_info") from e

"""Shared test fixtures for AgentPod."""

from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from agentpod.catalog import ResourceCatalog, seed_catalog
from agentpod.config import SandboxSettings
from agentpod.db.models import Base
from agentpod.engine.orchestrator import SandboxOrchestrator
from agentpod.providers.base import HealthStatus
from agentpod.providers.git.base import (
    Author,
    CommitInfo,
    CommitResult,
    FileStatus,
    GitLog,
    GitProvider,
    GitStatus,
    Repository,
    RepositoryNotFoundError,
)
from agentpod.providers.runtime.base import (
    ContainerNotFoundError,
    ContainerRef,
    ContainerSpec,
    ContainerStats,
    ExecResult,
    RuntimeInfo,
    RuntimeProvider,
)
from agentpod.repositories import SqlCatalogRepository, SqlSandboxRepository


# --- Fake providers ---


class FakeRuntimeProvider(RuntimeProvider):
    """In-memory runtime that records every call.

    Set ``fail[method] = exc`` to make the next calls of *method* raise.
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        self.calls: list[tuple[str, tuple, dict]] = []
        self.fail: dict[str, Exception] = {}
        self.specs: dict[str, ContainerSpec] = {}
        self.states: dict[str, str] = {}
        self.exec_result = ExecResult(exit_code=0, stdout="ok\n", stderr="")
        self.healthy = True

    def _record(self, method: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((method, args, kwargs))
        if method in self.fail:
            raise self.fail[method]

    def calls_to(self, method: str) -> list[tuple[tuple, dict]]:
        return [(a, k) for m, a, k in self.calls if m == method]

    def _require(self, sandbox_id: str) -> None:
        if sandbox_id not in self.states:
            raise ContainerNotFoundError(f"no container for {sandbox_id}")

    async def health_check(self) -> HealthStatus:
        return HealthStatus(healthy=self.healthy, message="fake")

    async def create(self, spec: ContainerSpec) -> ContainerRef:
        self._record("create", spec)
        self.specs[spec.id] = spec
        self.states[spec.id] = "created"
        return ContainerRef(container_id=f"c-{spec.id}", name=spec.name)

    async def start(self, sandbox_id: str) -> None:
        self._record("start", sandbox_id)
        self._require(sandbox_id)
        self.states[sandbox_id] = "running"

    async def stop(self, sandbox_id: str, timeout: int | None = None) -> None:
        self._record("stop", sandbox_id, timeout=timeout)
        self._require(sandbox_id)
        self.states[sandbox_id] = "exited"

    async def restart(self, sandbox_id: str, timeout: int | None = None) -> None:
        self._record("restart", sandbox_id, timeout=timeout)
        self._require(sandbox_id)
        self.states[sandbox_id] = "running"

    async def pause(self, sandbox_id: str) -> None:
        self._record("pause", sandbox_id)
        self._require(sandbox_id)
        self.states[sandbox_id] = "paused"

    async def unpause(self, sandbox_id: str) -> None:
        self._record("unpause", sandbox_id)
        self._require(sandbox_id)
        self.states[sandbox_id] = "running"

    async def delete(self, sandbox_id: str, remove_volumes: bool = False) -> None:
        self._record("delete", sandbox_id, remove_volumes=remove_volumes)
        self._require(sandbox_id)
        del self.states[sandbox_id]

    async def exec(self, sandbox_id, command, working_dir=None, env=None, user=None) -> ExecResult:
        self._record("exec", sandbox_id, command, working_dir=working_dir, env=env, user=user)
        self._require(sandbox_id)
        return self.exec_result

    async def get_logs(self, sandbox_id: str, tail: int | None = None) -> list[str]:
        self._record("get_logs", sandbox_id, tail=tail)
        self._require(sandbox_id)
        lines = ["line 1", "line 2", "line 3"]
        return lines[-tail:] if tail else lines

    async def get_stats(self, sandbox_id: str) -> ContainerStats:
        self._record("get_stats", sandbox_id)
        self._require(sandbox_id)
        return ContainerStats(cpu_percent=12.5, memory_usage=100, memory_limit=1000,
                              memory_percent=10.0)

    async def get_state(self, sandbox_id: str) -> str:
        self._record("get_state", sandbox_id)
        self._require(sandbox_id)
        return self.states[sandbox_id]

    async def ping(self) -> bool:
        self._record("ping")
        return self.healthy

    async def get_info(self) -> RuntimeInfo:
        self._record("get_info")
        return RuntimeInfo(version="24.0.0", api_version="1.43", os="linux", arch="x86_64",
                           cpus=4, total_memory=8 * 1024**3, containers_running=len(self.states))


class FakeGitProvider(GitProvider):
    """In-memory git backend that records every call."""

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        self.calls: list[tuple[str, tuple, dict]] = []
        self.fail: dict[str, Exception] = {}
        self.repos: dict[str, list[CommitInfo]] = {}

    def _record(self, method: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((method, args, kwargs))
        if method in self.fail:
            raise self.fail[method]

    def calls_to(self, method: str) -> list[tuple[tuple, dict]]:
        return [(a, k) for m, a, k in self.calls if m == method]

    def _require(self, name: str) -> list[CommitInfo]:
        if name not in self.repos:
            raise RepositoryNotFoundError(f"Repository '{name}' not found")
        return self.repos[name]

    async def health_check(self) -> HealthStatus:
        return HealthStatus(healthy=True, message="fake")

    async def create_repo(self, name: str, description: str | None = None) -> Repository:
        self._record("create_repo", name, description=description)
        self.repos[name] = [CommitInfo(sha="0" * 40, message="Initial commit",
                                       author_name="AgentPod", author_email="agentpod@localhost")]
        return Repository(name=name, path=f"/repos/{name}", current_branch="main",
                          description=description)

    async def clone_repo(self, url: str, name: str, depth: int | None = 1) -> Repository:
        self._record("clone_repo", url, name, depth=depth)
        self.repos[name] = [CommitInfo(sha="1" * 40, message="Upstream head",
                                       author_name="Upstream", author_email="up@example.com")]
        return Repository(name=name, path=f"/repos/{name}", current_branch="main")

    async def delete_repo(self, name: str) -> None:
        self._record("delete_repo", name)
        self._require(name)
        del self.repos[name]

    async def get_repo(self, name: str) -> Repository | None:
        self._record("get_repo", name)
        if name not in self.repos:
            return None
        return Repository(name=name, path=f"/repos/{name}", current_branch="main")

    async def commit(self, repo_name: str, message: str, author: Author | None = None) -> CommitResult:
        self._record("commit", repo_name, message, author=author)
        commits = self._require(repo_name)
        sha = f"{len(commits):040x}"
        who = author or Author(name="AgentPod", email="agentpod@localhost")
        commits.insert(0, CommitInfo(sha=sha, message=message, author_name=who.name,
                                     author_email=who.email))
        return CommitResult(sha=sha)

    async def get_status(self, repo_name: str) -> GitStatus:
        self._record("get_status", repo_name)
        self._require(repo_name)
        return GitStatus(files=[FileStatus(path="main.py", status="untracked")])

    async def get_log(self, repo_name: str, limit: int | None = None) -> GitLog:
        self._record("get_log", repo_name, limit=limit)
        commits = self._require(repo_name)
        return GitLog(commits=commits[:limit] if limit else list(commits))


# --- Fixtures ---


@pytest.fixture
async def session_factory(tmp_path):
    """Seeded SQLite database in a temporary file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        await seed_catalog(session)
    yield factory
    await engine.dispose()


@pytest.fixture
def sandbox_repo(session_factory):
    return SqlSandboxRepository(session_factory)


@pytest.fixture
def catalog(session_factory):
    return ResourceCatalog(SqlCatalogRepository(session_factory))


@pytest.fixture
def runtime():
    return FakeRuntimeProvider()


@pytest.fixture
def git():
    return FakeGitProvider()


@pytest.fixture
def settings():
    return SandboxSettings()


@pytest.fixture
def orchestrator(sandbox_repo, catalog, runtime, git, settings):
    return SandboxOrchestrator(
        sandboxes=sandbox_repo, catalog=catalog, runtime=runtime, git=git, settings=settings
    )

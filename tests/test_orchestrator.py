"""Tests for the sandbox orchestrator."""

import asyncio
import logging

import pytest

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
from agentpod.engine.state_machine import InvalidTransitionError
from agentpod.models.schemas import CreateSandboxOptions, Sandbox, SandboxFilter
from agentpod.providers.git.base import Author, GitProviderError
from agentpod.providers.runtime.base import ContainerNotFoundError, RuntimeProviderError


async def create(orchestrator, name="Demo", user_id="u1", **kwargs):
    result = await orchestrator.create_sandbox(
        CreateSandboxOptions(name=name, user_id=user_id, **kwargs)
    )
    return result.sandbox


async def insert_record(sandbox_repo, sandbox_id="raw00000001", **overrides):
    """Insert a record directly, bypassing the orchestrator."""
    data = {
        "id": sandbox_id,
        "user_id": "u1",
        "name": "Raw",
        "slug": f"raw-{sandbox_id}",
        "repo_name": None,
        "status": SandboxStatus.created,
        "resource_tier_id": "starter",
        "flavor_id": "fullstack",
    }
    data.update(overrides)
    assert await sandbox_repo.insert(Sandbox(**data))
    return data["id"]


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------

class TestCreateSandbox:
    async def test_demo_sandbox(self, orchestrator, runtime, git):
        result = await orchestrator.create_sandbox(CreateSandboxOptions(
            name="Demo", user_id="u1", flavor="js", resource_tier="starter",
        ))
        sandbox = result.sandbox
        assert sandbox.slug == "demo"
        assert sandbox.status == SandboxStatus.running
        assert sandbox.flavor_id == "js"
        assert sandbox.resource_tier_id == "starter"
        assert sandbox.opencode_url == "http://opencode-demo.localhost"
        assert sandbox.code_server_url == "http://code-server-demo.localhost"
        assert sandbox.container_id == f"c-{sandbox.id}"
        assert sandbox.container_name == f"agentpod-{sandbox.id}"
        assert sandbox.repo_name == f"demo-{sandbox.id}"
        assert result.repository.name == sandbox.repo_name
        assert [c[0] for c in runtime.calls] == ["create", "start"]
        assert git.calls[0] == ("create_repo", (sandbox.repo_name,), {"description": None})

    async def test_repeat_gets_suffixed_slug(self, orchestrator):
        first = await create(orchestrator, flavor="js", resource_tier="starter")
        second = await create(orchestrator, flavor="js", resource_tier="starter")
        assert first.slug == "demo"
        assert second.slug == "demo-1"
        assert first.id != second.id

    async def test_slug_sequence(self, orchestrator):
        slugs = [(await create(orchestrator, name="My Project")).slug for _ in range(3)]
        assert slugs == ["my-project", "my-project-1", "my-project-2"]

    async def test_slug_is_per_user(self, orchestrator):
        await create(orchestrator, name="My Project", user_id="u1")
        other = await create(orchestrator, name="My Project", user_id="u2")
        assert other.slug == "my-project"

    async def test_slug_fallback_for_symbol_only_name(self, orchestrator):
        sandbox = await create(orchestrator, name="!!!")
        assert sandbox.slug == "sandbox"

    async def test_name_is_stripped(self, orchestrator):
        sandbox = await create(orchestrator, name="  Spaced Out  ")
        assert sandbox.name == "Spaced Out"
        assert sandbox.slug == "spaced-out"

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    async def test_invalid_name(self, orchestrator, runtime, sandbox_repo, name):
        with pytest.raises(ValidationError):
            await create(orchestrator, name=name)
        assert runtime.calls == []
        assert await sandbox_repo.list_all() == []

    async def test_name_at_limit(self, orchestrator):
        sandbox = await create(orchestrator, name="x" * 100)
        assert len(sandbox.name) == 100

    @pytest.mark.parametrize("kwargs", [
        {"flavor": "cobol"},
        {"flavor": "go"},  # disabled
        {"resource_tier": "galactic"},
        {"addons": ["jetpack"]},
    ])
    async def test_bad_catalog_reference(self, orchestrator, runtime, git, sandbox_repo, kwargs):
        with pytest.raises(CatalogReferenceError) as exc_info:
            await create(orchestrator, **kwargs)
        assert isinstance(exc_info.value, ValidationError)
        assert isinstance(exc_info.value, NotFoundError)
        assert runtime.calls == []
        assert git.calls == []
        assert await sandbox_repo.list_all() == []

    async def test_catalog_defaults(self, orchestrator):
        sandbox = await create(orchestrator)
        assert sandbox.resource_tier_id == "starter"
        assert sandbox.flavor_id == "fullstack"
        assert sandbox.addon_ids == ["code-server"]

    async def test_gui_addon_publishes_vnc(self, orchestrator):
        sandbox = await create(orchestrator, addons=["gui"])
        assert sandbox.vnc_url == "http://vnc-demo.localhost"
        assert sandbox.code_server_url is None
        assert set(sandbox.urls) == {"opencode", "vnc"}

    async def test_no_addons(self, orchestrator):
        sandbox = await create(orchestrator, addons=[])
        assert sandbox.addon_ids == []
        assert sandbox.urls == {"opencode": "http://opencode-demo.localhost"}

    async def test_duplicate_addons_collapsed(self, orchestrator):
        sandbox = await create(orchestrator, addons=["gui", "gui", "databases"])
        assert sandbox.addon_ids == ["gui", "databases"]

    async def test_container_spec(self, orchestrator, runtime):
        sandbox = await create(orchestrator, flavor="python", resource_tier="creator",
                               addons=["gui", "code-server"])
        spec = runtime.specs[sandbox.id]
        assert spec.image == "codeopen-python:latest"
        assert spec.workdir == "/workspace"
        assert spec.cpu_cores == 4.0
        assert spec.memory_gb == 8.0
        assert spec.memory_reservation_gb == 6.0
        assert spec.repo_name == sandbox.repo_name
        assert spec.env["AGENTPOD_ADDONS"] == "gui,code-server"
        assert spec.labels["agentpod.managed"] == "true"
        assert spec.labels["agentpod.sandbox.id"] == sandbox.id
        assert spec.labels["agentpod.sandbox.slug"] == "demo"
        assert spec.labels["agentpod.sandbox.user"] == "u1"
        assert spec.labels["agentpod.sandbox.repo"] == sandbox.repo_name

    async def test_url_template(self, sandbox_repo, catalog, runtime, git, settings):
        from agentpod.engine.orchestrator import SandboxOrchestrator

        settings = settings.model_copy(update={"url_template": "https://{id}.example.com/{service}"})
        orch = SandboxOrchestrator(sandbox_repo, catalog, runtime, git, settings)
        sandbox = await create(orch, addons=[])
        assert sandbox.opencode_url == f"https://{sandbox.id}.example.com/opencode"

    async def test_without_auto_start(self, orchestrator, runtime):
        sandbox = await create(orchestrator, auto_start=False)
        assert sandbox.status == SandboxStatus.stopped
        assert sandbox.container_id is not None
        assert runtime.calls_to("start") == []

    async def test_auto_start_failure_keeps_sandbox(self, orchestrator, runtime, git):
        runtime.fail["start"] = RuntimeProviderError("port already allocated")
        sandbox = await create(orchestrator)
        assert sandbox.status == SandboxStatus.error
        assert "port already allocated" in sandbox.error_message
        assert sandbox.id in runtime.states
        assert sandbox.repo_name in git.repos

    async def test_runtime_create_failure_removes_record(self, orchestrator, runtime, git,
                                                         sandbox_repo):
        runtime.fail["create"] = RuntimeProviderError("image not found")
        with pytest.raises(ContainerRuntimeError) as exc_info:
            await create(orchestrator)
        assert exc_info.value.operation == "create"
        assert isinstance(exc_info.value.__cause__, RuntimeProviderError)
        assert await sandbox_repo.list_all() == []
        assert git.calls == []

    async def test_git_failure_removes_container_and_record(self, orchestrator, runtime, git,
                                                            sandbox_repo):
        git.fail["create_repo"] = GitProviderError("disk full")
        with pytest.raises(GitBackendError):
            await create(orchestrator)
        assert len(runtime.calls_to("delete")) == 1
        assert runtime.states == {}
        assert await sandbox_repo.list_all() == []

    async def test_git_failure_with_orphaned_container(self, orchestrator, runtime, git,
                                                       sandbox_repo, caplog):
        git.fail["create_repo"] = GitProviderError("disk full")
        runtime.fail["delete"] = RuntimeProviderError("daemon gone")
        with caplog.at_level(logging.ERROR, logger="agentpod.engine.orchestrator"):
            with pytest.raises(GitBackendError):
                await create(orchestrator)
        assert "Orphaned container" in caplog.text
        assert await sandbox_repo.list_all() == []

    async def test_clone_from_github_url(self, orchestrator, runtime, git):
        url = "https://github.com/acme/app.git"
        sandbox = await create(orchestrator, github_url=url)
        assert git.calls[0] == ("clone_repo", (url, sandbox.repo_name), {"depth": 1})
        assert git.calls_to("create_repo") == []
        assert sandbox.github_url == url
        assert sandbox.status == SandboxStatus.running
        assert runtime.specs[sandbox.id].labels["agentpod.sandbox.github"] == url

    async def test_no_github_label_without_url(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        assert sandbox.github_url is None
        assert "agentpod.sandbox.github" not in runtime.specs[sandbox.id].labels

    async def test_clone_failure_removes_container_and_record(self, orchestrator, runtime, git,
                                                              sandbox_repo):
        git.fail["clone_repo"] = GitProviderError("repository not found")
        with pytest.raises(GitBackendError) as exc_info:
            await create(orchestrator, github_url="https://github.com/acme/missing.git")
        assert "clone_repo failed" in str(exc_info.value)
        assert len(runtime.calls_to("delete")) == 1
        assert runtime.states == {}
        assert await sandbox_repo.list_all() == []

    async def test_insert_conflict_reprobes(self, orchestrator, sandbox_repo, monkeypatch):
        real_insert = sandbox_repo.insert
        attempts = []

        async def flaky_insert(sandbox):
            attempts.append(sandbox.slug)
            if len(attempts) == 1:
                return False
            return await real_insert(sandbox)

        monkeypatch.setattr(sandbox_repo, "insert", flaky_insert)
        sandbox = await create(orchestrator)
        assert len(attempts) == 2
        assert sandbox.slug == "demo"

    async def test_insert_conflict_gives_up(self, orchestrator, sandbox_repo, runtime, monkeypatch):
        async def always_conflict(sandbox):
            return False

        monkeypatch.setattr(sandbox_repo, "insert", always_conflict)
        with pytest.raises(ConflictError):
            await create(orchestrator)
        assert runtime.calls == []

    async def test_concurrent_creation_gets_distinct_slugs(self, orchestrator):
        sandboxes = await asyncio.gather(*(create(orchestrator) for _ in range(3)))
        assert sorted(s.slug for s in sandboxes) == ["demo", "demo-1", "demo-2"]


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class TestLifecycle:
    async def test_stop_passes_timeout(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        stopped = await orchestrator.stop_sandbox(sandbox.id, timeout=15)
        assert stopped.status == SandboxStatus.stopped
        assert runtime.calls_to("stop") == [((sandbox.id,), {"timeout": 15})]

    async def test_stop_timeout_unmodified(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        await orchestrator.stop_sandbox(sandbox.id, timeout=30)
        assert runtime.calls_to("stop")[0][1]["timeout"] == 30

    async def test_stop_without_timeout(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        await orchestrator.stop_sandbox(sandbox.id)
        assert runtime.calls_to("stop")[0][1]["timeout"] is None

    async def test_start_running_fails(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        with pytest.raises(PreconditionError) as exc_info:
            await orchestrator.start_sandbox(sandbox.id)
        assert isinstance(exc_info.value, InvalidTransitionError)
        assert len(runtime.calls_to("start")) == 1  # auto-start only

    async def test_start_stopped(self, orchestrator):
        sandbox = await create(orchestrator, auto_start=False)
        started = await orchestrator.start_sandbox(sandbox.id)
        assert started.status == SandboxStatus.running
        assert started.last_accessed_at is not None

    async def test_restart_passes_timeout(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        restarted = await orchestrator.restart_sandbox(sandbox.id, timeout=5)
        assert restarted.status == SandboxStatus.running
        assert runtime.calls_to("restart") == [((sandbox.id,), {"timeout": 5})]

    async def test_restart_stopped(self, orchestrator):
        sandbox = await create(orchestrator, auto_start=False)
        restarted = await orchestrator.restart_sandbox(sandbox.id)
        assert restarted.status == SandboxStatus.running

    async def test_pause_created_fails(self, orchestrator, sandbox_repo, runtime):
        sandbox_id = await insert_record(sandbox_repo)
        with pytest.raises(PreconditionError):
            await orchestrator.pause_sandbox(sandbox_id)
        assert runtime.calls == []

    async def test_pause_and_unpause(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        paused = await orchestrator.pause_sandbox(sandbox.id)
        assert paused.status == SandboxStatus.stopped
        assert runtime.states[sandbox.id] == "paused"
        resumed = await orchestrator.unpause_sandbox(sandbox.id)
        assert resumed.status == SandboxStatus.running

    async def test_unpause_running_fails(self, orchestrator):
        sandbox = await create(orchestrator)
        with pytest.raises(PreconditionError):
            await orchestrator.unpause_sandbox(sandbox.id)

    @pytest.mark.parametrize("operation", [
        "start_sandbox", "stop_sandbox", "restart_sandbox", "pause_sandbox", "unpause_sandbox",
    ])
    async def test_missing_sandbox(self, orchestrator, runtime, operation):
        with pytest.raises(NotFoundError):
            await getattr(orchestrator, operation)("does-not-exist")
        assert runtime.calls == []

    async def test_adapter_failure_keeps_status(self, orchestrator, runtime, sandbox_repo):
        sandbox = await create(orchestrator)
        runtime.fail["stop"] = RuntimeProviderError("timeout talking to daemon")
        with pytest.raises(ContainerRuntimeError) as exc_info:
            await orchestrator.stop_sandbox(sandbox.id, timeout=1)
        assert exc_info.value.sandbox_id == sandbox.id
        assert exc_info.value.operation == "stop"
        reloaded = await sandbox_repo.get_by_id(sandbox.id)
        assert reloaded.status == SandboxStatus.running

    async def test_retry_after_failure(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        runtime.fail["stop"] = RuntimeProviderError("flaky")
        with pytest.raises(ContainerRuntimeError):
            await orchestrator.stop_sandbox(sandbox.id)
        del runtime.fail["stop"]
        stopped = await orchestrator.stop_sandbox(sandbox.id)
        assert stopped.status == SandboxStatus.stopped

    async def test_missing_container_marks_error(self, orchestrator, runtime, sandbox_repo):
        sandbox = await create(orchestrator)
        del runtime.states[sandbox.id]
        with pytest.raises(ContainerRuntimeError) as exc_info:
            await orchestrator.stop_sandbox(sandbox.id)
        assert isinstance(exc_info.value.__cause__, ContainerNotFoundError)
        reloaded = await sandbox_repo.get_by_id(sandbox.id)
        assert reloaded.status == SandboxStatus.error
        assert "no container" in reloaded.error_message

    async def test_recover_from_error(self, orchestrator, runtime):
        runtime.fail["start"] = RuntimeProviderError("boom")
        sandbox = await create(orchestrator)
        assert sandbox.status == SandboxStatus.error
        del runtime.fail["start"]
        started = await orchestrator.start_sandbox(sandbox.id)
        assert started.status == SandboxStatus.running
        assert started.error_message is None

    async def test_same_sandbox_operations_serialised(self, orchestrator):
        sandbox = await create(orchestrator)
        results = await asyncio.gather(
            orchestrator.stop_sandbox(sandbox.id),
            orchestrator.stop_sandbox(sandbox.id),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], PreconditionError)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

class TestDeleteSandbox:
    async def test_missing_sandbox(self, orchestrator, runtime, git):
        with pytest.raises(NotFoundError):
            await orchestrator.delete_sandbox("does-not-exist")
        assert runtime.calls == []
        assert git.calls == []

    async def test_delete_with_volumes(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        await orchestrator.delete_sandbox(sandbox.id, remove_volumes=True)
        assert runtime.calls_to("delete") == [((sandbox.id,), {"remove_volumes": True})]
        assert await orchestrator.get_sandbox(sandbox.id) is None

    async def test_repo_kept_by_default(self, orchestrator, git):
        sandbox = await create(orchestrator)
        await orchestrator.delete_sandbox(sandbox.id)
        assert sandbox.repo_name in git.repos

    async def test_delete_repo(self, orchestrator, git):
        sandbox = await create(orchestrator)
        await orchestrator.delete_sandbox(sandbox.id, delete_repo=True)
        assert sandbox.repo_name not in git.repos

    async def test_container_already_gone(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        del runtime.states[sandbox.id]
        await orchestrator.delete_sandbox(sandbox.id)
        assert await orchestrator.get_sandbox(sandbox.id) is None

    async def test_runtime_failure_keeps_record(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        runtime.fail["delete"] = RuntimeProviderError("device busy")
        with pytest.raises(ContainerRuntimeError):
            await orchestrator.delete_sandbox(sandbox.id)
        assert await orchestrator.get_sandbox(sandbox.id) is not None

    async def test_repo_failure_is_tolerated(self, orchestrator, git):
        sandbox = await create(orchestrator)
        git.fail["delete_repo"] = GitProviderError("permission denied")
        await orchestrator.delete_sandbox(sandbox.id, delete_repo=True)
        assert await orchestrator.get_sandbox(sandbox.id) is None

    async def test_record_without_container(self, orchestrator, sandbox_repo, runtime):
        sandbox_id = await insert_record(sandbox_repo)
        await orchestrator.delete_sandbox(sandbox_id)
        assert runtime.calls == []
        assert await orchestrator.get_sandbox(sandbox_id) is None

    async def test_delete_twice(self, orchestrator):
        sandbox = await create(orchestrator)
        await orchestrator.delete_sandbox(sandbox.id)
        with pytest.raises(NotFoundError):
            await orchestrator.delete_sandbox(sandbox.id)

    async def test_unknown_ids_leave_no_locks(self, orchestrator):
        for i in range(20):
            with pytest.raises(NotFoundError):
                await orchestrator.start_sandbox(f"ghost-{i}")
            with pytest.raises(NotFoundError):
                await orchestrator.delete_sandbox(f"gone-{i}")
        assert len(orchestrator._locks) == 0

    async def test_failed_delete_leaves_no_lock(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        runtime.fail["delete"] = RuntimeProviderError("device busy")
        with pytest.raises(ContainerRuntimeError):
            await orchestrator.delete_sandbox(sandbox.id)
        assert len(orchestrator._locks) == 0
        assert len(orchestrator._user_locks) == 0


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries:
    async def test_get_missing_returns_none(self, orchestrator):
        assert await orchestrator.get_sandbox("does-not-exist") is None

    async def test_info(self, orchestrator):
        sandbox = await create(orchestrator)
        info = await orchestrator.get_sandbox_info(sandbox.id)
        assert info.sandbox.id == sandbox.id
        assert info.repository.name == sandbox.repo_name
        touched = await orchestrator.get_sandbox(sandbox.id)
        assert touched.last_accessed_at is not None

    async def test_info_without_repo(self, orchestrator, sandbox_repo, git):
        sandbox_id = await insert_record(sandbox_repo)
        info = await orchestrator.get_sandbox_info(sandbox_id)
        assert info.repository is None
        assert git.calls == []

    @pytest.mark.parametrize("query", [
        "get_sandbox_info", "get_sandbox_status", "get_sandbox_logs", "get_sandbox_stats",
    ])
    async def test_missing_sandbox(self, orchestrator, query):
        with pytest.raises(NotFoundError):
            await getattr(orchestrator, query)("does-not-exist")

    async def test_list_filter_and_semantics(self, orchestrator):
        running_u1 = await create(orchestrator, name="A", user_id="u1")
        await create(orchestrator, name="B", user_id="u1", auto_start=False)
        await create(orchestrator, name="C", user_id="u2")

        result = await orchestrator.list_sandboxes(
            SandboxFilter(user_id="u1", status=[SandboxStatus.running])
        )
        assert [s.id for s in result] == [running_u1.id]

    async def test_list_by_status_only(self, orchestrator):
        await create(orchestrator, name="A", user_id="u1")
        await create(orchestrator, name="B", user_id="u1", auto_start=False)
        await create(orchestrator, name="C", user_id="u2")
        result = await orchestrator.list_sandboxes(SandboxFilter(status=[SandboxStatus.running]))
        assert {s.name for s in result} == {"A", "C"}

    async def test_list_newest_first(self, orchestrator):
        first = await create(orchestrator, name="First")
        second = await create(orchestrator, name="Second")
        result = await orchestrator.list_sandboxes()
        assert [s.id for s in result] == [second.id, first.id]

    async def test_status(self, orchestrator):
        sandbox = await create(orchestrator)
        info = await orchestrator.get_sandbox_status(sandbox.id)
        assert info.status == SandboxStatus.running
        assert info.container_state == "running"

    async def test_status_without_container(self, orchestrator, sandbox_repo):
        sandbox_id = await insert_record(sandbox_repo)
        info = await orchestrator.get_sandbox_status(sandbox_id)
        assert info.status == SandboxStatus.created
        assert info.container_state is None

    async def test_logs_tail(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        lines = await orchestrator.get_sandbox_logs(sandbox.id, tail=2)
        assert lines == ["line 2", "line 3"]
        assert runtime.calls_to("get_logs")[0][1] == {"tail": 2}

    async def test_logs_without_container(self, orchestrator, sandbox_repo):
        sandbox_id = await insert_record(sandbox_repo)
        with pytest.raises(PreconditionError):
            await orchestrator.get_sandbox_logs(sandbox_id)

    async def test_logs_container_missing(self, orchestrator, runtime, sandbox_repo):
        sandbox = await create(orchestrator)
        del runtime.states[sandbox.id]
        with pytest.raises(ContainerRuntimeError):
            await orchestrator.get_sandbox_logs(sandbox.id)
        reloaded = await sandbox_repo.get_by_id(sandbox.id)
        assert reloaded.status == SandboxStatus.running

    async def test_stats(self, orchestrator):
        sandbox = await create(orchestrator)
        stats = await orchestrator.get_sandbox_stats(sandbox.id)
        assert stats.cpu_percent == 12.5


# ---------------------------------------------------------------------------
# Exec
# ---------------------------------------------------------------------------

class TestExec:
    async def test_empty_command_rejected_before_lookup(self, orchestrator, runtime):
        with pytest.raises(ValidationError):
            await orchestrator.exec("does-not-exist", [])
        assert runtime.calls_to("exec") == []

    async def test_empty_command_on_real_sandbox(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        with pytest.raises(ValidationError):
            await orchestrator.exec(sandbox.id, [])
        assert runtime.calls_to("exec") == []

    async def test_forwards_options(self, orchestrator, runtime):
        sandbox = await create(orchestrator)
        result = await orchestrator.exec(
            sandbox.id, ["ls", "-la"], working_dir="/tmp", env={"A": "1"}, user="root"
        )
        assert result is runtime.exec_result
        args, kwargs = runtime.calls_to("exec")[0]
        assert args == (sandbox.id, ["ls", "-la"])
        assert kwargs == {"working_dir": "/tmp", "env": {"A": "1"}, "user": "root"}

    async def test_status_unchanged(self, orchestrator):
        sandbox = await create(orchestrator)
        await orchestrator.exec(sandbox.id, ["true"])
        assert (await orchestrator.get_sandbox(sandbox.id)).status == SandboxStatus.running

    async def test_missing_sandbox(self, orchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.exec("does-not-exist", ["ls"])


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------

class TestGitOperations:
    async def test_commit_without_repo(self, orchestrator, sandbox_repo, git):
        sandbox_id = await insert_record(sandbox_repo)
        with pytest.raises(PreconditionError, match="sandbox has no repository"):
            await orchestrator.commit_changes(sandbox_id, "msg")
        assert git.calls == []

    @pytest.mark.parametrize("operation", ["get_git_status", "get_git_log"])
    async def test_queries_without_repo(self, orchestrator, sandbox_repo, operation):
        sandbox_id = await insert_record(sandbox_repo)
        with pytest.raises(PreconditionError):
            await getattr(orchestrator, operation)(sandbox_id)

    async def test_commit(self, orchestrator, git):
        sandbox = await create(orchestrator)
        author = Author(name="Ada", email="ada@example.com")
        result = await orchestrator.commit_changes(sandbox.id, "Add feature", author=author)
        assert len(result.sha) == 40
        method, args, kwargs = git.calls[-1]
        assert (method, args, kwargs) == ("commit", (sandbox.repo_name, "Add feature"),
                                          {"author": author})

    @pytest.mark.parametrize("message", ["", "   "])
    async def test_empty_commit_message(self, orchestrator, git, message):
        sandbox = await create(orchestrator)
        with pytest.raises(ValidationError):
            await orchestrator.commit_changes(sandbox.id, message)
        assert [c[0] for c in git.calls] == ["create_repo"]

    async def test_status(self, orchestrator):
        sandbox = await create(orchestrator)
        status = await orchestrator.get_git_status(sandbox.id)
        assert status.files[0].status == "untracked"

    async def test_log_limit(self, orchestrator, git):
        sandbox = await create(orchestrator)
        await orchestrator.commit_changes(sandbox.id, "second")
        log = await orchestrator.get_git_log(sandbox.id, limit=1)
        assert [c.message for c in log.commits] == ["second"]
        assert git.calls[-1] == ("get_log", (sandbox.repo_name,), {"limit": 1})

    async def test_backend_failure(self, orchestrator, git):
        sandbox = await create(orchestrator)
        git.fail["commit"] = GitProviderError("index.lock exists")
        with pytest.raises(GitBackendError) as exc_info:
            await orchestrator.commit_changes(sandbox.id, "msg")
        assert exc_info.value.sandbox_id == sandbox.id


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------

class TestRuntimeQueries:
    async def test_health_check(self, orchestrator, runtime):
        assert await orchestrator.health_check() is True
        runtime.healthy = False
        assert await orchestrator.health_check() is False

    async def test_docker_info(self, orchestrator):
        info = await orchestrator.get_docker_info()
        assert info.version == "24.0.0"
        assert info.api_version == "1.43"

    async def test_docker_info_failure(self, orchestrator, runtime):
        runtime.fail["get_info"] = RuntimeProviderError("connection refused")
        with pytest.raises(ContainerRuntimeError):
            await orchestrator.get_docker_info()

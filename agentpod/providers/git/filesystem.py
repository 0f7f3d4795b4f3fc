"""Filesystem git provider using GitPython.

Each repository is a plain working copy under ``repos_dir``.  The
directory is what the Docker runtime bind-mounts into the sandbox.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from datetime import datetime, timezone
from functools import partial
from typing import Any

import git as gitpython  # GitPython
from git.exc import GitError

from agentpod.providers.base import HealthStatus
from agentpod.providers.git.base import (
    Author,
    CommitInfo,
    CommitResult,
    FileStatus,
    GitLog,
    GitProvider,
    GitProviderError,
    GitStatus,
    Repository,
    RepositoryNotFoundError,
)

logger = logging.getLogger(__name__)

DEFAULT_GITIGNORE = """\
# Dependencies
node_modules/
.venv/
__pycache__/

# Build outputs
dist/
build/

# Environment files
.env
.env.local

# IDE
.idea/
.vscode/
*.swp

# OS
.DS_Store
Thumbs.db
"""


def _status_of(code: str) -> str:
    """Map a two-letter porcelain status code to a single status word."""
    if code == "??":
        return "untracked"
    if "D" in code:
        return "deleted"
    if "A" in code:
        return "added"
    return "modified"


class FileSystemGitProvider(GitProvider):
    """Local git repositories managed with GitPython.

    Config keys:

    - ``repos_dir`` -- directory holding all repositories (default ``./repos``).
    - ``default_branch`` -- initial branch name (default ``main``).
    - ``default_author`` -- ``{name, email}`` used when a commit names none.
    """

    def __init__(self, config: dict[str, Any] | None = None) -> None:
        super().__init__(config)
        self.repos_dir: str = os.path.abspath(self.config.get("repos_dir", "./repos"))
        self.default_branch: str = self.config.get("default_branch", "main")
        author = self.config.get("default_author") or {}
        self.default_author = Author(
            name=author.get("name", "AgentPod"),
            email=author.get("email", "agentpod@localhost"),
        )

    async def initialize(self) -> None:
        os.makedirs(self.repos_dir, exist_ok=True)
        logger.info("Git repositories stored in %s", self.repos_dir)

    async def health_check(self) -> HealthStatus:
        if os.path.isdir(self.repos_dir) and os.access(self.repos_dir, os.W_OK):
            return HealthStatus(healthy=True, message=self.repos_dir)
        return HealthStatus(healthy=False, message=f"{self.repos_dir} is not writable")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking function in the default executor."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, partial(func, *args, **kwargs))

    def repo_path(self, name: str) -> str:
        if not name or os.sep in name or name in (".", ".."):
            raise GitProviderError(f"Invalid repository name: {name!r}")
        return os.path.join(self.repos_dir, name)

    def _open(self, name: str) -> gitpython.Repo:
        path = self.repo_path(name)
        if not os.path.isdir(os.path.join(path, ".git")):
            raise RepositoryNotFoundError(f"Repository '{name}' not found")
        return gitpython.Repo(path)

    def _describe(self, name: str, repo: gitpython.Repo) -> Repository:
        try:
            current = repo.active_branch.name
        except TypeError:
            # Detached HEAD
            current = None
        description = None
        desc_path = os.path.join(repo.git_dir, "description")
        if os.path.isfile(desc_path):
            with open(desc_path, encoding="utf-8") as f:
                text = f.read().strip()
            if text and not text.startswith("Unnamed repository"):
                description = text
        return Repository(
            name=name,
            path=repo.working_tree_dir,
            default_branch=self.default_branch,
            current_branch=current,
            description=description,
            is_dirty=repo.is_dirty(untracked_files=True),
            created_at=datetime.fromtimestamp(
                os.stat(repo.git_dir).st_ctime, tz=timezone.utc
            ),
        )

    def _remove_partial(self, path: str) -> None:
        shutil.rmtree(path, ignore_errors=True)
        logger.warning("Removed partially created repository at %s", path)

    async def _git(self, name: str, func: Any, *args: Any) -> Any:
        try:
            return await self._run_sync(func, *args)
        except GitProviderError:
            raise
        except (GitError, OSError) as e:
            raise GitProviderError(f"git operation on '{name}' failed: {e}") from e

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    async def create_repo(self, name: str, description: str | None = None) -> Repository:
        path = self.repo_path(name)
        branch = self.default_branch
        author = self.default_author

        def _create() -> Repository:
            if os.path.exists(path):
                raise GitProviderError(f"Repository '{name}' already exists")
            repo = gitpython.Repo.init(path, mkdir=True)
            try:
                repo.git.symbolic_ref("HEAD", f"refs/heads/{branch}")
                if description:
                    with open(os.path.join(repo.git_dir, "description"), "w",
                              encoding="utf-8") as f:
                        f.write(description)
                readme = f"# {name}\n\n{description or 'A new AgentPod project.'}\n"
                with open(os.path.join(path, "README.md"), "w", encoding="utf-8") as f:
                    f.write(readme)
                with open(os.path.join(path, ".gitignore"), "w", encoding="utf-8") as f:
                    f.write(DEFAULT_GITIGNORE)
                repo.git.add("-A")
                actor = gitpython.Actor(author.name, author.email)
                repo.index.commit("Initial commit", author=actor, committer=actor)
                return self._describe(name, repo)
            except Exception:
                repo.close()
                self._remove_partial(path)
                raise

        repository = await self._git(name, _create)
        logger.info("Created repository %s at %s", name, path)
        return repository

    async def clone_repo(self, url: str, name: str, depth: int | None = 1) -> Repository:
        path = self.repo_path(name)

        def _clone() -> Repository:
            if os.path.exists(path):
                raise GitProviderError(f"Repository '{name}' already exists")
            kwargs: dict[str, Any] = {}
            if depth:
                kwargs["depth"] = depth
            try:
                repo = gitpython.Repo.clone_from(url, path, **kwargs)
                return self._describe(name, repo)
            except Exception:
                self._remove_partial(path)
                raise

        repository = await self._git(name, _clone)
        logger.info("Cloned %s into %s (depth=%s)", url, path, depth)
        return repository

    async def delete_repo(self, name: str) -> None:
        path = self.repo_path(name)

        def _delete() -> None:
            if not os.path.isdir(path):
                raise RepositoryNotFoundError(f"Repository '{name}' not found")
            shutil.rmtree(path)

        await self._git(name, _delete)
        logger.info("Deleted repository %s", name)

    async def get_repo(self, name: str) -> Repository | None:
        def _get() -> Repository | None:
            try:
                repo = self._open(name)
            except RepositoryNotFoundError:
                return None
            return self._describe(name, repo)

        return await self._git(name, _get)

    # ------------------------------------------------------------------
    # Commits, status, log
    # ------------------------------------------------------------------

    async def commit(
        self, repo_name: str, message: str, author: Author | None = None
    ) -> CommitResult:
        who = author or self.default_author

        def _commit() -> CommitResult:
            repo = self._open(repo_name)
            repo.git.add("-A")
            actor = gitpython.Actor(who.name, who.email)
            commit = repo.index.commit(message, author=actor, committer=actor)
            return CommitResult(sha=commit.hexsha)

        result = await self._git(repo_name, _commit)
        logger.info("Committed %s in %s", result.sha[:8], repo_name)
        return result

    async def get_status(self, repo_name: str) -> GitStatus:
        def _status() -> GitStatus:
            repo = self._open(repo_name)
            output = repo.git.status("--porcelain", "--untracked-files=all")
            files = []
            for line in output.splitlines():
                if len(line) < 4:
                    continue
                code, path = line[:2], line[3:]
                if " -> " in path:
                    path = path.split(" -> ", 1)[1]
                files.append(FileStatus(path=path.strip('"'), status=_status_of(code)))
            return GitStatus(files=files)

        return await self._git(repo_name, _status)

    async def get_log(self, repo_name: str, limit: int | None = None) -> GitLog:
        def _log() -> GitLog:
            repo = self._open(repo_name)
            if not repo.head.is_valid():
                return GitLog()
            commits = [
                CommitInfo(
                    sha=c.hexsha,
                    message=c.message.strip(),
                    author_name=c.author.name,
                    author_email=c.author.email,
                    date=c.authored_datetime,
                )
                for c in repo.iter_commits("HEAD", max_count=limit)
            ]
            return GitLog(commits=commits)

        return await self._git(repo_name, _log)

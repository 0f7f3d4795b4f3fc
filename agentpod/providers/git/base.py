"""Abstract base class for git backend providers."""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import datetime

from agentpod.providers.base import Provider, ProviderError


class GitProviderError(ProviderError):
    """A git backend call failed."""


class RepositoryNotFoundError(GitProviderError):
    """The named repository does not exist."""


@dataclass
class Author:
    name: str
    email: str


@dataclass
class Repository:
    """Descriptor of a repository held by the git backend."""

    name: str
    path: str
    default_branch: str = "main"
    current_branch: str | None = None
    description: str | None = None
    is_dirty: bool = False
    created_at: datetime | None = None


@dataclass
class CommitResult:
    sha: str


@dataclass
class FileStatus:
    path: str
    status: str  # added | modified | deleted | untracked


@dataclass
class GitStatus:
    files: list[FileStatus] = field(default_factory=list)


@dataclass
class CommitInfo:
    sha: str
    message: str
    author_name: str
    author_email: str
    date: datetime | None = None


@dataclass
class GitLog:
    commits: list[CommitInfo] = field(default_factory=list)


class GitProvider(Provider):
    """Interface to the repositories paired with sandboxes.

    Repositories are addressed by name; where they live is the
    implementation's business.
    """

    @abstractmethod
    async def create_repo(self, name: str, description: str | None = None) -> Repository:
        """Create and initialise repository *name*."""

    @abstractmethod
    async def clone_repo(self, url: str, name: str, depth: int | None = 1) -> Repository:
        """Clone *url* into repository *name*; ``depth=None`` clones full history.

        Nothing is left behind when the clone fails.
        """

    @abstractmethod
    async def delete_repo(self, name: str) -> None:
        """Remove repository *name* and all its contents."""

    @abstractmethod
    async def get_repo(self, name: str) -> Repository | None:
        """Return the descriptor of *name*, or ``None`` if it does not exist."""

    @abstractmethod
    async def commit(
        self, repo_name: str, message: str, author: Author | None = None
    ) -> CommitResult:
        """Stage all changes and commit them."""

    @abstractmethod
    async def get_status(self, repo_name: str) -> GitStatus:
        """Return working tree changes."""

    @abstractmethod
    async def get_log(self, repo_name: str, limit: int | None = None) -> GitLog:
        """Return commits reachable from HEAD, newest first."""

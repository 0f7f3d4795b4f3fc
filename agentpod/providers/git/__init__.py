"""Git backend port."""

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

__all__ = [
    "Author",
    "CommitInfo",
    "CommitResult",
    "FileStatus",
    "GitLog",
    "GitProvider",
    "GitProviderError",
    "GitStatus",
    "Repository",
    "RepositoryNotFoundError",
]

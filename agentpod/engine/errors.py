"""Errors raised by the sandbox orchestrator.

Every error carries the sandbox id and the operation when known, so
callers can report them without parsing messages.
"""

from __future__ import annotations


class SandboxError(Exception):
    """Base exception for orchestrator-level errors."""

    def __init__(
        self,
        message: str,
        *,
        sandbox_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.sandbox_id = sandbox_id
        self.operation = operation


class NotFoundError(SandboxError, LookupError):
    """The sandbox (or a referenced entity) does not exist."""


class ValidationError(SandboxError, ValueError):
    """Input failed validation before any side effect."""


class ConflictError(SandboxError):
    """A uniqueness constraint could not be satisfied."""


class PreconditionError(SandboxError):
    """The sandbox is not in a state that allows the operation."""


class CatalogReferenceError(ValidationError, NotFoundError):
    """A tier, flavor or addon reference is unknown or unusable."""


class ContainerRuntimeError(SandboxError):
    """The container runtime failed."""


class GitBackendError(SandboxError):
    """The git backend failed."""

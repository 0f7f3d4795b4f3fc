"""Sandbox orchestration engine."""

from agentpod.engine.errors import (
    CatalogReferenceError,
    ConflictError,
    ContainerRuntimeError,
    GitBackendError,
    NotFoundError,
    PreconditionError,
    SandboxError,
    ValidationError,
)
from agentpod.engine.orchestrator import SandboxOrchestrator
from agentpod.engine.state_machine import InvalidTransitionError, StateMachine

__all__ = [
    "CatalogReferenceError",
    "ConflictError",
    "ContainerRuntimeError",
    "GitBackendError",
    "InvalidTransitionError",
    "NotFoundError",
    "PreconditionError",
    "SandboxError",
    "SandboxOrchestrator",
    "StateMachine",
    "ValidationError",
]

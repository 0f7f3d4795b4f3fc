"""FastAPI dependency injection helpers for AgentPod."""

from __future__ import annotations

from agentpod.engine.orchestrator import SandboxOrchestrator

# ---------------------------------------------------------------------------
# Orchestrator singleton
# ---------------------------------------------------------------------------

_orchestrator: SandboxOrchestrator | None = None


def init_orchestrator(orchestrator: SandboxOrchestrator | None) -> SandboxOrchestrator | None:
    """Store (or clear, with ``None``) the global orchestrator instance."""
    global _orchestrator
    _orchestrator = orchestrator
    return _orchestrator


def get_orchestrator() -> SandboxOrchestrator:
    """FastAPI dependency that returns the orchestrator singleton.

    Raises
    ------
    RuntimeError
        If the orchestrator has not been initialised yet (i.e.
        :func:`init_orchestrator` was never called during startup).
    """
    if _orchestrator is None:
        raise RuntimeError(
            "Orchestrator not initialised. "
            "Call init_orchestrator() during app startup."
        )
    return _orchestrator

"""State machine for sandbox lifecycle operations.

Transitions are keyed by operation rather than by target status, since
two operations (``stop`` and ``pause``) currently land in the same
status.  The check runs before any adapter call or database write.
"""

from __future__ import annotations

from agentpod.db.models import SandboxStatus
from agentpod.engine.errors import PreconditionError


class InvalidTransitionError(PreconditionError):
    """Raised when an operation is not allowed from the current status."""

    def __init__(
        self,
        current: SandboxStatus,
        operation: str,
        sandbox_id: str | None = None,
    ) -> None:
        self.current = current
        super().__init__(
            f"Cannot {operation} sandbox in status '{current.value}'",
            sandbox_id=sandbox_id,
            operation=operation,
        )


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

# operation -> (allowed source statuses, resulting status)
VALID_TRANSITIONS: dict[str, tuple[frozenset[SandboxStatus], SandboxStatus]] = {
    "start": (
        frozenset({SandboxStatus.stopped, SandboxStatus.error}),
        SandboxStatus.running,
    ),
    "stop": (
        frozenset({SandboxStatus.running}),
        SandboxStatus.stopped,
    ),
    "restart": (
        frozenset({SandboxStatus.running, SandboxStatus.stopped, SandboxStatus.error}),
        SandboxStatus.running,
    ),
    # A paused container is recorded as stopped.
    "pause": (
        frozenset({SandboxStatus.running}),
        SandboxStatus.stopped,
    ),
    "unpause": (
        frozenset({SandboxStatus.stopped}),
        SandboxStatus.running,
    ),
}


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class StateMachine:
    """Enforces valid sandbox lifecycle transitions.

    Usage::

        sm = StateMachine()
        sm.transition(SandboxStatus.stopped, "start")   # -> running
        sm.transition(SandboxStatus.running, "start")   # raises
    """

    def transition(
        self,
        current: SandboxStatus,
        operation: str,
        sandbox_id: str | None = None,
    ) -> SandboxStatus:
        """Return the status *operation* leads to from *current*.

        Raises
        ------
        InvalidTransitionError
            If *operation* is not allowed from *current*.
        KeyError
            If *operation* is not a lifecycle operation.
        """
        allowed, target = VALID_TRANSITIONS[operation]
        if current not in allowed:
            raise InvalidTransitionError(current, operation, sandbox_id)
        return target

    def can_transition(self, current: SandboxStatus, operation: str) -> bool:
        """Return ``True`` if *operation* is allowed from *current*."""
        entry = VALID_TRANSITIONS.get(operation)
        return entry is not None and current in entry[0]

    def available_operations(self, current: SandboxStatus) -> list[str]:
        """Return the lifecycle operations allowed from *current*."""
        return [op for op, (allowed, _) in VALID_TRANSITIONS.items() if current in allowed]

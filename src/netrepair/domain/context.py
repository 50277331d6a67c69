"""The diagnostic context entity.

``DiagnosticContext`` is the single mutable record owned by one
diagnose/repair session.  It is created fresh per invocation, passed by
reference into every operation, and mutated only by
:func:`netrepair.services.state_machine.apply_transition`.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Any

from .enums import FAILURE_STATES, DiagnosticCategory, NetworkState

MAX_REPAIR_ATTEMPTS = 3


def has_problem(state: NetworkState) -> bool:
    """True when *state* is one of the diagnosed failure states."""
    return state in FAILURE_STATES


def can_repair(context: DiagnosticContext) -> bool:
    """Pure query: may a new repair cycle start from *context*?"""
    return (
        has_problem(context.current_state)
        and context.current_state
        not in (NetworkState.REPAIRING, NetworkState.REPAIR_FAILED)
        and context.repair_attempts < MAX_REPAIR_ATTEMPTS
    )


@dataclass
class DiagnosticContext:
    """Session state of the control loop.

    Invariant: ``0 <= repair_attempts <= MAX_REPAIR_ATTEMPTS``.  Only a
    ``RESET`` brings ``repair_attempts`` back to zero.

    The ``lock`` is held by the repair orchestrator for the duration of a
    cycle so two cycles can never interleave on the same context.
    """

    session_id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    current_state: NetworkState = NetworkState.UNKNOWN
    previous_state: NetworkState = NetworkState.UNKNOWN
    dns_server_count: int = 0
    has_route: bool = False
    has_carrier: bool = False
    has_internet: bool = False
    repair_attempts: int = 0
    unknown_categories: frozenset[DiagnosticCategory] = frozenset()
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    @property
    def max_repair_attempts(self) -> int:
        return MAX_REPAIR_ATTEMPTS

    @property
    def has_problem(self) -> bool:
        return has_problem(self.current_state)

    @property
    def is_terminal(self) -> bool:
        return self.current_state == NetworkState.REPAIR_FAILED

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view of the context (the lock is omitted)."""
        return {
            "session_id": self.session_id,
            "current_state": self.current_state.value,
            "previous_state": self.previous_state.value,
            "dns_server_count": self.dns_server_count,
            "has_route": self.has_route,
            "has_carrier": self.has_carrier,
            "has_internet": self.has_internet,
            "repair_attempts": self.repair_attempts,
            "max_repair_attempts": MAX_REPAIR_ATTEMPTS,
            "unknown_categories": sorted(c.value for c in self.unknown_categories),
        }

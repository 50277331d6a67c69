"""Domain events for the netrepair control loop.

Every event is a frozen dataclass inheriting from ``DomainEvent``.  The state
machine, backup store and orchestrator emit events; listeners (the event
store, the console, the session report) react.

All events carry a ``timestamp`` and a ``source_id`` identifying the
originating session or component.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from .enums import (
    CategoryStatus,
    DiagnosticCategory,
    NetworkState,
    RepairOutcome,
    Trigger,
)
from .values import BackupRecord, DiagnosticResult

# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    timestamp: float = field(default_factory=time.time)
    source_id: str = ""


# ---------------------------------------------------------------------------
# State machine events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StateChanged(DomainEvent):
    """A trigger was accepted and the context moved (or stayed) accordingly."""

    trigger: Trigger = Trigger.RESET
    previous_state: NetworkState = NetworkState.UNKNOWN
    new_state: NetworkState = NetworkState.UNKNOWN
    repair_attempts: int = 0


@dataclass(frozen=True)
class TransitionRejected(DomainEvent):
    """A trigger was not legal in the current state and was ignored."""

    trigger: Trigger = Trigger.RESET
    state: NetworkState = NetworkState.UNKNOWN


@dataclass(frozen=True)
class DiagnosisCompleted(DomainEvent):
    """All probe results were folded and the context classified."""

    state: NetworkState = NetworkState.UNKNOWN
    results: tuple[DiagnosticResult, ...] = ()


# ---------------------------------------------------------------------------
# Backup events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BackupCreated(DomainEvent):
    """A file was snapshotted before mutation."""

    record: BackupRecord | None = None


@dataclass(frozen=True)
class BackupRestored(DomainEvent):
    """A snapshot was copied back over its target."""

    record: BackupRecord | None = None


# ---------------------------------------------------------------------------
# Repair events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RepairActionCompleted(DomainEvent):
    """One category's repair step finished."""

    category: DiagnosticCategory = DiagnosticCategory.CONNECTIVITY
    status: CategoryStatus = CategoryStatus.SKIPPED
    detail: str = ""


@dataclass(frozen=True)
class RepairCycleCompleted(DomainEvent):
    """A repair cycle finished (in any outcome)."""

    outcome: RepairOutcome = RepairOutcome.FAILED
    attempt: int = 0
    elapsed_ms: float = 0.0

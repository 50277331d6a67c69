"""Domain layer for the netrepair control loop.

Re-exports all public domain types so that consumers can write::

    from netrepair.domain import DiagnosticContext, NetworkState, Trigger
"""

# -- Enumerations -------------------------------------------------------------
from .enums import (
    FAILURE_STATES,
    REPAIR_ORDER,
    CategoryStatus,
    DiagnosticCategory,
    ExitCode,
    NetworkState,
    RepairOutcome,
    Trigger,
)

# -- Value Objects ------------------------------------------------------------
from .values import (
    ActionResult,
    BackupRecord,
    CategoryReport,
    DiagnosticResult,
    RepairReport,
    SafetyDecision,
)

# -- Entities -----------------------------------------------------------------
from .context import MAX_REPAIR_ATTEMPTS, DiagnosticContext, can_repair, has_problem

# -- Domain Events ------------------------------------------------------------
from .events import (
    BackupCreated,
    BackupRestored,
    DiagnosisCompleted,
    DomainEvent,
    RepairActionCompleted,
    RepairCycleCompleted,
    StateChanged,
    TransitionRejected,
)

# -- Exceptions ---------------------------------------------------------------
from .exceptions import (
    CommandError,
    CommandTimeoutError,
    CommandUnavailableError,
    ConcurrentRepairError,
    InvariantViolation,
    NetRepairError,
    PrivilegeError,
    ProbeError,
    RepairCancelled,
    RepairNotPermittedError,
    RepairsBlockedError,
    RestoreError,
    SnapshotError,
)

__all__ = [
    # enums
    "FAILURE_STATES",
    "REPAIR_ORDER",
    "CategoryStatus",
    "DiagnosticCategory",
    "ExitCode",
    "NetworkState",
    "RepairOutcome",
    "Trigger",
    # values
    "ActionResult",
    "BackupRecord",
    "CategoryReport",
    "DiagnosticResult",
    "RepairReport",
    "SafetyDecision",
    # entities
    "MAX_REPAIR_ATTEMPTS",
    "DiagnosticContext",
    "can_repair",
    "has_problem",
    # events
    "BackupCreated",
    "BackupRestored",
    "DiagnosisCompleted",
    "DomainEvent",
    "RepairActionCompleted",
    "RepairCycleCompleted",
    "StateChanged",
    "TransitionRejected",
    # exceptions
    "CommandError",
    "CommandTimeoutError",
    "CommandUnavailableError",
    "ConcurrentRepairError",
    "InvariantViolation",
    "NetRepairError",
    "PrivilegeError",
    "ProbeError",
    "RepairCancelled",
    "RepairNotPermittedError",
    "RepairsBlockedError",
    "RestoreError",
    "SnapshotError",
]

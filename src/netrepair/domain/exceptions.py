"""Domain exceptions for the netrepair control loop.

All domain-specific exceptions inherit from ``NetRepairError`` so callers can
catch the full family with a single ``except`` clause when needed.

Fatal conditions (``PrivilegeError``, ``RepairsBlockedError``) abort a cycle
before any state mutation.  Category-level failures (``CommandTimeoutError``,
``CommandError``, ``SnapshotError``) are absorbed by the orchestrator.
"""

from __future__ import annotations

from typing import Any


class NetRepairError(Exception):
    """Base exception for all netrepair errors."""

    def __init__(self, message: str = "", details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = details or {}


class InvariantViolation(NetRepairError):
    """Raised when a state-machine invariant does not hold around a transition."""

    def __init__(
        self,
        message: str = "State machine invariant violated",
        invariant: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.invariant = invariant


class RepairsBlockedError(NetRepairError):
    """Raised when a repair cycle is requested without ``apply_fixes`` consent."""

    def __init__(
        self,
        message: str = "Repairs blocked: --apply-fixes is required",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)


class RepairNotPermittedError(NetRepairError):
    """Raised when ``can_repair`` is false for the context handed to a cycle."""

    def __init__(
        self,
        message: str = "Repair not permitted in the current state",
        state: str = "",
        repair_attempts: int = 0,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.state = state
        self.repair_attempts = repair_attempts


class ConcurrentRepairError(NetRepairError):
    """Raised when a second cycle tries to run against a context already in use."""


class PrivilegeError(NetRepairError):
    """Raised when repairs need root privileges that are not available."""


class RepairCancelled(NetRepairError):
    """Raised after a cancelled cycle has restored its backups."""

    def __init__(
        self,
        message: str = "Repair cycle cancelled",
        restored: int = 0,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.restored = restored


class SnapshotError(NetRepairError):
    """Raised when a file cannot be backed up before mutation."""

    def __init__(
        self,
        message: str = "Snapshot failed",
        target_path: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.target_path = target_path


class RestoreError(NetRepairError):
    """Raised when a snapshot cannot be copied back over its target."""

    def __init__(
        self,
        message: str = "Restore failed",
        snapshot_path: str = "",
        target_path: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.snapshot_path = snapshot_path
        self.target_path = target_path


class CommandError(NetRepairError):
    """Raised when an external command cannot be executed."""

    def __init__(
        self,
        message: str = "Command failed",
        cmd: tuple[str, ...] = (),
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.cmd = cmd


class CommandUnavailableError(CommandError):
    """The executable is not installed; the caller should skip, not fail."""


class CommandTimeoutError(CommandError):
    """The command exceeded its timeout; treated as a category failure."""

    def __init__(
        self,
        message: str = "Command timed out",
        cmd: tuple[str, ...] = (),
        timeout: float = 0.0,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, cmd, details)
        self.timeout = timeout


class ProbeError(NetRepairError):
    """A probe could not run; its category is reported as unknown."""

    def __init__(
        self,
        message: str = "Probe could not run",
        category: str = "",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.category = category

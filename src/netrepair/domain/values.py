"""Value objects for the netrepair control loop.

All types here are frozen dataclasses -- immutable, compared by value.
They represent probe results, backup references, safety decisions and
repair reports that have no identity beyond their content.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .enums import CategoryStatus, DiagnosticCategory, NetworkState, RepairOutcome

# ---------------------------------------------------------------------------
# DiagnosticResult
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DiagnosticResult:
    """Outcome of one probe for one category.

    ``unknown`` marks a probe that could not run at all (missing tool,
    timeout).  Unknown results are excluded from classification instead of
    being treated as failures.
    """

    category: DiagnosticCategory
    passed: bool
    detail: str = ""
    unknown: bool = False
    dns_server_count: int = 0  # only meaningful for DNS
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.dns_server_count < 0:
            raise ValueError(
                f"dns_server_count must be >= 0, got {self.dns_server_count}"
            )
        if self.unknown and self.passed:
            raise ValueError("an unknown result cannot also be passed")

    @classmethod
    def unknown_result(cls, category: DiagnosticCategory, detail: str) -> DiagnosticResult:
        """Build the result for a probe that could not run."""
        return cls(category=category, passed=False, detail=detail, unknown=True)

    @property
    def label(self) -> str:
        """Short PASS/FAIL/UNKNOWN label."""
        if self.unknown:
            return "UNKNOWN"
        return "PASS" if self.passed else "FAIL"


# ---------------------------------------------------------------------------
# BackupRecord
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BackupRecord:
    """Reference to a saved copy of a file taken before it was mutated.

    ``existed`` is false when the target was absent at snapshot time; such a
    record has no ``snapshot_path`` and restoring it removes the target.
    """

    target_path: str
    snapshot_path: str
    created_at: float = field(default_factory=time.time)
    existed: bool = True


# ---------------------------------------------------------------------------
# SafetyDecision
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SafetyDecision:
    """Consent and dry-run decision, derived once per invocation.

    ``dry_run`` wins over ``apply_fixes``: a dry run never touches the
    filesystem.
    """

    dry_run: bool = False
    apply_fixes: bool = False

    @property
    def may_mutate(self) -> bool:
        """True when real mutations are allowed."""
        return self.apply_fixes and not self.dry_run

    @property
    def blocked(self) -> bool:
        """True when a repair cycle must refuse to run at all."""
        return not self.apply_fixes and not self.dry_run


# ---------------------------------------------------------------------------
# Action / report values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ActionResult:
    """What a repair action reports back after running."""

    success: bool
    detail: str = ""
    affected_paths: tuple[str, ...] = ()


@dataclass(frozen=True)
class CategoryReport:
    """One category's contribution to a repair cycle."""

    category: DiagnosticCategory
    status: CategoryStatus
    detail: str = ""
    backups: tuple[BackupRecord, ...] = ()
    planned: tuple[str, ...] = ()  # human-readable intended changes

    @property
    def succeeded(self) -> bool:
        return self.status == CategoryStatus.SUCCEEDED


@dataclass(frozen=True)
class RepairReport:
    """Aggregate result of one ``run_repair_cycle`` call."""

    outcome: RepairOutcome
    starting_state: NetworkState
    categories: tuple[CategoryReport, ...] = ()
    final_check: DiagnosticResult | None = None
    attempt: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: float = 0.0
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def backups(self) -> tuple[BackupRecord, ...]:
        """Every BackupRecord taken during the cycle."""
        return tuple(b for c in self.categories for b in c.backups)

    @property
    def planned_changes(self) -> tuple[str, ...]:
        """Intended changes across all categories (dry-run report)."""
        return tuple(p for c in self.categories for p in c.planned)

    def status_of(self, category: DiagnosticCategory) -> CategoryStatus | None:
        """Return the status recorded for *category*, or ``None``."""
        for c in self.categories:
            if c.category == category:
                return c.status
        return None

"""Safety gate: turns explicit user flags into a :class:`SafetyDecision`.

The decision is derived once per invocation and handed to the orchestrator;
``SafetyDecision`` is frozen so nothing can flip it while a cycle runs.
Absence of ``--apply-fixes`` is the safe default.
"""

from __future__ import annotations

from dataclasses import dataclass

from netrepair.domain.values import SafetyDecision


@dataclass(frozen=True)
class SafetyFlags:
    """Raw flags as given on the command line or by a caller."""

    dry_run: bool = False
    apply_fixes: bool = False
    diagnose_only: bool = False


def evaluate(flags: SafetyFlags) -> SafetyDecision:
    """Derive the session's decision from *flags*.  No side effects.

    ``diagnose_only`` forces both ``apply_fixes`` and ``dry_run`` off,
    which leaves repairs blocked.
    """
    return SafetyDecision(
        dry_run=flags.dry_run and not flags.diagnose_only,
        apply_fixes=flags.apply_fixes and not flags.diagnose_only,
    )


def describe(decision: SafetyDecision) -> str:
    """One-line description of the mode the decision puts the tool in."""
    if decision.dry_run:
        return "DRY-RUN MODE - showing what would be done (no changes)"
    if decision.apply_fixes:
        return "REPAIR MODE ENABLED - changes will be applied to your system"
    return "SAFE MODE (read-only) - running diagnostics only"

"""Verification loop: diagnose, repair, re-diagnose until a stop condition.

Classes
-------
StopReason
    Why the loop terminated.
LoopResult
    Dataclass capturing the outcome of a loop run.
VerificationLoop
    The bounded diagnose/repair loop.

The loop keeps no counter of its own.  Termination comes from the context:
every repair cycle increments ``repair_attempts`` and ``can_repair`` turns
false at the bound, so at most ``MAX_REPAIR_ATTEMPTS + 1`` diagnostic
rounds can run.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Collection
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from netrepair.domain.context import DiagnosticContext
from netrepair.domain.enums import (
    DiagnosticCategory,
    ExitCode,
    NetworkState,
    RepairOutcome,
    Trigger,
)
from netrepair.domain.exceptions import RepairCancelled, RepairsBlockedError
from netrepair.domain.values import DiagnosticResult, RepairReport, SafetyDecision
from netrepair.infrastructure.event_bus import EventBus
from netrepair.services.orchestrator import RepairOrchestrator
from netrepair.services.probes import ProbeSuite, fold_results
from netrepair.services.state_machine import StateMachine

logger = logging.getLogger(__name__)


# ===================================================================== #
#  Stop Reason Enum                                                      #
# ===================================================================== #


class StopReason(Enum):
    """Reason the verification loop terminated."""

    HEALTHY = "healthy"
    DIAGNOSE_ONLY = "diagnose_only"
    NOT_REPAIRABLE = "not_repairable"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    REPAIR_FAILED = "repair_failed"
    BLOCKED = "blocked"
    DRY_RUN = "dry_run"
    CANCELLED = "cancelled"


def exit_code_for(state: NetworkState) -> ExitCode:
    """Process exit code for a final *state*."""
    if state == NetworkState.HEALTHY:
        return ExitCode.HEALTHY
    if state == NetworkState.REPAIR_FAILED:
        return ExitCode.REPAIR_FAILED
    return ExitCode.UNHEALTHY


# ===================================================================== #
#  Loop Result                                                           #
# ===================================================================== #


@dataclass
class LoopResult:
    """Captures the outcome of a verification loop run.

    Attributes
    ----------
    final_state:
        Context state when the loop stopped.
    repair_attempts:
        Repair attempts recorded on the context.
    rounds:
        Probe results of every diagnostic round, oldest first.
    reports:
        Every repair report, oldest first.
    stopped_reason:
        Why the loop terminated.
    exit_code:
        Process exit code derived from the final state.
    elapsed_seconds:
        Wall-clock time of the run.
    """

    final_state: NetworkState = NetworkState.UNKNOWN
    repair_attempts: int = 0
    rounds: list[tuple[DiagnosticResult, ...]] = field(default_factory=list)
    reports: list[RepairReport] = field(default_factory=list)
    stopped_reason: StopReason = StopReason.DIAGNOSE_ONLY
    exit_code: ExitCode = ExitCode.UNHEALTHY
    elapsed_seconds: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def last_round(self) -> tuple[DiagnosticResult, ...]:
        return self.rounds[-1] if self.rounds else ()


# ===================================================================== #
#  Verification Loop                                                     #
# ===================================================================== #


class VerificationLoop:
    """Runs diagnose/repair rounds against one context.

    Parameters
    ----------
    probe_suite:
        Probes for each diagnostic round.
    orchestrator:
        Runs repair cycles.  ``None`` makes the loop diagnose-only.
    event_bus:
        Optional bus for state events.
    cancel_event:
        Checked between rounds; shared with the orchestrator by default.
    """

    def __init__(
        self,
        probe_suite: ProbeSuite,
        orchestrator: RepairOrchestrator | None = None,
        event_bus: EventBus | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._probes = probe_suite
        self._orchestrator = orchestrator
        self._event_bus = event_bus
        if cancel_event is None:
            cancel_event = (
                orchestrator.cancel_event if orchestrator is not None else threading.Event()
            )
        self._cancel_event = cancel_event

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    def diagnose(self, context: DiagnosticContext) -> tuple[DiagnosticResult, ...]:
        """Run one diagnostic round and classify the context.

        Returns an empty tuple when ``START_DIAGNOSIS`` is not legal
        (the terminal ``REPAIR_FAILED`` state).
        """
        machine = StateMachine(context, self._event_bus)
        if not machine.fire(Trigger.START_DIAGNOSIS):
            return ()
        results = self._probes.run_all()
        fold_results(machine, results)
        logger.info(
            "Diagnosis: %s (%s)",
            context.current_state.value,
            ", ".join(f"{r.category.value}={r.label}" for r in results),
        )
        return results

    def run(
        self,
        context: DiagnosticContext,
        safety: SafetyDecision,
        repair: bool = True,
        only: Collection[DiagnosticCategory] | None = None,
    ) -> LoopResult:
        """Diagnose, then repair and re-diagnose while the context allows.

        *only* restricts every repair cycle to those categories.
        """
        start = time.monotonic()
        result = LoopResult()
        orchestrator = self._orchestrator if repair else None

        while True:
            if self._cancel_event.is_set():
                result.stopped_reason = StopReason.CANCELLED
                break

            if context.is_terminal:
                result.stopped_reason = StopReason.REPAIR_FAILED
                break
            result.rounds.append(self.diagnose(context))

            if context.current_state == NetworkState.HEALTHY:
                result.stopped_reason = StopReason.HEALTHY
                break
            if orchestrator is None:
                result.stopped_reason = StopReason.DIAGNOSE_ONLY
                break
            if not context.has_problem:
                result.stopped_reason = StopReason.NOT_REPAIRABLE
                break
            if context.repair_attempts >= context.max_repair_attempts:
                result.stopped_reason = StopReason.ATTEMPTS_EXHAUSTED
                break

            try:
                report = orchestrator.run_repair_cycle(context, safety, only=only)
            except RepairsBlockedError as exc:
                logger.warning("%s", exc)
                result.stopped_reason = StopReason.BLOCKED
                break
            except RepairCancelled as exc:
                logger.warning("%s", exc)
                result.stopped_reason = StopReason.CANCELLED
                break
            result.reports.append(report)

            if report.outcome == RepairOutcome.DRY_RUN:
                result.stopped_reason = StopReason.DRY_RUN
                break

        result.final_state = context.current_state
        result.repair_attempts = context.repair_attempts
        if result.stopped_reason == StopReason.CANCELLED:
            result.exit_code = ExitCode.INTERRUPTED
        else:
            result.exit_code = exit_code_for(context.current_state)
        result.elapsed_seconds = time.monotonic() - start
        result.metadata["session_id"] = context.session_id
        logger.info(
            "Loop stopped: %s (state=%s, attempts=%d)",
            result.stopped_reason.value,
            result.final_state.value,
            result.repair_attempts,
        )
        return result

"""Repair orchestrator: one bounded, backed-up repair cycle per call.

A cycle is gated in this order, and each gate fails before anything is
touched:

1. consent (:class:`SafetyDecision`) -> ``RepairsBlockedError``
2. ``can_repair`` -> ``RepairNotPermittedError``
3. dry run -> report of intended changes, nothing else happens
4. privileges -> ``PrivilegeError``
5. context lock -> ``ConcurrentRepairError``

Only then does ``START_REPAIR`` fire and the categories run, each behind
its own snapshots.  Category failures are restored and absorbed; the cycle
as a whole reports a single ``REPAIR_SUCCESS`` or ``REPAIR_FAIL``.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Collection, Mapping

from netrepair.domain.context import DiagnosticContext, can_repair
from netrepair.domain.enums import (
    REPAIR_ORDER,
    CategoryStatus,
    DiagnosticCategory,
    NetworkState,
    RepairOutcome,
    Trigger,
)
from netrepair.domain.events import RepairActionCompleted, RepairCycleCompleted
from netrepair.domain.exceptions import (
    CommandError,
    CommandUnavailableError,
    ConcurrentRepairError,
    NetRepairError,
    RepairCancelled,
    RepairNotPermittedError,
    RepairsBlockedError,
    RestoreError,
    SnapshotError,
)
from netrepair.domain.values import (
    ActionResult,
    BackupRecord,
    CategoryReport,
    DiagnosticResult,
    RepairReport,
    SafetyDecision,
)
from netrepair.infrastructure.backup import BackupStore
from netrepair.infrastructure.event_bus import EventBus
from netrepair.infrastructure.privileges import PrivilegeChecker
from netrepair.services.actions import BaseRepairAction
from netrepair.services.probes import BaseProbe
from netrepair.services.state_machine import StateMachine

logger = logging.getLogger(__name__)

DRY_RUN_PREFIX = "[DRY-RUN]"

_APPLICABLE: Mapping[NetworkState, frozenset[DiagnosticCategory]] = {
    NetworkState.NO_CARRIER: frozenset({
        DiagnosticCategory.INTERFACES,
        DiagnosticCategory.ROUTING,
        DiagnosticCategory.DNS,
        DiagnosticCategory.NETWORK_MANAGER,
    }),
    NetworkState.NO_ROUTE: frozenset({
        DiagnosticCategory.ROUTING,
        DiagnosticCategory.DNS,
        DiagnosticCategory.NETWORK_MANAGER,
    }),
    NetworkState.NO_INTERNET: frozenset({
        DiagnosticCategory.ROUTING,
        DiagnosticCategory.DNS,
        DiagnosticCategory.NETWORK_MANAGER,
    }),
    NetworkState.DNS_FAILED: frozenset({
        DiagnosticCategory.DNS,
        DiagnosticCategory.NETWORK_MANAGER,
    }),
}


def applicable_categories(state: NetworkState) -> tuple[DiagnosticCategory, ...]:
    """Categories to repair from *state*, in the fixed repair order."""
    wanted = _APPLICABLE.get(state, frozenset())
    return tuple(c for c in REPAIR_ORDER if c in wanted)


class _CycleCancelled(Exception):
    """Internal signal: the cancel event was set mid-cycle."""


class RepairOrchestrator:
    """Runs repair cycles against a :class:`DiagnosticContext`.

    Parameters
    ----------
    actions:
        Repair actions keyed by category.  A missing category is skipped.
    connectivity_probe:
        Probe used for the final re-check after all categories ran.
    backup_store:
        Where snapshots are written before any mutation.
    privilege_checker:
        Consulted before a real (non-dry-run) cycle.
    event_bus:
        Optional bus for state and repair events.
    cancel_event:
        When set, the running cycle restores its backups and stops.
    """

    def __init__(
        self,
        actions: Mapping[DiagnosticCategory, BaseRepairAction],
        connectivity_probe: BaseProbe,
        backup_store: BackupStore,
        privilege_checker: PrivilegeChecker | None = None,
        event_bus: EventBus | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._actions = dict(actions)
        self._connectivity_probe = connectivity_probe
        self._backups = backup_store
        self._privileges = privilege_checker or PrivilegeChecker()
        self._event_bus = event_bus
        self._cancel_event = cancel_event or threading.Event()

    @property
    def backup_store(self) -> BackupStore:
        return self._backups

    @property
    def event_bus(self) -> EventBus | None:
        return self._event_bus

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel_event

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run_repair_cycle(
        self,
        context: DiagnosticContext,
        safety: SafetyDecision,
        only: Collection[DiagnosticCategory] | None = None,
    ) -> RepairReport:
        """Run one repair cycle and return its report.

        By default the categories come from the diagnosed state (see
        :func:`applicable_categories`).  *only* replaces that choice with an
        explicit set, still run in dependency order.

        Raises
        ------
        RepairsBlockedError
            Neither ``apply_fixes`` nor ``dry_run`` was given.
        RepairNotPermittedError
            ``can_repair(context)`` is false.
        PrivilegeError
            A real cycle was requested without root.
        ConcurrentRepairError
            Another cycle holds the context.
        RepairCancelled
            The cycle was interrupted; its backups were restored first.
        """
        if safety.blocked:
            raise RepairsBlockedError()
        if not can_repair(context):
            raise RepairNotPermittedError(
                f"Cannot repair from {context.current_state.value} "
                f"(attempts {context.repair_attempts}/{context.max_repair_attempts})",
                state=context.current_state.value,
                repair_attempts=context.repair_attempts,
            )

        starting_state = context.current_state
        if only is None:
            categories = applicable_categories(starting_state)
        else:
            categories = tuple(c for c in REPAIR_ORDER if c in only)

        if safety.dry_run:
            return self._simulate(context, starting_state, categories)

        self._privileges.check()

        if not context.lock.acquire(blocking=False):
            raise ConcurrentRepairError(
                f"A repair cycle is already running for session {context.session_id}"
            )
        try:
            return self._run_locked(context, starting_state, categories)
        finally:
            context.lock.release()

    # ------------------------------------------------------------------
    # Dry run
    # ------------------------------------------------------------------

    def _simulate(
        self,
        context: DiagnosticContext,
        starting_state: NetworkState,
        categories: tuple[DiagnosticCategory, ...],
    ) -> RepairReport:
        started_at = time.time()
        reports: list[CategoryReport] = []
        for category in categories:
            action = self._actions.get(category)
            if action is None or not action.is_available():
                logger.info("%s Would skip %s: not available", DRY_RUN_PREFIX, category.value)
                reports.append(
                    CategoryReport(category, CategoryStatus.SKIPPED, "Not available")
                )
                continue
            planned = [f"Back up {path}" for path in action.affected_paths()]
            planned.extend(action.describe())
            for line in planned:
                logger.info("%s %s: %s", DRY_RUN_PREFIX, category.value, line)
            reports.append(
                CategoryReport(
                    category,
                    CategoryStatus.SIMULATED,
                    "No changes made",
                    planned=tuple(planned),
                )
            )

        report = RepairReport(
            outcome=RepairOutcome.DRY_RUN,
            starting_state=starting_state,
            categories=tuple(reports),
            attempt=context.repair_attempts,
            started_at=started_at,
            finished_at=time.time(),
        )
        self._publish_cycle(context, report)
        return report

    # ------------------------------------------------------------------
    # Real cycle
    # ------------------------------------------------------------------

    def _run_locked(
        self,
        context: DiagnosticContext,
        starting_state: NetworkState,
        categories: tuple[DiagnosticCategory, ...],
    ) -> RepairReport:
        machine = StateMachine(context, self._event_bus)
        started_at = time.time()
        machine.fire(Trigger.START_REPAIR)
        attempt = context.repair_attempts
        logger.info(
            "Repair attempt %d/%d from %s: %s",
            attempt,
            context.max_repair_attempts,
            starting_state.value,
            ", ".join(c.value for c in categories) or "nothing applicable",
        )

        cycle_backups: list[BackupRecord] = []
        reports: list[CategoryReport] = []
        try:
            for category in categories:
                self._check_cancelled()
                report = self._repair_category(category, cycle_backups)
                reports.append(report)
                self._publish(
                    RepairActionCompleted(
                        source_id=context.session_id,
                        category=category,
                        status=report.status,
                        detail=report.detail,
                    )
                )
            self._check_cancelled()
            final_check = self._final_check()
        except (KeyboardInterrupt, _CycleCancelled):
            restored = self._restore_all(cycle_backups)
            machine.fire(Trigger.REPAIR_FAIL)
            self._publish_cycle(
                context,
                RepairReport(
                    outcome=RepairOutcome.CANCELLED,
                    starting_state=starting_state,
                    categories=tuple(reports),
                    attempt=attempt,
                    started_at=started_at,
                    finished_at=time.time(),
                ),
            )
            raise RepairCancelled(
                f"Repair cancelled; restored {restored} backup(s)", restored=restored
            ) from None

        if final_check.passed:
            outcome = RepairOutcome.SUCCESS
        elif any(r.succeeded for r in reports):
            outcome = RepairOutcome.PARTIAL
        else:
            outcome = RepairOutcome.FAILED

        machine.fire(
            Trigger.REPAIR_FAIL if outcome == RepairOutcome.FAILED else Trigger.REPAIR_SUCCESS
        )
        logger.info("Repair attempt %d finished: %s", attempt, outcome.value)

        report = RepairReport(
            outcome=outcome,
            starting_state=starting_state,
            categories=tuple(reports),
            final_check=final_check,
            attempt=attempt,
            started_at=started_at,
            finished_at=time.time(),
        )
        self._publish_cycle(context, report)
        return report

    def _repair_category(
        self,
        category: DiagnosticCategory,
        cycle_backups: list[BackupRecord],
    ) -> CategoryReport:
        action = self._actions.get(category)
        if action is None or not action.is_available():
            logger.info("Skipping %s: not available on this system", category.value)
            return CategoryReport(category, CategoryStatus.SKIPPED, "Not available")

        backups: list[BackupRecord] = []
        try:
            for path in action.affected_paths():
                record = self._backups.snapshot(path)
                backups.append(record)
                cycle_backups.append(record)
        except SnapshotError as exc:
            logger.error("Not repairing %s: %s", category.value, exc)
            return CategoryReport(
                category, CategoryStatus.FAILED, str(exc), backups=tuple(backups)
            )

        try:
            result = action.apply()
        except CommandUnavailableError as exc:
            logger.info("Skipping %s: %s", category.value, exc)
            restore_error = self._restore_category(backups)
            detail = f"Not available: {exc}"
            if restore_error is not None:
                return CategoryReport(
                    category,
                    CategoryStatus.FAILED,
                    f"{detail}; restore failed: {restore_error}",
                    backups=tuple(backups),
                )
            return CategoryReport(
                category, CategoryStatus.SKIPPED, detail, backups=tuple(backups)
            )
        except (CommandError, OSError) as exc:
            result = ActionResult(False, str(exc))

        if result.success:
            logger.info("Repaired %s: %s", category.value, result.detail)
            return CategoryReport(
                category, CategoryStatus.SUCCEEDED, result.detail, backups=tuple(backups)
            )

        logger.warning("Repair of %s failed: %s", category.value, result.detail)
        if not backups:
            return CategoryReport(category, CategoryStatus.FAILED, result.detail)
        restore_error = self._restore_category(backups)
        if restore_error is not None:
            return CategoryReport(
                category,
                CategoryStatus.FAILED,
                f"{result.detail}; restore failed: {restore_error}",
                backups=tuple(backups),
            )
        return CategoryReport(
            category, CategoryStatus.ROLLED_BACK, result.detail, backups=tuple(backups)
        )

    def _restore_category(self, backups: list[BackupRecord]) -> RestoreError | None:
        try:
            for record in backups:
                self._backups.restore(record)
        except RestoreError as exc:
            logger.error("Could not restore %s: %s", exc.target_path or "backup", exc)
            return exc
        return None

    def _final_check(self) -> DiagnosticResult:
        try:
            return self._connectivity_probe.run()
        except (NetRepairError, OSError) as exc:
            logger.warning("Final connectivity check could not run: %s", exc)
            return DiagnosticResult.unknown_result(self._connectivity_probe.category, str(exc))

    def _restore_all(self, records: list[BackupRecord]) -> int:
        restored = 0
        for record in reversed(records):
            try:
                self._backups.restore(record)
            except RestoreError as exc:
                logger.error("Could not restore %s: %s", record.target_path, exc)
                continue
            restored += 1
        return restored

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise _CycleCancelled()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _publish(self, event: RepairActionCompleted | RepairCycleCompleted) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)

    def _publish_cycle(self, context: DiagnosticContext, report: RepairReport) -> None:
        self._publish(
            RepairCycleCompleted(
                source_id=context.session_id,
                outcome=report.outcome,
                attempt=report.attempt,
                elapsed_ms=(report.finished_at - report.started_at) * 1000.0,
            )
        )

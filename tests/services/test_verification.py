"""Tests for the bounded diagnose/repair verification loop."""

from __future__ import annotations

import threading
from pathlib import Path

from netrepair.domain.context import DiagnosticContext
from netrepair.domain.enums import (
    DiagnosticCategory,
    ExitCode,
    NetworkState,
    RepairOutcome,
)
from netrepair.domain.values import DiagnosticResult, SafetyDecision
from netrepair.infrastructure.backup import BackupStore
from netrepair.infrastructure.event_bus import EventBus
from netrepair.services.orchestrator import RepairOrchestrator
from netrepair.services.probes import ProbeSuite
from netrepair.services.verification import (
    LoopResult,
    StopReason,
    VerificationLoop,
    exit_code_for,
)
from tests.helpers.fakes import (
    FakeAction,
    GrantedPrivileges,
    ScriptedProbe,
    failing,
    passing,
    probe_set,
)

C = DiagnosticCategory


def _suite(dns_results: list[DiagnosticResult]) -> ProbeSuite:
    """All categories pass except DNS, which follows *dns_results*."""
    probes = [p for p in probe_set() if p.category != C.DNS]
    probes.append(ScriptedProbe(C.DNS, dns_results))
    return ProbeSuite(probes, max_workers=1)


def _orchestrator(
    backup_store: BackupStore,
    action: FakeAction,
    online: bool,
    event_bus: EventBus | None = None,
    cancel_event: threading.Event | None = None,
) -> RepairOrchestrator:
    check = passing(C.CONNECTIVITY) if online else failing(C.CONNECTIVITY)
    return RepairOrchestrator(
        {C.DNS: action},
        ScriptedProbe(C.CONNECTIVITY, [check]),
        backup_store,
        privilege_checker=GrantedPrivileges(),
        event_bus=event_bus,
        cancel_event=cancel_event,
    )


class TestExitCodes:
    def test_mapping(self) -> None:
        assert exit_code_for(NetworkState.HEALTHY) == ExitCode.HEALTHY == 0
        assert exit_code_for(NetworkState.REPAIR_FAILED) == ExitCode.REPAIR_FAILED == 2
        assert exit_code_for(NetworkState.DNS_FAILED) == ExitCode.UNHEALTHY == 1
        assert exit_code_for(NetworkState.UNKNOWN) == ExitCode.UNHEALTHY

    def test_last_round_empty(self) -> None:
        assert LoopResult().last_round == ()


# ===================================================================== #
#  Diagnose only                                                         #
# ===================================================================== #


class TestDiagnose:
    def test_healthy_stops_after_one_round(self, context: DiagnosticContext) -> None:
        loop = VerificationLoop(ProbeSuite(probe_set()))
        result = loop.run(context, SafetyDecision())
        assert result.stopped_reason == StopReason.HEALTHY
        assert result.final_state == NetworkState.HEALTHY
        assert result.exit_code == 0
        assert len(result.rounds) == 1
        assert result.metadata["session_id"] == context.session_id

    def test_diagnose_only(
        self, context: DiagnosticContext, orchestrator: RepairOrchestrator
    ) -> None:
        loop = VerificationLoop(_suite([failing(C.DNS)]), orchestrator)
        result = loop.run(context, SafetyDecision(apply_fixes=True), repair=False)
        assert result.stopped_reason == StopReason.DIAGNOSE_ONLY
        assert result.final_state == NetworkState.DNS_FAILED
        assert result.exit_code == 1
        assert result.reports == []

    def test_diagnose_from_repair_failed_is_noop(self) -> None:
        ctx = DiagnosticContext(current_state=NetworkState.REPAIR_FAILED, repair_attempts=3)
        suite = _suite([failing(C.DNS)])
        assert VerificationLoop(suite).diagnose(ctx) == ()
        assert ctx.current_state == NetworkState.REPAIR_FAILED

    def test_all_unknown_is_not_repairable(
        self, context: DiagnosticContext, orchestrator: RepairOrchestrator
    ) -> None:
        suite = ProbeSuite(probe_set(unknown_categories=list(C)))
        result = VerificationLoop(suite, orchestrator).run(
            context, SafetyDecision(apply_fixes=True)
        )
        assert result.stopped_reason == StopReason.NOT_REPAIRABLE
        assert result.final_state == NetworkState.UNKNOWN
        assert result.exit_code == 1


# ===================================================================== #
#  Repair rounds                                                         #
# ===================================================================== #


class TestRepairLoop:
    def test_repair_then_healthy(
        self, context: DiagnosticContext, backup_store: BackupStore, resolv_conf: Path
    ) -> None:
        action = FakeAction(C.DNS, path=resolv_conf)
        loop = VerificationLoop(
            _suite([failing(C.DNS), passing(C.DNS, 1)]),
            _orchestrator(backup_store, action, online=True),
        )
        result = loop.run(context, SafetyDecision(apply_fixes=True))

        assert result.stopped_reason == StopReason.HEALTHY
        assert result.final_state == NetworkState.HEALTHY
        assert result.repair_attempts == 1
        assert len(result.rounds) == 2
        assert [r.outcome for r in result.reports] == [RepairOutcome.SUCCESS]
        assert result.exit_code == 0

    def test_bounded_retry_ends_in_repair_failed(
        self, context: DiagnosticContext, backup_store: BackupStore, resolv_conf: Path
    ) -> None:
        original = resolv_conf.read_bytes()
        action = FakeAction(C.DNS, path=resolv_conf, succeed=False)
        loop = VerificationLoop(
            _suite([failing(C.DNS)]),
            _orchestrator(backup_store, action, online=False),
        )
        result = loop.run(context, SafetyDecision(apply_fixes=True))

        assert result.stopped_reason == StopReason.REPAIR_FAILED
        assert result.final_state == NetworkState.REPAIR_FAILED
        assert result.repair_attempts == context.max_repair_attempts
        assert action.applied == 3
        assert len(result.rounds) == 3
        assert result.exit_code == ExitCode.REPAIR_FAILED
        assert resolv_conf.read_bytes() == original

    def test_partial_repairs_exhaust_attempts(
        self, context: DiagnosticContext, backup_store: BackupStore
    ) -> None:
        action = FakeAction(C.DNS)
        loop = VerificationLoop(
            _suite([failing(C.DNS)]),
            _orchestrator(backup_store, action, online=False),
        )
        result = loop.run(context, SafetyDecision(apply_fixes=True))

        assert result.stopped_reason == StopReason.ATTEMPTS_EXHAUSTED
        assert result.final_state == NetworkState.DNS_FAILED
        assert len(result.rounds) == context.max_repair_attempts + 1
        assert result.exit_code == 1

    def test_blocked(
        self, context: DiagnosticContext, orchestrator: RepairOrchestrator
    ) -> None:
        result = VerificationLoop(_suite([failing(C.DNS)]), orchestrator).run(
            context, SafetyDecision()
        )
        assert result.stopped_reason == StopReason.BLOCKED
        assert result.repair_attempts == 0
        assert result.exit_code == 1

    def test_dry_run_stops_after_report(
        self,
        context: DiagnosticContext,
        orchestrator: RepairOrchestrator,
        dns_action: FakeAction,
    ) -> None:
        result = VerificationLoop(_suite([failing(C.DNS)]), orchestrator).run(
            context, SafetyDecision(dry_run=True)
        )
        assert result.stopped_reason == StopReason.DRY_RUN
        assert [r.outcome for r in result.reports] == [RepairOutcome.DRY_RUN]
        assert result.final_state == NetworkState.DNS_FAILED
        assert result.repair_attempts == 0
        assert dns_action.applied == 0


# ===================================================================== #
#  Cancellation                                                          #
# ===================================================================== #


class TestCancellation:
    def test_cancel_before_start(
        self, context: DiagnosticContext, orchestrator: RepairOrchestrator
    ) -> None:
        loop = VerificationLoop(_suite([failing(C.DNS)]), orchestrator)
        assert loop.cancel_event is orchestrator.cancel_event
        loop.cancel_event.set()
        result = loop.run(context, SafetyDecision(apply_fixes=True))
        assert result.stopped_reason == StopReason.CANCELLED
        assert result.exit_code == ExitCode.INTERRUPTED
        assert result.rounds == []

    def test_cancel_during_repair(
        self, context: DiagnosticContext, backup_store: BackupStore, resolv_conf: Path
    ) -> None:
        original = resolv_conf.read_bytes()
        cancel = threading.Event()
        action = FakeAction(C.DNS, path=resolv_conf, on_apply=cancel.set)
        orchestrator = _orchestrator(backup_store, action, online=True, cancel_event=cancel)
        loop = VerificationLoop(_suite([failing(C.DNS)]), orchestrator)

        result = loop.run(context, SafetyDecision(apply_fixes=True))

        assert result.stopped_reason == StopReason.CANCELLED
        assert result.exit_code == 130
        assert resolv_conf.read_bytes() == original

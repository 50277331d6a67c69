"""Tests for the rich console dashboard (output captured to a buffer)."""

from __future__ import annotations

import io
from pathlib import Path

import pytest

from netrepair.domain.context import DiagnosticContext
from netrepair.domain.enums import (
    CategoryStatus,
    DiagnosticCategory,
    NetworkState,
    RepairOutcome,
    Trigger,
)
from netrepair.domain.events import BackupCreated, BackupRestored, StateChanged
from netrepair.domain.values import (
    BackupRecord,
    CategoryReport,
    DiagnosticResult,
    RepairReport,
    SafetyDecision,
)
from netrepair.infrastructure.event_bus import EventBus
from netrepair.presentation.console import ConsoleDashboard
from netrepair.services.verification import LoopResult, StopReason


@pytest.fixture
def buffer() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def dashboard(buffer: io.StringIO) -> ConsoleDashboard:
    return ConsoleDashboard(file=buffer, no_color=True)


class TestBanners:
    @pytest.mark.parametrize(
        ("decision", "expected"),
        [
            (SafetyDecision(), "SAFE MODE"),
            (SafetyDecision(dry_run=True), "DRY-RUN"),
            (SafetyDecision(apply_fixes=True), "REPAIR MODE"),
        ],
    )
    def test_mode_banner(
        self,
        dashboard: ConsoleDashboard,
        buffer: io.StringIO,
        decision: SafetyDecision,
        expected: str,
    ) -> None:
        dashboard.print_mode_banner(decision)
        assert expected in buffer.getvalue()

    def test_blocked_banner(self, dashboard: ConsoleDashboard, buffer: io.StringIO) -> None:
        dashboard.print_blocked_banner()
        out = buffer.getvalue()
        assert "Repairs blocked" in out
        assert "--apply-fixes" in out
        assert "--dry-run" in out

    def test_repair_hint_only_for_problems(
        self, dashboard: ConsoleDashboard, buffer: io.StringIO
    ) -> None:
        dashboard.print_repair_hint(NetworkState.HEALTHY)
        assert buffer.getvalue() == ""
        dashboard.print_repair_hint(NetworkState.NO_ROUTE)
        assert "Problem detected (no_route)" in buffer.getvalue()


class TestDiagnostics:
    def test_table(self, dashboard: ConsoleDashboard, buffer: io.StringIO) -> None:
        dashboard.print_diagnostics(
            [
                DiagnosticResult(DiagnosticCategory.DNS, True, "ok"),
                DiagnosticResult(DiagnosticCategory.ROUTING, False, "no route"),
                DiagnosticResult.unknown_result(DiagnosticCategory.FIREWALL, "no nft"),
            ]
        )
        out = buffer.getvalue()
        assert "Network Diagnostics" in out
        for text in ("PASS", "FAIL", "UNKNOWN", "firewall"):
            assert text in out

    def test_markup_in_detail_is_printed_literally(
        self, dashboard: ConsoleDashboard, buffer: io.StringIO
    ) -> None:
        dashboard.print_diagnostics(
            [DiagnosticResult(DiagnosticCategory.DNS, False, "[bold]x[/bold]")]
        )
        assert "[bold]x[/bold]" in buffer.getvalue()

    def test_empty(self, dashboard: ConsoleDashboard, buffer: io.StringIO) -> None:
        dashboard.print_diagnostics([])
        assert "No diagnostic results." in buffer.getvalue()

    def test_context_panel(self, dashboard: ConsoleDashboard, buffer: io.StringIO) -> None:
        ctx = DiagnosticContext(
            session_id="feedbeef",
            current_state=NetworkState.DNS_FAILED,
            repair_attempts=2,
        )
        dashboard.print_context(ctx)
        out = buffer.getvalue()
        assert "Session feedbeef" in out
        assert "dns_failed" in out
        assert "2/3" in out


class TestRepairReport:
    def test_report_with_backups(
        self, dashboard: ConsoleDashboard, buffer: io.StringIO
    ) -> None:
        report = RepairReport(
            outcome=RepairOutcome.FAILED,
            starting_state=NetworkState.DNS_FAILED,
            categories=(
                CategoryReport(
                    DiagnosticCategory.DNS,
                    CategoryStatus.ROLLED_BACK,
                    "did not help",
                    backups=(BackupRecord("/etc/resolv.conf", "/b/resolv.conf.1"),),
                ),
            ),
            final_check=DiagnosticResult(DiagnosticCategory.CONNECTIVITY, False, "down"),
            attempt=1,
        )
        dashboard.print_repair_report(report)
        out = buffer.getvalue()
        assert "Repair attempt 1: failed" in out
        assert "rolled_back" in out
        assert "final check: FAIL" in out
        assert "backup: /b/resolv.conf.1" in out

    def test_dry_run_lists_plan(self, dashboard: ConsoleDashboard, buffer: io.StringIO) -> None:
        report = RepairReport(
            outcome=RepairOutcome.DRY_RUN,
            starting_state=NetworkState.DNS_FAILED,
            categories=(
                CategoryReport(
                    DiagnosticCategory.DNS,
                    CategoryStatus.SIMULATED,
                    planned=("Restart NetworkManager",),
                ),
            ),
        )
        dashboard.print_repair_report(report)
        assert "Restart NetworkManager" in buffer.getvalue()

    def test_loop_summary(self, dashboard: ConsoleDashboard, buffer: io.StringIO) -> None:
        dashboard.print_loop_summary(
            LoopResult(
                final_state=NetworkState.HEALTHY,
                repair_attempts=1,
                stopped_reason=StopReason.HEALTHY,
            )
        )
        out = buffer.getvalue()
        assert "Final state: healthy" in out
        assert "stopped=healthy" in out


class TestMisc:
    def test_backups(
        self, dashboard: ConsoleDashboard, buffer: io.StringIO, tmp_path: Path
    ) -> None:
        dashboard.print_backups([])
        assert "No backups found." in buffer.getvalue()

        snap = tmp_path / "r.1"
        snap.write_text("abc", encoding="utf-8")
        dashboard.print_backups([snap])
        assert "3 B" in buffer.getvalue()

    def test_error(self, dashboard: ConsoleDashboard, buffer: io.StringIO) -> None:
        dashboard.print_error("no [root]")
        assert "Error: no [root]" in buffer.getvalue()


class TestLiveEvents:
    def test_follow_prints_changes_and_restores(
        self, dashboard: ConsoleDashboard, buffer: io.StringIO
    ) -> None:
        bus = EventBus()
        dashboard.follow(bus)

        bus.publish(
            StateChanged(
                trigger=Trigger.START_REPAIR,
                previous_state=NetworkState.DNS_FAILED,
                new_state=NetworkState.REPAIRING,
            )
        )
        bus.publish(BackupRestored(record=BackupRecord("/etc/resolv.conf", "/b/r.1")))
        bus.publish(BackupCreated(record=BackupRecord("/etc/hosts", "/b/h.1")))

        out = buffer.getvalue()
        assert "start_repair: dns_failed -> repairing" in out
        assert "Restored /etc/resolv.conf" in out
        assert "/etc/hosts" not in out

    def test_self_loop_is_silent(
        self, dashboard: ConsoleDashboard, buffer: io.StringIO
    ) -> None:
        bus = EventBus()
        dashboard.follow(bus)
        bus.publish(
            StateChanged(
                trigger=Trigger.DNS_OK,
                previous_state=NetworkState.DIAGNOSING,
                new_state=NetworkState.DIAGNOSING,
            )
        )
        assert buffer.getvalue() == ""

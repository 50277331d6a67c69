"""Rich-based console dashboard for diagnostics and repair reports.

:class:`ConsoleDashboard` renders the mode banner, the per-category
diagnostic table, the context panel and repair reports with colour and
formatting.  Pass ``file`` to capture the output (tests use ``io.StringIO``).
"""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.panel import Panel as RichPanel
from rich.table import Table as RichTable

from netrepair.domain.context import DiagnosticContext
from netrepair.domain.enums import CategoryStatus, NetworkState, RepairOutcome
from netrepair.domain.events import BackupRestored, DomainEvent, StateChanged
from netrepair.domain.values import DiagnosticResult, RepairReport, SafetyDecision
from netrepair.infrastructure.event_bus import EventBus
from netrepair.services.safety import describe
from netrepair.services.verification import LoopResult

# ---------------------------------------------------------------------------
# Colour maps
# ---------------------------------------------------------------------------

_LABEL_COLOURS = {"PASS": "green", "FAIL": "red", "UNKNOWN": "yellow"}

_STATUS_COLOURS = {
    CategoryStatus.SUCCEEDED: "green",
    CategoryStatus.FAILED: "red",
    CategoryStatus.ROLLED_BACK: "orange3",
    CategoryStatus.SKIPPED: "dim",
    CategoryStatus.SIMULATED: "cyan",
}

_OUTCOME_COLOURS = {
    RepairOutcome.SUCCESS: "green",
    RepairOutcome.PARTIAL: "yellow",
    RepairOutcome.FAILED: "red",
    RepairOutcome.DRY_RUN: "cyan",
    RepairOutcome.BLOCKED: "red",
    RepairOutcome.CANCELLED: "orange3",
}


def _state_colour(state: NetworkState) -> str:
    if state == NetworkState.HEALTHY:
        return "green"
    if state in (NetworkState.UNKNOWN, NetworkState.DIAGNOSING, NetworkState.REPAIRING):
        return "yellow"
    return "red"


# ---------------------------------------------------------------------------
# ConsoleDashboard
# ---------------------------------------------------------------------------

class ConsoleDashboard:
    """Console presentation layer for the diagnose/repair loop.

    Parameters
    ----------
    file:
        Output stream.  Defaults to ``sys.stdout``.
    no_color:
        Disable colour (markup is still parsed and stripped).
    """

    def __init__(self, file: Any = None, no_color: bool = False) -> None:
        self._file = file or sys.stdout
        self._console = RichConsole(file=self._file, no_color=no_color, highlight=False)

    @property
    def console(self) -> RichConsole:
        return self._console

    # -- live events -------------------------------------------------------

    def follow(self, event_bus: EventBus) -> None:
        """Print state changes and restores as *event_bus* publishes them."""
        event_bus.subscribe(StateChanged, self.on_state_changed)
        event_bus.subscribe(BackupRestored, self.on_backup_restored)

    def on_state_changed(self, event: DomainEvent) -> None:
        if not isinstance(event, StateChanged) or event.new_state == event.previous_state:
            return
        colour = _state_colour(event.new_state)
        self._console.print(
            f"[dim]{event.trigger.value}:[/dim] {event.previous_state.value} -> "
            f"[{colour}]{event.new_state.value}[/{colour}]"
        )

    def on_backup_restored(self, event: DomainEvent) -> None:
        if not isinstance(event, BackupRestored) or event.record is None:
            return
        self._console.print(
            f"[orange3]Restored[/orange3] {escape(event.record.target_path)}"
        )

    # -- banners -----------------------------------------------------------

    def print_mode_banner(self, decision: SafetyDecision) -> None:
        """Print which mode the session runs in."""
        if decision.dry_run:
            colour = "cyan"
        elif decision.apply_fixes:
            colour = "bold red"
        else:
            colour = "green"
        self._console.print(f"[{colour}]{describe(decision)}[/{colour}]")

    def print_blocked_banner(self) -> None:
        """Explain that repairs need explicit consent."""
        self._console.print(
            RichPanel(
                "Repairs are disabled by default.\n"
                "Re-run with [bold]--apply-fixes[/bold] to apply changes, "
                "or [bold]--dry-run[/bold] to preview them.",
                title="Repairs blocked",
                border_style="red",
            )
        )

    def print_repair_hint(self, state: NetworkState) -> None:
        """Suggest the repair command after a diagnose-only run found a problem."""
        if state in (NetworkState.HEALTHY, NetworkState.UNKNOWN):
            return
        self._console.print(
            f"[yellow]Problem detected ({state.value}).[/yellow] "
            "Preview fixes with [bold]netrepair repair --dry-run[/bold], "
            "apply them with [bold]netrepair repair --apply-fixes[/bold]."
        )

    # -- diagnostics -------------------------------------------------------

    def print_diagnostics(self, results: Sequence[DiagnosticResult]) -> None:
        """Print one diagnostic round as a table.

        Parameters
        ----------
        results:
            Probe results in display order.
        """
        if not results:
            self._console.print("[dim]No diagnostic results.[/dim]")
            return

        table = RichTable(
            title="Network Diagnostics",
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Category", style="bold")
        table.add_column("Result", justify="center")
        table.add_column("Detail")

        for r in results:
            colour = _LABEL_COLOURS[r.label]
            table.add_row(
                r.category.value,
                f"[{colour}]{r.label}[/{colour}]",
                escape(r.detail),
            )

        self._console.print()
        self._console.print(table)

    def print_context(self, context: DiagnosticContext) -> None:
        """Print the context fields in a panel."""
        colour = _state_colour(context.current_state)
        unknown = ", ".join(sorted(c.value for c in context.unknown_categories)) or "-"
        body = "\n".join(
            [
                f"[bold]State:[/bold]    [{colour}]{context.current_state.value}[/{colour}]"
                f"  (previous: {context.previous_state.value})",
                f"[bold]DNS servers:[/bold] {context.dns_server_count}",
                f"[bold]Route:[/bold]    {context.has_route}",
                f"[bold]Carrier:[/bold]  {context.has_carrier}",
                f"[bold]Internet:[/bold] {context.has_internet}",
                f"[bold]Attempts:[/bold] {context.repair_attempts}"
                f"/{context.max_repair_attempts}",
                f"[bold]Unknown:[/bold]  {unknown}",
            ]
        )
        self._console.print(
            RichPanel(body, title=f"Session {context.session_id}", border_style=colour)
        )

    # -- repairs -----------------------------------------------------------

    def print_repair_report(self, report: RepairReport) -> None:
        """Print one repair cycle's per-category outcome.

        Dry-run reports list the planned changes instead of details.
        """
        outcome_colour = _OUTCOME_COLOURS[report.outcome]
        table = RichTable(
            title=(
                f"Repair attempt {report.attempt}: "
                f"[{outcome_colour}]{report.outcome.value}[/{outcome_colour}]"
            ),
            show_header=True,
            header_style="bold cyan",
        )
        table.add_column("Category", style="bold")
        table.add_column("Status", justify="center")
        table.add_column("Detail")

        for c in report.categories:
            colour = _STATUS_COLOURS[c.status]
            detail = "\n".join(c.planned) if c.planned else c.detail
            table.add_row(
                c.category.value,
                f"[{colour}]{c.status.value}[/{colour}]",
                escape(detail),
            )

        self._console.print()
        self._console.print(table)
        if report.final_check is not None:
            self._console.print(
                f"  [dim]final check:[/dim] {report.final_check.label} "
                f"({escape(report.final_check.detail)})"
            )
        for record in report.backups:
            if record.existed:
                self._console.print(f"  [dim]backup:[/dim] {record.snapshot_path}")

    def print_loop_summary(self, result: LoopResult) -> None:
        """One-line summary of a finished loop."""
        colour = _state_colour(result.final_state)
        self._console.print()
        self._console.print(
            f"[bold]Final state:[/bold] [{colour}]{result.final_state.value}[/{colour}]  "
            f"attempts={result.repair_attempts}  "
            f"stopped={result.stopped_reason.value}  "
            f"elapsed={result.elapsed_seconds:.1f}s"
        )

    # -- backups -----------------------------------------------------------

    def print_backups(self, paths: Sequence[Path]) -> None:
        """List snapshot files, newest first."""
        if not paths:
            self._console.print("[dim]No backups found.[/dim]")
            return
        table = RichTable(title="Backups", show_header=True, header_style="bold cyan")
        table.add_column("File", style="bold")
        table.add_column("Size", justify="right")
        for p in paths:
            table.add_row(str(p), f"{p.stat().st_size} B")
        self._console.print(table)

    def print_error(self, message: str) -> None:
        self._console.print(f"[bold red]Error:[/bold red] {escape(message)}")

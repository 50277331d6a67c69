"""Interactive menu session driving one context by hand.

The session owns nothing but the menu: diagnostics go through the
verification loop, repairs through the orchestrator and manual triggers
through the state machine, so every rule that holds on the command line
holds here too.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from rich.prompt import Prompt

from netrepair.domain.context import DiagnosticContext
from netrepair.domain.enums import ExitCode, Trigger
from netrepair.domain.exceptions import NetRepairError, RepairsBlockedError
from netrepair.domain.values import SafetyDecision
from netrepair.infrastructure.backup import BackupStore
from netrepair.presentation.console import ConsoleDashboard
from netrepair.services.orchestrator import RepairOrchestrator
from netrepair.services.state_machine import StateMachine
from netrepair.services.verification import VerificationLoop, exit_code_for

logger = logging.getLogger(__name__)

AskFunc = Callable[..., str]

_MENU = (
    ("1", "Run diagnostics"),
    ("2", "Run a repair cycle"),
    ("3", "Fire a trigger manually"),
    ("4", "Reset the session"),
    ("5", "List backups"),
    ("q", "Quit"),
)


class InteractiveSession:
    """Menu-driven session over a single :class:`DiagnosticContext`.

    Parameters
    ----------
    context:
        The session's context.
    loop:
        Used for diagnostic rounds.
    orchestrator:
        Used for repair cycles.
    backup_store:
        Listed by the backups entry.
    safety:
        The consent decision for every repair cycle in this session.
    dashboard:
        Output.
    ask:
        Prompt function with the ``rich.prompt.Prompt.ask`` signature;
        tests pass a scripted replacement.
    """

    def __init__(
        self,
        context: DiagnosticContext,
        loop: VerificationLoop,
        orchestrator: RepairOrchestrator,
        backup_store: BackupStore,
        safety: SafetyDecision,
        dashboard: ConsoleDashboard,
        ask: AskFunc | None = None,
    ) -> None:
        self._context = context
        self._loop = loop
        self._orchestrator = orchestrator
        self._backups = backup_store
        self._safety = safety
        self._dashboard = dashboard
        self._ask: AskFunc = ask or Prompt.ask
        self._machine = StateMachine(context, orchestrator.event_bus)

    @property
    def context(self) -> DiagnosticContext:
        return self._context

    def run(self) -> ExitCode:
        """Show the menu until the user quits; returns the exit code."""
        handlers: dict[str, Callable[[], None]] = {
            "1": self.run_diagnostics,
            "2": self.run_repair,
            "3": self.fire_trigger,
            "4": self.reset,
            "5": self.list_backups,
        }
        self._dashboard.print_mode_banner(self._safety)
        while True:
            self._dashboard.print_context(self._context)
            for key, label in _MENU:
                self._dashboard.console.print(f"  [bold]{key}[/bold]) {label}")
            choice = self._prompt("Choose", choices=[k for k, _ in _MENU], default="1")
            if choice == "q":
                break
            handlers[choice]()
        return exit_code_for(self._context.current_state)

    # -- menu entries ------------------------------------------------------

    def run_diagnostics(self) -> None:
        results = self._loop.diagnose(self._context)
        if not results:
            self._dashboard.console.print(
                "[red]Diagnostics are unavailable in the terminal state; reset first.[/red]"
            )
            return
        self._dashboard.print_diagnostics(results)

    def run_repair(self) -> None:
        try:
            report = self._orchestrator.run_repair_cycle(self._context, self._safety)
        except RepairsBlockedError:
            self._dashboard.print_blocked_banner()
            return
        except NetRepairError as exc:
            logger.debug("Repair cycle refused: %r", exc)
            self._dashboard.print_error(str(exc))
            return
        self._dashboard.print_repair_report(report)

    def fire_trigger(self) -> None:
        name = self._prompt("Trigger", choices=[t.value for t in Trigger])
        trigger = Trigger(name)
        count = 0
        if trigger == Trigger.DNS_OK:
            raw = self._prompt("DNS server count", default="1")
            try:
                count = max(int(raw), 0)
            except ValueError:
                self._dashboard.print_error(f"Not a number: {raw}")
                return
        before = self._context.current_state
        if self._machine.fire(trigger, dns_server_count=count):
            self._dashboard.console.print(
                f"[green]{trigger.value}:[/green] {before.value} -> "
                f"{self._context.current_state.value}"
            )
        else:
            self._dashboard.console.print(
                f"[yellow]{trigger.value} ignored in state {before.value}[/yellow]"
            )

    def reset(self) -> None:
        self._machine.fire(Trigger.RESET)
        self._dashboard.console.print("[green]Session reset.[/green]")

    def list_backups(self) -> None:
        self._dashboard.print_backups(self._backups.list_backups())

    # -- helpers -----------------------------------------------------------

    def _prompt(self, message: str, **kwargs: Any) -> str:
        return str(self._ask(message, console=self._dashboard.console, **kwargs))

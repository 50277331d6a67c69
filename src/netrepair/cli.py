"""Command-line interface for netrepair.

Provides subcommands for diagnosing the host, running repair cycles, an
interactive session and backup maintenance.  Repairs never run without an
explicit ``--apply-fixes``; ``--dry-run`` previews them instead.

Entry point
-----------
The ``main()`` function is registered as a console script in
``pyproject.toml``::

    [project.scripts]
    netrepair = "netrepair.cli:main"

Usage examples::

    netrepair diagnose
    netrepair diagnose-dns
    netrepair repair --dry-run
    sudo netrepair repair-routing --apply-fixes
    sudo netrepair repair --apply-fixes --report session.json
    netrepair interactive --apply-fixes
    netrepair backups --clean 5
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from dataclasses import dataclass
from typing import Any

from netrepair.domain.context import DiagnosticContext
from netrepair.domain.enums import DiagnosticCategory, ExitCode
from netrepair.domain.exceptions import NetRepairError
from netrepair.domain.values import SafetyDecision
from netrepair.infrastructure.backup import BackupStore
from netrepair.infrastructure.commands import CommandRunner
from netrepair.infrastructure.config import LoggingConfig, RepairConfig, load_config
from netrepair.infrastructure.event_bus import EventBus, EventStore
from netrepair.infrastructure.logging_config import configure_logging
from netrepair.presentation.console import ConsoleDashboard
from netrepair.presentation.export import build_report, export_json
from netrepair.presentation.interactive import InteractiveSession
from netrepair.services.actions import default_actions
from netrepair.services.orchestrator import RepairOrchestrator
from netrepair.services.probes import ConnectivityProbe, ProbeSuite, default_probes
from netrepair.services.safety import SafetyFlags, evaluate
from netrepair.services.verification import LoopResult, StopReason, VerificationLoop

logger = logging.getLogger(__name__)

_CATEGORY_COMMANDS: dict[str, DiagnosticCategory] = {
    "dns": DiagnosticCategory.DNS,
    "network": DiagnosticCategory.INTERFACES,
    "routing": DiagnosticCategory.ROUTING,
    "nm": DiagnosticCategory.NETWORK_MANAGER,
}
_DIAGNOSABLE = ("dns", "network", "routing")


# =========================================================================
# Parser
# =========================================================================

def _common_options() -> argparse.ArgumentParser:
    """Options shared by every subcommand."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON or YAML config file with 'repair' and 'logging' sections.",
    )
    common.add_argument(
        "--backup-dir",
        type=str,
        default=None,
        help="Directory for file backups. (default: ~/.network-repair-backups)",
    )
    verbosity = common.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose", action="store_true", default=False, help="Debug logging."
    )
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", default=False, help="Errors only."
    )
    common.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also append log records to this file.",
    )
    common.add_argument(
        "--report",
        type=str,
        default=None,
        help="Write a JSON session report to this file.",
    )
    return common


def _add_safety_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Show what would be done without changing anything.",
    )
    parser.add_argument(
        "--apply-fixes",
        action="store_true",
        default=False,
        help="Allow repairs to modify the system (requires root).",
    )
    parser.add_argument(
        "--diagnose-only",
        action="store_true",
        default=False,
        help="Only diagnose; overrides --apply-fixes and --dry-run.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="netrepair",
        description=(
            "netrepair -- diagnose network problems and, with explicit "
            "consent, repair them with automatic backups."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        default=False,
        help="Show version and exit.",
    )

    common = _common_options()
    subparsers = parser.add_subparsers(dest="command", help="Available subcommands")

    # -- diagnose ------------------------------------------------------------
    subparsers.add_parser(
        "diagnose",
        aliases=["diagnose-all"],
        parents=[common],
        help="Run diagnostics only (read-only).",
        description="Probe the host and classify its connectivity. Never repairs.",
    )
    for name in _DIAGNOSABLE:
        label = _CATEGORY_COMMANDS[name].value
        sub = subparsers.add_parser(
            f"diagnose-{name}",
            parents=[common],
            help=f"Run the {label} probe only (read-only).",
            description=f"Report on {label} without classifying the whole host.",
        )
        sub.set_defaults(category=_CATEGORY_COMMANDS[name])

    # -- repair --------------------------------------------------------------
    repair_parser = subparsers.add_parser(
        "repair",
        aliases=["repair-all"],
        parents=[common],
        help="Diagnose and repair, re-verifying after each attempt.",
        description=(
            "Run the diagnose/repair loop.  Requires --apply-fixes, or "
            "--dry-run for a preview."
        ),
    )
    _add_safety_flags(repair_parser)
    for name, category in _CATEGORY_COMMANDS.items():
        sub = subparsers.add_parser(
            f"repair-{name}",
            parents=[common],
            help=f"Diagnose, then repair {category.value} only.",
            description=(
                f"Run the diagnose/repair loop restricted to {category.value}.  "
                "Requires --apply-fixes, or --dry-run for a preview."
            ),
        )
        _add_safety_flags(sub)
        sub.set_defaults(category=category)

    # -- interactive ---------------------------------------------------------
    interactive_parser = subparsers.add_parser(
        "interactive",
        parents=[common],
        help="Menu-driven session.",
        description="Inspect the session, fire triggers and run cycles by hand.",
    )
    _add_safety_flags(interactive_parser)

    # -- backups -------------------------------------------------------------
    backups_parser = subparsers.add_parser(
        "backups",
        parents=[common],
        help="List (or prune) file backups.",
        description="List backup files, newest first.",
    )
    backups_parser.add_argument(
        "--clean",
        type=int,
        default=None,
        metavar="KEEP",
        help="Delete all but the newest KEEP backups.",
    )

    return parser


# =========================================================================
# Wiring
# =========================================================================

@dataclass
class _Session:
    """Everything one invocation needs, built once from the arguments."""

    config: RepairConfig
    context: DiagnosticContext
    event_bus: EventBus
    event_store: EventStore
    backup_store: BackupStore
    probes: ProbeSuite
    orchestrator: RepairOrchestrator
    loop: VerificationLoop
    dashboard: ConsoleDashboard


def _resolve_configs(args: argparse.Namespace) -> tuple[RepairConfig, LoggingConfig]:
    repair_cfg = RepairConfig()
    logging_cfg = LoggingConfig()
    if args.config:
        sections = load_config(args.config)
        if isinstance(sections.get("repair"), RepairConfig):
            repair_cfg = sections["repair"]
        if isinstance(sections.get("logging"), LoggingConfig):
            logging_cfg = sections["logging"]

    if args.backup_dir:
        repair_cfg = dataclasses.replace(repair_cfg, backup_dir=args.backup_dir)
    if args.verbose:
        logging_cfg = dataclasses.replace(logging_cfg, level="DEBUG")
    elif args.quiet:
        logging_cfg = dataclasses.replace(logging_cfg, level="ERROR")
    if args.log_file:
        logging_cfg = dataclasses.replace(logging_cfg, log_file=args.log_file)

    repair_cfg.validate()
    logging_cfg.validate()
    return repair_cfg, logging_cfg


def _build_session(args: argparse.Namespace) -> _Session:
    config, logging_cfg = _resolve_configs(args)
    configure_logging(logging_cfg.level, logging_cfg.log_file or None)

    event_bus = EventBus()
    event_store = EventStore()
    event_bus.subscribe_all(event_store.append)

    runner = CommandRunner(timeout=config.command_timeout)
    probes = ProbeSuite(default_probes(runner, config), max_workers=config.probe_workers)
    connectivity = probes.get(DiagnosticCategory.CONNECTIVITY) or ConnectivityProbe(
        runner, config
    )
    backup_store = BackupStore(config.backup_dir, event_bus=event_bus)
    orchestrator = RepairOrchestrator(
        default_actions(runner, config),
        connectivity,
        backup_store,
        event_bus=event_bus,
    )
    dashboard = ConsoleDashboard()
    dashboard.follow(event_bus)
    return _Session(
        config=config,
        context=DiagnosticContext(),
        event_bus=event_bus,
        event_store=event_store,
        backup_store=backup_store,
        probes=probes,
        orchestrator=orchestrator,
        loop=VerificationLoop(probes, orchestrator, event_bus=event_bus),
        dashboard=dashboard,
    )


def _safety_from_args(args: argparse.Namespace) -> SafetyDecision:
    return evaluate(
        SafetyFlags(
            dry_run=getattr(args, "dry_run", False),
            apply_fixes=getattr(args, "apply_fixes", False),
            diagnose_only=getattr(args, "diagnose_only", False),
        )
    )


def _show_loop(session: _Session, result: LoopResult) -> None:
    """Print rounds and repair reports in the order they happened."""
    for i, round_ in enumerate(result.rounds):
        session.dashboard.print_diagnostics(round_)
        if i < len(result.reports):
            session.dashboard.print_repair_report(result.reports[i])
    session.dashboard.print_context(session.context)
    session.dashboard.print_loop_summary(result)


def _write_report(args: argparse.Namespace, session: _Session, result: LoopResult) -> None:
    if not args.report:
        return
    export_json(build_report(result, session.context, session.event_store), args.report)
    logger.info("Session report written to %s", args.report)


# =========================================================================
# Subcommand handlers
# =========================================================================

def _run_diagnosis(args: argparse.Namespace, session: _Session) -> int:
    decision = SafetyDecision()
    session.dashboard.print_mode_banner(decision)

    result = session.loop.run(session.context, decision, repair=False)
    _show_loop(session, result)
    session.dashboard.print_repair_hint(result.final_state)
    _write_report(args, session, result)
    return int(result.exit_code)


def _cmd_diagnose(args: argparse.Namespace) -> int:
    """Execute the ``diagnose`` subcommand."""
    return _run_diagnosis(args, _build_session(args))


def _cmd_diagnose_category(args: argparse.Namespace) -> int:
    """Execute ``diagnose-dns``, ``diagnose-network`` or ``diagnose-routing``.

    Runs one category's probe without classifying the host, so the context
    and the state machine are left alone.
    """
    session = _build_session(args)
    session.dashboard.print_mode_banner(SafetyDecision())

    results = session.probes.restricted({args.category}).run_all()
    session.dashboard.print_diagnostics(results)
    healthy = bool(results) and all(r.passed for r in results)
    exit_code = ExitCode.HEALTHY if healthy else ExitCode.UNHEALTHY
    _write_report(
        args,
        session,
        LoopResult(
            final_state=session.context.current_state,
            rounds=[results],
            stopped_reason=StopReason.DIAGNOSE_ONLY,
            exit_code=exit_code,
        ),
    )
    return int(exit_code)


def _cmd_repair(args: argparse.Namespace) -> int:
    """Execute ``repair`` and the per-category ``repair-*`` subcommands."""
    session = _build_session(args)
    if args.diagnose_only:
        return _run_diagnosis(args, session)

    decision = _safety_from_args(args)
    if decision.blocked:
        session.dashboard.print_blocked_banner()
        return int(ExitCode.UNHEALTHY)
    session.dashboard.print_mode_banner(decision)

    category = getattr(args, "category", None)
    try:
        result = session.loop.run(
            session.context,
            decision,
            repair=True,
            only=None if category is None else {category},
        )
    except NetRepairError as exc:
        session.dashboard.print_error(str(exc))
        return int(ExitCode.UNHEALTHY)

    _show_loop(session, result)
    _write_report(args, session, result)
    return int(result.exit_code)


def _cmd_interactive(args: argparse.Namespace) -> int:
    """Execute the ``interactive`` subcommand."""
    session = _build_session(args)
    interactive = InteractiveSession(
        context=session.context,
        loop=session.loop,
        orchestrator=session.orchestrator,
        backup_store=session.backup_store,
        safety=_safety_from_args(args),
        dashboard=session.dashboard,
    )
    return int(interactive.run())


def _cmd_backups(args: argparse.Namespace) -> int:
    """Execute the ``backups`` subcommand."""
    config, logging_cfg = _resolve_configs(args)
    configure_logging(logging_cfg.level, logging_cfg.log_file or None)
    store = BackupStore(config.backup_dir)
    dashboard = ConsoleDashboard()

    if args.clean is not None:
        removed = store.clean_old(keep=args.clean)
        dashboard.console.print(f"Removed {len(removed)} old backup(s).")
    dashboard.print_backups(store.list_backups())
    return 0


# =========================================================================
# Main entry point
# =========================================================================

def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Parameters
    ----------
    argv:
        Command-line arguments.  Defaults to ``sys.argv[1:]``.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        from netrepair import __version__
        print(f"netrepair {__version__}")
        sys.exit(0)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handlers: dict[str, Any] = {
        "diagnose": _cmd_diagnose,
        "diagnose-all": _cmd_diagnose,
        "repair": _cmd_repair,
        "repair-all": _cmd_repair,
        "interactive": _cmd_interactive,
        "backups": _cmd_backups,
    }
    handlers.update({f"diagnose-{name}": _cmd_diagnose_category for name in _DIAGNOSABLE})
    handlers.update({f"repair-{name}": _cmd_repair for name in _CATEGORY_COMMANDS})

    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    try:
        exit_code = handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        exit_code = int(ExitCode.INTERRUPTED)
    except Exception as exc:
        logger.debug("Fatal error", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = int(ExitCode.UNHEALTHY)

    sys.exit(exit_code)

"""JSON session report export.

:class:`SessionReport` is a pydantic model assembled from a finished
:class:`~netrepair.services.verification.LoopResult`, the context and,
optionally, the events collected by an
:class:`~netrepair.infrastructure.event_bus.EventStore`.
"""

from __future__ import annotations

import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from netrepair import __version__
from netrepair.domain.context import DiagnosticContext
from netrepair.domain.values import DiagnosticResult, RepairReport
from netrepair.infrastructure.event_bus import EventStore
from netrepair.services.verification import LoopResult


class ResultEntry(BaseModel):
    """One probe result."""

    category: str
    result: str = Field(description="PASS, FAIL or UNKNOWN")
    detail: str = ""
    dns_server_count: int = 0


class CategoryEntry(BaseModel):
    """One category of a repair cycle."""

    category: str
    status: str
    detail: str = ""
    planned: list[str] = Field(default_factory=list)
    backups: list[str] = Field(default_factory=list)


class RepairEntry(BaseModel):
    """One repair cycle."""

    attempt: int
    outcome: str
    starting_state: str
    elapsed_ms: float
    final_check: ResultEntry | None = None
    categories: list[CategoryEntry] = Field(default_factory=list)


class SessionReport(BaseModel):
    """Everything a session did, suitable for ``--report FILE``."""

    tool_version: str = __version__
    generated_at: str = Field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat()
    )
    session_id: str
    final_state: str
    repair_attempts: int
    stopped_reason: str
    exit_code: int
    elapsed_seconds: float
    context: dict = Field(default_factory=dict)
    rounds: list[list[ResultEntry]] = Field(default_factory=list)
    repairs: list[RepairEntry] = Field(default_factory=list)
    event_counts: dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def _result_entry(result: DiagnosticResult) -> ResultEntry:
    return ResultEntry(
        category=result.category.value,
        result=result.label,
        detail=result.detail,
        dns_server_count=result.dns_server_count,
    )


def _repair_entry(report: RepairReport) -> RepairEntry:
    return RepairEntry(
        attempt=report.attempt,
        outcome=report.outcome.value,
        starting_state=report.starting_state.value,
        elapsed_ms=max(report.finished_at - report.started_at, 0.0) * 1000.0,
        final_check=_result_entry(report.final_check) if report.final_check else None,
        categories=[
            CategoryEntry(
                category=c.category.value,
                status=c.status.value,
                detail=c.detail,
                planned=list(c.planned),
                backups=[b.snapshot_path for b in c.backups if b.existed],
            )
            for c in report.categories
        ],
    )


def build_report(
    result: LoopResult,
    context: DiagnosticContext,
    event_store: EventStore | None = None,
) -> SessionReport:
    """Assemble a :class:`SessionReport` from a finished loop."""
    counts: dict[str, int] = {}
    if event_store is not None:
        for event in event_store.query():
            name = type(event).__name__
            counts[name] = counts.get(name, 0) + 1

    return SessionReport(
        session_id=context.session_id,
        final_state=result.final_state.value,
        repair_attempts=result.repair_attempts,
        stopped_reason=result.stopped_reason.value,
        exit_code=int(result.exit_code),
        elapsed_seconds=result.elapsed_seconds,
        context=context.to_dict(),
        rounds=[[_result_entry(r) for r in round_] for round_ in result.rounds],
        repairs=[_repair_entry(r) for r in result.reports],
        event_counts=counts,
    )


def export_json(report: SessionReport, path: str | Path) -> None:
    """Write *report* to *path* as indented JSON.

    Parameters
    ----------
    report:
        The report to export.
    path:
        File path for the JSON output.  Parent directories are created.
    """
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(report.model_dump_json(indent=2), encoding="utf-8")

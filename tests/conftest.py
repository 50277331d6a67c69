"""Shared fixtures for the netrepair test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from netrepair.domain.context import DiagnosticContext
from netrepair.domain.enums import DiagnosticCategory, NetworkState
from netrepair.domain.values import SafetyDecision
from netrepair.infrastructure.backup import BackupStore
from netrepair.infrastructure.event_bus import EventBus, EventStore
from netrepair.services.orchestrator import RepairOrchestrator
from tests.helpers.fakes import FakeAction, GrantedPrivileges, ScriptedProbe, passing

# ---------------------------------------------------------------------------
# Context fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def context() -> DiagnosticContext:
    """A fresh context in UNKNOWN."""
    return DiagnosticContext()


@pytest.fixture
def dns_failed_context() -> DiagnosticContext:
    """A context diagnosed as DNS_FAILED with no attempts yet."""
    return DiagnosticContext(
        current_state=NetworkState.DNS_FAILED,
        previous_state=NetworkState.DIAGNOSING,
        has_route=True,
        has_carrier=True,
    )


# ---------------------------------------------------------------------------
# Infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def event_store(event_bus: EventBus) -> EventStore:
    """Store collecting every event published on ``event_bus``."""
    store = EventStore()
    event_bus.subscribe_all(store.append)
    return store


@pytest.fixture
def backup_dir(tmp_path: Path) -> Path:
    return tmp_path / "backups"


@pytest.fixture
def backup_store(backup_dir: Path, event_bus: EventBus) -> BackupStore:
    return BackupStore(backup_dir, event_bus=event_bus)


@pytest.fixture
def resolv_conf(tmp_path: Path) -> Path:
    """A resolver file with one broken nameserver."""
    path = tmp_path / "resolv.conf"
    path.write_text("search lan\nnameserver 10.0.0.53\n", encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Safety fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def apply_fixes() -> SafetyDecision:
    return SafetyDecision(apply_fixes=True)


@pytest.fixture
def dry_run() -> SafetyDecision:
    return SafetyDecision(dry_run=True)


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def online_probe() -> ScriptedProbe:
    """Connectivity probe that always passes."""
    return ScriptedProbe(
        DiagnosticCategory.CONNECTIVITY, [passing(DiagnosticCategory.CONNECTIVITY)]
    )


@pytest.fixture
def dns_action(resolv_conf: Path) -> FakeAction:
    """DNS repair writing a working nameserver into ``resolv_conf``."""
    return FakeAction(
        DiagnosticCategory.DNS, path=resolv_conf, content="nameserver 1.1.1.1\n"
    )


@pytest.fixture
def orchestrator(
    dns_action: FakeAction,
    online_probe: ScriptedProbe,
    backup_store: BackupStore,
    event_bus: EventBus,
) -> RepairOrchestrator:
    """Orchestrator with a file-writing DNS action and granted privileges."""
    return RepairOrchestrator(
        {DiagnosticCategory.DNS: dns_action},
        online_probe,
        backup_store,
        privilege_checker=GrantedPrivileges(),
        event_bus=event_bus,
    )

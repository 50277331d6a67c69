"""Tests for DiagnosticContext and its pure queries."""

from __future__ import annotations

import pytest

from netrepair.domain.context import (
    MAX_REPAIR_ATTEMPTS,
    DiagnosticContext,
    can_repair,
    has_problem,
)
from netrepair.domain.enums import FAILURE_STATES, DiagnosticCategory, NetworkState


class TestHasProblem:
    @pytest.mark.parametrize("state", list(NetworkState))
    def test_only_failure_states(self, state: NetworkState) -> None:
        assert has_problem(state) is (state in FAILURE_STATES)

    def test_failure_states(self) -> None:
        assert FAILURE_STATES == {
            NetworkState.DNS_FAILED,
            NetworkState.NO_ROUTE,
            NetworkState.NO_CARRIER,
            NetworkState.NO_INTERNET,
        }


class TestCanRepair:
    @pytest.mark.parametrize("state", sorted(FAILURE_STATES, key=lambda s: s.value))
    def test_failure_state_with_attempts_left(self, state: NetworkState) -> None:
        ctx = DiagnosticContext(current_state=state, repair_attempts=MAX_REPAIR_ATTEMPTS - 1)
        assert can_repair(ctx)

    def test_attempts_exhausted(self) -> None:
        ctx = DiagnosticContext(
            current_state=NetworkState.NO_ROUTE, repair_attempts=MAX_REPAIR_ATTEMPTS
        )
        assert not can_repair(ctx)

    @pytest.mark.parametrize(
        "state",
        [
            NetworkState.UNKNOWN,
            NetworkState.DIAGNOSING,
            NetworkState.HEALTHY,
            NetworkState.REPAIRING,
            NetworkState.REPAIR_FAILED,
        ],
    )
    def test_non_failure_states(self, state: NetworkState) -> None:
        assert not can_repair(DiagnosticContext(current_state=state))


class TestDiagnosticContext:
    def test_defaults(self) -> None:
        ctx = DiagnosticContext()
        assert ctx.current_state == NetworkState.UNKNOWN
        assert ctx.previous_state == NetworkState.UNKNOWN
        assert ctx.dns_server_count == 0
        assert not (ctx.has_route or ctx.has_carrier or ctx.has_internet)
        assert ctx.repair_attempts == 0
        assert ctx.max_repair_attempts == 3
        assert not ctx.is_terminal
        assert len(ctx.session_id) == 8

    def test_sessions_are_distinct(self) -> None:
        assert DiagnosticContext().session_id != DiagnosticContext().session_id

    def test_to_dict(self) -> None:
        ctx = DiagnosticContext(
            session_id="abc12345",
            current_state=NetworkState.DNS_FAILED,
            unknown_categories=frozenset({DiagnosticCategory.FIREWALL}),
        )
        data = ctx.to_dict()
        assert data["session_id"] == "abc12345"
        assert data["current_state"] == "dns_failed"
        assert data["unknown_categories"] == ["firewall"]
        assert data["max_repair_attempts"] == MAX_REPAIR_ATTEMPTS
        assert "lock" not in data

    def test_lock_not_part_of_equality(self) -> None:
        a = DiagnosticContext(session_id="same")
        b = DiagnosticContext(session_id="same")
        assert a == b
        assert a.lock is not b.lock

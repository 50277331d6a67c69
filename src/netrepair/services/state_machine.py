"""State machine core for the diagnose/repair loop.

The whole transition graph lives in :func:`next_transition`, a pure function
over ``(state, trigger)`` that returns the next state plus the context field
updates, or ``None`` when the pair is not legal.  :func:`apply_transition`
is the only code that mutates a :class:`DiagnosticContext`; it checks the
context invariants before and after every applied transition.

Transition graph
----------------
=====================  ==========================  ==========================
Trigger                Legal from                  Result
=====================  ==========================  ==========================
START_DIAGNOSIS        any but REPAIR_FAILED       DIAGNOSING, observations
                                                   cleared
*_OK                   DIAGNOSING                  field set, no state change
*_FAIL                 DIAGNOSING                  field cleared, failure
                                                   state
DIAGNOSIS_COMPLETE     DIAGNOSING                  :func:`classify`
START_REPAIR           ``can_repair``              REPAIRING, attempts + 1
REPAIR_SUCCESS         REPAIRING                   DIAGNOSING
REPAIR_FAIL            REPAIRING                   REPAIR_FAILED at the bound,
                                                   else the pre-repair state
RESET                  any                         fresh context
=====================  ==========================  ==========================
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from netrepair.domain.context import (
    MAX_REPAIR_ATTEMPTS,
    DiagnosticContext,
    can_repair,
    has_problem,
)
from netrepair.domain.enums import DiagnosticCategory, NetworkState, Trigger
from netrepair.domain.events import StateChanged, TransitionRejected
from netrepair.domain.exceptions import InvariantViolation
from netrepair.infrastructure.event_bus import EventBus

logger = logging.getLogger(__name__)

_OBSERVATIONS_CLEARED: Mapping[str, Any] = {
    "dns_server_count": 0,
    "has_route": False,
    "has_carrier": False,
    "has_internet": False,
    "unknown_categories": frozenset(),
}

_FRESH_CONTEXT: Mapping[str, Any] = {
    **_OBSERVATIONS_CLEARED,
    "repair_attempts": 0,
}

# Categories whose probes feed the priority rules.
_CLASSIFIED_CATEGORIES = frozenset({
    DiagnosticCategory.DNS,
    DiagnosticCategory.ROUTING,
    DiagnosticCategory.INTERFACES,
    DiagnosticCategory.CONNECTIVITY,
})

_FAIL_TRIGGERS: Mapping[Trigger, tuple[str, Any, NetworkState]] = {
    Trigger.DNS_FAIL: ("dns_server_count", 0, NetworkState.DNS_FAILED),
    Trigger.ROUTE_FAIL: ("has_route", False, NetworkState.NO_ROUTE),
    Trigger.CARRIER_FAIL: ("has_carrier", False, NetworkState.NO_CARRIER),
    Trigger.INTERNET_FAIL: ("has_internet", False, NetworkState.NO_INTERNET),
}

_OK_TRIGGERS: Mapping[Trigger, str] = {
    Trigger.ROUTE_OK: "has_route",
    Trigger.CARRIER_OK: "has_carrier",
    Trigger.INTERNET_OK: "has_internet",
}


@dataclass(frozen=True)
class Transition:
    """Next state plus the context fields to overwrite."""

    next_state: NetworkState
    updates: Mapping[str, Any] = field(default_factory=dict)


# ===================================================================== #
#  Pure functions                                                        #
# ===================================================================== #


def classify(
    context: DiagnosticContext,
    unknown: frozenset[DiagnosticCategory] = frozenset(),
) -> NetworkState:
    """Apply the ``DIAGNOSIS_COMPLETE`` priority rules; first match wins.

    1. internet, route, carrier and at least one DNS server -> HEALTHY
    2. no DNS server or no internet -> DNS_FAILED
    3. no route -> NO_ROUTE
    4. no carrier -> NO_CARRIER
    5. otherwise -> NO_INTERNET

    A category in *unknown* counts as satisfied.  When every classified
    category is unknown there is nothing to judge and the result is UNKNOWN.
    """
    if _CLASSIFIED_CATEGORIES <= unknown:
        return NetworkState.UNKNOWN

    dns_ok = context.dns_server_count > 0 or DiagnosticCategory.DNS in unknown
    internet_ok = context.has_internet or DiagnosticCategory.CONNECTIVITY in unknown
    route_ok = context.has_route or DiagnosticCategory.ROUTING in unknown
    carrier_ok = context.has_carrier or DiagnosticCategory.INTERFACES in unknown

    if internet_ok and route_ok and carrier_ok and dns_ok:
        return NetworkState.HEALTHY
    # Rule 2 also catches "no internet", so NO_INTERNET is never classified.
    if not dns_ok or not internet_ok:
        return NetworkState.DNS_FAILED
    if not route_ok:
        return NetworkState.NO_ROUTE
    if not carrier_ok:
        return NetworkState.NO_CARRIER
    return NetworkState.NO_INTERNET


def next_transition(
    context: DiagnosticContext,
    trigger: Trigger,
    *,
    dns_server_count: int = 0,
    unknown: frozenset[DiagnosticCategory] = frozenset(),
) -> Transition | None:
    """Return the transition for ``(context.current_state, trigger)``.

    ``None`` means the pair is not legal and the context must stay as it is.
    ``dns_server_count`` is read by ``DNS_OK``; ``unknown`` by
    ``DIAGNOSIS_COMPLETE``.
    """
    state = context.current_state
    diagnosing = state == NetworkState.DIAGNOSING

    if trigger == Trigger.RESET:
        return Transition(NetworkState.UNKNOWN, _FRESH_CONTEXT)

    if trigger == Trigger.START_DIAGNOSIS:
        if state == NetworkState.REPAIR_FAILED:
            return None
        return Transition(NetworkState.DIAGNOSING, _OBSERVATIONS_CLEARED)

    if trigger == Trigger.DNS_OK:
        if not diagnosing:
            return None
        if dns_server_count < 0:
            raise ValueError(f"dns_server_count must be >= 0, got {dns_server_count}")
        return Transition(state, {"dns_server_count": dns_server_count})

    if trigger in _OK_TRIGGERS:
        if not diagnosing:
            return None
        return Transition(state, {_OK_TRIGGERS[trigger]: True})

    if trigger in _FAIL_TRIGGERS:
        if not diagnosing:
            return None
        field_name, cleared, failure_state = _FAIL_TRIGGERS[trigger]
        return Transition(failure_state, {field_name: cleared})

    if trigger == Trigger.DIAGNOSIS_COMPLETE:
        if not diagnosing:
            return None
        return Transition(
            classify(context, unknown),
            {"unknown_categories": frozenset(unknown)},
        )

    if trigger == Trigger.START_REPAIR:
        if not can_repair(context):
            return None
        return Transition(
            NetworkState.REPAIRING,
            {"repair_attempts": context.repair_attempts + 1},
        )

    if trigger == Trigger.REPAIR_SUCCESS:
        if state != NetworkState.REPAIRING:
            return None
        return Transition(NetworkState.DIAGNOSING)

    if trigger == Trigger.REPAIR_FAIL:
        if state != NetworkState.REPAIRING:
            return None
        if context.repair_attempts >= MAX_REPAIR_ATTEMPTS:
            return Transition(NetworkState.REPAIR_FAILED)
        # Nothing else is legal while REPAIRING, so previous_state is still
        # the failure state the cycle started from.
        return Transition(context.previous_state)

    return None


def check_invariants(context: DiagnosticContext) -> None:
    """Raise :class:`InvariantViolation` if *context* is inconsistent."""
    if not 0 <= context.repair_attempts <= MAX_REPAIR_ATTEMPTS:
        raise InvariantViolation(
            f"repair_attempts={context.repair_attempts} outside "
            f"[0, {MAX_REPAIR_ATTEMPTS}]",
            invariant="bounded_attempts",
        )
    if context.dns_server_count < 0:
        raise InvariantViolation(
            f"dns_server_count={context.dns_server_count} is negative",
            invariant="dns_count_non_negative",
        )
    if context.current_state == NetworkState.REPAIRING and context.repair_attempts < 1:
        raise InvariantViolation(
            "REPAIRING without a counted attempt",
            invariant="repairing_counts_attempt",
        )
    if (
        context.current_state == NetworkState.REPAIR_FAILED
        and context.repair_attempts < MAX_REPAIR_ATTEMPTS
    ):
        raise InvariantViolation(
            "REPAIR_FAILED before the attempt bound was reached",
            invariant="terminal_at_bound",
        )


# ===================================================================== #
#  Mutation                                                              #
# ===================================================================== #


def apply_transition(
    context: DiagnosticContext,
    trigger: Trigger,
    *,
    dns_server_count: int = 0,
    unknown: frozenset[DiagnosticCategory] = frozenset(),
    event_bus: EventBus | None = None,
) -> bool:
    """Fire *trigger* against *context*.

    Returns ``True`` when the transition was applied and ``False`` when the
    trigger was illegal (a no-op).
    """
    check_invariants(context)

    transition = next_transition(
        context, trigger, dns_server_count=dns_server_count, unknown=unknown
    )
    if transition is None:
        logger.debug(
            "Ignoring %s in state %s", trigger.value, context.current_state.value
        )
        if event_bus is not None:
            event_bus.publish(
                TransitionRejected(
                    source_id=context.session_id,
                    trigger=trigger,
                    state=context.current_state,
                )
            )
        return False

    before = context.current_state
    for name, value in transition.updates.items():
        setattr(context, name, value)
    context.previous_state = before
    context.current_state = transition.next_state

    check_invariants(context)

    logger.debug(
        "%s: %s -> %s (attempts=%d)",
        trigger.value,
        before.value,
        context.current_state.value,
        context.repair_attempts,
    )
    if event_bus is not None:
        event_bus.publish(
            StateChanged(
                source_id=context.session_id,
                trigger=trigger,
                previous_state=before,
                new_state=context.current_state,
                repair_attempts=context.repair_attempts,
            )
        )
    return True


class StateMachine:
    """Binds one context to an optional event bus.

    Thin convenience wrapper so the orchestrator, the verification loop and
    the interactive session all fire triggers the same way.
    """

    def __init__(self, context: DiagnosticContext, event_bus: EventBus | None = None) -> None:
        self._context = context
        self._event_bus = event_bus

    @property
    def context(self) -> DiagnosticContext:
        return self._context

    @property
    def state(self) -> NetworkState:
        return self._context.current_state

    @property
    def event_bus(self) -> EventBus | None:
        return self._event_bus

    def fire(
        self,
        trigger: Trigger,
        *,
        dns_server_count: int = 0,
        unknown: frozenset[DiagnosticCategory] = frozenset(),
    ) -> bool:
        return apply_transition(
            self._context,
            trigger,
            dns_server_count=dns_server_count,
            unknown=unknown,
            event_bus=self._event_bus,
        )

    def can_repair(self) -> bool:
        return can_repair(self._context)

    def has_problem(self) -> bool:
        return has_problem(self._context.current_state)

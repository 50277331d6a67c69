"""Domain enumerations for the netrepair control loop.

These enums capture the fixed vocabularies used across the domain layer:
network states, state-machine triggers, diagnostic categories, per-category
repair statuses, cycle outcomes, and process exit codes.
"""

from enum import Enum, IntEnum


class NetworkState(Enum):
    """Finite-state-machine states for the diagnose/repair loop."""

    UNKNOWN = "unknown"
    DIAGNOSING = "diagnosing"
    HEALTHY = "healthy"
    DNS_FAILED = "dns_failed"
    NO_ROUTE = "no_route"
    NO_CARRIER = "no_carrier"
    NO_INTERNET = "no_internet"
    REPAIRING = "repairing"
    REPAIR_FAILED = "repair_failed"  # terminal until RESET


FAILURE_STATES: frozenset[NetworkState] = frozenset({
    NetworkState.DNS_FAILED,
    NetworkState.NO_ROUTE,
    NetworkState.NO_CARRIER,
    NetworkState.NO_INTERNET,
})


class Trigger(Enum):
    """Inputs accepted by the state machine."""

    START_DIAGNOSIS = "start_diagnosis"
    DNS_OK = "dns_ok"
    ROUTE_OK = "route_ok"
    CARRIER_OK = "carrier_ok"
    INTERNET_OK = "internet_ok"
    DNS_FAIL = "dns_fail"
    ROUTE_FAIL = "route_fail"
    CARRIER_FAIL = "carrier_fail"
    INTERNET_FAIL = "internet_fail"
    DIAGNOSIS_COMPLETE = "diagnosis_complete"
    START_REPAIR = "start_repair"
    REPAIR_SUCCESS = "repair_success"
    REPAIR_FAIL = "repair_fail"
    RESET = "reset"


class DiagnosticCategory(Enum):
    """Areas inspected by a probe."""

    DNS = "dns"
    ROUTING = "routing"
    INTERFACES = "interfaces"
    FIREWALL = "firewall"
    NETWORK_MANAGER = "network_manager"
    CONNECTIVITY = "connectivity"


# Dependency order for repairs: routing needs an up interface, DNS
# resolution needs routing.
REPAIR_ORDER: tuple[DiagnosticCategory, ...] = (
    DiagnosticCategory.INTERFACES,
    DiagnosticCategory.ROUTING,
    DiagnosticCategory.DNS,
    DiagnosticCategory.NETWORK_MANAGER,
)


class CategoryStatus(Enum):
    """Result of one category's repair step inside a cycle."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"  # failed, and its backups were restored
    SKIPPED = "skipped"  # tool unavailable
    SIMULATED = "simulated"  # dry run


class RepairOutcome(Enum):
    """Aggregate outcome of a repair cycle."""

    SUCCESS = "success"
    PARTIAL = "partial"  # some categories improved, final check still fails
    FAILED = "failed"
    DRY_RUN = "dry_run"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class ExitCode(IntEnum):
    """Process exit codes exposed by the CLI."""

    HEALTHY = 0
    UNHEALTHY = 1
    REPAIR_FAILED = 2
    INTERRUPTED = 130

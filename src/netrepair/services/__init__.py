"""Service layer: state machine, safety gate, probes, repairs and the loop.

Re-exports the public service types::

    from netrepair.services import RepairOrchestrator, VerificationLoop
"""

# -- State machine ------------------------------------------------------------
from .state_machine import (
    StateMachine,
    Transition,
    apply_transition,
    check_invariants,
    classify,
    next_transition,
)

# -- Safety gate --------------------------------------------------------------
from .safety import SafetyFlags, describe, evaluate

# -- Probes -------------------------------------------------------------------
from .probes import (
    BaseProbe,
    ConnectivityProbe,
    DnsProbe,
    FirewallProbe,
    InterfaceProbe,
    NetworkManagerProbe,
    ProbeSuite,
    RoutingProbe,
    default_probes,
    fold_results,
)

# -- Repair actions -----------------------------------------------------------
from .actions import (
    BaseRepairAction,
    DnsRepair,
    InterfaceRepair,
    NetworkManagerRepair,
    RoutingRepair,
    default_actions,
)

# -- Orchestration ------------------------------------------------------------
from .orchestrator import RepairOrchestrator, applicable_categories
from .verification import LoopResult, StopReason, VerificationLoop, exit_code_for

__all__ = [
    # state machine
    "StateMachine",
    "Transition",
    "apply_transition",
    "check_invariants",
    "classify",
    "next_transition",
    # safety
    "SafetyFlags",
    "describe",
    "evaluate",
    # probes
    "BaseProbe",
    "ConnectivityProbe",
    "DnsProbe",
    "FirewallProbe",
    "InterfaceProbe",
    "NetworkManagerProbe",
    "ProbeSuite",
    "RoutingProbe",
    "default_probes",
    "fold_results",
    # actions
    "BaseRepairAction",
    "DnsRepair",
    "InterfaceRepair",
    "NetworkManagerRepair",
    "RoutingRepair",
    "default_actions",
    # orchestration
    "RepairOrchestrator",
    "applicable_categories",
    "LoopResult",
    "StopReason",
    "VerificationLoop",
    "exit_code_for",
]

"""netrepair.

Safety-first network diagnose-and-repair tool built around a bounded state
machine: probes classify the host's connectivity, repairs run only with
explicit consent, and every file a repair touches is backed up first.
"""

__version__ = "0.1.0"

from netrepair.domain import DiagnosticContext, NetworkState, Trigger
from netrepair.services import RepairOrchestrator, VerificationLoop

__all__ = [
    "DiagnosticContext",
    "NetworkState",
    "Trigger",
    "RepairOrchestrator",
    "VerificationLoop",
]

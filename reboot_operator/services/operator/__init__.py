"""
Operator Service - Rolling Reboot Coordination

Responsibilities:
- Acknowledge machines that finished rebooting
- Grant one machine (by default) permission to reboot at a time
- Wait, bounded by a deadline, for that machine to report completion
- Raise a Warning event when a machine does not come back
"""

from .context import OperatorContext
from .reboot_coordinator import CoordinationOutcome, CoordinationResult, RebootCoordinator
from .reconciler import IterationSummary, LoopStats, ReconciliationLoop
from .selectors import AnnotationView, filter_machines, just_rebooted, reboot_completed, wants_reboot
from .service import OperatorService, build_context

__all__ = [
    "OperatorContext",
    "CoordinationOutcome",
    "CoordinationResult",
    "RebootCoordinator",
    "IterationSummary",
    "LoopStats",
    "ReconciliationLoop",
    "AnnotationView",
    "filter_machines",
    "just_rebooted",
    "reboot_completed",
    "wants_reboot",
    "OperatorService",
    "build_context",
]

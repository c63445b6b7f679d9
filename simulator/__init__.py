"""
Virtual fleet simulator: machines with scripted reboot agents backed by
the in-memory state store.
"""

from .virtual_fleet import FleetConfig, VirtualFleet
from .virtual_machine import AgentBehaviour, MachineState, VirtualMachine

__all__ = [
    "AgentBehaviour",
    "FleetConfig",
    "MachineState",
    "VirtualFleet",
    "VirtualMachine",
]

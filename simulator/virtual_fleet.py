"""
Virtual Fleet Simulation

Combines virtual machines, their reboot agents and an in-memory state
store to simulate a fleet for testing the operator.

The operator talks to `fleet.store` and `fleet.events` exactly as it
would talk to the node API; each agent watches its own machine.
"""

import logging
from dataclasses import dataclass, field

from reboot_operator.common.constants import ANNOTATION_REBOOT_NEEDED, TRUE
from reboot_operator.storage.memory import InMemoryStateRepository, RecordingEventSink

from .virtual_machine import AgentBehaviour, VirtualMachine

logger = logging.getLogger(__name__)


@dataclass
class FleetConfig:
    """
    Configuration for the virtual fleet.
    """
    size: int = 3
    name_prefix: str = "node"

    # Simulated reboot duration per machine
    reboot_seconds: float = 0.05

    # Per-machine overrides, e.g. {"node-2": AgentBehaviour.STUCK}
    behaviours: dict[str, AgentBehaviour] = field(default_factory=dict)


class VirtualFleet:
    """
    Simulates a fleet of machines with reboot agents.
    """

    def __init__(self, config: FleetConfig | None = None):
        self.config = config or FleetConfig()
        self.store = InMemoryStateRepository()
        self.events = RecordingEventSink()

        self.machines: dict[str, VirtualMachine] = {}
        for i in range(self.config.size):
            name = f"{self.config.name_prefix}-{i + 1}"
            self.machines[name] = VirtualMachine(
                self.store,
                name,
                behaviour=self.config.behaviours.get(name, AgentBehaviour.NORMAL),
                reboot_seconds=self.config.reboot_seconds,
            )

        logger.info(f"Virtual fleet initialized with {len(self.machines)} machines")

    def __getitem__(self, name: str) -> VirtualMachine:
        return self.machines[name]

    async def start(self) -> None:
        for machine in self.machines.values():
            await machine.start()

    async def stop(self) -> None:
        for machine in self.machines.values():
            await machine.stop()

    def request_reboots(self, names: list[str] | None = None) -> None:
        """Have the given machines (default: all) ask for a reboot"""
        for name in names or list(self.machines):
            self.machines[name].request_reboot()

    def pending(self) -> list[str]:
        """Machines still holding RebootNeeded=true"""
        return [
            name for name, machine in self.machines.items()
            if machine.annotations.get(ANNOTATION_REBOOT_NEEDED) == TRUE
        ]

    def get_status(self) -> dict:
        return {
            name: {
                "behaviour": machine.behaviour.value,
                "annotations": machine.annotations,
                "reboots_started": machine.state.reboots_started,
                "reboots_completed": machine.state.reboots_completed,
            }
            for name, machine in self.machines.items()
        }

    def print_status(self) -> None:
        print("\n" + "=" * 60)
        print("  FLEET STATUS")
        print("=" * 60)
        for name, status in self.get_status().items():
            annotations = ", ".join(f"{k}={v}" for k, v in sorted(status["annotations"].items()))
            print(
                f"  {name:<12} {status['behaviour']:<7} "
                f"reboots {status['reboots_completed']}/{status['reboots_started']}  {annotations}"
            )
        if self.events.events:
            print(f"\n  Events: {len(self.events.events)}")
            for event in self.events.events:
                print(f"    {event.severity.value:<8} {event.machine}: {event.reason}")

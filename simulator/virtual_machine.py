"""
Virtual Machine with Reboot Agent

Simulates the per-machine agent that asks for, performs, and reports
reboots through annotations. Used to exercise the operator without a
real fleet.

Agent protocol (mirrors the real agent):
- RebootNeeded=true          when an update is staged
- RebootInProgress=true      once OkToReboot=true has been seen
- RebootNeeded=false,
  RebootInProgress=false     after the machine is back up

Behaviours:
- normal:  full cycle, reboot takes `reboot_seconds`
- stuck:   starts rebooting and never comes back
- split:   clears RebootNeeded and RebootInProgress at different times,
           never both at once (looks done only to a sloppy observer)
- ignore:  never reacts to OkToReboot
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from reboot_operator.common.constants import (
    ANNOTATION_REBOOT_IN_PROGRESS,
    ANNOTATION_REBOOT_NEEDED,
    ANNOTATION_REBOOT_PAUSED,
    FALSE,
    TRUE,
)
from reboot_operator.services.operator.selectors import AnnotationView
from reboot_operator.storage.memory import InMemoryStateRepository
from reboot_operator.storage.models import Machine

logger = logging.getLogger(__name__)


class AgentBehaviour(str, Enum):
    """How the simulated agent responds to a grant"""
    NORMAL = "normal"
    STUCK = "stuck"
    SPLIT = "split"
    IGNORE = "ignore"


@dataclass
class MachineState:
    """
    Holds what the agent has done so far.
    """
    rebooting: bool = False
    reboots_started: int = 0
    reboots_completed: int = 0
    grants_seen: list[str] = field(default_factory=list)  # resource versions


class VirtualMachine:
    """
    One fleet member and its reboot agent.

    The agent watches its own machine in the store and reacts to
    OkToReboot=true while it has a reboot pending.
    """

    def __init__(
        self,
        store: InMemoryStateRepository,
        name: str,
        behaviour: AgentBehaviour = AgentBehaviour.NORMAL,
        reboot_seconds: float = 0.05,
    ):
        self.store = store
        self.name = name
        self.behaviour = behaviour
        self.reboot_seconds = reboot_seconds
        self.state = MachineState()

        self._task: asyncio.Task | None = None
        self._reboot_task: asyncio.Task | None = None

        if name not in store:
            # Freshly booted agent reports nothing pending
            store.add_machine(name, {
                ANNOTATION_REBOOT_NEEDED: FALSE,
                ANNOTATION_REBOOT_IN_PROGRESS: FALSE,
            })

    # Operator-facing knobs ------------------------------------------------

    def request_reboot(self) -> Machine:
        """Agent staged an update and wants to reboot"""
        logger.info(f"{self.name}: requesting reboot")
        return self.store.apply_external(self.name, {ANNOTATION_REBOOT_NEEDED: TRUE})

    def pause(self) -> Machine:
        logger.info(f"{self.name}: paused")
        return self.store.apply_external(self.name, {ANNOTATION_REBOOT_PAUSED: TRUE})

    def resume(self) -> Machine:
        logger.info(f"{self.name}: resumed")
        return self.store.apply_external(self.name, {}, remove=(ANNOTATION_REBOOT_PAUSED,))

    @property
    def annotations(self) -> dict[str, str]:
        return self.store.annotations_of(self.name)

    # Agent loop -----------------------------------------------------------

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        for task in (self._reboot_task, self._task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def _run(self) -> None:
        current = self.store.get(self.name)
        self._react(current)

        async for event in self.store.watch(self.name, current.resource_version):
            if event.machine is not None:
                self._react(event.machine)

    def _react(self, machine: Machine) -> None:
        view = AnnotationView.of(machine)
        granted = view.ok_to_reboot == TRUE and view.reboot_needed == TRUE
        if not granted or self.state.rebooting:
            return

        self.state.grants_seen.append(machine.resource_version)
        if self.behaviour == AgentBehaviour.IGNORE:
            logger.info(f"{self.name}: ignoring grant")
            return

        self.state.rebooting = True
        self._reboot_task = asyncio.create_task(self._reboot())

    async def _reboot(self) -> None:
        self.state.reboots_started += 1
        self.store.apply_external(self.name, {ANNOTATION_REBOOT_IN_PROGRESS: TRUE})
        logger.info(f"{self.name}: rebooting ({self.behaviour.value})")

        if self.behaviour == AgentBehaviour.STUCK:
            return

        await asyncio.sleep(self.reboot_seconds)

        if self.behaviour == AgentBehaviour.SPLIT:
            # RebootNeeded clears while still in progress...
            self.store.apply_external(self.name, {ANNOTATION_REBOOT_NEEDED: FALSE})
            await asyncio.sleep(self.reboot_seconds)
            # ...then in-progress clears after a new update was staged
            self.store.apply_external(self.name, {
                ANNOTATION_REBOOT_NEEDED: TRUE,
                ANNOTATION_REBOOT_IN_PROGRESS: FALSE,
            })
            return

        self.store.apply_external(self.name, {
            ANNOTATION_REBOOT_NEEDED: FALSE,
            ANNOTATION_REBOOT_IN_PROGRESS: FALSE,
        })
        self.state.reboots_completed += 1
        self.state.rebooting = False
        logger.info(f"{self.name}: back up")

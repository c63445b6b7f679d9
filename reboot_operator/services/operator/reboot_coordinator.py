"""
Reboot Coordinator

Handshake with the reboot agent of one machine, carried entirely by that
machine's annotations.

Flow:
1. Requesting - set OkToReboot=true (versioned patch)
2. Waiting    - watch the machine from the pre-grant version until one
                snapshot shows OkToReboot=true, RebootNeeded=false and
                RebootInProgress=false together
3. Completed  - nothing else to do; the loop acknowledges it next pass
   TimedOut   - Warning event on the machine, annotations left alone
   Aborted    - grant or watch failed; logged only
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from reboot_operator.common.constants import (
    ANNOTATION_OK_TO_REBOOT,
    EVENT_REASON_REBOOT_FAILED,
    TRUE,
)
from reboot_operator.common.exceptions import AnnotationWriteError, WatchError
from reboot_operator.common.logging_setup import (
    get_service_logger,
    log_annotation_write,
    log_coordination,
)
from reboot_operator.storage.models import EventSeverity, Machine, WatchEventType

from .context import OperatorContext
from .selectors import AnnotationView

logger = get_service_logger("operator.coordinator")

TIMEOUT_MESSAGE = "Timed out waiting for machine to return after a reboot"


class CoordinationOutcome(str, Enum):
    """Terminal states of one handshake"""
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


@dataclass
class CoordinationResult:
    """What happened to one coordination attempt"""
    machine: str
    outcome: CoordinationOutcome
    detail: str = ""
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "machine": self.machine,
            "outcome": self.outcome.value,
            "detail": self.detail,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


class RebootCoordinator:
    """
    Grants one machine permission to reboot and waits for it to come back.

    The wait is bounded by settings.reboot_timeout_seconds; there is no
    other way to cut it short.
    """

    def __init__(
        self,
        context: OperatorContext,
        clock: Callable[[], float] = time.monotonic,
        watch_resume_delay: float = 1.0,
    ):
        self.context = context
        self._clock = clock
        self.watch_resume_delay = watch_resume_delay

        # Machines currently in Waiting
        self.waiting: set[str] = set()

    async def coordinate(self, machine: Machine) -> CoordinationResult:
        """Run the handshake for one machine"""
        started = self._clock()
        grant = {ANNOTATION_OK_TO_REBOOT: TRUE}

        try:
            await self.context.repository.set_annotations(
                machine.name, grant, machine.resource_version
            )
        except AnnotationWriteError as e:
            log_annotation_write(logger, machine.name, grant, success=False, error=e)
            return self._finish(machine, CoordinationOutcome.ABORTED, started, f"grant failed: {e}")

        log_annotation_write(logger, machine.name, grant)

        timeout = self.context.settings.reboot_timeout_seconds
        self.waiting.add(machine.name)
        try:
            await asyncio.wait_for(self._wait_for_completion(machine), timeout=timeout)
        except asyncio.TimeoutError:
            self.context.events.emit(
                machine,
                EventSeverity.WARNING,
                EVENT_REASON_REBOOT_FAILED,
                TIMEOUT_MESSAGE,
            )
            return self._finish(
                machine,
                CoordinationOutcome.TIMED_OUT,
                started,
                f"no completed reboot reported within {timeout:.0f}s",
            )
        except WatchError as e:
            return self._finish(machine, CoordinationOutcome.ABORTED, started, str(e))
        finally:
            self.waiting.discard(machine.name)

        return self._finish(machine, CoordinationOutcome.COMPLETED, started)

    async def _wait_for_completion(self, machine: Machine) -> Machine:
        """
        Consume watch events until a single snapshot satisfies the
        completion conjunction. Re-opens the watch from the last seen
        version if the store closes it.

        Raises:
            WatchError: subscription failed, reported an error, or the
                machine was deleted
        """
        version = machine.resource_version

        while True:
            subscription = self.context.repository.watch(machine.name, version)
            try:
                async for event in subscription:
                    if event.type == WatchEventType.ERROR:
                        raise WatchError(
                            event.error or "error event",
                            machine=machine.name,
                            status_code=event.status_code,
                        )
                    if event.type == WatchEventType.DELETED:
                        raise WatchError("machine was deleted", machine=machine.name)
                    if event.machine is None:
                        continue

                    version = event.machine.resource_version or version
                    # Whole conjunction on this one snapshot, every time
                    if self.context.reboot_completed(AnnotationView.of(event.machine)):
                        return event.machine

                    logger.debug(
                        f"Still waiting for {machine.name} at version {version}",
                        extra={"machine": machine.name, "annotations": event.machine.annotations},
                    )
            finally:
                await subscription.aclose()

            logger.debug(
                f"Watch on {machine.name} closed by store; resuming from version {version}",
                extra={"machine": machine.name},
            )
            await asyncio.sleep(self.watch_resume_delay)

    def _finish(
        self,
        machine: Machine,
        outcome: CoordinationOutcome,
        started: float,
        detail: str = "",
    ) -> CoordinationResult:
        result = CoordinationResult(
            machine=machine.name,
            outcome=outcome,
            detail=detail,
            elapsed_seconds=self._clock() - started,
        )
        log_coordination(logger, machine.name, outcome.value, result.elapsed_seconds, detail)
        return result

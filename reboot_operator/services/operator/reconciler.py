"""
Reconciliation Loop

One pass:
1. Wait for a rate limiter token
2. List machines
3. Acknowledge machines that just rebooted (OkToReboot=false)
4. List machines again
5. Pick machines that want a reboot
6. Take the first max_concurrent_reboots of them in listing order
7. Coordinate their reboots and wait for every attempt to finish

Failures are logged and end the pass; the next pass starts on the next
token. With the default bound of 1, at most one machine is ever granted
permission at a time, because coordination is awaited in-line.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

from reboot_operator.common.constants import ANNOTATION_OK_TO_REBOOT, FALSE
from reboot_operator.common.exceptions import AnnotationWriteError, ListError, OperatorError
from reboot_operator.common.logging_setup import get_service_logger, log_annotation_write
from reboot_operator.storage.models import Machine

from .context import OperatorContext
from .reboot_coordinator import CoordinationOutcome, CoordinationResult, RebootCoordinator
from .selectors import AnnotationView, filter_machines

logger = get_service_logger("operator.reconciler")


@dataclass
class IterationSummary:
    """Result of one reconciliation pass"""
    acknowledged: list[str] = field(default_factory=list)
    acknowledge_failures: list[str] = field(default_factory=list)
    candidates: list[str] = field(default_factory=list)
    results: list[CoordinationResult] = field(default_factory=list)
    list_failed: bool = False

    def to_dict(self) -> dict:
        return {
            "acknowledged": self.acknowledged,
            "acknowledge_failures": self.acknowledge_failures,
            "candidates": self.candidates,
            "results": [r.to_dict() for r in self.results],
            "list_failed": self.list_failed,
        }


@dataclass
class LoopStats:
    """Counters for the health endpoint"""
    iterations: int = 0
    list_failures: int = 0
    acknowledged: int = 0
    acknowledge_failures: int = 0
    unexpected_errors: int = 0
    outcomes: dict[str, int] = field(
        default_factory=lambda: {outcome.value: 0 for outcome in CoordinationOutcome}
    )
    last_iteration_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "iterations": self.iterations,
            "list_failures": self.list_failures,
            "acknowledged": self.acknowledged,
            "acknowledge_failures": self.acknowledge_failures,
            "unexpected_errors": self.unexpected_errors,
            "outcomes": dict(self.outcomes),
            "last_iteration_at": self.last_iteration_at,
        }


class ReconciliationLoop:
    """Drives rolling reboots across the fleet"""

    def __init__(
        self,
        context: OperatorContext,
        coordinator: RebootCoordinator | None = None,
    ):
        self.context = context
        self.coordinator = coordinator or RebootCoordinator(context)
        self.stats = LoopStats()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def waiting_on(self) -> list[str]:
        return sorted(self.coordinator.waiting)

    async def run(self) -> None:
        """Reconcile until stop() is called"""
        self._running = True
        logger.info(
            "Reconciliation loop started",
            extra={
                "poll_qps": self.context.settings.poll_qps,
                "max_concurrent_reboots": self.context.settings.max_concurrent_reboots,
            },
        )

        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except OperatorError as e:
                if not e.recoverable:
                    self._running = False
                    raise
                self.stats.unexpected_errors += 1
                logger.exception(f"Reconciliation pass failed: {e}")
            except Exception as e:
                self.stats.unexpected_errors += 1
                logger.exception(f"Unexpected error in reconciliation pass: {e}")

        logger.info("Reconciliation loop stopped")

    def stop(self) -> None:
        """Stop after the current pass"""
        self._running = False

    async def run_once(self) -> IterationSummary:
        """One full pass, token acquisition included"""
        summary = IterationSummary()

        await self.context.rate_limiter.accept()
        self.stats.iterations += 1
        self.stats.last_iteration_at = datetime.now(timezone.utc).isoformat()

        machines = await self._list_machines()
        if machines is None:
            summary.list_failed = True
            return summary

        rebooted = filter_machines(machines, self.context.just_rebooted)
        if rebooted:
            logger.info(
                f"Found {len(rebooted)} rebooted machines, setting {ANNOTATION_OK_TO_REBOOT} to false",
                extra={"count": len(rebooted)},
            )
        await self.acknowledge(rebooted, summary)

        # Re-list to see the fleet after acknowledgment
        machines = await self._list_machines()
        if machines is None:
            summary.list_failed = True
            return summary

        candidates = filter_machines(machines, self.context.wants_reboot)
        summary.candidates = [m.name for m in candidates]
        if not candidates:
            return summary

        # TODO: order candidates by something better than listing order
        # (e.g. longest waiting first) once the agent reports a request time.
        selected = candidates[: self.context.settings.max_concurrent_reboots]
        logger.info(
            f"Found {len(candidates)} machines that need a reboot, rebooting "
            + ", ".join(repr(m.name) for m in selected),
            extra={"count": len(candidates)},
        )

        summary.results = await self._coordinate(selected)
        for result in summary.results:
            self.stats.outcomes[result.outcome.value] += 1

        return summary

    async def acknowledge(
        self,
        machines: list[Machine],
        summary: IterationSummary | None = None,
    ) -> IterationSummary:
        """
        Set OkToReboot=false on each machine that still reads as just
        rebooted. A failed write is logged and the rest carry on.
        """
        summary = summary if summary is not None else IterationSummary()
        update = {ANNOTATION_OK_TO_REBOOT: FALSE}

        for machine in machines:
            if not self.context.just_rebooted(AnnotationView.of(machine)):
                logger.debug(f"{machine.name} no longer just rebooted; not acknowledging")
                continue

            try:
                await self.context.repository.set_annotations(
                    machine.name, update, machine.resource_version
                )
            except AnnotationWriteError as e:
                self.stats.acknowledge_failures += 1
                summary.acknowledge_failures.append(machine.name)
                if e.is_conflict:
                    # Agent wrote since the listing; next pass re-reads it
                    logger.debug(
                        f"{machine.name} changed since listing, acknowledgment deferred",
                        extra={"machine": machine.name},
                    )
                else:
                    log_annotation_write(logger, machine.name, update, success=False, error=e)
                continue

            self.stats.acknowledged += 1
            summary.acknowledged.append(machine.name)
            log_annotation_write(logger, machine.name, update)

        return summary

    async def _list_machines(self) -> list[Machine] | None:
        try:
            return await self.context.repository.list_machines()
        except ListError as e:
            self.stats.list_failures += 1
            logger.warning(f"Failed listing machines: {e}")
            return None

    async def _coordinate(self, selected: list[Machine]) -> list[CoordinationResult]:
        if len(selected) == 1:
            return [await self.coordinator.coordinate(selected[0])]

        outcomes = await asyncio.gather(
            *(self.coordinator.coordinate(machine) for machine in selected),
            return_exceptions=True,
        )

        results = []
        for machine, outcome in zip(selected, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(
                    f"Coordination for {machine.name} raised: {outcome}",
                    extra={"machine": machine.name},
                )
                outcome = CoordinationResult(
                    machine=machine.name,
                    outcome=CoordinationOutcome.ABORTED,
                    detail=str(outcome),
                )
            results.append(outcome)
        return results

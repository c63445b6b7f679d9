"""
In-Memory State Store

Process-local StateRepository and EventSink used by the test suite and
the virtual fleet simulator.

Behaves like the node API where it matters to the operator:
- Listing order is insertion order
- Every write bumps a store-wide version counter
- Versioned writes fail with a 409-style conflict when stale
- Watches replay changes newer than their base version, then stream live
"""

import asyncio
from typing import AsyncIterator

from reboot_operator.common.exceptions import (
    AnnotationWriteError,
    ListError,
    WatchError,
)
from reboot_operator.common.logging_setup import get_service_logger

from .base import EventSink, StateRepository
from .models import Event, EventSeverity, Machine, WatchEvent, WatchEventType

logger = get_service_logger("storage.memory")

# Pushed into a watcher queue to end its subscription
_CLOSE = object()


class InMemoryStateRepository(StateRepository):
    """Dictionary-backed machine store with watch support"""

    def __init__(self, machines: dict[str, dict[str, str]] | None = None):
        self._machines: dict[str, Machine] = {}
        self._history: dict[str, list[WatchEvent]] = {}
        self._watchers: dict[str, list[asyncio.Queue]] = {}
        self._version = 0

        # Failure injection
        self.failing_lists = 0
        self.failing_writes: set[str] = set()
        self.failing_watches: set[str] = set()

        # Operator-side write log: (name, annotations) for every accepted
        # set_annotations call, and every attempt including rejected ones
        self.writes: list[tuple[str, dict[str, str]]] = []
        self.write_attempts: list[tuple[str, dict[str, str]]] = []
        self.list_calls = 0

        for name, annotations in (machines or {}).items():
            self.add_machine(name, annotations)

    # ------------------------------------------------------------------
    # StateRepository
    # ------------------------------------------------------------------

    async def list_machines(self) -> list[Machine]:
        self.list_calls += 1
        if self.failing_lists > 0:
            self.failing_lists -= 1
            raise ListError("injected list failure", status_code=503)
        return list(self._machines.values())

    async def set_annotations(
        self,
        name: str,
        annotations: dict[str, str],
        resource_version: str | None = None,
    ) -> Machine:
        self.write_attempts.append((name, dict(annotations)))

        if name in self.failing_writes:
            raise AnnotationWriteError(
                "injected write failure", machine=name, annotations=annotations, status_code=500
            )

        current = self._machines.get(name)
        if current is None:
            raise AnnotationWriteError(
                "machine not found", machine=name, annotations=annotations, status_code=404
            )

        if resource_version is not None and resource_version != current.resource_version:
            raise AnnotationWriteError(
                f"version conflict (have {current.resource_version}, got {resource_version})",
                machine=name,
                annotations=annotations,
                status_code=409,
            )

        self.writes.append((name, dict(annotations)))
        return self._store(name, {**current.annotations, **annotations}, WatchEventType.MODIFIED)

    def watch(self, name: str, base_version: str) -> AsyncIterator[WatchEvent]:
        if name in self.failing_watches:
            raise WatchError("injected watch failure", machine=name, status_code=500)

        # Register and snapshot history before the first await so no change
        # can fall between the replay and the live stream.
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.setdefault(name, []).append(queue)

        base = int(base_version) if base_version else 0
        backlog = [
            event for event in self._history.get(name, [])
            if event.machine is not None and int(event.machine.resource_version) > base
        ]
        return self._stream(name, queue, backlog)

    async def _stream(
        self,
        name: str,
        queue: asyncio.Queue,
        backlog: list[WatchEvent],
    ) -> AsyncIterator[WatchEvent]:
        try:
            for event in backlog:
                yield event
            while True:
                event = await queue.get()
                if event is _CLOSE:
                    return
                yield event
        finally:
            watchers = self._watchers.get(name, [])
            if queue in watchers:
                watchers.remove(queue)

    # ------------------------------------------------------------------
    # Store-side helpers (agents, operators, tests)
    # ------------------------------------------------------------------

    def add_machine(self, name: str, annotations: dict[str, str] | None = None) -> Machine:
        """Register a new machine"""
        return self._store(name, dict(annotations or {}), WatchEventType.ADDED)

    def apply_external(
        self,
        name: str,
        annotations: dict[str, str],
        remove: tuple[str, ...] = (),
    ) -> Machine:
        """
        Change a machine the way the reboot agent would.

        Not recorded in `writes`, which only tracks operator writes.
        """
        current = self._machines[name]
        merged = {**current.annotations, **annotations}
        for key in remove:
            merged.pop(key, None)
        return self._store(name, merged, WatchEventType.MODIFIED)

    def delete_machine(self, name: str) -> None:
        """Remove a machine and notify its watchers"""
        machine = self._machines.pop(name)
        self._version += 1
        gone = Machine(name=name, resource_version=str(self._version), annotations=machine.annotations)
        self._publish(name, WatchEvent(type=WatchEventType.DELETED, machine=gone))

    def inject_watch_error(self, name: str, message: str, status_code: int = 410) -> None:
        """Deliver an ERROR event to current watchers of a machine"""
        event = WatchEvent(type=WatchEventType.ERROR, error=message, status_code=status_code)
        for queue in list(self._watchers.get(name, [])):
            queue.put_nowait(event)

    def close_watches(self, name: str | None = None) -> None:
        """End open subscriptions, as a server does when a watch expires"""
        names = [name] if name else list(self._watchers)
        for key in names:
            for queue in list(self._watchers.get(key, [])):
                queue.put_nowait(_CLOSE)

    def __contains__(self, name: str) -> bool:
        return name in self._machines

    def get(self, name: str) -> Machine:
        return self._machines[name]

    def annotations_of(self, name: str) -> dict[str, str]:
        return dict(self._machines[name].annotations)

    def watcher_count(self, name: str) -> int:
        return len(self._watchers.get(name, []))

    @property
    def version(self) -> str:
        return str(self._version)

    def _store(self, name: str, annotations: dict[str, str], event_type: WatchEventType) -> Machine:
        self._version += 1
        machine = Machine(name=name, resource_version=str(self._version), annotations=annotations)
        self._machines[name] = machine
        self._publish(name, WatchEvent(type=event_type, machine=machine))
        return machine

    def _publish(self, name: str, event: WatchEvent) -> None:
        self._history.setdefault(name, []).append(event)
        for queue in list(self._watchers.get(name, [])):
            queue.put_nowait(event)


class RecordingEventSink(EventSink):
    """Keeps emitted events in memory"""

    def __init__(self, fail: bool = False):
        self.events: list[Event] = []
        self.fail = fail
        self.dropped = 0

    def emit(
        self,
        machine: Machine,
        severity: EventSeverity,
        reason: str,
        message: str,
    ) -> None:
        if self.fail:
            # Delivery is best effort; a broken sink must not reach the caller
            self.dropped += 1
            logger.warning(
                f"Dropped event {reason!r} for {machine.name}",
                extra={"machine": machine.name, "reason": reason},
            )
            return

        self.events.append(Event(machine=machine.name, severity=severity, reason=reason, message=message))

    def events_for(self, name: str) -> list[Event]:
        return [event for event in self.events if event.machine == name]

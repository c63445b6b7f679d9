"""
State Repository and Event Sink Interfaces

The operator only talks to the fleet through these two seams:
- StateRepository: list / watch / scoped annotation patch
- EventSink: fire-and-forget notifications for humans

Implementations:
1. memory.InMemoryStateRepository / RecordingEventSink (tests, simulator)
2. kube_client.KubeStateRepository / KubeEventSink (node API over HTTP)
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from .models import EventSeverity, Machine, WatchEvent


class StateRepository(ABC):
    """Authoritative store of machine snapshots"""

    @abstractmethod
    async def list_machines(self) -> list[Machine]:
        """
        Return every machine, in the store's listing order.

        Raises:
            ListError: the store could not be listed
        """
        pass

    @abstractmethod
    def watch(self, name: str, base_version: str) -> AsyncIterator[WatchEvent]:
        """
        Subscribe to changes of one machine newer than base_version.

        The iterator ends when the store closes the subscription; the
        caller is responsible for bounding it with a deadline.

        Raises:
            WatchError: the subscription could not be opened
        """
        pass

    @abstractmethod
    async def set_annotations(
        self,
        name: str,
        annotations: dict[str, str],
        resource_version: str | None = None,
    ) -> Machine:
        """
        Merge annotations into one machine and return the new snapshot.

        With resource_version set the write only succeeds against that
        version; without it, against whatever the store holds.

        Raises:
            AnnotationWriteError: rejected (conflict, missing machine, transport)
        """
        pass

    async def close(self) -> None:
        """Release connections"""
        return None


class EventSink(ABC):
    """Write-only notification channel"""

    @abstractmethod
    def emit(
        self,
        machine: Machine,
        severity: EventSeverity,
        reason: str,
        message: str,
    ) -> None:
        """Record an event against a machine. Never raises."""
        pass

    async def close(self) -> None:
        """Flush anything still in flight"""
        return None

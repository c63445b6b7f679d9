"""
Storage - Fleet State and Events

- base.py - StateRepository / EventSink interfaces
- models.py - Machine, WatchEvent, Event records
- memory.py - In-memory store (tests, simulator)
- kube_client.py - Node API store over HTTP
"""

from .base import EventSink, StateRepository
from .models import Event, EventSeverity, Machine, WatchEvent, WatchEventType
from .memory import InMemoryStateRepository, RecordingEventSink
from .kube_client import KubeEventSink, KubeStateRepository, create_http_client

__all__ = [
    "EventSink",
    "StateRepository",
    "Event",
    "EventSeverity",
    "Machine",
    "WatchEvent",
    "WatchEventType",
    "InMemoryStateRepository",
    "RecordingEventSink",
    "KubeEventSink",
    "KubeStateRepository",
    "create_http_client",
]

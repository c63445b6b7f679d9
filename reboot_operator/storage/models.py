"""
State Store Records

Data structures exchanged with the state repository and the event sink.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Machine:
    """Snapshot of one fleet member as returned by a list or watch"""
    name: str
    resource_version: str
    annotations: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_api(cls, obj: dict[str, Any]) -> "Machine":
        """Build from a node object ({"metadata": {...}})"""
        metadata = obj.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            resource_version=str(metadata.get("resourceVersion", "")),
            annotations=dict(metadata.get("annotations") or {}),
        )


class WatchEventType(str, Enum):
    """Change subscription event types"""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


@dataclass(frozen=True)
class WatchEvent:
    """One change observed on a watched machine"""
    type: WatchEventType
    machine: Machine | None = None
    # Set for ERROR events (the store's status message)
    error: str | None = None
    status_code: int | None = None


class EventSeverity(str, Enum):
    """Event severities understood by the sink"""
    NORMAL = "Normal"
    WARNING = "Warning"


@dataclass(frozen=True)
class Event:
    """Write-only notification attached to a machine"""
    machine: str
    severity: EventSeverity
    reason: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "machine": self.machine,
            "severity": self.severity.value,
            "reason": self.reason,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }

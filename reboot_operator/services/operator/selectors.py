"""
Annotation Selectors

Pure predicates over one machine's annotation snapshot.

Values are compared as exact strings. A missing key is never equal to
"true" or "false", but it does count as "not true".
"""

from dataclasses import dataclass
from typing import Callable, Mapping

from reboot_operator.common.constants import (
    ANNOTATION_OK_TO_REBOOT,
    ANNOTATION_REBOOT_IN_PROGRESS,
    ANNOTATION_REBOOT_NEEDED,
    ANNOTATION_REBOOT_PAUSED,
    FALSE,
    TRUE,
)
from reboot_operator.storage.models import Machine


@dataclass(frozen=True)
class AnnotationView:
    """The four coordination keys of a snapshot; None where absent"""
    ok_to_reboot: str | None = None
    reboot_needed: str | None = None
    reboot_in_progress: str | None = None
    reboot_paused: str | None = None

    @classmethod
    def from_annotations(cls, annotations: Mapping[str, str]) -> "AnnotationView":
        return cls(
            ok_to_reboot=annotations.get(ANNOTATION_OK_TO_REBOOT),
            reboot_needed=annotations.get(ANNOTATION_REBOOT_NEEDED),
            reboot_in_progress=annotations.get(ANNOTATION_REBOOT_IN_PROGRESS),
            reboot_paused=annotations.get(ANNOTATION_REBOOT_PAUSED),
        )

    @classmethod
    def of(cls, machine: Machine) -> "AnnotationView":
        return cls.from_annotations(machine.annotations)


Selector = Callable[[AnnotationView], bool]


def just_rebooted(view: AnnotationView) -> bool:
    """
    Machine was allowed to reboot and the agent reports it is back.

    The operator set OkToReboot=true; the agent has since cleared both
    RebootNeeded and RebootInProgress.
    """
    return (
        view.ok_to_reboot == TRUE
        and view.reboot_needed == FALSE
        and view.reboot_in_progress == FALSE
    )


# The handshake's success condition is the same conjunction
reboot_completed = just_rebooted


def wants_reboot(view: AnnotationView) -> bool:
    """Agent asks for a reboot and nobody has paused the machine"""
    return view.reboot_needed == TRUE and view.reboot_paused != TRUE


def filter_machines(machines: list[Machine], selector: Selector) -> list[Machine]:
    """Keep machines matching the selector, preserving listing order"""
    return [m for m in machines if selector(AnnotationView.of(m))]

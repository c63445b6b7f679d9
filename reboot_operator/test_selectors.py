"""
Selector Tests

Exact-string matching of the coordination annotations.

Usage:
    pytest reboot_operator/test_selectors.py
"""

from reboot_operator.services.operator.selectors import (
    AnnotationView,
    filter_machines,
    just_rebooted,
    reboot_completed,
    wants_reboot,
)
from reboot_operator.storage.models import Machine


def view(**annotations) -> AnnotationView:
    return AnnotationView.from_annotations(annotations)


def test_just_rebooted_requires_all_three_keys():
    assert just_rebooted(view(OkToReboot="true", RebootNeeded="false", RebootInProgress="false"))

    assert not just_rebooted(view(OkToReboot="true", RebootNeeded="false"))
    assert not just_rebooted(view(OkToReboot="true", RebootInProgress="false"))
    assert not just_rebooted(view(RebootNeeded="false", RebootInProgress="false"))
    assert not just_rebooted(view(OkToReboot="false", RebootNeeded="false", RebootInProgress="false"))
    assert not just_rebooted(view(OkToReboot="true", RebootNeeded="true", RebootInProgress="false"))
    assert not just_rebooted(view(OkToReboot="true", RebootNeeded="false", RebootInProgress="true"))


def test_just_rebooted_is_case_sensitive():
    assert not just_rebooted(view(OkToReboot="True", RebootNeeded="false", RebootInProgress="false"))
    assert not just_rebooted(view(OkToReboot="true", RebootNeeded="FALSE", RebootInProgress="false"))
    assert not just_rebooted(view(OkToReboot="yes", RebootNeeded="false", RebootInProgress="false"))


def test_just_rebooted_ignores_pause_and_other_keys():
    assert just_rebooted(view(
        OkToReboot="true", RebootNeeded="false", RebootInProgress="false", RebootPaused="true",
    ))
    snapshot = AnnotationView.from_annotations({
        "OkToReboot": "true",
        "RebootNeeded": "false",
        "RebootInProgress": "false",
        "some.other/annotation": "x",
    })
    assert just_rebooted(snapshot)


def test_reboot_completed_matches_just_rebooted():
    snapshots = [
        view(OkToReboot="true", RebootNeeded="false", RebootInProgress="false"),
        view(OkToReboot="true", RebootNeeded="false", RebootInProgress="true"),
        view(OkToReboot="true", RebootNeeded="true", RebootInProgress="false"),
        view(),
    ]
    for snapshot in snapshots:
        assert reboot_completed(snapshot) == just_rebooted(snapshot)


def test_wants_reboot():
    assert wants_reboot(view(RebootNeeded="true"))
    assert wants_reboot(view(RebootNeeded="true", RebootPaused="false"))
    # Absent or non-"true" pause does not block
    assert wants_reboot(view(RebootNeeded="true", RebootPaused="True"))
    assert wants_reboot(view(RebootNeeded="true", RebootPaused=""))

    assert not wants_reboot(view(RebootNeeded="true", RebootPaused="true"))
    assert not wants_reboot(view(RebootNeeded="false"))
    assert not wants_reboot(view(RebootNeeded="TRUE"))
    assert not wants_reboot(view())


def test_wants_reboot_ignores_grant_state():
    # Already granted machines still count as wanting a reboot
    assert wants_reboot(view(RebootNeeded="true", OkToReboot="true", RebootInProgress="true"))


def test_filter_machines_keeps_listing_order():
    machines = [
        Machine(name="c", resource_version="1", annotations={"RebootNeeded": "true"}),
        Machine(name="a", resource_version="2", annotations={"RebootNeeded": "false"}),
        Machine(name="b", resource_version="3", annotations={"RebootNeeded": "true"}),
    ]
    assert [m.name for m in filter_machines(machines, wants_reboot)] == ["c", "b"]
    assert filter_machines([], wants_reboot) == []

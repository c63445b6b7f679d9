"""
Node API Client Tests

KubeStateRepository and KubeEventSink against httpx.MockTransport.
"""

import asyncio
import json

import httpx
import pytest

from reboot_operator.common.config import ApiSettings
from reboot_operator.common.exceptions import AnnotationWriteError, ListError, WatchError
from reboot_operator.storage.kube_client import (
    KubeEventSink,
    KubeStateRepository,
    create_http_client,
)
from reboot_operator.storage.models import EventSeverity, Machine, WatchEventType

API = "https://api.test"


def node(name, version, **annotations):
    return {"metadata": {"name": name, "resourceVersion": version, "annotations": annotations}}


def make_client(handler, tmp_path, token=None):
    token_file = tmp_path / "token"
    if token:
        token_file.write_text(token + "\n")
    settings = ApiSettings(url=API, token_file=str(token_file), ca_file=str(tmp_path / "ca.crt"))
    return create_http_client(settings, transport=httpx.MockTransport(handler))


# ----------------------------------------------------------------------
# List
# ----------------------------------------------------------------------

def test_list_machines(tmp_path):
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={
            "items": [
                node("node-1", "10", RebootNeeded="true"),
                {"metadata": {"name": "node-2", "resourceVersion": "11"}},
            ],
        })

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path, token="secret"))
        try:
            return await repo.list_machines()
        finally:
            await repo.close()

    machines = asyncio.run(scenario())

    assert seen == {"path": "/api/v1/nodes", "auth": "Bearer secret"}
    assert machines == [
        Machine(name="node-1", resource_version="10", annotations={"RebootNeeded": "true"}),
        Machine(name="node-2", resource_version="11", annotations={}),
    ]


def test_list_without_token_sends_no_auth(tmp_path):
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"items": []})

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            return await repo.list_machines()
        finally:
            await repo.close()

    assert asyncio.run(scenario()) == []
    assert seen["auth"] is None


def test_list_errors(tmp_path):
    responses = iter([
        httpx.Response(503, text="unavailable"),
        httpx.Response(200, text="not json"),
    ])

    def handler(request):
        return next(responses)

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        errors = []
        for _ in range(2):
            with pytest.raises(ListError) as exc_info:
                await repo.list_machines()
            errors.append(exc_info.value)
        await repo.close()
        return errors

    http_error, body_error = asyncio.run(scenario())

    assert http_error.status_code == 503
    assert http_error.recoverable
    assert "invalid response body" in str(body_error)


def test_list_connection_error(tmp_path):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            await repo.list_machines()
        finally:
            await repo.close()

    with pytest.raises(ListError):
        asyncio.run(scenario())


# ----------------------------------------------------------------------
# Patch
# ----------------------------------------------------------------------

def test_set_annotations_sends_versioned_merge_patch(tmp_path):
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["content_type"] = request.headers["Content-Type"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=node("node-1", "12", OkToReboot="true"))

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            return await repo.set_annotations("node-1", {"OkToReboot": "true"}, "11")
        finally:
            await repo.close()

    machine = asyncio.run(scenario())

    assert seen["method"] == "PATCH"
    assert seen["path"] == "/api/v1/nodes/node-1"
    assert seen["content_type"] == "application/merge-patch+json"
    assert seen["body"] == {
        "metadata": {"annotations": {"OkToReboot": "true"}, "resourceVersion": "11"},
    }
    assert machine.resource_version == "12"
    assert machine.annotations["OkToReboot"] == "true"


def test_set_annotations_without_version(tmp_path):
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=node("node-1", "12"))

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            await repo.set_annotations("node-1", {"OkToReboot": "false"})
        finally:
            await repo.close()

    asyncio.run(scenario())
    assert seen["body"] == {"metadata": {"annotations": {"OkToReboot": "false"}}}


def test_set_annotations_conflict(tmp_path):
    def handler(request):
        return httpx.Response(409, json={"kind": "Status", "code": 409})

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            await repo.set_annotations("node-1", {"OkToReboot": "true"}, "11")
        finally:
            await repo.close()

    with pytest.raises(AnnotationWriteError) as exc_info:
        asyncio.run(scenario())

    error = exc_info.value
    assert error.is_conflict
    assert error.machine == "node-1"
    assert error.annotations == {"OkToReboot": "true"}


def test_set_annotations_server_error_is_not_conflict(tmp_path):
    def handler(request):
        return httpx.Response(500)

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            await repo.set_annotations("node-1", {"OkToReboot": "true"})
        finally:
            await repo.close()

    with pytest.raises(AnnotationWriteError) as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.status_code == 500
    assert not exc_info.value.is_conflict


# ----------------------------------------------------------------------
# Watch
# ----------------------------------------------------------------------

def watch_body(*events):
    return "\n".join(json.dumps(e) for e in events) + "\n"


def test_watch_streams_events(tmp_path):
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        body = watch_body(
            {"type": "MODIFIED", "object": node("node-1", "12", RebootInProgress="true")},
            {"type": "BOOKMARK", "object": {"metadata": {"resourceVersion": "13"}}},
            {"type": "ERROR", "object": {"kind": "Status", "code": 410, "message": "too old"}},
        )
        return httpx.Response(200, text=body)

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            return [event async for event in repo.watch("node-1", "11")]
        finally:
            await repo.close()

    events = asyncio.run(scenario())

    assert seen["params"] == {
        "watch": "true",
        "fieldSelector": "metadata.name=node-1",
        "resourceVersion": "11",
    }
    assert [e.type for e in events] == [
        WatchEventType.MODIFIED,
        WatchEventType.BOOKMARK,
        WatchEventType.ERROR,
    ]
    assert events[0].machine.annotations == {"RebootInProgress": "true"}
    assert events[1].machine.resource_version == "13"
    assert events[2].error == "too old"
    assert events[2].status_code == 410


def test_watch_http_error(tmp_path):
    def handler(request):
        return httpx.Response(403, text="forbidden")

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            async for _ in repo.watch("node-1", "11"):
                pass
        finally:
            await repo.close()

    with pytest.raises(WatchError) as exc_info:
        asyncio.run(scenario())

    assert exc_info.value.status_code == 403


def test_watch_malformed_line(tmp_path):
    def handler(request):
        return httpx.Response(200, text="{not json}\n")

    async def scenario():
        repo = KubeStateRepository(make_client(handler, tmp_path))
        try:
            async for _ in repo.watch("node-1", "11"):
                pass
        finally:
            await repo.close()

    with pytest.raises(WatchError):
        asyncio.run(scenario())


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

def test_event_sink_posts_event(tmp_path):
    posted = []

    def handler(request):
        posted.append((request.url.path, json.loads(request.content)))
        return httpx.Response(201, json={})

    async def scenario():
        client = make_client(handler, tmp_path)
        sink = KubeEventSink(client, namespace="ops")
        sink.emit(
            Machine(name="node-1", resource_version="12"),
            EventSeverity.WARNING,
            "reboot failed",
            "Timed out waiting for machine to return after a reboot",
        )
        await sink.close()
        await client.aclose()

    asyncio.run(scenario())

    assert len(posted) == 1
    path, body = posted[0]
    assert path == "/api/v1/namespaces/ops/events"
    assert body["type"] == "Warning"
    assert body["reason"] == "reboot failed"
    assert body["involvedObject"]["kind"] == "Node"
    assert body["involvedObject"]["name"] == "node-1"
    assert body["source"] == {"component": "reboot-operator"}


def test_event_sink_failure_is_swallowed(tmp_path):
    def handler(request):
        return httpx.Response(500)

    async def scenario():
        client = make_client(handler, tmp_path)
        sink = KubeEventSink(client)
        sink.emit(Machine(name="node-1", resource_version="1"), EventSeverity.WARNING, "r", "m")
        await sink.close()
        await client.aclose()

    # Nothing raised
    asyncio.run(scenario())


def test_emit_without_running_loop_is_dropped(tmp_path):
    client = make_client(lambda request: httpx.Response(201), tmp_path)
    sink = KubeEventSink(client)

    sink.emit(Machine(name="node-1", resource_version="1"), EventSeverity.WARNING, "r", "m")

    assert not sink._pending

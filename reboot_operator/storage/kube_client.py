"""
Node API Client

StateRepository and EventSink backed by a Kubernetes-style REST API.

Endpoints used:
- GET   /api/v1/nodes                                  list machines
- GET   /api/v1/nodes?watch=true&fieldSelector=...     change subscription (NDJSON stream)
- PATCH /api/v1/nodes/{name}                           JSON merge patch of annotations
- POST  /api/v1/namespaces/{ns}/events                 operator-visible events
"""

import asyncio
import json
import ssl
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import httpx

from reboot_operator.common.config import ApiSettings
from reboot_operator.common.constants import EVENT_SOURCE_COMPONENT
from reboot_operator.common.exceptions import (
    AnnotationWriteError,
    ListError,
    WatchError,
)
from reboot_operator.common.logging_setup import get_service_logger

from .base import EventSink, StateRepository
from .models import EventSeverity, Machine, WatchEvent, WatchEventType

logger = get_service_logger("storage.kube")

NODES_PATH = "/api/v1/nodes"
MERGE_PATCH = "application/merge-patch+json"


def read_token(token_file: str) -> str | None:
    """Read a bearer token, or None when the file is absent (e.g. behind kubectl proxy)"""
    path = Path(token_file)
    if not path.exists():
        logger.warning(f"Token file not found: {token_file}; sending unauthenticated requests")
        return None
    return path.read_text().strip()


def create_http_client(
    settings: ApiSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the shared HTTP client from API settings"""
    headers = {"Accept": "application/json"}
    token = read_token(settings.token_file)
    if token:
        headers["Authorization"] = f"Bearer {token}"

    verify: bool | ssl.SSLContext = settings.verify_tls
    if settings.verify_tls and Path(settings.ca_file).exists():
        verify = ssl.create_default_context(cafile=settings.ca_file)

    return httpx.AsyncClient(
        base_url=settings.url,
        headers=headers,
        verify=verify,
        timeout=settings.request_timeout_seconds,
        transport=transport,
    )


def _status_code(error: httpx.HTTPError) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


class KubeStateRepository(StateRepository):
    """Machines are nodes; annotations are node annotations"""

    def __init__(self, client: httpx.AsyncClient, owns_client: bool = True):
        self.client = client
        self._owns_client = owns_client

    async def list_machines(self) -> list[Machine]:
        try:
            response = await self.client.get(NODES_PATH)
            response.raise_for_status()
            items = response.json().get("items") or []
        except httpx.HTTPError as e:
            raise ListError(str(e), status_code=_status_code(e))
        except ValueError as e:
            raise ListError(f"invalid response body: {e}")

        return [Machine.from_api(item) for item in items]

    async def set_annotations(
        self,
        name: str,
        annotations: dict[str, str],
        resource_version: str | None = None,
    ) -> Machine:
        metadata: dict[str, Any] = {"annotations": dict(annotations)}
        if resource_version:
            # Makes the merge patch conditional: 409 if the node moved on
            metadata["resourceVersion"] = resource_version

        try:
            response = await self.client.patch(
                f"{NODES_PATH}/{name}",
                content=json.dumps({"metadata": metadata}),
                headers={"Content-Type": MERGE_PATCH},
            )
            response.raise_for_status()
            return Machine.from_api(response.json())
        except httpx.HTTPError as e:
            raise AnnotationWriteError(
                str(e),
                machine=name,
                annotations=annotations,
                status_code=_status_code(e),
            )
        except ValueError as e:
            raise AnnotationWriteError(
                f"invalid response body: {e}", machine=name, annotations=annotations
            )

    async def watch(self, name: str, base_version: str) -> AsyncIterator[WatchEvent]:
        params = {
            "watch": "true",
            "fieldSelector": f"metadata.name={name}",
        }
        if base_version:
            params["resourceVersion"] = base_version

        try:
            # No read timeout: the stream is idle until the node changes
            async with self.client.stream(
                "GET",
                NODES_PATH,
                params=params,
                timeout=httpx.Timeout(self.client.timeout.connect, read=None),
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise WatchError(
                        f"HTTP {response.status_code}: {response.text[:200]}",
                        machine=name,
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    yield self._parse_watch_line(name, line)
        except httpx.HTTPError as e:
            raise WatchError(str(e), machine=name, status_code=_status_code(e))

    def _parse_watch_line(self, name: str, line: str) -> WatchEvent:
        try:
            data = json.loads(line)
            event_type = WatchEventType(data["type"])
        except (ValueError, KeyError) as e:
            raise WatchError(f"malformed watch event: {e}", machine=name)

        obj = data.get("object") or {}
        if event_type == WatchEventType.ERROR:
            # obj is a Status, e.g. 410 Gone when base_version is too old
            return WatchEvent(
                type=event_type,
                error=obj.get("message", "unknown watch error"),
                status_code=obj.get("code"),
            )
        return WatchEvent(type=event_type, machine=Machine.from_api(obj))

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()


class KubeEventSink(EventSink):
    """
    Posts core/v1 Events about nodes.

    emit() schedules the POST and returns immediately; failures are logged
    and dropped. close() waits for posts still in flight.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        namespace: str = "default",
        component: str = EVENT_SOURCE_COMPONENT,
    ):
        self.client = client
        self.namespace = namespace
        self.component = component
        self._pending: set[asyncio.Task] = set()

    def emit(
        self,
        machine: Machine,
        severity: EventSeverity,
        reason: str,
        message: str,
    ) -> None:
        body = self.build_event(machine, severity, reason, message)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                f"No event loop; dropped event {reason!r} for {machine.name}",
                extra={"machine": machine.name},
            )
            return

        task = loop.create_task(self._post(machine.name, body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def build_event(
        self,
        machine: Machine,
        severity: EventSeverity,
        reason: str,
        message: str,
    ) -> dict[str, Any]:
        now = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return {
            "apiVersion": "v1",
            "kind": "Event",
            "metadata": {
                "generateName": f"{machine.name}.",
                "namespace": self.namespace,
            },
            "involvedObject": {
                "apiVersion": "v1",
                "kind": "Node",
                "name": machine.name,
                "uid": machine.name,
                "resourceVersion": machine.resource_version,
            },
            "reason": reason,
            "message": message,
            "type": severity.value,
            "source": {"component": self.component},
            "firstTimestamp": now,
            "lastTimestamp": now,
            "count": 1,
        }

    async def _post(self, machine_name: str, body: dict[str, Any]) -> None:
        try:
            response = await self.client.post(
                f"/api/v1/namespaces/{self.namespace}/events",
                json=body,
            )
            response.raise_for_status()
            logger.debug(f"Event {body['reason']!r} recorded for {machine_name}")
        except httpx.HTTPError as e:
            logger.warning(
                f"Failed to record event {body['reason']!r} for {machine_name}: {e}",
                extra={"machine": machine_name},
            )

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

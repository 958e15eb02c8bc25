"""Shared helpers for the Operand client tests.

Provides JSON factories for objects and files, and a recording
``httpx.MockTransport`` so clients can be exercised without a network.
Test modules import them directly (``from conftest import ...``).
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx


def object_json(
    object_id: str = "obj_1",
    *,
    type: str = "text",
    status: str = "indexing",
    metadata: dict[str, Any] | None = None,
    parent_id: str | None = None,
    label: str | None = None,
    objects: int | None = None,
) -> dict[str, Any]:
    """Wire-format (camelCase) object as the REST API returns it."""
    data: dict[str, Any] = {
        "id": object_id,
        "createdAt": "2023-01-10T12:00:00Z",
        "updatedAt": "2023-01-10T12:00:05Z",
        "type": type,
        "metadata": metadata if metadata is not None else {"text": "hello"},
        "properties": {},
        "indexingStatus": status,
    }
    if parent_id is not None:
        data["parentId"] = parent_id
    if label is not None:
        data["label"] = label
    if objects is not None:
        data["objects"] = objects
    return data


def file_json(
    file_id: str = "file_1",
    *,
    name: str = "notes.txt",
    status: str | None = "INDEXING_STATUS_INDEXING",
    is_folder: bool = False,
    parent_id: str | None = None,
    size_bytes: int = 0,
) -> dict[str, Any]:
    """Protobuf-JSON file message; ``status=None`` omits the field like proto3 does."""
    data: dict[str, Any] = {
        "id": file_id,
        "name": name,
        "isFolder": is_folder,
        "sizeBytes": str(size_bytes),
        "createdAt": "2023-01-10T12:00:00Z",
    }
    if status is not None:
        data["indexingStatus"] = status
    if parent_id is not None:
        data["parentId"] = parent_id
    return data


class RecordingTransport:
    """httpx.MockTransport wrapper that keeps every request it handled.

    Responses come from *handler*, which receives the request and returns
    either an ``httpx.Response`` or a JSON-serializable value (sent as 200).
    Request bodies are read eagerly so streamed uploads can be inspected.
    """

    def __init__(self, handler: Callable[[httpx.Request], Any]) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []

    async def _handle(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(await request.aread())
        self.requests.append(request)
        result = self.handler(request)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self._handle))

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.bodies[-1])


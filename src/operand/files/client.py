"""Client for the Operand RPC services (files, core search, tenant).

RPC calls use the Connect protocol's unary JSON mapping: ``POST
/<package>.<Service>/<Method>`` with a protobuf-JSON body.  File content
goes through the separate ``/upload`` endpoint as a streamed
multipart/form-data body; an upload without content creates a folder.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, BinaryIO

import httpx

from operand.constants import DEFAULT_RPC_ENDPOINT, DEFAULT_TIMEOUT_SECONDS
from operand.files.models import (
    CreateFileResponse,
    DeleteFileRequest,
    DeleteFileResponse,
    File,
    GetFileRequest,
    GetFileResponse,
    GetTenantRequest,
    GetTenantResponse,
    ListFilesRequest,
    ListFilesResponse,
    SearchWithinRequest,
    SearchWithinResponse,
    Tenant,
    UpdateFileRequest,
    UpdateFileResponse,
)
from operand.models import APIModel
from operand.multipart import FileField, MultipartEncoder
from operand.transport import AuthScheme, Transport
from operand.wait import BackoffSchedule, EntityWaiter

logger = logging.getLogger(__name__)

FILE_SERVICE = "file.v1.FileService"
CORE_SERVICE = "core.v1.CoreService"
TENANT_SERVICE = "tenant.v1.TenantService"

UPLOAD_PATH = "/upload"


class OperandFilesClient:
    """Async client for the file, core and tenant RPC services.

    Usage::

        async with OperandFilesClient(api_key) as files:
            folder = await files.create_folder("papers")
            with open("paper.pdf", "rb") as fh:
                pdf = await files.upload_file("paper.pdf", fh, parent_id=folder.id)
            pdf = await files.wait_for_file(pdf)

    Args:
        api_key: Operand API key, sent as ``Authorization: Key <api_key>``.
        endpoint: Base URL; trailing slashes are stripped.
        http_client: Optional ``httpx.AsyncClient``; created and owned here
            when omitted.
        timeout: Timeout for the client-owned ``httpx.AsyncClient``.
        schedule: Backoff schedule for :meth:`wait_for_file`.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        endpoint: str = DEFAULT_RPC_ENDPOINT,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        schedule: BackoffSchedule | None = None,
    ) -> None:
        self.transport = Transport(
            api_key,
            endpoint=endpoint,
            auth_scheme=AuthScheme.KEY,
            http_client=http_client,
            timeout=timeout,
        )
        self.schedule = schedule or BackoffSchedule()

    async def _call(
        self, service: str, method: str, request: APIModel, response_model: type[APIModel]
    ) -> Any:
        return await self.transport.execute(
            "POST", f"/{service}/{method}", request, response_model
        )

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def upload_file(
        self,
        name: str,
        stream: BinaryIO | None,
        *,
        parent_id: str | None = None,
        properties: dict[str, Any] | None = None,
        filename: str | None = None,
        content_type: str = "application/octet-stream",
    ) -> File:
        """Upload *stream* as a new file, or create a folder when it is ``None``.

        The stream is read in chunks directly into the request body.

        Raises:
            UploadError: Reading *stream* failed.
            RequestFailedError: The service rejected the upload; the message
                carries the service's error body.
        """
        fields: list[tuple[str, str]] = [("name", name)]
        if parent_id:
            fields.append(("parentId", parent_id))
        if properties:
            fields.append(("properties", json.dumps(properties)))

        file_field = None
        if stream is not None:
            file_field = FileField("file", filename or name, stream, content_type)

        encoder = MultipartEncoder(fields, file_field)
        resp = await self.transport.execute(
            "POST",
            UPLOAD_PATH,
            response_model=CreateFileResponse,
            content=encoder.aiter_bytes(),
            headers=encoder.headers(),
        )
        kind = "folder" if stream is None else "file"
        logger.info("Created %s %s (%s)", kind, resp.file.id, name)
        return resp.file

    async def create_folder(
        self,
        name: str,
        *,
        parent_id: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> File:
        """Create a folder: an upload that carries metadata only."""
        return await self.upload_file(name, None, parent_id=parent_id, properties=properties)

    # ------------------------------------------------------------------
    # FileService
    # ------------------------------------------------------------------

    async def get_file(self, file_id: str) -> File:
        resp = await self._call(
            FILE_SERVICE, "GetFile", GetFileRequest(file_id=file_id), GetFileResponse
        )
        return resp.file

    async def list_files(
        self,
        *,
        parent_id: str | None = None,
        page_size: int | None = None,
        page_token: str | None = None,
    ) -> ListFilesResponse:
        request = ListFilesRequest(
            parent_id=parent_id, page_size=page_size, page_token=page_token
        )
        return await self._call(FILE_SERVICE, "ListFiles", request, ListFilesResponse)

    async def update_file(
        self,
        file_id: str,
        *,
        name: str | None = None,
        parent_id: str | None = None,
        properties: dict[str, Any] | None = None,
    ) -> File:
        """Rename, move or re-tag a file; unset arguments are left unchanged."""
        request = UpdateFileRequest(
            file_id=file_id, name=name, parent_id=parent_id, properties=properties
        )
        resp = await self._call(FILE_SERVICE, "UpdateFile", request, UpdateFileResponse)
        return resp.file

    async def delete_file(self, file_id: str) -> DeleteFileResponse:
        """Delete a file; deleting a folder deletes everything beneath it."""
        resp = await self._call(
            FILE_SERVICE, "DeleteFile", DeleteFileRequest(file_id=file_id), DeleteFileResponse
        )
        logger.info("Deleted file %s (deleted=%s)", file_id, resp.deleted)
        return resp

    async def wait_for_file(self, file: File, cancel: asyncio.Event | None = None) -> File:
        """Poll *file* until indexing finishes and return the fresh copy."""
        waiter = EntityWaiter(self.get_file, schedule=self.schedule)
        return await waiter.wait(file, cancel)

    # ------------------------------------------------------------------
    # CoreService / TenantService
    # ------------------------------------------------------------------

    async def search_within(
        self,
        query: str,
        *,
        parent_ids: list[str] | None = None,
        max_results: int | None = None,
        filter: dict[str, Any] | None = None,
    ) -> SearchWithinResponse:
        """Semantic search over files, optionally scoped to folders."""
        request = SearchWithinRequest(
            query=query, parent_ids=parent_ids, max_results=max_results, filter=filter
        )
        return await self._call(CORE_SERVICE, "SearchWithin", request, SearchWithinResponse)

    async def get_tenant(self) -> Tenant:
        resp = await self._call(
            TENANT_SERVICE, "GetTenant", GetTenantRequest(), GetTenantResponse
        )
        return resp.tenant

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> OperandFilesClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

"""Protobuf-JSON messages for the Operand RPC services.

Field names follow the proto3 JSON mapping (lowerCamelCase); enum values are
the full proto enum names.  int64 fields arrive as JSON strings and are
coerced to ``int``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import Field

from operand.models import APIModel
from operand.wait import LifecycleState


class FileIndexingStatus(str, Enum):
    UNSPECIFIED = "INDEXING_STATUS_UNSPECIFIED"
    INDEXING = "INDEXING_STATUS_INDEXING"
    READY = "INDEXING_STATUS_READY"
    FAILED = "INDEXING_STATUS_FAILED"


# proto3 omits zero-valued enums, so folders (never indexed) arrive
# without a status and count as ready.
_LIFECYCLE_BY_STATUS: dict[FileIndexingStatus, LifecycleState] = {
    FileIndexingStatus.UNSPECIFIED: LifecycleState.READY,
    FileIndexingStatus.INDEXING: LifecycleState.PENDING,
    FileIndexingStatus.READY: LifecycleState.READY,
    FileIndexingStatus.FAILED: LifecycleState.FAILED,
}


class File(APIModel):
    """A file or folder stored by the file service."""

    id: str
    name: str
    parent_id: str | None = None
    is_folder: bool = False
    size_bytes: int = 0
    content_type: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    indexing_status: FileIndexingStatus = FileIndexingStatus.UNSPECIFIED
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def lifecycle_state(self) -> LifecycleState:
        return _LIFECYCLE_BY_STATUS[self.indexing_status]


# ---------------------------------------------------------------------------
# file.v1.FileService
# ---------------------------------------------------------------------------


class CreateFileResponse(APIModel):
    file: File


class GetFileRequest(APIModel):
    file_id: str


class GetFileResponse(APIModel):
    file: File


class ListFilesRequest(APIModel):
    parent_id: str | None = None
    page_size: int | None = None
    page_token: str | None = None


class ListFilesResponse(APIModel):
    files: list[File] = Field(default_factory=list)
    next_page_token: str | None = None


class UpdateFileRequest(APIModel):
    file_id: str
    name: str | None = None
    parent_id: str | None = None
    properties: dict[str, Any] | None = None


class UpdateFileResponse(APIModel):
    file: File


class DeleteFileRequest(APIModel):
    file_id: str


class DeleteFileResponse(APIModel):
    deleted: bool = False


# ---------------------------------------------------------------------------
# core.v1.CoreService
# ---------------------------------------------------------------------------


class SearchWithinRequest(APIModel):
    query: str
    parent_ids: list[str] | None = None
    max_results: int | None = None
    filter: dict[str, Any] | None = None


class Match(APIModel):
    file_id: str
    content: str
    score: float = 0.0


class SearchWithinResponse(APIModel):
    search_id: str | None = None
    latency_ms: int = 0
    matches: list[Match] = Field(default_factory=list)
    files: dict[str, File] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# tenant.v1.TenantService
# ---------------------------------------------------------------------------


class Tenant(APIModel):
    id: str
    name: str | None = None
    created_at: datetime | None = None
    file_count: int = 0
    storage_bytes: int = 0


class GetTenantRequest(APIModel):
    pass


class GetTenantResponse(APIModel):
    tenant: Tenant

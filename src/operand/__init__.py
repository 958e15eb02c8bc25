"""Async Python client for the Operand indexing and search API."""

__version__ = "0.1.0"

from operand.client import OperandClient
from operand.exceptions import (
    DecodeError,
    NetworkError,
    OperandError,
    RequestBuildError,
    RequestFailedError,
    UploadError,
    WaitCancelledError,
)
from operand.models import (
    CollectionMetadata,
    CreateObjectArgs,
    IndexingStatus,
    Object,
    ObjectType,
    SearchContentsArgs,
    TextMetadata,
)
from operand.multipart import FileField, MultipartEncoder
from operand.transport import AuthScheme, Transport
from operand.wait import BackoffSchedule, EntityWaiter, LifecycleState

__all__ = [
    "AuthScheme",
    "BackoffSchedule",
    "CollectionMetadata",
    "CreateObjectArgs",
    "DecodeError",
    "EntityWaiter",
    "FileField",
    "IndexingStatus",
    "LifecycleState",
    "MultipartEncoder",
    "NetworkError",
    "Object",
    "ObjectType",
    "OperandClient",
    "OperandError",
    "RequestBuildError",
    "RequestFailedError",
    "SearchContentsArgs",
    "TextMetadata",
    "Transport",
    "UploadError",
    "WaitCancelledError",
    "__version__",
]

"""RPC generation of the Operand API: files, folders, uploads, search.

Public API
----------
.. autoclass:: OperandFilesClient
.. autoclass:: File
.. autoclass:: FileIndexingStatus
"""

from operand.files.client import OperandFilesClient
from operand.files.models import (
    File,
    FileIndexingStatus,
    ListFilesResponse,
    Match,
    SearchWithinResponse,
    Tenant,
)

__all__ = [
    "File",
    "FileIndexingStatus",
    "ListFilesResponse",
    "Match",
    "OperandFilesClient",
    "SearchWithinResponse",
    "Tenant",
]

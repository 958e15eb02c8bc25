"""Streaming multipart/form-data encoder for file uploads.

Produces the body in chunks so the file payload is read from the caller's
stream straight into the request, never buffered as a whole:

  --<boundary>
  Content-Disposition: form-data; name="<field>"

  <value>
  ...
  --<boundary>
  Content-Disposition: form-data; name="file"; filename="<filename>"
  Content-Type: application/octet-stream

  <raw bytes>
  --<boundary>--

Without a file part the body carries metadata only; the upload endpoint
then creates a folder.
"""

from __future__ import annotations

import asyncio
import io
import logging
import os
import secrets
from collections.abc import AsyncIterator, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import BinaryIO

from operand.constants import UPLOAD_CHUNK_SIZE
from operand.exceptions import UploadError

logger = logging.getLogger(__name__)

CRLF = b"\r\n"


def _escape_quotes(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


@dataclass
class FileField:
    """The optional binary part of a multipart body."""

    name: str
    filename: str
    stream: BinaryIO
    content_type: str = "application/octet-stream"


class MultipartEncoder:
    """Encode ordered form fields plus one optional file stream.

    Iterate synchronously (``for chunk in encoder``) or asynchronously
    (``async for chunk in encoder.aiter_bytes()``); each pass reads the file
    stream once, in *chunk_size* pieces.

    Args:
        fields: Ordered ``(name, value)`` pairs, or a mapping.
        file: Optional :class:`FileField` emitted as the final part.
        boundary: Fixed boundary (random when omitted).
        chunk_size: Bytes per read from the file stream.
    """

    def __init__(
        self,
        fields: Sequence[tuple[str, str]] | Mapping[str, str] = (),
        file: FileField | None = None,
        *,
        boundary: str | None = None,
        chunk_size: int = UPLOAD_CHUNK_SIZE,
    ) -> None:
        if isinstance(fields, Mapping):
            fields = list(fields.items())
        self.fields: list[tuple[str, str]] = list(fields)
        self.file = file
        self.boundary = boundary or secrets.token_hex(16)
        self.chunk_size = chunk_size

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self.boundary}"

    @property
    def content_length(self) -> int | None:
        """Exact body length, or ``None`` when the stream is not seekable."""
        length = len(self._preamble()) + len(self._trailer())
        if self.file is None:
            return length
        remaining = self._remaining_bytes(self.file.stream)
        if remaining is None:
            return None
        return length + remaining

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": self.content_type}
        length = self.content_length
        if length is not None:
            headers["Content-Length"] = str(length)
        return headers

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _preamble(self) -> bytes:
        """Every byte that precedes the raw file payload."""
        dash_boundary = f"--{self.boundary}".encode()
        buf = io.BytesIO()
        for index, (name, value) in enumerate(self.fields):
            if index:
                buf.write(CRLF)
            buf.write(dash_boundary + CRLF)
            buf.write(
                f'Content-Disposition: form-data; name="{_escape_quotes(name)}"'.encode()
            )
            buf.write(CRLF + CRLF)
            buf.write(value.encode("utf-8"))

        if self.file is not None:
            if self.fields:
                buf.write(CRLF)
            buf.write(dash_boundary + CRLF)
            buf.write(
                (
                    "Content-Disposition: form-data; "
                    f'name="{_escape_quotes(self.file.name)}"; '
                    f'filename="{_escape_quotes(self.file.filename)}"'
                ).encode()
            )
            buf.write(CRLF)
            buf.write(f"Content-Type: {self.file.content_type}".encode())
            buf.write(CRLF + CRLF)
        return buf.getvalue()

    def _trailer(self) -> bytes:
        closing = f"--{self.boundary}--".encode() + CRLF
        if self.fields or self.file is not None:
            return CRLF + closing
        return closing

    def _read_chunk(self) -> bytes:
        assert self.file is not None
        try:
            return self.file.stream.read(self.chunk_size)
        except OSError as exc:
            raise UploadError(
                f"Failed reading {self.file.filename!r} during upload: {exc}"
            ) from exc

    def __iter__(self) -> Iterator[bytes]:
        yield self._preamble()
        if self.file is not None:
            copied = 0
            while chunk := self._read_chunk():
                copied += len(chunk)
                yield chunk
            logger.debug("Streamed %d bytes of %s", copied, self.file.filename)
        yield self._trailer()

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Async view of the body, usable as httpx ``content``.

        Stream reads run in a worker thread so a slow disk does not block
        the event loop.
        """
        yield self._preamble()
        if self.file is not None:
            copied = 0
            while chunk := await asyncio.to_thread(self._read_chunk):
                copied += len(chunk)
                yield chunk
            logger.debug("Streamed %d bytes of %s", copied, self.file.filename)
        yield self._trailer()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _remaining_bytes(stream: BinaryIO) -> int | None:
        try:
            if not stream.seekable():
                return None
            position = stream.tell()
            end = stream.seek(0, os.SEEK_END)
            stream.seek(position)
        except (AttributeError, OSError):
            return None
        return end - position

"""Unit tests for the streaming multipart encoder."""

from __future__ import annotations

import io
import os
import threading

import pytest

from operand.exceptions import UploadError
from operand.multipart import FileField, MultipartEncoder


def _parse(body: bytes, boundary: str) -> list[tuple[dict[str, str], bytes]]:
    """Split a multipart body into (headers, payload) pairs."""
    delimiter = b"--" + boundary.encode()
    assert body.endswith(delimiter + b"--\r\n")
    parts = []
    for raw in body.split(delimiter)[1:-1]:
        assert raw.startswith(b"\r\n")
        assert raw.endswith(b"\r\n")
        head, _, payload = raw[2:-2].partition(b"\r\n\r\n")
        headers = {}
        for line in head.decode().split("\r\n"):
            key, _, value = line.partition(": ")
            headers[key] = value
        parts.append((headers, payload))
    return parts


class _BrokenStream(io.RawIOBase):
    """Yields one chunk and then fails like a disconnected disk."""

    def __init__(self) -> None:
        self.calls = 0

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        self.calls += 1
        if self.calls == 1:
            return b"x" * 16
        raise OSError("device not ready")


class _Unseekable(io.RawIOBase):
    def __init__(self, data: bytes) -> None:
        self._buf = io.BytesIO(data)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)


# ======================================================================
# Wire format
# ======================================================================


class TestWireFormat:
    def test_fields_then_file_in_order(self):
        enc = MultipartEncoder(
            [("name", "report.pdf"), ("parentId", "folder_1")],
            FileField("file", "report.pdf", io.BytesIO(b"%PDF-1.7 data")),
            boundary="BOUNDARY",
        )
        parts = _parse(b"".join(enc), "BOUNDARY")

        assert len(parts) == 3
        assert parts[0] == ({"Content-Disposition": 'form-data; name="name"'}, b"report.pdf")
        assert parts[1] == (
            {"Content-Disposition": 'form-data; name="parentId"'},
            b"folder_1",
        )
        file_headers, payload = parts[2]
        assert file_headers["Content-Disposition"] == (
            'form-data; name="file"; filename="report.pdf"'
        )
        assert file_headers["Content-Type"] == "application/octet-stream"
        assert payload == b"%PDF-1.7 data"

    def test_exact_bytes_for_single_field(self):
        enc = MultipartEncoder({"name": "papers"}, boundary="b")
        assert b"".join(enc) == (
            b"--b\r\n"
            b'Content-Disposition: form-data; name="name"\r\n'
            b"\r\n"
            b"papers\r\n"
            b"--b--\r\n"
        )

    def test_metadata_only_body_for_folders(self):
        enc = MultipartEncoder([("name", "papers")], boundary="b")
        parts = _parse(b"".join(enc), "b")
        assert [h["Content-Disposition"] for h, _ in parts] == ['form-data; name="name"']

    def test_empty_body_is_just_closing_delimiter(self):
        enc = MultipartEncoder(boundary="b")
        assert b"".join(enc) == b"--b--\r\n"

    def test_quotes_escaped_in_filename(self):
        enc = MultipartEncoder(
            file=FileField("file", 'say "hi".txt', io.BytesIO(b"hi")), boundary="b"
        )
        body = b"".join(enc)
        assert b'filename="say \\"hi\\".txt"' in body

    def test_random_boundary_in_content_type(self):
        enc = MultipartEncoder([("name", "x")])
        assert enc.content_type == f"multipart/form-data; boundary={enc.boundary}"
        assert len(enc.boundary) == 32
        assert MultipartEncoder().boundary != enc.boundary

    def test_large_file_round_trips_in_chunks(self):
        """10 MB payload is emitted in chunk_size pieces and reassembles exactly."""
        data = os.urandom(10 * 1024 * 1024)
        enc = MultipartEncoder(
            [("name", "big.bin")],
            FileField("file", "big.bin", io.BytesIO(data)),
            boundary="b0undary",
            chunk_size=64 * 1024,
        )
        chunks = list(enc)
        # preamble + 160 file chunks + trailer
        assert len(chunks) == 162
        assert max(len(c) for c in chunks[1:-1]) == 64 * 1024

        parts = _parse(b"".join(chunks), "b0undary")
        assert parts[1][1] == data


# ======================================================================
# Content length
# ======================================================================


class TestContentLength:
    def test_matches_encoded_body(self):
        enc = MultipartEncoder(
            [("name", "n"), ("properties", '{"a": 1}')],
            FileField("file", "n.txt", io.BytesIO(b"0123456789")),
        )
        expected = enc.content_length
        assert expected == len(b"".join(enc))

    def test_counts_from_current_position(self):
        stream = io.BytesIO(b"skipme-payload")
        stream.seek(7)
        enc = MultipartEncoder(file=FileField("file", "p", stream), boundary="b")
        length = enc.content_length
        assert stream.tell() == 7
        assert length == len(b"".join(enc))

    def test_none_for_unseekable_stream(self):
        enc = MultipartEncoder(file=FileField("file", "p", _Unseekable(b"abc")))
        assert enc.content_length is None
        assert "Content-Length" not in enc.headers()

    def test_metadata_only_length(self):
        enc = MultipartEncoder({"name": "papers"})
        assert enc.headers()["Content-Length"] == str(len(b"".join(enc)))


# ======================================================================
# Streaming
# ======================================================================


class TestStreaming:
    @pytest.mark.asyncio
    async def test_async_iteration_matches_sync(self):
        data = b"payload" * 1000
        sync_enc = MultipartEncoder(
            {"name": "p"}, FileField("file", "p", io.BytesIO(data)), boundary="b", chunk_size=512
        )
        async_enc = MultipartEncoder(
            {"name": "p"}, FileField("file", "p", io.BytesIO(data)), boundary="b", chunk_size=512
        )
        collected = [chunk async for chunk in async_enc.aiter_bytes()]
        assert b"".join(collected) == b"".join(sync_enc)

    def test_read_failure_raises_upload_error(self):
        enc = MultipartEncoder(
            {"name": "p"}, FileField("file", "p.bin", _BrokenStream()), chunk_size=16
        )
        with pytest.raises(UploadError) as exc_info:
            b"".join(enc)
        assert "p.bin" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_async_reads_run_off_the_event_loop_thread(self):
        loop_thread = threading.get_ident()
        read_threads: list[int] = []

        class TrackingStream(io.BytesIO):
            def read(self, size: int = -1) -> bytes:
                read_threads.append(threading.get_ident())
                return super().read(size)

        enc = MultipartEncoder(
            {"name": "p"}, FileField("file", "p", TrackingStream(b"z" * 2048)), chunk_size=512
        )
        body = b"".join([chunk async for chunk in enc.aiter_bytes()])

        assert b"z" * 2048 in body
        assert len(read_threads) == 5
        assert loop_thread not in read_threads

    @pytest.mark.asyncio
    async def test_async_read_failure_raises_upload_error(self):
        enc = MultipartEncoder(
            {"name": "p"}, FileField("file", "p.bin", _BrokenStream()), chunk_size=16
        )
        with pytest.raises(UploadError):
            [chunk async for chunk in enc.aiter_bytes()]

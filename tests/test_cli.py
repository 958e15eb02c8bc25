"""CLI tests using typer's CliRunner with the API clients patched out."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import typer
from typer.testing import CliRunner

from operand.cli import app, parse_filter
from operand.exceptions import RequestFailedError
from operand.files.models import File, ListFilesResponse
from operand.models import (
    DeleteResponse,
    ListObjectsResponse,
    Object,
    SearchContentsResponse,
)

from conftest import file_json, object_json

runner = CliRunner()


def _fake_client(**methods) -> MagicMock:
    """Async-context-manager client whose methods are AsyncMocks."""
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    for name, value in methods.items():
        setattr(client, name, value if isinstance(value, AsyncMock) else AsyncMock(return_value=value))
    return client


@pytest.fixture(autouse=True)
def api_key():
    with patch("operand.cli.get_api_key", return_value="test-key") as mock:
        yield mock


# ======================================================================
# Filter parsing
# ======================================================================


class TestParseFilter:
    def test_none(self):
        assert parse_filter(None) is None
        assert parse_filter([]) is None

    def test_json_and_string_values(self):
        assert parse_filter(["lang=en", "year=2023", "draft=false"]) == {
            "lang": "en",
            "year": 2023,
            "draft": False,
        }

    def test_missing_equals_rejected(self):
        with pytest.raises(typer.BadParameter):
            parse_filter(["lang"])


# ======================================================================
# objects
# ======================================================================


class TestObjectsCommands:
    def test_list(self):
        resp = ListObjectsResponse.model_validate(
            {"objects": [object_json("obj_1", status="ready", label="Intro")], "hasMore": False}
        )
        client = _fake_client(list_objects=resp)
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(app, ["objects", "list", "--parent", "col_1"])
        assert result.exit_code == 0, result.output
        assert "obj_1" in result.output
        args = client.list_objects.call_args.args[0]
        assert args.parent_id == "col_1"

    def test_get_with_count(self):
        obj = Object.model_validate(object_json("col_1", type="collection", objects=3))
        client = _fake_client(get_object=obj)
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(app, ["objects", "get", "col_1", "--count"])
        assert result.exit_code == 0, result.output
        client.get_object.assert_awaited_once_with("col_1", count=True)
        assert '"objects": 3' in result.output

    def test_create_text_waits(self):
        pending = Object.model_validate(object_json("obj_1"))
        ready = Object.model_validate(object_json("obj_1", status="ready"))
        client = _fake_client(create_object=pending, wait_for_object=ready)
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(app, ["objects", "create-text", "hello", "--parent", "col_1"])
        assert result.exit_code == 0, result.output
        client.wait_for_object.assert_awaited_once_with(pending)
        assert "ready" in result.output

    def test_create_collection_no_wait(self):
        col = Object.model_validate(object_json("col_1", type="collection", metadata={}))
        client = _fake_client(create_object=col, wait_for_object=col)
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(
                app, ["objects", "create-collection", "--label", "docs", "--no-wait"]
            )
        assert result.exit_code == 0, result.output
        client.wait_for_object.assert_not_awaited()
        args = client.create_object.call_args.args[0]
        assert args.label == "docs"

    def test_delete_with_yes(self):
        client = _fake_client(delete_object=DeleteResponse(deleted=True))
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(app, ["objects", "delete", "col_1", "--yes"])
        assert result.exit_code == 0, result.output
        assert "Deleted" in result.output

    def test_delete_declined(self):
        client = _fake_client(delete_object=DeleteResponse(deleted=True))
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(app, ["objects", "delete", "col_1"], input="n\n")
        assert result.exit_code == 0
        client.delete_object.assert_not_awaited()

    def test_service_error_exits_1(self):
        client = _fake_client(
            get_object=AsyncMock(side_effect=RequestFailedError(404, "Not Found", "no such object"))
        )
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(app, ["objects", "get", "missing"])
        assert result.exit_code == 1
        assert "404" in result.output

    def test_missing_api_key_exits_1(self, api_key):
        api_key.side_effect = RuntimeError("Operand API key not found.")
        result = runner.invoke(app, ["objects", "get", "obj_1"])
        assert result.exit_code == 1
        assert "API key not found" in result.output


# ======================================================================
# search / answer
# ======================================================================


class TestSearchCommands:
    def test_search_table(self):
        resp = SearchContentsResponse.model_validate(
            {
                "id": "s1",
                "latencyMs": 5,
                "contents": [
                    {"objectId": "obj_1", "content": "dogs bark", "type": "content", "score": 0.9}
                ],
                "objects": {"obj_1": object_json("obj_1", status="ready", label="Dogs")},
            }
        )
        client = _fake_client(search_contents=resp)
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(
                app, ["search", "dogs", "-p", "col_1", "-p", "col_2", "--max", "3", "-f", "lang=en"]
            )
        assert result.exit_code == 0, result.output
        assert "dogs bark" in result.output
        args = client.search_contents.call_args.args[0]
        assert args.parent_ids == ["col_1", "col_2"]
        assert args.max == 3
        assert args.filter == {"lang": "en"}

    def test_search_no_results(self):
        client = _fake_client(search_contents=SearchContentsResponse(id="s1"))
        with patch("operand.client.OperandClient", return_value=client):
            result = runner.invoke(app, ["search", "nothing"])
        assert result.exit_code == 0
        assert "No results" in result.output

    def test_answer_rejects_unknown_style(self):
        result = runner.invoke(app, ["answer", "why?", "--style", "poetic"])
        assert result.exit_code != 0


# ======================================================================
# files
# ======================================================================


class TestFilesCommands:
    def test_upload_and_wait(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        pending = File.model_validate(file_json("file_1", name="notes.txt"))
        ready = File.model_validate(
            file_json("file_1", name="notes.txt", status="INDEXING_STATUS_READY")
        )
        files = _fake_client(upload_file=pending, wait_for_file=ready)
        with patch("operand.files.client.OperandFilesClient", return_value=files):
            result = runner.invoke(app, ["files", "upload", str(path), "--parent", "fld_1"])
        assert result.exit_code == 0, result.output
        call = files.upload_file.call_args
        assert call.args[0] == "notes.txt"
        assert call.kwargs["parent_id"] == "fld_1"
        assert "INDEXING_STATUS_READY" in result.output

    def test_mkdir(self):
        folder = File.model_validate(file_json("fld_1", name="papers", is_folder=True, status=None))
        files = _fake_client(create_folder=folder)
        with patch("operand.files.client.OperandFilesClient", return_value=files):
            result = runner.invoke(app, ["files", "mkdir", "papers"])
        assert result.exit_code == 0, result.output
        files.create_folder.assert_awaited_once_with("papers", parent_id=None)
        assert "folder" in result.output

    def test_list_shows_next_page_token(self):
        resp = ListFilesResponse.model_validate(
            {"files": [file_json("a", name="a.txt")], "nextPageToken": "tok2"}
        )
        files = _fake_client(list_files=resp)
        with patch("operand.files.client.OperandFilesClient", return_value=files):
            result = runner.invoke(app, ["files", "list"])
        assert result.exit_code == 0, result.output
        assert "a.txt" in result.output
        assert "tok2" in result.output

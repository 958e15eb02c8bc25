"""CLI entry point for the Operand client.

Provides commands:
  - config: Manage the API key stored in the system keyring
  - objects: List, inspect, create and delete objects (REST API)
  - search: Search indexed content
  - answer: Ask a question answered from indexed content
  - files: Upload files, create folders, list and delete (RPC API)
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, TypeVar

import keyring
import typer
from keyring.errors import KeyringError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from operand.config import (
    KEY_NAME,
    SERVICE_NAME,
    ClientConfig,
    get_api_key,
    load_client_config,
)
from operand.exceptions import OperandError
from operand.log import setup_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(
    help="Operand - index, search and manage objects from the command line",
    rich_markup_mode="rich",
)
console = Console()

config_app = typer.Typer(help="Manage configuration (API key)")
app.add_typer(config_app, name="config")

objects_app = typer.Typer(help="Create, inspect and delete objects")
app.add_typer(objects_app, name="objects")

files_app = typer.Typer(help="Upload files and manage folders")
app.add_typer(files_app, name="files")


@dataclass
class AppState:
    """Shared state across CLI commands. Initialized in the app callback."""

    config: ClientConfig


@app.callback()
def app_callback(
    ctx: typer.Context,
    endpoint: Annotated[
        str | None,
        typer.Option("--endpoint", "-e", help="REST API base URL (dedicated deployments)"),
    ] = None,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to a JSON client config"),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Log requests and polling")
    ] = False,
    log_file: Annotated[
        Path | None, typer.Option("--log-file", help="Also write logs to this file")
    ] = None,
) -> None:
    """Load configuration and set up logging for every command."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING, log_file)
    config = load_client_config(config_path)
    if endpoint:
        config.endpoint = endpoint
    ctx.obj = AppState(config=config)


def get_state(ctx: typer.Context) -> AppState:
    """Type-safe accessor for AppState from Typer context."""
    if ctx.obj is None:
        ctx.obj = AppState(config=load_client_config())
    return ctx.obj


def _require_api_key() -> str:
    try:
        return get_api_key()
    except RuntimeError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a client coroutine, turning Operand errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except OperandError as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _rest_client(state: AppState):
    from operand.client import OperandClient

    return OperandClient(
        _require_api_key(),
        endpoint=state.config.endpoint,
        timeout=state.config.timeout_seconds,
        schedule=state.config.backoff_schedule(),
    )


def _files_client(state: AppState):
    from operand.files.client import OperandFilesClient

    return OperandFilesClient(
        _require_api_key(),
        endpoint=state.config.rpc_endpoint,
        timeout=state.config.timeout_seconds,
        schedule=state.config.backoff_schedule(),
    )


def parse_filter(items: list[str] | None) -> dict[str, Any] | None:
    """Turn ``key=value`` options into a property filter.

    Values are parsed as JSON when possible (numbers, booleans, lists) and
    kept as strings otherwise.
    """
    if not items:
        return None
    result: dict[str, Any] = {}
    for item in items:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Filter must look like key=value, got '{item}'")
        try:
            result[key] = json.loads(raw)
        except json.JSONDecodeError:
            result[key] = raw
    return result


def _status_style(status: str) -> str:
    if status in ("ready", "INDEXING_STATUS_READY"):
        return "green"
    if status in ("error", "INDEXING_STATUS_FAILED"):
        return "red"
    return "yellow"


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@config_app.command("set-api-key")
def set_api_key(
    key: Annotated[str, typer.Argument(help="Operand API key to store in system keyring")],
) -> None:
    """Store the Operand API key in the system keyring (service: operand)."""
    if not key or key.strip() == "":
        console.print("[red]Error:[/red] API key cannot be empty")
        raise typer.Exit(code=1)

    try:
        keyring.set_password(SERVICE_NAME, KEY_NAME, key)
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to store API key: {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print(
        f"[green]OK[/green] API key stored in system keyring (service: {SERVICE_NAME})"
    )


@config_app.command("get-api-key")
def show_api_key() -> None:
    """Display the stored Operand API key (masked)."""
    api_key = keyring.get_password(SERVICE_NAME, KEY_NAME)
    if not api_key:
        console.print(
            "[yellow]No API key found in keyring.[/yellow]\n"
            "Set it with: [bold]operand config set-api-key YOUR_KEY[/bold]"
        )
        raise typer.Exit(code=1)

    if len(api_key) > 8:
        masked = api_key[:8] + "*" * (len(api_key) - 8)
    else:
        masked = api_key[:2] + "*" * max(1, len(api_key) - 2)

    console.print(f"[green]API key:[/green] {masked}")
    console.print(f"[dim](stored in service: {SERVICE_NAME})[/dim]")


@config_app.command("remove-api-key")
def remove_api_key() -> None:
    """Delete the stored Operand API key from the system keyring."""
    if not keyring.get_password(SERVICE_NAME, KEY_NAME):
        console.print("[yellow]Warning:[/yellow] No API key found in keyring.\nNothing to remove.")
        return
    try:
        keyring.delete_password(SERVICE_NAME, KEY_NAME)
    except KeyringError as e:
        console.print(f"[red]Error:[/red] Failed to remove API key: {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print(f"[green]OK[/green] API key removed from system keyring (service: {SERVICE_NAME})")


# ---------------------------------------------------------------------------
# objects
# ---------------------------------------------------------------------------


@objects_app.command("list")
def objects_list(
    ctx: typer.Context,
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent collection id")] = None,
    limit: Annotated[int | None, typer.Option("--limit", "-l", help="Page size")] = None,
    after: Annotated[str | None, typer.Option("--after", help="List objects after this id")] = None,
    before: Annotated[str | None, typer.Option("--before", help="List objects before this id")] = None,
) -> None:
    """List objects, optionally inside a collection."""
    from operand.models import ListObjectsArgs

    state = get_state(ctx)
    args = ListObjectsArgs(
        parent_id=parent, limit=limit, starting_after=after, ending_before=before
    )

    async def _list():
        async with _rest_client(state) as client:
            return await client.list_objects(args)

    resp = _run(_list())

    table = Table(title=f"Objects ({len(resp.objects)}{'+' if resp.has_more else ''})")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Label")
    table.add_column("Status")
    table.add_column("Updated", style="dim")
    for obj in resp.objects:
        status = obj.indexing_status.value
        table.add_row(
            obj.id,
            obj.type,
            escape(obj.label or ""),
            f"[{_status_style(status)}]{status}[/{_status_style(status)}]",
            obj.updated_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@objects_app.command("get")
def objects_get(
    ctx: typer.Context,
    object_id: Annotated[str, typer.Argument(help="Object id")],
    count: Annotated[bool, typer.Option("--count", help="Include the number of child objects")] = False,
) -> None:
    """Show one object as JSON."""
    state = get_state(ctx)

    async def _get():
        async with _rest_client(state) as client:
            return await client.get_object(object_id, count=count)

    obj = _run(_get())
    console.print_json(obj.model_dump_json(by_alias=True))


def _create_and_print(state: AppState, args: Any, wait: bool) -> None:
    async def _create():
        async with _rest_client(state) as client:
            obj = await client.create_object(args)
            if wait:
                with console.status(f"Waiting for {obj.id} to finish indexing..."):
                    obj = await client.wait_for_object(obj)
            return obj

    obj = _run(_create())
    status = obj.indexing_status.value
    style = _status_style(status)
    console.print(f"[cyan]{obj.id}[/cyan] {obj.type} [{style}]{status}[/{style}]")
    if wait and status == "error":
        raise typer.Exit(code=1)


@objects_app.command("create-collection")
def objects_create_collection(
    ctx: typer.Context,
    label: Annotated[str | None, typer.Option("--label", help="Human-readable label")] = None,
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent collection id")] = None,
    wait: Annotated[bool, typer.Option("--wait/--no-wait", help="Block until indexed")] = True,
) -> None:
    """Create a collection (folder) object."""
    from operand.models import CollectionMetadata, CreateObjectArgs, ObjectType

    args = CreateObjectArgs(
        type=ObjectType.COLLECTION,
        metadata=CollectionMetadata(),
        parent_id=parent,
        label=label,
    )
    _create_and_print(get_state(ctx), args, wait)


@objects_app.command("create-text")
def objects_create_text(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="Text to index")],
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent collection id")] = None,
    label: Annotated[str | None, typer.Option("--label", help="Human-readable label")] = None,
    wait: Annotated[bool, typer.Option("--wait/--no-wait", help="Block until indexed")] = True,
) -> None:
    """Create a text object."""
    from operand.models import CreateObjectArgs, ObjectType, TextMetadata

    args = CreateObjectArgs(
        type=ObjectType.TEXT,
        metadata=TextMetadata(text=text),
        parent_id=parent,
        label=label,
    )
    _create_and_print(get_state(ctx), args, wait)


@objects_app.command("delete")
def objects_delete(
    ctx: typer.Context,
    object_id: Annotated[str, typer.Argument(help="Object id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete an object (collections are deleted with everything inside)."""
    state = get_state(ctx)
    if not yes and not typer.confirm(f"Delete {object_id}?"):
        raise typer.Exit(code=0)

    async def _delete():
        async with _rest_client(state) as client:
            return await client.delete_object(object_id)

    resp = _run(_delete())
    if resp.deleted:
        console.print(f"[green]Deleted[/green] {object_id}")
    else:
        console.print(f"[yellow]Not deleted:[/yellow] {object_id}")
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# search / answer
# ---------------------------------------------------------------------------


@app.command()
def search(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Search query")],
    parent: Annotated[
        list[str] | None,
        typer.Option("--parent", "-p", help="Restrict to this collection (repeatable)"),
    ] = None,
    max_results: Annotated[int, typer.Option("--max", "-m", help="Maximum results")] = 10,
    filter: Annotated[
        list[str] | None,
        typer.Option("--filter", "-f", help="Property filter key=value (repeatable)"),
    ] = None,
) -> None:
    """Search indexed content, most relevant first."""
    from operand.models import SearchContentsArgs

    state = get_state(ctx)
    args = SearchContentsArgs(
        query=query, parent_ids=parent, max=max_results, filter=parse_filter(filter)
    )

    async def _search():
        async with _rest_client(state) as client:
            return await client.search_contents(args)

    resp = _run(_search())
    if not resp.contents:
        console.print("[yellow]No results.[/yellow]")
        return

    table = Table(title=f"Results for '{escape(query)}' ({resp.latency_ms}ms)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Object", style="cyan", no_wrap=True)
    table.add_column("Content")
    for rank, content in enumerate(resp.contents, start=1):
        obj = resp.objects.get(content.object_id)
        name = (obj.label if obj and obj.label else None) or content.object_id
        table.add_row(str(rank), f"{content.score:.3f}", escape(name), escape(content.content))
    console.print(table)


@app.command()
def answer(
    ctx: typer.Context,
    question: Annotated[str, typer.Argument(help="Question to answer")],
    parent: Annotated[
        list[str] | None,
        typer.Option("--parent", "-p", help="Restrict to this collection (repeatable)"),
    ] = None,
    style: Annotated[
        str | None, typer.Option("--style", help="Answer style: direct or operand")
    ] = None,
) -> None:
    """Answer a question from indexed content, with sources."""
    from operand.models import AnswerStyle, CompletionAnswerArgs

    if style is not None and style not in {s.value for s in AnswerStyle}:
        raise typer.BadParameter("--style must be 'direct' or 'operand'")

    state = get_state(ctx)
    args = CompletionAnswerArgs(
        question=question,
        parent_ids=parent,
        style=AnswerStyle(style) if style else None,
    )

    async def _answer():
        async with _rest_client(state) as client:
            return await client.completion_answer(args)

    resp = _run(_answer())
    console.print(escape(resp.answer))
    if resp.sources:
        console.print("\n[dim]Sources:[/dim]")
        for source in resp.sources:
            console.print(f"  [cyan]{source.id}[/cyan] {escape(source.label or source.type)}")


# ---------------------------------------------------------------------------
# files
# ---------------------------------------------------------------------------


def _print_file(file: Any) -> None:
    status = file.indexing_status.value
    style = _status_style(status)
    kind = "folder" if file.is_folder else f"{file.size_bytes} bytes"
    console.print(
        f"[cyan]{file.id}[/cyan] {escape(file.name)} ({kind}) [{style}]{status}[/{style}]"
    )


@files_app.command("upload")
def files_upload(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="File to upload", exists=True, dir_okay=False)],
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent folder id")] = None,
    name: Annotated[str | None, typer.Option("--name", "-n", help="Name (defaults to file name)")] = None,
    wait: Annotated[bool, typer.Option("--wait/--no-wait", help="Block until indexed")] = True,
) -> None:
    """Upload a file, streaming it from disk."""
    state = get_state(ctx)

    async def _upload():
        async with _files_client(state) as files:
            with open(path, "rb") as fh:
                file = await files.upload_file(
                    name or path.name, fh, parent_id=parent, filename=path.name
                )
            if wait:
                with console.status(f"Waiting for {file.id} to finish indexing..."):
                    file = await files.wait_for_file(file)
            return file

    file = _run(_upload())
    _print_file(file)


@files_app.command("mkdir")
def files_mkdir(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Folder name")],
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent folder id")] = None,
) -> None:
    """Create a folder."""
    state = get_state(ctx)

    async def _mkdir():
        async with _files_client(state) as files:
            return await files.create_folder(name, parent_id=parent)

    _print_file(_run(_mkdir()))


@files_app.command("get")
def files_get(
    ctx: typer.Context,
    file_id: Annotated[str, typer.Argument(help="File id")],
) -> None:
    """Show one file as JSON."""
    state = get_state(ctx)

    async def _get():
        async with _files_client(state) as files:
            return await files.get_file(file_id)

    console.print_json(_run(_get()).model_dump_json(by_alias=True))


@files_app.command("list")
def files_list(
    ctx: typer.Context,
    parent: Annotated[str | None, typer.Option("--parent", "-p", help="Parent folder id")] = None,
    page_size: Annotated[int | None, typer.Option("--page-size", help="Files per page")] = None,
    page_token: Annotated[str | None, typer.Option("--page-token", help="Continue from a previous page")] = None,
) -> None:
    """List files and folders."""
    state = get_state(ctx)

    async def _list():
        async with _files_client(state) as files:
            return await files.list_files(
                parent_id=parent, page_size=page_size, page_token=page_token
            )

    resp = _run(_list())
    for file in resp.files:
        _print_file(file)
    if resp.next_page_token:
        console.print(f"[dim]More: --page-token {resp.next_page_token}[/dim]")


@files_app.command("delete")
def files_delete(
    ctx: typer.Context,
    file_id: Annotated[str, typer.Argument(help="File or folder id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Delete a file (folders are deleted with everything inside)."""
    state = get_state(ctx)
    if not yes and not typer.confirm(f"Delete {file_id}?"):
        raise typer.Exit(code=0)

    async def _delete():
        async with _files_client(state) as files:
            return await files.delete_file(file_id)

    resp = _run(_delete())
    if resp.deleted:
        console.print(f"[green]Deleted[/green] {file_id}")
    else:
        console.print(f"[yellow]Not deleted:[/yellow] {file_id}")
        raise typer.Exit(code=1)

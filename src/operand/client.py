"""Operand REST (v3) API client.

Every method is a single call through :class:`~operand.transport.Transport`:
build the path, pick the method, pass the typed payload, decode the typed
response.  Errors from the transport pass through unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from operand.constants import DEFAULT_ENDPOINT, DEFAULT_TIMEOUT_SECONDS
from operand.models import (
    CompletionAnswerArgs,
    CompletionAnswerResponse,
    CompletionTypeAheadArgs,
    CompletionTypeAheadResponse,
    CreateObjectArgs,
    CreateTriggerArgs,
    DeleteResponse,
    FeedbackArgs,
    ListObjectsArgs,
    ListObjectsResponse,
    ListTriggersArgs,
    ListTriggersResponse,
    Object,
    SearchContentsArgs,
    SearchContentsResponse,
    SearchObjectsArgs,
    SearchObjectsResponse,
    SearchRelatedArgs,
    SearchRelatedResponse,
    Trigger,
    UpdateObjectArgs,
)
from operand.transport import AuthScheme, Transport
from operand.wait import BackoffSchedule, EntityWaiter

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(value, safe="")


def _query(args: Any) -> dict[str, Any]:
    """Dump list-style arguments as query parameters (camelCase, no Nones)."""
    if args is None:
        return {}
    return args.model_dump(by_alias=True, exclude_none=True)


class OperandClient:
    """Async client for the Operand REST API.

    Holds no state between calls besides its configuration, so a single
    instance may serve any number of concurrent calls.

    Usage::

        async with OperandClient(api_key) as client:
            obj = await client.create_object(
                CreateObjectArgs(type=ObjectType.TEXT, metadata=TextMetadata(text="hi"))
            )
            obj = await client.wait_for_object(obj)

    Args:
        api_key: Operand API key, sent verbatim in ``Authorization``.
        endpoint: Base URL; trailing slashes are stripped.
        http_client: Optional ``httpx.AsyncClient`` (own timeouts, proxies,
            mock transports).  When omitted the client creates and owns one.
        timeout: Timeout for the client-owned ``httpx.AsyncClient``.
        schedule: Backoff schedule for :meth:`wait_for_object`.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        schedule: BackoffSchedule | None = None,
    ) -> None:
        self.transport = Transport(
            api_key,
            endpoint=endpoint,
            auth_scheme=AuthScheme.RAW,
            http_client=http_client,
            timeout=timeout,
        )
        self.schedule = schedule or BackoffSchedule()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def endpoint(self) -> str:
        return self.transport.endpoint

    @endpoint.setter
    def endpoint(self, value: str) -> None:
        self.transport.endpoint = value

    @property
    def api_key(self) -> str | None:
        return self.transport.api_key

    @api_key.setter
    def api_key(self, value: str | None) -> None:
        self.transport.api_key = value

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self.transport.http_client

    @http_client.setter
    def http_client(self, value: httpx.AsyncClient) -> None:
        self.transport.http_client = value

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def create_object(self, args: CreateObjectArgs) -> Object:
        """Create an object; it starts in the ``indexing`` state."""
        obj = await self.transport.execute("POST", "/v3/objects", args, Object)
        logger.info("Created %s object %s", obj.type, obj.id)
        return obj

    async def list_objects(self, args: ListObjectsArgs | None = None) -> ListObjectsResponse:
        """List objects, optionally under a parent, paginated by cursor."""
        return await self.transport.execute(
            "GET", "/v3/objects", response_model=ListObjectsResponse, params=_query(args)
        )

    async def get_object(self, object_id: str, *, count: bool = False) -> Object:
        """Fetch one object.

        Args:
            object_id: The object id.
            count: Also return the number of objects underneath it
                (``Object.objects``).
        """
        params = {"count": "true"} if count else None
        return await self.transport.execute(
            "GET", f"/v3/objects/{_segment(object_id)}", response_model=Object, params=params
        )

    async def update_object(self, object_id: str, args: UpdateObjectArgs) -> Object:
        """Partially update an object; the indexing status is not reset."""
        return await self.transport.execute(
            "PUT", f"/v3/objects/{_segment(object_id)}", args, Object
        )

    async def delete_object(self, object_id: str) -> DeleteResponse:
        """Delete an object.  Deleting a collection deletes its descendants."""
        resp = await self.transport.execute(
            "DELETE", f"/v3/objects/{_segment(object_id)}", response_model=DeleteResponse
        )
        logger.info("Deleted object %s (deleted=%s)", object_id, resp.deleted)
        return resp

    async def wait_for_object(
        self, obj: Object, cancel: asyncio.Event | None = None
    ) -> Object:
        """Poll *obj* until it has finished indexing and return the fresh copy.

        See :class:`~operand.wait.EntityWaiter` for the schedule and the
        cancellation rules.  The returned object may be in the ``error``
        state; check ``indexing_status``.
        """
        waiter = EntityWaiter(self.get_object, schedule=self.schedule)
        return await waiter.wait(obj, cancel)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search_contents(self, args: SearchContentsArgs) -> SearchContentsResponse:
        """Search for matching content passages."""
        return await self.transport.execute(
            "POST", "/v3/search/contents", args, SearchContentsResponse
        )

    async def search_objects(self, args: SearchObjectsArgs) -> SearchObjectsResponse:
        """Search for matching objects, each with a snippet."""
        return await self.transport.execute(
            "POST", "/v3/search/objects", args, SearchObjectsResponse
        )

    async def search_related(self, args: SearchRelatedArgs) -> SearchRelatedResponse:
        """Find objects related to an existing object."""
        return await self.transport.execute(
            "POST", "/v3/search/related", args, SearchRelatedResponse
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def completion_answer(self, args: CompletionAnswerArgs) -> CompletionAnswerResponse:
        """Answer a question from indexed content."""
        return await self.transport.execute(
            "POST", "/v3/completion/answer", args, CompletionAnswerResponse
        )

    async def completion_typeahead(
        self, args: CompletionTypeAheadArgs
    ) -> CompletionTypeAheadResponse:
        """Complete a text fragment from indexed content."""
        return await self.transport.execute(
            "POST", "/v3/completion/typeahead", args, CompletionTypeAheadResponse
        )

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def create_trigger(self, args: CreateTriggerArgs) -> Trigger:
        return await self.transport.execute("POST", "/v3/triggers", args, Trigger)

    async def list_triggers(self, args: ListTriggersArgs | None = None) -> ListTriggersResponse:
        return await self.transport.execute(
            "GET", "/v3/triggers", response_model=ListTriggersResponse, params=_query(args)
        )

    async def get_trigger(self, trigger_id: str) -> Trigger:
        return await self.transport.execute(
            "GET", f"/v3/triggers/{_segment(trigger_id)}", response_model=Trigger
        )

    async def delete_trigger(self, trigger_id: str) -> DeleteResponse:
        return await self.transport.execute(
            "DELETE", f"/v3/triggers/{_segment(trigger_id)}", response_model=DeleteResponse
        )

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def feedback(self, args: FeedbackArgs) -> None:
        """Report that a user clicked a result of an object search."""
        await self.transport.execute("POST", "/v3/feedback", args)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client created by this instance, if any."""
        await self.transport.aclose()

    async def __aenter__(self) -> OperandClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

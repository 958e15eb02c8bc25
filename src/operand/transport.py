"""Transport core shared by every Operand operation.

One call to :meth:`Transport.execute` is exactly one HTTP round trip:

  1. serialize the body (pydantic model or plain value) to JSON
  2. attach the credential header for the configured :class:`AuthScheme`
  3. send through the (pluggable) ``httpx.AsyncClient``
  4. raise :class:`RequestFailedError` on status >= 400, otherwise decode the
     body into the requested pydantic model

Nothing is cached and nothing is retried at this layer.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterable, Mapping
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from operand.constants import DEFAULT_ENDPOINT, DEFAULT_TIMEOUT_SECONDS
from operand.exceptions import (
    DecodeError,
    NetworkError,
    RequestBuildError,
    RequestFailedError,
)

logger = logging.getLogger(__name__)


class AuthScheme(str, Enum):
    """How the API key is presented in the ``Authorization`` header."""

    RAW = "raw"  # REST v3: the key verbatim
    KEY = "key"  # RPC services: "Key <token>"

    def header_value(self, api_key: str) -> str:
        if self is AuthScheme.KEY:
            return f"Key {api_key}"
        return api_key


class Transport:
    """Authenticated request executor bound to one endpoint.

    ``endpoint``, ``api_key`` and ``http_client`` may be reassigned at any
    time; :meth:`execute` snapshots them when a call starts, so in-flight
    calls keep the configuration they began with.

    When no ``http_client`` is supplied, one is created here and owned by
    this instance (closed by :meth:`aclose`).  A caller-supplied client is
    never closed by the transport.
    """

    def __init__(
        self,
        api_key: str | None,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        auth_scheme: AuthScheme = AuthScheme.RAW,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.auth_scheme = auth_scheme
        self.endpoint = endpoint
        self._owned_client: httpx.AsyncClient | None = None
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=timeout)
            self._owned_client = http_client
        self._http_client = http_client

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @endpoint.setter
    def endpoint(self, value: str) -> None:
        self._endpoint = value.rstrip("/")

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client

    @http_client.setter
    def http_client(self, client: httpx.AsyncClient) -> None:
        self._http_client = client

    async def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        response_model: type[BaseModel] | None = None,
        *,
        params: Mapping[str, Any] | None = None,
        content: bytes | AsyncIterable[bytes] | None = None,
        content_type: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Perform one request and decode the response.

        Args:
            method: HTTP method (``GET``, ``POST``, ...).
            path: Path relative to the endpoint, starting with ``/``.
            body: JSON payload; pydantic models are dumped by alias with
                ``None`` fields omitted.  Mutually exclusive with *content*.
            response_model: pydantic model to decode the body into.  When
                ``None`` the body is ignored and ``None`` is returned.
            params: Query-string parameters; ``None`` values are dropped.
            content: Pre-encoded body (bytes or async byte stream), sent
                with *content_type*.
            content_type: ``Content-Type`` for *content*.
            headers: Extra request headers.

        Returns:
            An instance of *response_model*, or ``None``.

        Raises:
            RequestBuildError: Body not serializable or URL malformed.
            NetworkError: No response was received.
            RequestFailedError: Response status >= 400.
            DecodeError: Body did not match *response_model*.
        """
        endpoint = self._endpoint
        api_key = self.api_key
        auth_scheme = self.auth_scheme
        client = self._http_client

        request_headers: dict[str, str] = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)

        if body is not None:
            if content is not None:
                raise RequestBuildError("body and content are mutually exclusive")
            try:
                content = to_json(body, by_alias=True, exclude_none=True)
            except (PydanticSerializationError, TypeError, ValueError) as exc:
                raise RequestBuildError(
                    f"Cannot serialize request body for {method} {path}: {exc}"
                ) from exc
            content_type = "application/json"

        if content_type:
            request_headers["Content-Type"] = content_type
        if api_key:
            request_headers["Authorization"] = auth_scheme.header_value(api_key)

        query = None
        if params:
            query = {k: v for k, v in params.items() if v is not None}

        try:
            request = client.build_request(
                method,
                endpoint + path,
                content=content,
                params=query,
                headers=request_headers,
            )
        except (httpx.InvalidURL, TypeError, ValueError) as exc:
            raise RequestBuildError(f"Cannot build request {method} {path}: {exc}") from exc

        started = time.perf_counter()
        try:
            response = await client.send(request)
        except httpx.RequestError as exc:
            raise NetworkError(f"{method} {path} failed: {exc}") from exc
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.debug(
            "%s %s -> %d (%.0fms)", method, path, response.status_code, elapsed_ms
        )

        if response.status_code >= 400:
            raise RequestFailedError(
                response.status_code, response.reason_phrase, response.text
            )

        if response_model is None:
            return None

        try:
            return response_model.model_validate_json(response.content)
        except ValidationError as exc:
            raise DecodeError(
                f"Unexpected response from {method} {path}: {exc}"
            ) from exc

    async def aclose(self) -> None:
        """Close the HTTP client this transport created, if any."""
        if self._owned_client is not None:
            await self._owned_client.aclose()
            self._owned_client = None

"""Internal HTTP client wrapper for the TD2 catalog SDK.

This module provides a thin wrapper around httpx that issues a single call
under a fixed deadline and turns transport failures into
:class:`~td2catalog.sdk.exceptions.TransportError`. Non-2xx responses are
returned to the caller, which decides whether to retry before turning them
into a :class:`~td2catalog.sdk.exceptions.ProtocolError` with
:func:`raise_for_response`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from .config import REQUEST_TIMEOUT_MS
from .exceptions import ProtocolError, TransportError, extract_error_message
from .session import CSRF_HEADER, CsrfTokenCache

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Request timed out. Please try again."


@dataclass
class TimeoutConfig:
    """Configuration for HTTP request timeouts.

    ``total`` bounds the whole call, including fetching a CSRF token and
    reading the body. The per-phase httpx timeouts use the same value.
    """

    total: float = REQUEST_TIMEOUT_MS / 1000

    def as_httpx(self) -> httpx.Timeout:
        return httpx.Timeout(self.total)


class HTTPClient:
    """Async HTTP client bound to one API prefix and one cookie jar."""

    def __init__(
        self,
        base_url: str,
        timeout_config: TimeoutConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout_config = timeout_config or TimeoutConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """The underlying httpx client, created on first use.

        Redirects are never followed and nothing is cached; the cookie jar
        carries the session and CSRF cookies across calls.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_config.as_httpx(),
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def send(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        content: bytes | None = None,
        json: Any = None,
        files: Mapping[str, Any] | None = None,
        csrf: CsrfTokenCache | None = None,
    ) -> httpx.Response:
        """Issue one call and return the fully read response.

        Parameters
        ----------
        method : str
            HTTP method
        path : str
            Path below the API prefix, starting with "/"
        headers : Mapping[str, str], optional
            Extra request headers
        content : bytes, optional
            Raw request body
        json : Any, optional
            Body encoded as JSON by httpx
        files : Mapping[str, Any], optional
            Multipart files, passed through to httpx
        csrf : CsrfTokenCache, optional
            When given, a CSRF token is ensured and attached as a header

        Returns
        -------
        httpx.Response
            The response, whatever its status code

        Raises
        ------
        TransportError
            On timeout, connection failure, or a redirect
        """
        try:
            return await asyncio.wait_for(
                self._send(method, path, headers, content, json, files, csrf),
                timeout=self.timeout_config.total,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            logger.debug("%s %s timed out", method, path)
            raise TransportError(TIMEOUT_MESSAGE) from exc
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", method, path, type(exc).__name__)
            raise TransportError(self._network_message()) from exc

    async def _send(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None,
        content: bytes | None,
        json_body: Any,
        files: Mapping[str, Any] | None,
        csrf: CsrfTokenCache | None,
    ) -> httpx.Response:
        merged = dict(headers or {})
        if csrf is not None:
            token = await csrf.ensure_token()
            if token:
                merged[CSRF_HEADER] = token

        resp = await self.client.request(
            method,
            self.url(path),
            headers=merged,
            content=content,
            json=json_body,
            files=files,
        )
        if resp.is_redirect:
            logger.debug("%s %s answered with a redirect, refusing to follow", method, path)
            raise TransportError(self._network_message())
        return resp

    def _network_message(self) -> str:
        return f"Network error: could not reach API at {self.base_url}."

    async def close(self) -> None:
        """Close the underlying HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def aclose(self) -> None:
        """Alias for close() to match expected interface."""
        await self.close()


def raise_for_response(resp: httpx.Response) -> None:
    """Raise :class:`ProtocolError` if *resp* is not a 2xx response."""
    if resp.is_success:
        return
    text = resp.text
    data = _parse_json(text)
    message = extract_error_message(resp.reason_phrase, text, data)
    raise ProtocolError(resp.status_code, message, data)


def response_json(resp: httpx.Response) -> Any:
    """Parse a successful response body, or None when it is empty."""
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError as exc:
        raise ProtocolError(resp.status_code, "Invalid JSON in API response.") from exc


def _parse_json(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None

"""Async client for the TD2 catalog REST API."""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import IO, Any, Mapping, Optional, Union

import httpx

from ._http import HTTPClient, TimeoutConfig, raise_for_response, response_json
from .config import CatalogConfig, get_config
from .session import (
    REFRESH_EXEMPT_PATHS,
    CsrfTokenCache,
    SessionRefresher,
    needs_csrf,
)

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}

FileInput = Union[bytes, IO[bytes], Path]


class RetryState(enum.Flag):
    """One-shot retries a logical call has already used.

    Each cause may be spent once, so a call is sent at most three times.
    """

    NONE = 0
    CSRF = enum.auto()
    AUTH = enum.auto()


class CatalogClient:
    """Async client for the TD2 catalog API.

    The client keeps the cookie-based session, attaches the CSRF token to
    state-changing calls, and transparently recovers once from a stale CSRF
    token and once from an expired session.

    Parameters
    ----------
    api_url : str, optional
        ``/api`` or an absolute http(s) URL. Defaults to the configured value
    config : CatalogConfig, optional
        Configuration to use instead of :func:`get_config`
    origin : str, optional
        Origin relative ``api_url`` values are resolved against
    timeout_ms : int, optional
        Per-request deadline in milliseconds
    transport : httpx.AsyncBaseTransport, optional
        Transport override, mostly for tests

    Raises
    ------
    ConfigurationError
        If the API url is empty, malformed, or not http(s), or the origin
        is not an absolute http(s) URL
    """

    def __init__(
        self,
        api_url: str | None = None,
        *,
        config: CatalogConfig | None = None,
        origin: str | None = None,
        timeout_ms: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        cfg = config or get_config()
        if api_url is not None or origin is not None:
            cfg = CatalogConfig(
                api_url=api_url if api_url is not None else cfg.api_url,
                origin=origin if origin is not None else cfg.origin,
                request_timeout_ms=cfg.request_timeout_ms,
            )
        # Resolved once; a bad url fails here rather than per request.
        self.base = cfg.base_url()

        ms = timeout_ms if timeout_ms is not None else cfg.request_timeout_ms
        self._http = HTTPClient(
            self.base,
            timeout_config=TimeoutConfig(total=ms / 1000),
            transport=transport,
        )
        self.csrf = CsrfTokenCache(self._http)
        self.refresher = SessionRefresher(self._http, self.csrf)

    # ---------------- Verb helpers -----------------

    async def get(self, path: str, headers: Mapping[str, str] | None = None) -> Any:
        """GET *path* and return the decoded JSON body."""
        return await self.request(path, "GET", headers=headers)

    async def post(
        self, path: str, body: Any = None, headers: Mapping[str, str] | None = None
    ) -> Any:
        """POST *body* as JSON to *path*."""
        return await self._send_json("POST", path, body, headers)

    async def put(
        self, path: str, body: Any = None, headers: Mapping[str, str] | None = None
    ) -> Any:
        """PUT *body* as JSON to *path*."""
        return await self._send_json("PUT", path, body, headers)

    async def patch(
        self, path: str, body: Any = None, headers: Mapping[str, str] | None = None
    ) -> Any:
        """PATCH *body* as JSON to *path*."""
        return await self._send_json("PATCH", path, body, headers)

    async def delete(self, path: str, headers: Mapping[str, str] | None = None) -> Any:
        """DELETE *path*."""
        return await self.request(path, "DELETE", headers=headers)

    async def upload(
        self,
        path: str,
        file: FileInput,
        headers: Mapping[str, str] | None = None,
        *,
        filename: str | None = None,
    ) -> Any:
        """POST *file* as the ``file`` field of a multipart form.

        The content type is left to httpx so it can add the multipart
        boundary. The file is read up front so a retried call sends the
        same bytes.
        """
        if isinstance(file, Path):
            name = filename or file.name
            data = file.read_bytes()
        elif isinstance(file, (bytes, bytearray)):
            name = filename or "upload"
            data = bytes(file)
        else:
            name = filename or Path(str(getattr(file, "name", "upload"))).name
            data = file.read()

        return await self.request(
            path,
            "POST",
            headers=headers,
            files={"file": (name, data)},
        )

    async def _send_json(
        self, method: str, path: str, body: Any, headers: Mapping[str, str] | None
    ) -> Any:
        merged = {**JSON_HEADERS, **(headers or {})}
        return await self.request(path, method, headers=merged, json=body)

    # ---------------- Retry policy -----------------

    async def request(
        self,
        path: str,
        method: str = "GET",
        *,
        headers: Mapping[str, str] | None = None,
        content: bytes | None = None,
        json: Any = None,
        files: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send a call, retrying once per recoverable cause.

        A 403 mentioning CSRF on a state-changing call drops the cached
        token and resends with a fresh one. A 401 outside the login,
        refresh and setup endpoints refreshes the session and resends.
        Any other failure, or a second failure of the same cause, is
        raised.

        Returns
        -------
        Any
            Decoded JSON body, or None for an empty body

        Raises
        ------
        ValueError
            If *path* does not start with "/"
        TransportError
            On timeout or when the API cannot be reached
        ProtocolError
            On any non-2xx response that is not recovered
        """
        if not path.startswith("/"):
            raise ValueError("API path must start with '/'.")
        method = method.upper()
        csrf_protected = needs_csrf(method, path)
        state = RetryState.NONE

        while True:
            resp = await self._http.send(
                method,
                path,
                headers=headers,
                content=content,
                json=json,
                files=files,
                csrf=self.csrf if csrf_protected else None,
            )
            if resp.is_success:
                return response_json(resp)

            if (
                resp.status_code == 403
                and csrf_protected
                and RetryState.CSRF not in state
                and "csrf" in resp.text.lower()
            ):
                logger.debug("%s %s rejected for CSRF, retrying with a new token", method, path)
                state |= RetryState.CSRF
                self.csrf.invalidate()
                await self.csrf.ensure_token()
                continue

            if (
                resp.status_code == 401
                and path not in REFRESH_EXEMPT_PATHS
                and RetryState.AUTH not in state
            ):
                state |= RetryState.AUTH
                if await self.refresher.refresh():
                    logger.debug("Session refreshed, retrying %s %s", method, path)
                    continue

            raise_for_response(resp)

    # ---------------- Lifecycle -----------------

    async def aclose(self) -> None:
        """Close the underlying HTTP client.

        Should be called when done with the client to properly clean up
        connections. Can also be used as an async context manager to
        handle this automatically.
        """
        await self._http.aclose()

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


# ---------------- Module-level helpers -----------------

_default_client: Optional[CatalogClient] = None


def get_default_client() -> CatalogClient:
    """Return the process-wide client built from :func:`get_config`."""
    global _default_client

    if _default_client is None:
        _default_client = CatalogClient()
    return _default_client


async def close_default_client() -> None:
    """Close and forget the process-wide client."""
    global _default_client

    if _default_client is not None:
        await _default_client.aclose()
        _default_client = None


async def api_get(path: str, headers: Mapping[str, str] | None = None) -> Any:
    return await get_default_client().get(path, headers)


async def api_post(path: str, body: Any = None, headers: Mapping[str, str] | None = None) -> Any:
    return await get_default_client().post(path, body, headers)


async def api_put(path: str, body: Any = None, headers: Mapping[str, str] | None = None) -> Any:
    return await get_default_client().put(path, body, headers)


async def api_patch(path: str, body: Any = None, headers: Mapping[str, str] | None = None) -> Any:
    return await get_default_client().patch(path, body, headers)


async def api_delete(path: str, headers: Mapping[str, str] | None = None) -> Any:
    return await get_default_client().delete(path, headers)


async def api_upload(
    path: str, file: FileInput, headers: Mapping[str, str] | None = None
) -> Any:
    return await get_default_client().upload(path, file, headers)

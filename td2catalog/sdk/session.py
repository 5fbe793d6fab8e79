"""CSRF token cache and session refresh for the TD2 catalog SDK.

The API protects state-changing calls with a double-submit token: the
``/auth/csrf`` endpoint sets a cookie and returns the same value, which must
be echoed in the ``X-CSRF-Token`` header. The session itself lives in
HttpOnly cookies that ``/auth/refresh`` rotates.

Both operations are single-flight: concurrent callers share one network
call. Neither ever raises; a missing token or failed refresh is reported as
``None``/``False`` and the server gets the final word.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import httpx

from ._singleflight import SingleFlight

if TYPE_CHECKING:
    from ._http import HTTPClient

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
CSRF_PATH = "/auth/csrf"
REFRESH_PATH = "/auth/refresh"
LOGIN_PATH = "/auth/login"
SETUP_PATH = "/auth/setup"

# Bootstrap endpoints that are called without a CSRF header.
CSRF_EXEMPT_PATHS = frozenset({CSRF_PATH, SETUP_PATH})

# Endpoints whose 401 never triggers a refresh.
REFRESH_EXEMPT_PATHS = frozenset({LOGIN_PATH, REFRESH_PATH, SETUP_PATH})

UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def is_unsafe_method(method: str) -> bool:
    """Return True for state-changing HTTP methods."""
    return str(method or "").upper() in UNSAFE_METHODS


def needs_csrf(method: str, path: str) -> bool:
    """Return True if a call must carry the CSRF header."""
    return is_unsafe_method(method) and path not in CSRF_EXEMPT_PATHS


class CsrfTokenCache:
    """Holds the current CSRF token and fetches it lazily.

    Parameters
    ----------
    http : HTTPClient
        Client whose cookie jar carries the session
    """

    def __init__(self, http: "HTTPClient"):
        self._http = http
        self._token: Optional[str] = None
        self._loading: SingleFlight[Optional[str]] = SingleFlight()

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def loading(self) -> bool:
        return self._loading.in_flight

    def invalidate(self) -> None:
        """Forget the cached token so the next call refetches it."""
        self._token = None

    async def ensure_token(self) -> Optional[str]:
        """Return the cached token, fetching it once if needed.

        Returns
        -------
        str or None
            The token, or None if it could not be obtained
        """
        if self._token and self._token.strip():
            return self._token
        return await self._loading.run(self._fetch)

    async def _fetch(self) -> Optional[str]:
        logger.debug("Fetching CSRF token from %s", self._http.url(CSRF_PATH))
        try:
            resp = await self._http.client.get(self._http.url(CSRF_PATH))
        except httpx.HTTPError as exc:
            logger.debug("CSRF token fetch failed: %s", type(exc).__name__)
            return None

        if not resp.is_success:
            logger.debug("CSRF token fetch returned HTTP %s", resp.status_code)
            return None

        try:
            data = resp.json()
        except ValueError:
            return None

        raw = data.get("csrfToken") if isinstance(data, dict) else None
        token = str(raw if raw is not None else "").strip()
        self._token = token or None
        return self._token


class SessionRefresher:
    """Rotates the session cookie, sharing one call among concurrent callers."""

    def __init__(self, http: "HTTPClient", csrf: CsrfTokenCache):
        self._http = http
        self._csrf = csrf
        self._refreshing: SingleFlight[bool] = SingleFlight()

    @property
    def refreshing(self) -> bool:
        return self._refreshing.in_flight

    async def refresh(self) -> bool:
        """Refresh the session. Returns True on success, never raises."""
        return await self._refreshing.run(self._refresh)

    async def _refresh(self) -> bool:
        # Refresh is itself a mutating call and is CSRF-protected.
        token = await self._csrf.ensure_token()
        headers = {"Content-Type": "application/json"}
        if token:
            headers[CSRF_HEADER] = token

        logger.debug("Refreshing session via %s", self._http.url(REFRESH_PATH))
        try:
            resp = await self._http.client.post(
                self._http.url(REFRESH_PATH),
                headers=headers,
                content=b"{}",
            )
        except httpx.HTTPError as exc:
            logger.warning("Session refresh failed: %s", type(exc).__name__)
            return False

        if not resp.is_success:
            logger.warning("Session refresh rejected with HTTP %s", resp.status_code)
            return False
        return True

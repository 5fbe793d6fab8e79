"""Session helpers for the TD2 catalog SDK.

These wrap the ``/auth`` endpoints on top of :class:`CatalogClient`. The
session is carried by HttpOnly cookies held in the client's cookie jar, so
nothing here stores or returns credentials. Passwords are only ever sent in
request bodies; they never reach log records or exception messages.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .client import CatalogClient
from .exceptions import ApiError

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Trim and lowercase an email address the way the login form does."""
    return str(email if email is not None else "").strip().lower()


async def login(client: CatalogClient, email: str, password: str) -> dict[str, Any]:
    """Log in and return the user profile.

    Parameters
    ----------
    client : CatalogClient
        Client whose cookie jar receives the session
    email : str
        Account email, normalized before sending
    password : str
        Account password

    Returns
    -------
    dict[str, Any]
        The ``user`` object returned by the API

    Raises
    ------
    ProtocolError
        If the credentials are rejected (status 401) or login is rate
        limited (status 429)
    TransportError
        If the API cannot be reached
    """
    res = await client.post(
        "/auth/login",
        {"email": normalize_email(email), "password": str(password if password is not None else "")},
    )
    user = res.get("user") if isinstance(res, dict) else None
    if not isinstance(user, dict):
        user = {}
    logger.info("Logged in as %s", user.get("email") or normalize_email(email))
    return user


async def current_user(client: CatalogClient) -> Optional[dict[str, Any]]:
    """Return the logged-in user, or None when there is no valid session.

    Notes
    -----
    An expired session is refreshed once before giving up. Errors other
    than 401/403 are raised.
    """
    try:
        return await client.get("/auth/me")
    except ApiError as exc:
        if exc.status in (401, 403):
            return None
        raise


async def logout(client: CatalogClient) -> None:
    """End the session on the server.

    Failures are logged and ignored: the caller is logged out locally
    either way.
    """
    try:
        await client.post("/auth/logout", {})
    except ApiError as exc:
        logger.warning("Logout request failed (HTTP %s): %s", exc.status, exc.message)
    client.csrf.invalidate()


async def setup_root_password(client: CatalogClient, password: str) -> Any:
    """Set the first password of a fresh installation.

    Only works while no user has a password yet. The endpoint needs neither
    a session nor a CSRF token.
    """
    return await client.post("/auth/setup", {"password": password})


async def set_my_password(client: CatalogClient, password: str) -> Any:
    """Change the password of the logged-in user."""
    return await client.post("/auth/me/password", {"password": password})

"""Exception classes for the TD2 catalog SDK.

Every failure of a request surfaces as an :class:`ApiError`. Transport
problems (unreachable API, timeout) carry status 0 and are raised as
:class:`TransportError`; non-2xx responses are raised as
:class:`ProtocolError` with the HTTP status code. A bad API url is a
:class:`ConfigurationError` raised when the client is built, never per
request.
"""

from __future__ import annotations

from typing import Any

MAX_TEXT_EXCERPT = 500


class CatalogError(Exception):
    """Base exception for all TD2 catalog SDK errors."""

    pass


class ConfigurationError(CatalogError, ValueError):
    """Raised when the configured API url cannot be used."""

    pass


class ApiError(CatalogError):
    """A failed API call.

    Attributes
    ----------
    status : int
        HTTP status code, or 0 for network failures and timeouts
    message : str
        Human readable message, taken from the server response when possible
    data : Any
        Parsed JSON error body, or None

    Instances are read-only once constructed.
    """

    def __init__(self, status: int, message: str, data: Any = None):
        object.__setattr__(self, "_status", int(status))
        object.__setattr__(self, "_message", message)
        object.__setattr__(self, "_data", data)
        super().__init__(message)

    @property
    def status(self) -> int:
        return self._status

    @property
    def message(self) -> str:
        return self._message

    @property
    def data(self) -> Any:
        return self._data

    def __setattr__(self, name: str, value: Any) -> None:
        # Exception machinery sets these while raising.
        if name in (
            "__traceback__",
            "__cause__",
            "__context__",
            "__suppress_context__",
            "__notes__",
        ):
            object.__setattr__(self, name, value)
            return
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self._status}, message={self._message!r})"

    def __reduce__(self):
        return (type(self), (self._status, self._message, self._data))


class TransportError(ApiError):
    """The API could not be reached or did not answer in time."""

    def __init__(self, message: str):
        super().__init__(0, message)

    def __reduce__(self):
        return (type(self), (self._message,))


class ProtocolError(ApiError):
    """The API answered with a non-2xx status code."""

    pass


def is_api_error(exc: object) -> bool:
    """Return True if *exc* is an :class:`ApiError`."""
    return isinstance(exc, ApiError)


def extract_error_message(reason: str, text: str, data: Any) -> str:
    """Pick the most useful message for a failed response.

    A ``message`` or ``error`` field of a JSON body wins (list values are
    joined with ", "), then a trimmed excerpt of the raw body, then the
    HTTP reason phrase.
    """
    raw = None
    if isinstance(data, dict):
        raw = data.get("message")
        if raw is None:
            raw = data.get("error")

    if isinstance(raw, list):
        message = ", ".join(str(x) for x in raw if x is not None and str(x))
    elif raw:
        message = str(raw)
    else:
        message = ""

    if not message and text and text.strip():
        message = text.strip()[:MAX_TEXT_EXCERPT]
    return message or reason or "Request failed"

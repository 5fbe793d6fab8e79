"""Configuration management for the TD2 catalog SDK."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .exceptions import ConfigurationError

DEFAULT_API_URL = "/api"
REQUEST_TIMEOUT_MS = 10000


class CatalogConfig(BaseModel):
    """Unified configuration for the TD2 catalog SDK."""

    # Either a same-origin path ("/api") or an absolute http(s) origin
    api_url: str = Field(default=DEFAULT_API_URL)

    # Origin relative api urls are resolved against (e.g. "https://td2.example")
    origin: Optional[str] = Field(default=None)

    request_timeout_ms: int = Field(default=REQUEST_TIMEOUT_MS, gt=0)

    class Config:
        frozen = True

    @classmethod
    def from_environment(cls) -> "CatalogConfig":
        """Create configuration from environment variables."""
        config_data = {
            "api_url": _get_env_var(["TD2_API_URL", "VITE_API_URL"], DEFAULT_API_URL),
            "origin": os.getenv("TD2_APP_ORIGIN") or None,
        }
        return cls(**config_data)

    def base_url(self) -> str:
        """Return the resolved request prefix for this configuration."""
        return resolve_base_url(self.api_url, self.origin)


def resolve_base_url(raw: str, origin: Optional[str] = None) -> str:
    """Normalize a configured API url into the prefix used for every request.

    Parameters
    ----------
    raw : str
        ``/api``-style path or absolute http(s) URL
    origin : str, optional
        Origin a relative path is resolved against. Without one the path is
        returned as-is.

    Returns
    -------
    str
        The prefix with trailing slashes stripped

    Raises
    ------
    ConfigurationError
        If the value is empty, malformed, or not http(s), or if *origin*
        is given and is not an absolute http(s) URL
    """
    value = str(raw if raw is not None else "").strip()
    if not value:
        raise ConfigurationError("API url is empty.")

    if value.startswith("/"):
        clean = value.rstrip("/")
        origin = str(origin or "").strip()
        if origin:
            base = _check_absolute(origin, "origin", "Use a full http(s) origin.")
            return f"{base}{clean}"
        return clean

    return _check_absolute(value, "API url", "Use /api or a full http(s) URL.")


def _check_absolute(value: str, what: str, hint: str) -> str:
    """Validate an absolute http(s) URL and strip its trailing slashes."""
    try:
        parsed = urlsplit(value)
        # Accessing port validates it
        parsed.port
    except ValueError as exc:
        raise ConfigurationError(f"Invalid {what}. {hint}") from exc

    if not parsed.scheme or (not parsed.netloc and parsed.scheme.lower() in ("http", "https")):
        raise ConfigurationError(f"Invalid {what}. {hint}")
    if parsed.scheme.lower() not in ("http", "https"):
        raise ConfigurationError(f"Invalid {what} protocol. Only http(s) is allowed.")

    return value.rstrip("/")


def _get_env_var(keys: list[str], default: str = "") -> str:
    """Get first available environment variable from a list of keys."""
    for key in keys:
        if value := os.getenv(key):
            return value
    return default


# Global configuration instance
_config: Optional[CatalogConfig] = None


def get_config(*, reload: bool = False) -> CatalogConfig:
    """Get the global configuration instance."""
    global _config

    if _config is None or reload:
        _config = CatalogConfig.from_environment()

    return _config


def load_dotenv_for_sdk(path: Optional[Path] = None, *, override: bool = False) -> None:
    """Load environment variables from a .env file."""
    if path is None:
        path = Path.cwd() / ".env"

    if path.exists():
        load_dotenv(path, override=override)

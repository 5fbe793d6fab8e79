"""Async SDK for the TD2 catalog API."""

from .auth import current_user, login, logout, normalize_email, set_my_password, setup_root_password
from .client import (
    CatalogClient,
    RetryState,
    api_delete,
    api_get,
    api_patch,
    api_post,
    api_put,
    api_upload,
    close_default_client,
    get_default_client,
)
from .config import REQUEST_TIMEOUT_MS, CatalogConfig, get_config, resolve_base_url
from .exceptions import (
    ApiError,
    CatalogError,
    ConfigurationError,
    ProtocolError,
    TransportError,
    is_api_error,
)

__all__ = [
    "REQUEST_TIMEOUT_MS",
    "ApiError",
    "CatalogClient",
    "CatalogConfig",
    "CatalogError",
    "ConfigurationError",
    "ProtocolError",
    "RetryState",
    "TransportError",
    "api_delete",
    "api_get",
    "api_patch",
    "api_post",
    "api_put",
    "api_upload",
    "close_default_client",
    "current_user",
    "get_config",
    "get_default_client",
    "is_api_error",
    "login",
    "logout",
    "normalize_email",
    "resolve_base_url",
    "set_my_password",
    "setup_root_password",
]

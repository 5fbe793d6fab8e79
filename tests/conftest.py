"""Pytest configuration and fixtures."""

import inspect

import httpx
import pytest

from td2catalog.sdk.client import CatalogClient
from td2catalog.sdk.config import CatalogConfig

API_URL = "https://x.test/api"


class FakeApi:
    """In-memory stand-in for the catalog API, served through httpx.MockTransport.

    Handlers are registered per (method, path) where path excludes the
    ``/api`` prefix. Every request is recorded in ``requests``.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes = {}
        self.csrf_tokens = ["tok-1"]
        self.route("GET", "/auth/csrf", self._csrf)

    def route(self, method, path, handler):
        self.routes[(method, path)] = handler

    def count(self, method, path):
        return sum(1 for r in self.requests if r.method == method and self._path(r) == path)

    def last(self, method, path):
        matching = [r for r in self.requests if r.method == method and self._path(r) == path]
        return matching[-1]

    def transport(self):
        return httpx.MockTransport(self)

    async def __call__(self, request: httpx.Request):
        self.requests.append(request)
        handler = self.routes.get((request.method, self._path(request)))
        if handler is None:
            return httpx.Response(404, json={"message": "Not Found"})
        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _csrf(self, request):
        # Hand out tokens in order, repeating the last one.
        token = self.csrf_tokens.pop(0) if len(self.csrf_tokens) > 1 else self.csrf_tokens[0]
        return httpx.Response(200, json={"csrfToken": token})

    @staticmethod
    def _path(request):
        path = request.url.path
        return path[len("/api"):] if path.startswith("/api") else path


@pytest.fixture
def fake_api():
    """Fresh fake API for each test."""
    return FakeApi()


@pytest.fixture
def config():
    """Configuration that ignores the process environment."""
    return CatalogConfig(api_url=API_URL)


@pytest.fixture
def client(fake_api, config):
    """Client wired to the fake API."""
    return CatalogClient(config=config, transport=fake_api.transport())

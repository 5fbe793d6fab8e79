"""Test the CSRF token cache, session refresh and single-flight primitive."""

import asyncio

import httpx
import pytest

from td2catalog.sdk._singleflight import SingleFlight


class TestSingleFlight:
    """Test coalescing of concurrent calls."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_call(self):
        flight = SingleFlight()
        calls = []

        async def op():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "done"

        results = await asyncio.gather(*(flight.run(op) for _ in range(5)))

        assert results == ["done"] * 5
        assert len(calls) == 1
        assert not flight.in_flight

    @pytest.mark.asyncio
    async def test_marker_cleared_after_failure(self):
        flight = SingleFlight()

        async def fail():
            raise RuntimeError("boom")

        async def succeed():
            return 42

        with pytest.raises(RuntimeError):
            await flight.run(fail)
        assert not flight.in_flight
        assert await flight.run(succeed) == 42

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_operation(self):
        flight = SingleFlight()

        async def op():
            await asyncio.sleep(0.05)
            return "done"

        impatient = asyncio.ensure_future(flight.run(op))
        await asyncio.sleep(0)
        patient = asyncio.ensure_future(flight.run(op))
        impatient.cancel()

        assert await patient == "done"
        assert impatient.cancelled()


class TestCsrfTokenCache:
    """Test lazy, single-flight CSRF token fetching."""

    @pytest.mark.asyncio
    async def test_concurrent_fetches_make_one_call(self, client, fake_api):
        async def slow_csrf(request):
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"csrfToken": " tok-1 "})

        fake_api.route("GET", "/auth/csrf", slow_csrf)

        tokens = await asyncio.gather(*(client.csrf.ensure_token() for _ in range(10)))

        assert tokens == ["tok-1"] * 10
        assert fake_api.count("GET", "/auth/csrf") == 1
        assert not client.csrf.loading

    @pytest.mark.asyncio
    async def test_cached_token_is_reused(self, client, fake_api):
        assert await client.csrf.ensure_token() == "tok-1"
        assert await client.csrf.ensure_token() == "tok-1"
        assert fake_api.count("GET", "/auth/csrf") == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, client, fake_api):
        fake_api.csrf_tokens = ["tok-1", "tok-2"]

        assert await client.csrf.ensure_token() == "tok-1"
        client.csrf.invalidate()
        assert client.csrf.token is None
        assert await client.csrf.ensure_token() == "tok-2"

    @pytest.mark.asyncio
    async def test_failed_fetch_returns_none_and_can_retry(self, client, fake_api):
        fake_api.route("GET", "/auth/csrf", lambda r: httpx.Response(500, text="down"))
        assert await client.csrf.ensure_token() is None

        fake_api.route("GET", "/auth/csrf", lambda r: httpx.Response(200, json={"csrfToken": "tok-9"}))
        assert await client.csrf.ensure_token() == "tok-9"

    @pytest.mark.asyncio
    async def test_network_failure_returns_none(self, client, fake_api):
        def unreachable(request):
            raise httpx.ConnectError("refused", request=request)

        fake_api.route("GET", "/auth/csrf", unreachable)
        assert await client.csrf.ensure_token() is None

    @pytest.mark.asyncio
    async def test_redirect_means_no_token(self, client, fake_api):
        fake_api.route(
            "GET",
            "/auth/csrf",
            lambda r: httpx.Response(302, headers={"Location": "https://elsewhere.test/csrf"}),
        )

        assert await client.csrf.ensure_token() is None
        assert fake_api.count("GET", "/auth/csrf") == 1
        assert len(fake_api.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="not json"),
            httpx.Response(200, json={"csrfToken": "   "}),
            httpx.Response(200, json=["tok"]),
        ],
    )
    async def test_malformed_body_returns_none(self, client, fake_api, response):
        fake_api.route("GET", "/auth/csrf", lambda r: response)
        assert await client.csrf.ensure_token() is None
        assert client.csrf.token is None


class TestSessionRefresher:
    """Test single-flight session refresh."""

    @pytest.mark.asyncio
    async def test_refresh_sends_csrf_header(self, client, fake_api):
        fake_api.route("POST", "/auth/refresh", lambda r: httpx.Response(200, json={"ok": True}))

        assert await client.refresher.refresh() is True

        sent = fake_api.last("POST", "/auth/refresh")
        assert sent.headers["X-CSRF-Token"] == "tok-1"
        assert sent.content == b"{}"

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_make_one_call(self, client, fake_api):
        async def slow_refresh(request):
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"ok": True})

        fake_api.route("POST", "/auth/refresh", slow_refresh)

        results = await asyncio.gather(*(client.refresher.refresh() for _ in range(5)))

        assert results == [True] * 5
        assert fake_api.count("POST", "/auth/refresh") == 1
        assert fake_api.count("GET", "/auth/csrf") == 1
        assert not client.refresher.refreshing

    @pytest.mark.asyncio
    async def test_rejected_refresh_returns_false(self, client, fake_api):
        fake_api.route("POST", "/auth/refresh", lambda r: httpx.Response(401, json={"message": "Unauthorized"}))
        assert await client.refresher.refresh() is False

    @pytest.mark.asyncio
    async def test_redirect_is_a_failure(self, client, fake_api):
        fake_api.route(
            "POST",
            "/auth/refresh",
            lambda r: httpx.Response(302, headers={"Location": "https://elsewhere.test/login"}),
        )
        assert await client.refresher.refresh() is False
        assert fake_api.count("POST", "/auth/refresh") == 1

    @pytest.mark.asyncio
    async def test_refresh_without_token_still_tries(self, client, fake_api):
        fake_api.route("GET", "/auth/csrf", lambda r: httpx.Response(503))
        fake_api.route("POST", "/auth/refresh", lambda r: httpx.Response(200, json={}))

        assert await client.refresher.refresh() is True
        assert "X-CSRF-Token" not in fake_api.last("POST", "/auth/refresh").headers

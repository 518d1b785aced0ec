"""Tests for the Yahoo crumb/cookie handshake."""

import asyncio

import httpx
import pytest

from integrations.crumb_manager import CrumbManager
from integrations.exceptions import AuthenticationFailedError
from tests.fixtures.mocks import mock_transport

SESSION_COOKIE = {"set-cookie": "A3=d=AQABBK; Domain=.yahoo.com; Path=/"}


def handshake_handler(crumb_status=200, crumb_text="Xy7abcDEF", set_cookie=True):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "fc.yahoo.com":
            return httpx.Response(404, headers=SESSION_COOKIE if set_cookie else {})
        if request.url.path == "/v1/test/getcrumb":
            return httpx.Response(crumb_status, text=crumb_text)
        return httpx.Response(404)

    return handler


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestGetValidToken:
    """Tests for CrumbManager.get_valid_token."""

    @pytest.mark.asyncio
    async def test_handshake_returns_crumb(self):
        async with httpx.AsyncClient(transport=mock_transport(handshake_handler())) as client:
            manager = CrumbManager(client)
            assert await manager.get_valid_token() == "Xy7abcDEF"
        assert manager.handshake_count == 1

    @pytest.mark.asyncio
    async def test_cached_until_expiry(self):
        clock = FakeClock()
        async with httpx.AsyncClient(transport=mock_transport(handshake_handler())) as client:
            manager = CrumbManager(client, ttl_seconds=60, clock=clock)
            await manager.get_valid_token()
            clock.now += 59
            await manager.get_valid_token()
            assert manager.handshake_count == 1

            clock.now += 2
            await manager.get_valid_token()
            assert manager.handshake_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_handshake(self):
        transport = mock_transport(handshake_handler())
        async with httpx.AsyncClient(transport=transport) as client:
            manager = CrumbManager(client)
            tokens = await asyncio.gather(*(manager.get_valid_token() for _ in range(10)))
        assert set(tokens) == {"Xy7abcDEF"}
        assert manager.handshake_count == 1
        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_invalidate_forces_new_handshake(self):
        async with httpx.AsyncClient(transport=mock_transport(handshake_handler())) as client:
            manager = CrumbManager(client)
            await manager.get_valid_token()
            await manager.invalidate()
            await manager.get_valid_token()
        assert manager.handshake_count == 2


class TestHandshakeFailures:
    """Failed handshakes raise AuthenticationFailedError."""

    @pytest.mark.asyncio
    async def test_missing_cookie(self):
        handler = handshake_handler(set_cookie=False)
        async with httpx.AsyncClient(transport=mock_transport(handler)) as client:
            with pytest.raises(AuthenticationFailedError, match="cookie"):
                await CrumbManager(client).get_valid_token()

    @pytest.mark.asyncio
    async def test_crumb_rejected(self):
        handler = handshake_handler(crumb_status=401, crumb_text="Unauthorized")
        async with httpx.AsyncClient(transport=mock_transport(handler)) as client:
            with pytest.raises(AuthenticationFailedError):
                await CrumbManager(client).get_valid_token()

    @pytest.mark.asyncio
    async def test_html_body_is_not_a_crumb(self):
        handler = handshake_handler(crumb_text="<html>Too Many Requests</html>")
        async with httpx.AsyncClient(transport=mock_transport(handler)) as client:
            with pytest.raises(AuthenticationFailedError):
                await CrumbManager(client).get_valid_token()

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=mock_transport(handler)) as client:
            with pytest.raises(AuthenticationFailedError, match="ConnectError"):
                await CrumbManager(client).get_valid_token()

    @pytest.mark.asyncio
    async def test_failure_is_retried_on_next_call(self):
        responses = {"status": 401}

        def handler(request):
            if request.url.host == "fc.yahoo.com":
                return httpx.Response(404, headers=SESSION_COOKIE)
            return httpx.Response(responses["status"], text="Xy7abcDEF")

        async with httpx.AsyncClient(transport=mock_transport(handler)) as client:
            manager = CrumbManager(client)
            with pytest.raises(AuthenticationFailedError):
                await manager.get_valid_token()
            responses["status"] = 200
            assert await manager.get_valid_token() == "Xy7abcDEF"
        assert manager.handshake_count == 2

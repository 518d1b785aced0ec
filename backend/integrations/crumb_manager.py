"""Single owner of the Yahoo Finance session cookie and crumb.

The authenticated quote endpoint needs a crumb bound to a session cookie.
Getting one is a two-step handshake: visit a landing page so the cookie is
set, then ask for a crumb with that cookie attached. The crumb is cached for
a fixed lifetime and refreshed lazily when a caller finds it expired.
"""

import asyncio
import logging
import time
from typing import Callable

import httpx

from integrations.exceptions import AuthenticationFailedError

logger = logging.getLogger(__name__)

COOKIE_URL = "https://fc.yahoo.com"
CRUMB_URL = "https://query1.finance.yahoo.com/v1/test/getcrumb"
DEFAULT_TTL_SECONDS = 3600


class CrumbManager:
    """Serializes all access to the crumb.

    ``get_valid_token`` is the only way to read it; the refresh runs under
    an ``asyncio.Lock`` so concurrent callers share one handshake and never
    observe a half-updated token.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._crumb: str | None = None
        self._expires_at: float = 0.0
        self.handshake_count = 0

    def _is_valid(self) -> bool:
        return self._crumb is not None and self._clock() < self._expires_at

    async def get_valid_token(self) -> str:
        """Return a crumb that has not expired, refreshing it if needed.

        Raises:
            AuthenticationFailedError: the cookie or crumb step failed.
        """
        async with self._lock:
            if not self._is_valid():
                await self._refresh()
            return self._crumb

    async def invalidate(self) -> None:
        """Drop the cached crumb after the upstream rejected it."""
        async with self._lock:
            self._crumb = None
            self._expires_at = 0.0
            self._client.cookies.clear()

    async def _refresh(self) -> None:
        self.handshake_count += 1
        self._crumb = None
        try:
            cookie_response = await self._client.get(COOKIE_URL)
            # fc.yahoo.com answers 404 while still setting the cookie
            if not (cookie_response.cookies or self._client.cookies):
                raise AuthenticationFailedError(
                    "Yahoo: landing page did not set a session cookie", "yahoo"
                )

            crumb_response = await self._client.get(CRUMB_URL)
        except httpx.HTTPError as e:
            raise AuthenticationFailedError(
                f"Yahoo: crumb handshake failed ({e.__class__.__name__})", "yahoo"
            ) from e

        crumb = crumb_response.text.strip()
        if crumb_response.status_code != 200 or not crumb or "<" in crumb or " " in crumb:
            raise AuthenticationFailedError(
                f"Yahoo: crumb request rejected (HTTP {crumb_response.status_code})",
                "yahoo",
            )

        self._crumb = crumb
        self._expires_at = self._clock() + self._ttl_seconds
        logger.info("Yahoo: obtained new crumb (valid for %ds)", self._ttl_seconds)

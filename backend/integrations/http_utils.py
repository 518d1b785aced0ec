"""Shared async HTTP plumbing for market data clients.

Maps httpx failures onto the market-data exception taxonomy so every
client reports timeouts, HTTP errors and bad JSON the same way.
"""

import asyncio
import logging
from typing import Any

import httpx

from integrations.exceptions import DecodeFailedError, UnreachableError

logger = logging.getLogger(__name__)

# Max retries for rate-limited requests
MAX_RETRIES = 3
BASE_DELAY_SECONDS = 1.0


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    provider_name: str,
    retry_on_429: bool = False,
    **kwargs,
) -> httpx.Response:
    """Send a request and return the 2xx response.

    With ``retry_on_429``, rate-limited responses are retried up to
    MAX_RETRIES times with exponential backoff. The backoff sleeps are
    separate from the per-request timeout configured on the client.

    Raises:
        UnreachableError: timeout, transport failure or non-2xx status.
    """
    attempts = MAX_RETRIES if retry_on_429 else 1
    response: httpx.Response | None = None
    for attempt in range(attempts):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise UnreachableError(
                f"{provider_name}: request timed out ({url})", provider_name
            ) from e
        except httpx.HTTPError as e:
            raise UnreachableError(
                f"{provider_name}: transport error ({e.__class__.__name__}: {e})",
                provider_name,
            ) from e

        if response.status_code == 429 and attempt < attempts - 1:
            delay = BASE_DELAY_SECONDS * (2 ** attempt)
            logger.warning(
                "%s: rate limited, retrying in %.1fs (attempt %d/%d)",
                provider_name, delay, attempt + 1, attempts,
            )
            await asyncio.sleep(delay)
            continue
        break

    if response.status_code < 200 or response.status_code >= 300:
        raise UnreachableError(
            f"{provider_name}: HTTP {response.status_code} for {url}",
            provider_name,
            status_code=response.status_code,
        )
    return response


def decode_json(response: httpx.Response, provider_name: str) -> Any:
    """Parse a response body as JSON.

    Raises:
        DecodeFailedError: the body is not valid JSON.
    """
    try:
        return response.json()
    except ValueError as e:
        raise DecodeFailedError(
            f"{provider_name}: response is not valid JSON", provider_name
        ) from e


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    provider_name: str,
    retry_on_429: bool = False,
    **kwargs,
) -> Any:
    response = await send(
        client, "GET", url, provider_name, retry_on_429=retry_on_429, **kwargs
    )
    return decode_json(response, provider_name)

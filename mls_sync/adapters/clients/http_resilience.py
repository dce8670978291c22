# mls_sync/adapters/clients/http_resilience.py
from __future__ import annotations

import asyncio
import logging
from typing import Any

import certifi
import httpx

from ...config import settings

log = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


def http_verify() -> bool | str:
    """
    httpx 'verify' can be:
      - True/False
      - path to CA bundle
    """
    if not settings.MLS_VERIFY_SSL:
        return False
    # explicit CA bundle path wins; else certifi
    if settings.MLS_CA_BUNDLE:
        return settings.MLS_CA_BUNDLE
    return certifi.where()


def build_timeout(seconds: float | None = None) -> httpx.Timeout:
    s = float(seconds if seconds is not None else settings.HTTP_TIMEOUT_S)
    return httpx.Timeout(s, connect=min(s, 10.0))


async def resilient_request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    data: Any | None = None,
    max_retries: int | None = None,
) -> httpx.Response:
    """
    One request on a caller-owned client (cookies/auth persist across calls).

    Timeouts, transport errors and RETRYABLE_STATUSES are retried up to
    HTTP_MAX_RETRIES times with exponential backoff; other 4xx raise at once.
    """
    retries = int(settings.HTTP_MAX_RETRIES if max_retries is None else max_retries)
    backoff = float(settings.HTTP_BACKOFF_BASE_S)

    last_exc: Exception | None = None
    for attempt in range(retries + 1):
        try:
            resp = await client.request(method, url, headers=headers, params=params, data=data)

            if resp.status_code in RETRYABLE_STATUSES:
                raise httpx.HTTPStatusError("retryable_status", request=resp.request, response=resp)

            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as e:
            if e.response.status_code not in RETRYABLE_STATUSES:
                raise
            last_exc = e
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            last_exc = e

        if attempt >= retries:
            break
        delay = min(5.0, backoff * (2**attempt))
        log.info("retrying %s %s in %.1fs (attempt %s): %s", method, url, delay, attempt + 1, last_exc)
        await asyncio.sleep(delay)

    assert last_exc is not None
    raise last_exc

"""Shared utilities for calling external HTTP APIs."""

from __future__ import annotations

from typing import Any, Mapping, MutableMapping

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

DEFAULT_TIMEOUT_SECONDS = 30.0
_DEFAULT_WAIT = wait_exponential(min=1, max=16)


Headers = Mapping[str, str] | None
Params = Mapping[str, Any] | None
Data = MutableMapping[str, Any] | bytes | str | None
JsonData = Any


async def request(
    url: str,
    *,
    headers: Headers = None,
    params: Params = None,
    method: str = "GET",
    data: Data = None,
    json: JsonData = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    attempts: int = 1,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.Response:
    """Execute an HTTP request and return the response after ``raise_for_status``.

    A single attempt is made unless ``attempts`` asks for more, in which case
    failures are retried with exponential backoff. ``transport`` lets callers
    (and tests) route requests through a custom ``httpx`` transport.
    """

    request_method = method.upper()
    async for attempt in AsyncRetrying(
        wait=_DEFAULT_WAIT, stop=stop_after_attempt(attempts), reraise=True
    ):
        with attempt:
            async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
                response = await client.request(
                    request_method,
                    url,
                    headers=headers,
                    params=params,
                    data=data,
                    json=json,
                )
            response.raise_for_status()
    return response


async def fetch_json(url: str, **kwargs: Any) -> Any:
    """Execute an HTTP request and return the decoded JSON payload."""

    response = await request(url, **kwargs)
    return response.json()


__all__ = ["fetch_json", "request", "DEFAULT_TIMEOUT_SECONDS"]

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_fixed

from pool_aggregator.http import HttpClient

logger = logging.getLogger(__name__)


class GraphQLError(RuntimeError):
    """The endpoint answered, but with ``errors`` or without a ``data`` object."""


async def _post_query(
    http: HttpClient, url: str, payload: Dict[str, Any], timeout: float | None, expect: str | None
) -> Dict[str, Any]:
    resp = await http.post(url, json=payload, headers={"Content-Type": "application/json"}, timeout=timeout)
    data = resp.json()
    if not isinstance(data, dict):
        raise GraphQLError(f"unexpected response body from {url}")
    if data.get("errors"):
        logger.warning(f"GraphQL errors from {url}: {data['errors']}")
        raise GraphQLError("GraphQL query failed")
    result = data.get("data")
    if not isinstance(result, dict):
        raise GraphQLError(f"no data in response from {url}")
    if expect is not None and not isinstance(result.get(expect), list):
        raise GraphQLError(f"missing '{expect}' in response from {url}")
    return result


async def graphql_query(
    http: HttpClient,
    url: str,
    query: str,
    variables: Optional[Dict[str, Any]] = None,
    *,
    attempts: int = 3,
    backoff: float = 1.0,
    timeout: float | None = None,
    expect: str | None = None,
) -> Dict[str, Any]:
    """POST a query and return its ``data`` object.

    Any failure (transport error, non-2xx, undecodable body, GraphQL errors,
    ``expect`` list absent) is retried up to ``attempts`` times with a fixed
    ``backoff`` between tries; the last exception is re-raised.
    """
    payload = {"query": query, "variables": variables or {}}
    retrying = AsyncRetrying(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(backoff),
        retry=retry_if_exception_type((httpx.HTTPError, GraphQLError, ValueError)),
        before_sleep=before_sleep_log(logger, logging.INFO),
    )
    async for attempt in retrying:
        with attempt:
            return await _post_query(http, url, payload, timeout, expect)
    raise GraphQLError(f"GraphQL query to {url} made no attempt")

# llmcli/providers/transport.py
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

import httpx

from llmcli.data_models import Event
from llmcli.errors import NetworkError, ResponseFormatError, classify_http_error
from llmcli.event_source import aiter_events

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(120.0, connect=10.0)


def create_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)


async def _raise_for_status(response: httpx.Response):
    if response.status_code == 200:
        return
    try:
        await response.aread()
        body = response.text
    except httpx.HTTPError:
        body = "Unknown error"
    raise classify_http_error(response.status_code, body)


async def post_json(client: httpx.AsyncClient, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
    """POSTs `payload` and returns the decoded JSON body of a 200 response."""
    logger.debug("POST %s (non-streaming)", url)
    try:
        response = await client.post(url, headers=headers, json=payload)
    except httpx.TimeoutException as e:
        raise NetworkError(f"Request to {url} timed out: {e}") from e
    except httpx.RequestError as e:
        raise NetworkError(f"Request failed: {e}") from e

    await _raise_for_status(response)
    try:
        return response.json()
    except json.JSONDecodeError as e:
        raise ResponseFormatError(f"Failed to parse response body: {e}") from e


@asynccontextmanager
async def open_event_stream(
    client: httpx.AsyncClient, url: str, headers: Dict[str, str], payload: Dict[str, Any]
) -> AsyncIterator[AsyncIterator[Event]]:
    """
    Opens a streaming POST and yields an async iterator of SSE events.
    The response is closed when the context exits, including on cancellation.
    """
    logger.debug("POST %s (streaming)", url)
    try:
        async with client.stream("POST", url, headers=headers, json=payload) as response:
            await _raise_for_status(response)
            yield aiter_events(response.aiter_bytes())
    except httpx.TimeoutException as e:
        raise NetworkError(f"Request to {url} timed out: {e}") from e
    except httpx.RequestError as e:
        raise NetworkError(f"Request failed: {e}") from e


def decode_event_data(event: Event, provider_name: str) -> Dict[str, Any]:
    try:
        payload = json.loads(event.data)
    except json.JSONDecodeError as e:
        raise ResponseFormatError(f"Failed to parse {provider_name} stream event {event.data!r}: {e}") from e
    if not isinstance(payload, dict):
        raise ResponseFormatError(f"Unexpected {provider_name} stream event: {event.data!r}")
    return payload

"""Single-attempt JSON POST helper shared by the prompt and image clients.

Architectural role:
    Wraps one `httpx` request so both clients see the same transport-failure
    classification. Status-code interpretation stays with each client because the
    mappings differ (only the image backend knows about safety blocks).

Retry behavior:
    None. Exactly one request is sent; retries belong to the orchestrator.

Failure handling model:
    - Timeouts and connection-level errors -> retryable `NETWORK_ERROR`.
    - Any HTTP status is returned to the caller unchanged.
"""

import logging
from typing import Any

import httpx

from knowledge_poster.core.errors import failure
from knowledge_poster.core.types import ErrorKind


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0


async def post_json(
    url: str,
    json_body: dict[str, Any],
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> httpx.Response:
    """POST a JSON body and return the raw response.

    Args:
        url: Endpoint URL.
        json_body: Request payload.
        headers: Extra request headers (`Content-Type` is always JSON).
        params: Optional query parameters (used for key-in-query providers).
        http_client: Optional shared client. When omitted a short-lived client is
            created and closed for this call.
        timeout: Per-request timeout in seconds.

    Returns:
        The `httpx.Response`, whatever its status code.

    Raises:
        GenerationFailure: `NETWORK_ERROR` (retryable) on timeouts or transport errors.
    """
    request_headers = {"Content-Type": "application/json"}
    if headers:
        request_headers.update(headers)

    try:
        if http_client is not None:
            return await http_client.post(
                url,
                json=json_body,
                headers=request_headers,
                params=params,
                timeout=timeout,
            )

        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(
                url,
                json=json_body,
                headers=request_headers,
                params=params,
            )

    except httpx.TimeoutException as exc:
        # Query strings may carry API keys; log the host only.
        logger.warning("Request to %s timed out", httpx.URL(url).host)
        raise failure(
            ErrorKind.NETWORK_ERROR,
            "The request timed out. Please try again.",
            detail=str(exc) or type(exc).__name__,
        ) from exc

    except httpx.RequestError as exc:
        logger.warning("Request to %s failed: %s", httpx.URL(url).host, type(exc).__name__)
        raise failure(
            ErrorKind.NETWORK_ERROR,
            "Network connection error. Check your internet connection.",
            detail=str(exc) or type(exc).__name__,
        ) from exc


def response_json(response: httpx.Response) -> Any:
    """Decode a success body, mapping malformed JSON to `GENERATION_FAILED`."""
    try:
        return response.json()
    except ValueError as exc:
        raise failure(
            ErrorKind.GENERATION_FAILED,
            "The provider returned a response that is not valid JSON.",
            detail=response.text[:500],
        ) from exc

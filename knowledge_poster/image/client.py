"""Gemini image-generation HTTP client.

Processing flow:
    1. Resolve the `generateContent` endpoint for the requested model.
    2. Submit the JSON payload with the API key as query parameter.
    3. Classify non-2xx statuses into `GenerationFailure`.
    4. Return the parsed JSON response for `image.service` to unpack.

Base64:
    - This module does not decode image payloads (see `image.service`).

Error handling strategy:
    - HTTP failures are raised as classified `GenerationFailure`s.
    - The 400 safety classification is a substring heuristic ("SAFETY" / "blocked").
      It is approximate: other block indicators in a 400 body are reported as
      GENERATION_FAILED.

Security considerations:
    - The API key travels in the query string; logs only mention the model.
"""

import logging
from typing import Any

import httpx

from knowledge_poster.core.errors import GenerationFailure, failure
from knowledge_poster.core.transport import DEFAULT_TIMEOUT_SECONDS, post_json, response_json
from knowledge_poster.core.types import ErrorKind
from knowledge_poster.llm.provider_config import IMAGE_ENDPOINT_TEMPLATE


logger = logging.getLogger(__name__)

SAFETY_MARKERS = ("SAFETY", "blocked")


def classify_http_error(status_code: int, body: str) -> GenerationFailure:
    """Map a non-2xx image-backend status to a `GenerationFailure`."""
    if status_code in (401, 403):
        return failure(ErrorKind.INVALID_API_KEY, "Invalid Google API key")
    if status_code == 429:
        return failure(ErrorKind.RATE_LIMIT, "API rate limit exceeded. Please wait and try again.")
    if status_code == 400:
        if any(marker in body for marker in SAFETY_MARKERS):
            return failure(
                ErrorKind.CONTENT_FILTERED,
                "Content was blocked by safety filters. Try modifying your prompt.",
                detail=body,
            )
        return failure(ErrorKind.GENERATION_FAILED, "Bad request to the image model", detail=body)
    if status_code >= 500:
        return failure(
            ErrorKind.NETWORK_ERROR,
            "Server error. Please try again later.",
            detail=f"Image backend returned HTTP {status_code}",
        )
    return failure(
        ErrorKind.GENERATION_FAILED,
        f"Image API error (HTTP {status_code})",
        detail=body,
    )


async def send_image_request(
    model: str,
    api_key: str,
    payload: dict[str, Any],
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> Any:
    """Send one image-generation request and return the parsed JSON response.

    Args:
        model: Image model identifier.
        api_key: Google API key.
        payload: `generateContent` request body.
        http_client: Optional shared `httpx.AsyncClient`.
        timeout: Per-request timeout in seconds.

    Raises:
        GenerationFailure: Classified HTTP, transport, or decoding failure.
    """
    url = IMAGE_ENDPOINT_TEMPLATE.format(model=model)

    logger.info("Requesting image from model=%s", model)

    response = await post_json(
        url,
        payload,
        params={"key": api_key},
        http_client=http_client,
        timeout=timeout,
    )

    if not response.is_success:
        logger.warning("Image model=%s returned HTTP %s", model, response.status_code)
        raise classify_http_error(response.status_code, response.text)

    return response_json(response)

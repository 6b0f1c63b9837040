"""Provider-specific transport client for prompt-generation requests.

Architectural role:
    Holds the strategy table that unifies the four text-generation backends behind a
    single call: each `ProviderAdapter` supplies a request builder and a response
    extractor. `send_completion` dispatches one HTTP call and classifies the result.

Model invocation flow:
    `service.generate_prompt` -> `send_completion(provider, ...)` -> adapter
    request builder -> `core.transport.post_json` -> status mapping -> adapter
    response extractor -> completion text.

Provider handling:
    - OpenAI / xAI: chat-completions payload, bearer token header.
    - Google Gemini: `generateContent`, key in query string, system and user text
      joined into one content part.
    - Anthropic: messages payload with top-level `system`, `x-api-key` header.

Retry behavior:
    No retry loop is implemented. Each call is attempted once.

Failure handling model:
    Non-2xx statuses and transport errors are raised as `GenerationFailure`; response
    shapes that do not contain text yield an empty string for the caller to reject.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from knowledge_poster.core.errors import GenerationFailure, failure
from knowledge_poster.core.transport import DEFAULT_TIMEOUT_SECONDS, post_json, response_json
from knowledge_poster.core.types import ErrorKind, Provider
from knowledge_poster.llm.provider_config import PROVIDER_CONFIGS


logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 1500
TEMPERATURE = 0.75
ANTHROPIC_VERSION = "2023-06-01"


@dataclass(frozen=True)
class ProviderRequest:
    url: str
    headers: dict[str, str]
    body: dict[str, Any]
    params: dict[str, str] | None = None


@dataclass(frozen=True)
class ProviderAdapter:
    """Request builder and response extractor for one provider.

    Attributes:
        build_request: `(endpoint, model, api_key, system, user) -> ProviderRequest`.
        extract_text: Parsed JSON body -> completion text (empty when absent).
    """

    build_request: Callable[[str, str, str, str, str], ProviderRequest]
    extract_text: Callable[[Any], str]


# =========================================================
# REQUEST BUILDERS
# =========================================================

def _chat_completions_request(endpoint, model, api_key, system, user) -> ProviderRequest:
    return ProviderRequest(
        url=endpoint,
        headers={"Authorization": f"Bearer {api_key}"},
        body={
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": MAX_OUTPUT_TOKENS,
            "temperature": TEMPERATURE,
        },
    )


def _gemini_request(endpoint, model, api_key, system, user) -> ProviderRequest:
    return ProviderRequest(
        url=f"{endpoint}/{model}:generateContent",
        headers={},
        params={"key": api_key},
        body={
            "contents": [{
                "parts": [{"text": f"{system}\n\n{user}"}],
            }],
            "generationConfig": {
                "temperature": TEMPERATURE,
                "maxOutputTokens": MAX_OUTPUT_TOKENS,
            },
        },
    )


def _anthropic_request(endpoint, model, api_key, system, user) -> ProviderRequest:
    return ProviderRequest(
        url=endpoint,
        headers={
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        },
        body={
            "model": model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        },
    )


# =========================================================
# RESPONSE EXTRACTORS
# =========================================================
# Each extractor tolerates missing keys and returns "" instead of raising.

def _first(items) -> Any:
    if isinstance(items, list) and items:
        return items[0]
    return None


def _as_text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _chat_completions_text(data) -> str:
    choice = _first(data.get("choices")) if isinstance(data, dict) else None
    message = choice.get("message") if isinstance(choice, dict) else None
    return _as_text(message.get("content") if isinstance(message, dict) else None)


def _gemini_text(data) -> str:
    candidate = _first(data.get("candidates")) if isinstance(data, dict) else None
    content = candidate.get("content") if isinstance(candidate, dict) else None
    part = _first(content.get("parts")) if isinstance(content, dict) else None
    return _as_text(part.get("text") if isinstance(part, dict) else None)


def _anthropic_text(data) -> str:
    block = _first(data.get("content")) if isinstance(data, dict) else None
    return _as_text(block.get("text") if isinstance(block, dict) else None)


ADAPTERS = {
    Provider.OPENAI: ProviderAdapter(_chat_completions_request, _chat_completions_text),
    Provider.XAI: ProviderAdapter(_chat_completions_request, _chat_completions_text),
    Provider.GOOGLE: ProviderAdapter(_gemini_request, _gemini_text),
    Provider.ANTHROPIC: ProviderAdapter(_anthropic_request, _anthropic_text),
}


def classify_http_error(status_code: int, body: str, provider: Provider) -> GenerationFailure:
    """Map a non-2xx prompt-provider status to a `GenerationFailure`.

    Mapping:
        401/403 -> INVALID_API_KEY, 429 -> RATE_LIMIT (retryable),
        >=500 -> NETWORK_ERROR (retryable), anything else -> GENERATION_FAILED with
        the raw body as detail.
    """
    name = PROVIDER_CONFIGS[provider].name

    if status_code in (401, 403):
        return failure(ErrorKind.INVALID_API_KEY, f"Invalid {name} API key")
    if status_code == 429:
        return failure(ErrorKind.RATE_LIMIT, "API rate limit exceeded. Please wait and try again.")
    if status_code >= 500:
        return failure(
            ErrorKind.NETWORK_ERROR,
            "Server error. Please try again later.",
            detail=f"{name} returned HTTP {status_code}",
        )
    return failure(
        ErrorKind.GENERATION_FAILED,
        f"{name} API error (HTTP {status_code})",
        detail=body,
    )


async def send_completion(
    provider: Provider,
    model: str,
    api_key: str,
    system: str,
    user: str,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> str:
    """Send one system+user completion request and return the completion text.

    Args:
        provider: Target provider (must have an adapter).
        model: Provider model identifier.
        api_key: Provider credential.
        system: System instruction.
        user: User message.
        http_client: Optional shared `httpx.AsyncClient`.
        timeout: Per-request timeout in seconds.

    Returns:
        Stripped completion text; empty when the response holds no text.

    Raises:
        GenerationFailure: Classified HTTP, transport, or decoding failure.
    """
    adapter = ADAPTERS[provider]
    endpoint = PROVIDER_CONFIGS[provider].endpoint
    request = adapter.build_request(endpoint, model, api_key, system, user)

    logger.info("Requesting prompt from provider=%s model=%s", provider.value, model)

    response = await post_json(
        request.url,
        request.body,
        headers=request.headers,
        params=request.params,
        http_client=http_client,
        timeout=timeout,
    )

    if not response.is_success:
        logger.warning(
            "Prompt provider=%s returned HTTP %s", provider.value, response.status_code
        )
        raise classify_http_error(response.status_code, response.text, provider)

    return adapter.extract_text(response_json(response))

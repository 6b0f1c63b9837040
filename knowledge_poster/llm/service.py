"""Prompt-generation entrypoint for the poster pipeline.

Architectural role:
    Provides `generate_prompt`, the canonical note-to-image-prompt call used by the
    orchestrator's GeneratingPrompt stage. It bridges prompt construction
    (`prompting.prompt_builder`) and provider transport (`llm.client`).

Model call flow:
    validation -> `build_user_message` -> `client.send_completion(...)` ->
    `clean_generated_prompt` -> `PromptResult`.

Validation order:
    API key, then note content, then provider identifier. All three checks run
    before any network access.

Determinism:
    Payload construction is deterministic for fixed inputs. Generated output remains
    non-deterministic because inference runs remotely.
"""

import logging

import httpx

from knowledge_poster.core.errors import failure
from knowledge_poster.core.transport import DEFAULT_TIMEOUT_SECONDS
from knowledge_poster.core.types import ErrorKind, ImageStyle, Language, PromptResult
from knowledge_poster.llm.client import send_completion
from knowledge_poster.llm.provider_config import get_provider_config, resolve_provider
from knowledge_poster.prompting.prompt_builder import (
    SYSTEM_PROMPT,
    build_user_message,
    clean_generated_prompt,
)


logger = logging.getLogger(__name__)


async def generate_prompt(
    note_content: str,
    provider,
    model: str,
    api_key: str,
    style: ImageStyle | None = None,
    language: Language | None = None,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> PromptResult:
    """Generate an image-generation prompt from note content.

    Args:
        note_content: Raw note body.
        provider: `Provider` or identifier string (openai/google/anthropic/xai).
        model: Provider model identifier.
        api_key: Credential for `provider`.
        style: Visual style (defaults to infographic in the user message).
        language: Poster language (defaults to English in the user message).
        http_client: Optional shared `httpx.AsyncClient`.
        timeout: Per-request timeout in seconds.

    Returns:
        `PromptResult` whose `text` is non-empty and starts with a visual directive.

    Raises:
        GenerationFailure:
            - INVALID_API_KEY when `api_key` is empty.
            - NO_CONTENT when the note is blank.
            - UNKNOWN for an unsupported provider.
            - Classified transport/HTTP failures from `llm.client`.
            - GENERATION_FAILED when nothing usable remains after clean-up.
    """
    config = get_provider_config(provider)
    label = config.name if config else str(provider)

    if not api_key or not api_key.strip():
        raise failure(ErrorKind.INVALID_API_KEY, f"{label} API key is not configured")

    if not note_content or not note_content.strip():
        raise failure(ErrorKind.NO_CONTENT, "Note content is empty")

    if config is None:
        raise failure(ErrorKind.UNKNOWN, f"Unknown provider: {provider}")

    provider = resolve_provider(provider)
    user_message = build_user_message(note_content, style, language)

    raw = await send_completion(
        provider,
        model,
        api_key.strip(),
        SYSTEM_PROMPT,
        user_message,
        http_client=http_client,
        timeout=timeout,
    )

    cleaned = clean_generated_prompt(raw)
    if not cleaned:
        raise failure(
            ErrorKind.GENERATION_FAILED,
            f"{label} returned an empty prompt. Try again or choose another model.",
            detail=raw[:500] if raw else None,
        )

    logger.info("Generated prompt with %d characters via %s", len(cleaned), provider.value)

    return PromptResult(text=cleaned, source_model=model, source_provider=provider)

"""Image generation service used by the orchestrator's GeneratingImage stage.

Role in pipeline:
    - Validates the prompt and credential.
    - Resolves aspect ratio (from style) and pixel target (from quality).
    - Composes the final prompt with the language instruction block.
    - Sends one request via `image.client` and unpacks the inline image part.

Base64:
    The inline payload is decoded here; `ImageResult.data` always holds raw bytes.

Error handling strategy:
    Every outcome other than a decodable, supported image raises `GenerationFailure`.
    No partial result is returned.

Determinism:
    Payload construction is deterministic for fixed inputs; the image is not.
"""

import base64
import binascii
import logging
from typing import Any

import httpx

from knowledge_poster.core.errors import failure
from knowledge_poster.core.transport import DEFAULT_TIMEOUT_SECONDS
from knowledge_poster.core.types import (
    SUPPORTED_MIME_TYPES,
    ErrorKind,
    ImageQuality,
    ImageResult,
    ImageStyle,
    Language,
)
from knowledge_poster.image.client import send_image_request
from knowledge_poster.prompting.prompt_builder import build_image_prompt


logger = logging.getLogger(__name__)

ASPECT_RATIOS = {
    ImageStyle.INFOGRAPHIC: "2:3",
    ImageStyle.POSTER: "2:3",
    ImageStyle.DIAGRAM: "4:3",
    ImageStyle.MINDMAP: "1:1",
    ImageStyle.TIMELINE: "16:9",
}

IMAGE_SIZES = {
    ImageQuality.STANDARD: "1K",
    ImageQuality.HIGH: "2K",
    ImageQuality.ULTRA: "4K",
}

# Older image models reject `imageSize`.
SIZED_MODEL_MARKERS = ("gemini-3", "gemini-2.5")

DEFAULT_MIME_TYPE = "image/png"
_MIME_ALIASES = {"image/jpg": "image/jpeg"}


def supports_image_size(model: str) -> bool:
    return any(marker in model for marker in SIZED_MODEL_MARKERS)


def build_image_payload(
    prompt: str,
    model: str,
    style: ImageStyle,
    language: Language,
    quality: ImageQuality,
) -> dict[str, Any]:
    """Build the `generateContent` body requesting text and image modalities."""
    image_config = {"aspectRatio": ASPECT_RATIOS[style]}
    if supports_image_size(model):
        image_config["imageSize"] = IMAGE_SIZES[quality]

    return {
        "contents": [{
            "parts": [{"text": build_image_prompt(prompt, style, language)}],
        }],
        "generationConfig": {
            "responseModalities": ["TEXT", "IMAGE"],
            "imageConfig": image_config,
        },
    }


def extract_inline_image(data: Any) -> tuple[str, str] | None:
    """Find the first inline image part in a `generateContent` response.

    Both key conventions are checked on every part of the first candidate:
    `inline_data`/`mime_type` and `inlineData`/`mimeType`.

    Returns:
        `(base64_data, mime_type)` or `None` when no image part exists. A missing
        MIME type defaults to `image/png`.
    """
    if not isinstance(data, dict):
        return None

    candidates = data.get("candidates") or []
    if not isinstance(candidates, list) or not candidates:
        return None

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return None

    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inline_data") or part.get("inlineData")
        if isinstance(inline, dict) and inline.get("data"):
            mime_type = inline.get("mime_type") or inline.get("mimeType") or DEFAULT_MIME_TYPE
            return inline["data"], mime_type

    return None


def _was_blocked(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    feedback = data.get("promptFeedback")
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        return True
    for candidate in data.get("candidates") or []:
        if isinstance(candidate, dict) and candidate.get("finishReason") == "SAFETY":
            return True
    return False


def decode_image(encoded: str, mime_type: str, model: str) -> ImageResult:
    """Decode a base64 inline payload into a validated `ImageResult`."""
    mime_type = _MIME_ALIASES.get(mime_type.lower(), mime_type.lower())
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise failure(
            ErrorKind.GENERATION_FAILED,
            "The image model returned an unsupported image type.",
            detail=mime_type,
        )

    try:
        payload = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise failure(
            ErrorKind.GENERATION_FAILED,
            "The image model returned corrupt image data.",
            detail=str(exc),
        ) from exc

    if not payload:
        raise failure(ErrorKind.GENERATION_FAILED, "The image model returned an empty image.")

    return ImageResult(data=payload, mime_type=mime_type, source_model=model)


async def generate_image(
    prompt: str,
    api_key: str,
    model: str,
    style: ImageStyle,
    language: Language,
    quality: ImageQuality = ImageQuality.HIGH,
    http_client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> ImageResult:
    """Generate a poster image from a prompt.

    Args:
        prompt: Image prompt (typically a `PromptResult.text`, possibly user-edited).
        api_key: Google API key.
        model: Image model identifier.
        style: Visual style (drives the aspect ratio).
        language: Language required for all visible text.
        quality: Resolution tier (sent only to models that accept `imageSize`).
        http_client: Optional shared `httpx.AsyncClient`.
        timeout: Per-request timeout in seconds.

    Returns:
        `ImageResult` with non-empty bytes and a supported MIME type.

    Raises:
        GenerationFailure:
            - INVALID_API_KEY when `api_key` is empty.
            - NO_CONTENT when `prompt` is blank.
            - Classified HTTP/transport failures from `image.client`.
            - CONTENT_FILTERED when the response reports a safety block.
            - GENERATION_FAILED when no usable image part is present.
    """
    if not api_key or not api_key.strip():
        raise failure(ErrorKind.INVALID_API_KEY, "Google API key is not configured")

    if not prompt or not prompt.strip():
        raise failure(ErrorKind.NO_CONTENT, "Prompt is empty")

    try:
        style = ImageStyle(style)
        language = Language(language)
        quality = ImageQuality(quality)
    except ValueError as exc:
        raise failure(ErrorKind.UNKNOWN, f"Unsupported image option: {exc}") from exc

    payload = build_image_payload(prompt, model, style, language, quality)
    logger.debug("Image generation config: %s", payload["generationConfig"])

    data = await send_image_request(
        model,
        api_key.strip(),
        payload,
        http_client=http_client,
        timeout=timeout,
    )

    inline = extract_inline_image(data)
    if inline is None:
        if _was_blocked(data):
            raise failure(
                ErrorKind.CONTENT_FILTERED,
                "Content was blocked by safety filters. Try modifying your prompt.",
            )
        raise failure(
            ErrorKind.GENERATION_FAILED,
            "No image was generated. Try a different prompt or style.",
        )

    encoded, mime_type = inline
    result = decode_image(encoded, mime_type, model)
    logger.info("Received %s image (%d bytes) from %s", result.mime_type, len(result.data), model)
    return result

"""Shared pytest fixtures for knowledge poster tests."""

import base64
import json

import httpx
import pytest

from knowledge_poster.core.settings import PluginSettings
from knowledge_poster.core.types import ImageResult, PromptResult, Provider


# PNG signature followed by filler bytes
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(32))
PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")


# ============================================================================
# HTTP Fixtures
# ============================================================================

class ScriptedTransport:
    """Replays queued responses and records every request it receives."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture
def scripted_http():
    """Factory returning `(AsyncClient, ScriptedTransport)` for queued responses."""
    def factory(*responses):
        transport = ScriptedTransport(responses)
        client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
        return client, transport

    return factory


def json_response(status_code: int, payload) -> httpx.Response:
    return httpx.Response(status_code, json=payload)


def gemini_image_payload(data: str = PNG_B64, mime_type: str = "image/png", camel: bool = True) -> dict:
    if camel:
        part = {"inlineData": {"mimeType": mime_type, "data": data}}
    else:
        part = {"inline_data": {"mime_type": mime_type, "data": data}}
    return {
        "candidates": [{
            "content": {"parts": [{"text": "Here is your poster."}, part]},
        }],
    }


# ============================================================================
# Domain Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Settings snapshot with every key set and preview disabled."""
    return PluginSettings(
        google_api_key="test-google-key",
        openai_api_key="sk-test-openai",
        anthropic_api_key="sk-ant-test",
        xai_api_key="xai-test",
        selected_provider=Provider.GOOGLE,
        prompt_model="gemini-2.5-flash",
        show_preview=False,
        auto_retry_count=2,
    )


@pytest.fixture
def prompt_result():
    return PromptResult(
        text="Create a vertical infographic about photosynthesis",
        source_model="gemini-2.5-flash",
        source_provider=Provider.GOOGLE,
    )


@pytest.fixture
def image_result():
    return ImageResult(data=PNG_BYTES, mime_type="image/png", source_model="gemini-3-pro-image-preview")

"""Tests for the generation orchestrator state machine."""

import os
import re

import pytest

from conftest import PNG_BYTES, gemini_image_payload, json_response
from knowledge_poster.core.engine import (
    STAGE_PERCENT,
    CancellationToken,
    GenerationOrchestrator,
    ReviewAction,
    ReviewDecision,
)
from knowledge_poster.core.errors import failure
from knowledge_poster.core.settings import PluginSettings
from knowledge_poster.core.types import (
    ErrorKind,
    ImageQuality,
    ImageStyle,
    Language,
    PromptResult,
    Provider,
    RunStatus,
    Stage,
)
from knowledge_poster.storage.vault import AttachmentStore, MarkdownNote


NOTE_TEXT = "# Photosynthesis\n\nPlants turn light into sugar."


# ============================================================================
# Fakes
# ============================================================================

class FakeNote:
    def __init__(self, content=NOTE_TEXT, name="Photosynthesis", embed_error=None):
        self.content = content
        self.name = name
        self.embed_error = embed_error
        self.embedded = []

    def read_content(self):
        return self.content

    def embed_image(self, image_path):
        if self.embed_error:
            raise self.embed_error
        self.embedded.append(image_path)


class FakeStore:
    def __init__(self, error=None):
        self.error = error
        self.saved = []

    def save_image(self, image, note_name):
        if self.error:
            raise self.error
        self.saved.append((image, note_name))
        return f"attachments/{note_name}-poster-1.{image.extension}"


class ScriptedPromptGenerator:
    """Async stand-in for `generate_prompt` that replays outcomes in order."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def __call__(self, note_content, provider, model, api_key, style, language, http_client=None):
        self.calls.append({
            "note_content": note_content,
            "provider": provider,
            "model": model,
            "api_key": api_key,
            "style": style,
            "language": language,
        })
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return PromptResult(text=outcome, source_model=model, source_provider=provider)


class ScriptedImageGenerator:
    """Async stand-in for `generate_image`; `on_call` runs before each outcome."""

    def __init__(self, *outcomes, on_call=None):
        self.outcomes = list(outcomes)
        self.on_call = on_call
        self.calls = []

    async def __call__(self, prompt, api_key, model, style, language, quality, http_client=None):
        self.calls.append({
            "prompt": prompt,
            "api_key": api_key,
            "model": model,
            "style": style,
            "language": language,
            "quality": quality,
        })
        if self.on_call:
            self.on_call()
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class ScriptedReviewer:
    def __init__(self, *decisions):
        self.decisions = list(decisions)
        self.reviewed = []

    async def review(self, result):
        self.reviewed.append(result.text)
        return self.decisions.pop(0)


def rate_limited():
    return failure(ErrorKind.RATE_LIMIT, "API rate limit exceeded. Please wait and try again.")


def build(settings, prompt_gen, image_gen, store=None, reviewer=None, cancel_token=None):
    events = []
    orchestrator = GenerationOrchestrator(
        settings,
        store or FakeStore(),
        reviewer=reviewer,
        progress=events.append,
        cancel_token=cancel_token,
        prompt_generator=prompt_gen,
        image_generator=image_gen,
        retry_backoff_seconds=0,
    )
    return orchestrator, events


# ============================================================================
# Happy path
# ============================================================================

class TestHappyPath:
    """A run without preview or failures."""

    @pytest.mark.asyncio
    async def test_complete_run(self, settings, image_result):
        """
        Given: Preview disabled and both clients succeeding
        When: The orchestrator runs
        Then: The image is saved, embedded, and progress reaches 100
        """
        prompt_gen = ScriptedPromptGenerator("Create a leaf poster")
        image_gen = ScriptedImageGenerator(image_result)
        store = FakeStore()
        note = FakeNote()
        orchestrator, events = build(settings, prompt_gen, image_gen, store=store)

        result = await orchestrator.run(note)

        assert result.status is RunStatus.COMPLETE
        assert result.success is True
        assert result.image_path == "attachments/Photosynthesis-poster-1.png"
        assert result.prompt == "Create a leaf poster"
        assert store.saved == [(image_result, "Photosynthesis")]
        assert note.embedded == [result.image_path]
        assert [e.stage for e in events] == [
            Stage.ANALYZING,
            Stage.GENERATING_PROMPT,
            Stage.GENERATING_IMAGE,
            Stage.SAVING,
            Stage.EMBEDDING,
            Stage.COMPLETE,
        ]
        assert events[-1].percent == 100
        assert events[-1].detail == result.image_path

    @pytest.mark.asyncio
    async def test_settings_flow_into_clients(self, settings, image_result):
        settings = settings.replace(
            selected_provider=Provider.ANTHROPIC,
            prompt_model="claude-3-haiku-20240307",
            image_style=ImageStyle.TIMELINE,
            preferred_language=Language.JA,
            image_quality=ImageQuality.ULTRA,
        )
        prompt_gen = ScriptedPromptGenerator("Create a timeline")
        image_gen = ScriptedImageGenerator(image_result)
        orchestrator, _ = build(settings, prompt_gen, image_gen)

        await orchestrator.run(FakeNote())

        assert prompt_gen.calls[0]["provider"] is Provider.ANTHROPIC
        assert prompt_gen.calls[0]["api_key"] == "sk-ant-test"
        assert prompt_gen.calls[0]["note_content"] == NOTE_TEXT
        assert image_gen.calls[0]["api_key"] == "test-google-key"
        assert image_gen.calls[0]["style"] is ImageStyle.TIMELINE
        assert image_gen.calls[0]["language"] is Language.JA
        assert image_gen.calls[0]["quality"] is ImageQuality.ULTRA

    @pytest.mark.asyncio
    async def test_custom_prefix_is_prepended(self, settings, image_result):
        settings = settings.replace(custom_prompt_prefix="Use pastel colors.")
        image_gen = ScriptedImageGenerator(image_result)
        orchestrator, _ = build(settings, ScriptedPromptGenerator("Create a leaf poster"), image_gen)

        await orchestrator.run(FakeNote())

        assert image_gen.calls[0]["prompt"] == "Use pastel colors.\n\nCreate a leaf poster"

    @pytest.mark.asyncio
    async def test_progress_is_monotonic(self, settings, image_result):
        settings = settings.replace(show_preview=True)
        reviewer = ScriptedReviewer(ReviewDecision.regenerate(), ReviewDecision.confirm("Create v2"))
        orchestrator, events = build(
            settings,
            ScriptedPromptGenerator("Create v1", "Create v2"),
            ScriptedImageGenerator(image_result),
            reviewer=reviewer,
        )

        await orchestrator.run(FakeNote())

        percents = [e.percent for e in events]
        assert percents == sorted(percents)
        assert percents[0] == STAGE_PERCENT[Stage.ANALYZING]

    @pytest.mark.asyncio
    async def test_failing_progress_sink_does_not_abort(self, settings, image_result):
        def broken_sink(event):
            raise RuntimeError("display gone")

        orchestrator = GenerationOrchestrator(
            settings,
            FakeStore(),
            progress=broken_sink,
            prompt_generator=ScriptedPromptGenerator("Create a leaf poster"),
            image_generator=ScriptedImageGenerator(image_result),
            retry_backoff_seconds=0,
        )

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.COMPLETE


# ============================================================================
# Retry
# ============================================================================

class TestRetry:
    """Bounded automatic retry of retryable failures."""

    @pytest.mark.asyncio
    async def test_retry_until_success(self, settings, image_result):
        """
        Given: auto_retry_count = 2 and the prompt client rate-limited twice
        When: The orchestrator runs
        Then: The client is called exactly three times and the run completes
        """
        prompt_gen = ScriptedPromptGenerator(rate_limited(), rate_limited(), "Create a leaf poster")
        orchestrator, events = build(settings, prompt_gen, ScriptedImageGenerator(image_result))

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.COMPLETE
        assert len(prompt_gen.calls) == 3
        retry_messages = [e.message for e in events if e.message.startswith("Retrying")]
        assert retry_messages == ["Retrying (1/2)", "Retrying (2/2)"]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, settings, image_result):
        prompt_gen = ScriptedPromptGenerator(rate_limited())
        orchestrator, events = build(settings, prompt_gen, ScriptedImageGenerator(image_result))

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.ERROR
        assert result.failure.kind is ErrorKind.RATE_LIMIT
        assert len(prompt_gen.calls) == 3
        assert events[-1].stage is Stage.ERROR

    @pytest.mark.asyncio
    async def test_zero_retries(self, settings, image_result):
        settings = settings.replace(auto_retry_count=0)
        prompt_gen = ScriptedPromptGenerator(rate_limited(), "Create a leaf poster")
        orchestrator, _ = build(settings, prompt_gen, ScriptedImageGenerator(image_result))

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.ERROR
        assert result.failure.kind is ErrorKind.RATE_LIMIT
        assert len(prompt_gen.calls) == 1

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_not_retried(self, settings):
        image_gen = ScriptedImageGenerator(failure(ErrorKind.CONTENT_FILTERED, "blocked"))
        orchestrator, _ = build(settings, ScriptedPromptGenerator("Create a leaf poster"), image_gen)

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.ERROR
        assert result.failure.kind is ErrorKind.CONTENT_FILTERED
        assert result.prompt == "Create a leaf poster"
        assert len(image_gen.calls) == 1

    @pytest.mark.asyncio
    async def test_image_stage_counts_retries_separately(self, settings, image_result):
        network = failure(ErrorKind.NETWORK_ERROR, "Network connection error.")
        prompt_gen = ScriptedPromptGenerator(rate_limited(), "Create a leaf poster")
        image_gen = ScriptedImageGenerator(network, network, image_result)
        orchestrator, _ = build(settings, prompt_gen, image_gen)

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.COMPLETE
        assert len(prompt_gen.calls) == 2
        assert len(image_gen.calls) == 3


# ============================================================================
# Preview
# ============================================================================

class TestPreview:
    """Prompt review decisions."""

    @pytest.mark.asyncio
    async def test_edited_prompt_is_used_verbatim(self, settings, image_result):
        settings = settings.replace(show_preview=True)
        reviewer = ScriptedReviewer(ReviewDecision.confirm("my own words, unmodified"))
        image_gen = ScriptedImageGenerator(image_result)
        orchestrator, events = build(
            settings, ScriptedPromptGenerator("Create a leaf poster"), image_gen, reviewer=reviewer,
        )

        result = await orchestrator.run(FakeNote())

        assert image_gen.calls[0]["prompt"] == "my own words, unmodified"
        assert result.prompt == "my own words, unmodified"
        assert Stage.PREVIEW in [e.stage for e in events]

    @pytest.mark.asyncio
    async def test_regenerate_calls_prompt_client_again(self, settings, image_result):
        settings = settings.replace(show_preview=True)
        prompt_gen = ScriptedPromptGenerator("Create v1", "Create v2")
        reviewer = ScriptedReviewer(ReviewDecision.regenerate(), ReviewDecision.confirm("Create v2"))
        image_gen = ScriptedImageGenerator(image_result)
        orchestrator, _ = build(settings, prompt_gen, image_gen, reviewer=reviewer)

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.COMPLETE
        assert len(prompt_gen.calls) == 2
        assert reviewer.reviewed == ["Create v1", "Create v2"]
        assert image_gen.calls[0]["prompt"] == "Create v2"

    @pytest.mark.asyncio
    async def test_cancel_in_preview(self, settings, image_result):
        settings = settings.replace(show_preview=True)
        store = FakeStore()
        image_gen = ScriptedImageGenerator(image_result)
        orchestrator, _ = build(
            settings,
            ScriptedPromptGenerator("Create a leaf poster"),
            image_gen,
            store=store,
            reviewer=ScriptedReviewer(ReviewDecision.cancel()),
        )

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.CANCELLED
        assert result.failure is None
        assert image_gen.calls == []
        assert store.saved == []

    def test_decision_constructors(self):
        assert ReviewDecision.confirm("x") == ReviewDecision(ReviewAction.CONFIRM, "x")
        assert ReviewDecision.regenerate().action is ReviewAction.REGENERATE
        assert ReviewDecision.cancel().action is ReviewAction.CANCEL


# ============================================================================
# Cancellation and failures
# ============================================================================

class TestCancellationAndFailures:
    """Cooperative cancellation and terminal failure states."""

    @pytest.mark.asyncio
    async def test_result_after_cancel_is_discarded(self, settings, image_result):
        """
        Given: The user cancels while the image request is in flight
        When: The image client returns successfully afterwards
        Then: Nothing is saved or embedded and the run is cancelled
        """
        token = CancellationToken()
        store = FakeStore()
        note = FakeNote()
        image_gen = ScriptedImageGenerator(image_result, on_call=token.cancel)
        orchestrator, events = build(
            settings, ScriptedPromptGenerator("Create a leaf poster"), image_gen,
            store=store, cancel_token=token,
        )

        result = await orchestrator.run(note)

        assert result.status is RunStatus.CANCELLED
        assert store.saved == []
        assert note.embedded == []
        assert Stage.SAVING not in [e.stage for e in events]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, settings, image_result):
        token = CancellationToken()
        token.cancel()
        prompt_gen = ScriptedPromptGenerator("Create a leaf poster")
        orchestrator, events = build(
            settings, prompt_gen, ScriptedImageGenerator(image_result), cancel_token=token,
        )

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.CANCELLED
        assert prompt_gen.calls == []
        assert events == []

    @pytest.mark.asyncio
    async def test_blank_note(self, settings, image_result):
        prompt_gen = ScriptedPromptGenerator("Create a leaf poster")
        orchestrator, _ = build(settings, prompt_gen, ScriptedImageGenerator(image_result))

        result = await orchestrator.run(FakeNote(content="  \n\n"))

        assert result.status is RunStatus.ERROR
        assert result.failure.kind is ErrorKind.NO_CONTENT
        assert prompt_gen.calls == []

    @pytest.mark.asyncio
    async def test_save_failure(self, settings, image_result):
        note = FakeNote()
        orchestrator, events = build(
            settings,
            ScriptedPromptGenerator("Create a leaf poster"),
            ScriptedImageGenerator(image_result),
            store=FakeStore(error=PermissionError("read-only vault")),
        )

        result = await orchestrator.run(note)

        assert result.status is RunStatus.ERROR
        assert result.failure.kind is ErrorKind.SAVE_ERROR
        assert result.failure.retryable is False
        assert note.embedded == []
        assert events[-1].stage is Stage.ERROR
        assert events[-1].percent == STAGE_PERCENT[Stage.SAVING]

    @pytest.mark.asyncio
    async def test_embed_failure(self, settings, image_result):
        orchestrator, _ = build(
            settings,
            ScriptedPromptGenerator("Create a leaf poster"),
            ScriptedImageGenerator(image_result),
        )

        result = await orchestrator.run(FakeNote(embed_error=OSError("locked")))

        assert result.status is RunStatus.ERROR
        assert result.failure.kind is ErrorKind.SAVE_ERROR

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_unknown(self, settings, image_result):
        orchestrator, _ = build(
            settings,
            ScriptedPromptGenerator(KeyError("boom")),
            ScriptedImageGenerator(image_result),
        )

        result = await orchestrator.run(FakeNote())

        assert result.status is RunStatus.ERROR
        assert result.failure.kind is ErrorKind.UNKNOWN

    @pytest.mark.asyncio
    async def test_missing_prompt_key_is_reported(self, settings, image_result):
        settings = settings.replace(selected_provider=Provider.OPENAI, openai_api_key="")

        async def validating_prompt_gen(note_content, provider, model, api_key, style, language,
                                        http_client=None):
            if not api_key:
                raise failure(ErrorKind.INVALID_API_KEY, "OpenAI API key is not configured")
            return PromptResult("Create x", model, provider)

        orchestrator, _ = build(settings, validating_prompt_gen, ScriptedImageGenerator(image_result))

        result = await orchestrator.run(FakeNote())

        assert result.failure.kind is ErrorKind.INVALID_API_KEY


# ============================================================================
# End to end
# ============================================================================

class TestEndToEnd:
    """Real clients against a scripted HTTP backend and the filesystem vault."""

    @pytest.mark.asyncio
    async def test_photosynthesis_scenario(self, tmp_path, scripted_http):
        """
        Given: A note about photosynthesis, infographic style, English, high quality
        When: The orchestrator runs with OpenAI prompts and Gemini images
        Then: An imperative prompt is sent, a PNG is stored under the documented
              name, and the note embeds it
        """
        note_path = tmp_path / "Photosynthesis.md"
        note_path.write_text("Photosynthesis converts light into chemical energy", encoding="utf-8")
        reply = {"choices": [{"message": {"content": "Here is the prompt: Design a vertical infographic"}}]}
        client, transport = scripted_http(
            json_response(200, reply),
            json_response(200, gemini_image_payload(mime_type="image/png")),
        )
        settings = PluginSettings(
            google_api_key="g-key",
            openai_api_key="sk-test",
            selected_provider=Provider.OPENAI,
            prompt_model="gpt-4o",
            image_style=ImageStyle.INFOGRAPHIC,
            preferred_language=Language.EN,
            image_quality=ImageQuality.HIGH,
            show_preview=False,
        )
        orchestrator = GenerationOrchestrator(
            settings,
            AttachmentStore(str(tmp_path / "999-Attachments")),
            http_client=client,
            retry_backoff_seconds=0,
        )

        result = await orchestrator.run(MarkdownNote(str(note_path)))

        assert result.status is RunStatus.COMPLETE
        assert result.prompt == "Design a vertical infographic"
        assert re.fullmatch(r"Photosynthesis-poster-\d+\.png", os.path.basename(result.image_path))
        with open(result.image_path, "rb") as f:
            assert f.read() == PNG_BYTES
        image_text = transport.json_body(1)["contents"][0]["parts"][0]["text"]
        assert "Design a vertical infographic" in image_text
        embedded = note_path.read_text(encoding="utf-8")
        assert embedded.startswith("![[999-Attachments/Photosynthesis-poster-")
        assert embedded.endswith("\n\nPhotosynthesis converts light into chemical energy")

"""Tests for the command-line adapter."""

import asyncio
import os
import threading
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from knowledge_poster.api.cli import (
    TerminalReviewer,
    apply_overrides,
    build_parser,
    main,
    print_progress,
    resolve_attachment_folder,
    run_cli,
)
from knowledge_poster.core.engine import ReviewAction
from knowledge_poster.core.errors import failure
from knowledge_poster.core.settings import PluginSettings
from knowledge_poster.core.types import (
    ErrorKind,
    GenerationResult,
    ImageStyle,
    Language,
    ProgressEvent,
    PromptResult,
    Provider,
    RunStatus,
    Stage,
)


def scripted_input(*answers):
    queue = list(answers)

    def fake_input(prompt=""):
        return queue.pop(0)

    return fake_input


PROMPT = PromptResult("Create a leaf poster", "gpt-4o", Provider.OPENAI)


class TestOverrides:
    """Tests for apply_overrides()."""

    def test_no_flags_keep_settings(self):
        settings = PluginSettings()
        args = build_parser().parse_args(["note.md"])

        assert apply_overrides(settings, args) == settings

    def test_provider_switch_uses_its_default_model(self):
        args = build_parser().parse_args(["note.md", "--provider", "anthropic"])

        settings = apply_overrides(PluginSettings(), args)

        assert settings.selected_provider is Provider.ANTHROPIC
        assert settings.prompt_model == "claude-sonnet-4-5-20250929"

    def test_explicit_model_wins(self):
        args = build_parser().parse_args(["note.md", "--provider", "xai", "--model", "grok-3"])

        settings = apply_overrides(PluginSettings(), args)

        assert settings.prompt_model == "grok-3"

    def test_style_language_and_retries(self):
        args = build_parser().parse_args([
            "note.md", "--style", "timeline", "--language", "en", "--retries", "8", "--no-preview",
        ])

        settings = apply_overrides(PluginSettings(), args)

        assert settings.image_style is ImageStyle.TIMELINE
        assert settings.preferred_language is Language.EN
        assert settings.auto_retry_count == 5
        assert settings.show_preview is False

    def test_unknown_style_is_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["note.md", "--style", "watercolor"])


class TestTerminalReviewer:
    """Tests for TerminalReviewer."""

    @pytest.mark.asyncio
    async def test_enter_confirms(self):
        decision = await TerminalReviewer(scripted_input("")).review(PROMPT)

        assert decision.action is ReviewAction.CONFIRM
        assert decision.prompt == "Create a leaf poster"

    @pytest.mark.asyncio
    async def test_edit_collects_lines(self):
        reviewer = TerminalReviewer(scripted_input("e", "Line one", "Line two", ""))

        decision = await reviewer.review(PROMPT)

        assert decision.action is ReviewAction.CONFIRM
        assert decision.prompt == "Line one\nLine two"

    @pytest.mark.asyncio
    async def test_unknown_choice_asks_again(self):
        decision = await TerminalReviewer(scripted_input("x", "R")).review(PROMPT)
        assert decision.action is ReviewAction.REGENERATE

    @pytest.mark.asyncio
    async def test_quit_cancels(self):
        decision = await TerminalReviewer(scripted_input("q")).review(PROMPT)
        assert decision.action is ReviewAction.CANCEL

    @pytest.mark.asyncio
    async def test_input_is_read_on_the_main_thread(self):
        """
        Given: A reviewer waiting for a decision
        When: It reads the terminal
        Then: The read happens on the main thread, where Ctrl+C is delivered
        """
        threads = []

        def recording_input(prompt=""):
            threads.append(threading.current_thread())
            return ""

        await TerminalReviewer(recording_input).review(PROMPT)

        assert threads == [threading.main_thread()]


class TestHelpers:
    """Tests for small CLI helpers and the entrypoint."""

    def test_progress_line(self, capsys):
        print_progress(ProgressEvent(Stage.SAVING, 80, "Saving image", "a.png"))
        assert capsys.readouterr().out == "[ 80%] Saving image (a.png)\n"

    def test_relative_attachment_folder(self, tmp_path):
        note = tmp_path / "vault" / "note.md"

        folder = resolve_attachment_folder("999-Attachments", str(note))

        assert folder == os.path.join(str(tmp_path / "vault"), "999-Attachments")

    def test_absolute_attachment_folder(self, tmp_path):
        assert resolve_attachment_folder(str(tmp_path), "note.md") == str(tmp_path)

    def test_missing_note_exit_code(self, tmp_path, capsys):
        code = main([str(tmp_path / "missing.md")])

        assert code == 2
        assert "Note not found" in capsys.readouterr().out

    def test_interrupt_exit_code(self, tmp_path, capsys):
        note = tmp_path / "note.md"
        note.write_text("Body", encoding="utf-8")

        with patch("knowledge_poster.api.cli.run_cli", side_effect=KeyboardInterrupt):
            code = main([str(note)])

        assert code == 130
        assert "cancelled by user" in capsys.readouterr().out


class TestRunCli:
    """Exit codes of run_cli() with the orchestrator replaced by a mock."""

    def _run(self, tmp_path, result):
        note = tmp_path / "note.md"
        note.write_text("Body", encoding="utf-8")
        args = build_parser().parse_args([str(note), "--no-preview"])

        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=result)
        with patch("knowledge_poster.api.cli.load_settings", return_value=PluginSettings()), \
                patch("knowledge_poster.api.cli.GenerationOrchestrator", return_value=orchestrator) as cls:
            code = asyncio.run(run_cli(args))
        return code, cls

    def test_complete(self, tmp_path, capsys):
        code, cls = self._run(tmp_path, GenerationResult(RunStatus.COMPLETE, image_path="a.png"))

        assert code == 0
        assert "Poster saved: a.png" in capsys.readouterr().out
        assert cls.call_args.args[0].show_preview is False

    def test_cancelled(self, tmp_path):
        code, _ = self._run(tmp_path, GenerationResult(RunStatus.CANCELLED))
        assert code == 130

    def test_failure_prints_suggestions(self, tmp_path, capsys):
        error = failure(ErrorKind.RATE_LIMIT, "API rate limit exceeded. Please wait and try again.")

        code, _ = self._run(tmp_path, GenerationResult(RunStatus.ERROR, failure=error))

        out = capsys.readouterr().out
        assert code == 1
        assert "API rate limit exceeded" in out
        assert "Wait a moment and try again" in out

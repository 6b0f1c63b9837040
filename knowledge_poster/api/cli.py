"""
Interactive CLI adapter for knowledge poster generation.

Architectural role:
- Runs the poster pipeline headlessly against a markdown file on disk.
- Supplies terminal implementations of the progress sink and prompt reviewer.
- Delegates all pipeline work to `knowledge_poster.core.engine`.

Request lifecycle (one invocation):
1. Parse arguments and load settings (`.env`, environment, optional JSON file).
2. Apply command-line overrides to a new settings snapshot.
3. Build `MarkdownNote` / `AttachmentStore` collaborators.
4. Run the orchestrator, printing progress lines and the final outcome.

Input validation behavior:
- Missing note file -> exit code 2 with a message.
- Unknown style/language/quality/provider values are rejected by argparse choices.

Error handling strategy:
- Pipeline failures print the message, optional detail, and remediation tips.
- Ctrl+C aborts the run without a traceback.

Exit codes:
- 0 complete, 1 error, 2 usage error, 130 cancelled.
"""

import argparse
import asyncio
import logging
import os
import sys

from knowledge_poster.core.engine import (
    GenerationOrchestrator,
    ReviewDecision,
)
from knowledge_poster.core.errors import suggestions_for
from knowledge_poster.core.settings import MAX_AUTO_RETRY_COUNT, load_settings
from knowledge_poster.core.types import (
    ImageQuality,
    ImageStyle,
    Language,
    ProgressEvent,
    PromptResult,
    Provider,
    RunStatus,
)
from knowledge_poster.llm.provider_config import get_model_info, get_provider_config
from knowledge_poster.storage.vault import AttachmentStore, MarkdownNote


logger = logging.getLogger(__name__)


# =========================================================
# UTF-8 SAFE OUTPUT
# Best-effort stdout encoding normalization for interactive terminals.
# =========================================================

def _configure_stdout() -> None:
    if hasattr(sys.stdout, "reconfigure"):
        try:
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        except (OSError, ValueError):
            pass


# =========================================================
# TERMINAL COLLABORATORS
# =========================================================

def print_progress(event: ProgressEvent) -> None:
    """Progress sink printing one line per event."""
    line = f"[{event.percent:3d}%] {event.message}"
    if event.detail:
        line += f" ({event.detail})"
    print(line, flush=True)


class TerminalReviewer:
    """Prompt reviewer reading decisions from stdin.

    Commands:
        Enter -> confirm, `e` -> edit (multi-line, finish with an empty line),
        `r` -> regenerate, `q` -> cancel.

    Input is read on the event-loop thread so Ctrl+C interrupts `input()` directly.
    """

    def __init__(self, input_func=input) -> None:
        self.input_func = input_func

    async def review(self, result: PromptResult) -> ReviewDecision:
        print("\n" + "-" * 60)
        print(f"Prompt ({result.source_provider.value} / {result.source_model}, "
              f"{len(result.text)} chars):\n")
        print(result.text)
        print("-" * 60)

        while True:
            choice = self.input_func("[Enter] generate  [e] edit  [r] regenerate  [q] cancel: ")
            choice = choice.strip().lower()

            if choice == "":
                return ReviewDecision.confirm(result.text)
            if choice == "r":
                return ReviewDecision.regenerate()
            if choice == "q":
                return ReviewDecision.cancel()
            if choice == "e":
                print("Enter the new prompt. Finish with an empty line.")
                lines = []
                while True:
                    line = self.input_func("")
                    if not line:
                        break
                    lines.append(line)
                return ReviewDecision.confirm("\n".join(lines))

            print("Unknown choice.")


# =========================================================
# ARGUMENTS
# =========================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="knowledge-poster",
        description="Generate an AI knowledge poster for a markdown note and embed it.",
    )
    parser.add_argument("note", help="Path to the markdown note")
    parser.add_argument("--settings", default=None, help="JSON settings file")
    parser.add_argument("--style", choices=[s.value for s in ImageStyle])
    parser.add_argument("--language", choices=[lang.value for lang in Language])
    parser.add_argument("--quality", choices=[q.value for q in ImageQuality])
    parser.add_argument("--provider", choices=[p.value for p in Provider])
    parser.add_argument("--model", default=None, help="Prompt model id")
    parser.add_argument("--image-model", default=None)
    parser.add_argument("--attachments", default=None, help="Attachment folder")
    parser.add_argument("--retries", type=int, default=None,
                        help=f"Automatic retry count (0-{MAX_AUTO_RETRY_COUNT})")
    parser.add_argument("--no-preview", action="store_true", help="Skip prompt review")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def apply_overrides(settings, args):
    """Return a new settings snapshot with command-line overrides applied."""
    changes = {}
    if args.style:
        changes["image_style"] = ImageStyle(args.style)
    if args.language:
        changes["preferred_language"] = Language(args.language)
    if args.quality:
        changes["image_quality"] = ImageQuality(args.quality)
    if args.provider:
        provider = Provider(args.provider)
        changes["selected_provider"] = provider
        # Switching provider without a model picks that provider's default model.
        if not args.model:
            changes["prompt_model"] = get_provider_config(provider).default_model
    if args.model:
        changes["prompt_model"] = args.model
    if args.image_model:
        changes["image_model"] = args.image_model
    if args.attachments:
        changes["attachment_folder"] = args.attachments
    if args.retries is not None:
        changes["auto_retry_count"] = args.retries
    if args.no_preview:
        changes["show_preview"] = False
    return settings.replace(**changes)


def resolve_attachment_folder(folder: str, note_path: str) -> str:
    """Resolve a relative attachment folder against the note's directory."""
    if os.path.isabs(folder):
        return folder
    return os.path.join(os.path.dirname(os.path.abspath(note_path)), folder)


# =========================================================
# MAIN
# =========================================================

async def run_cli(args) -> int:
    settings = apply_overrides(load_settings(args.settings), args)

    if get_model_info(settings.selected_provider, settings.prompt_model) is None:
        logger.warning(
            "Model %s is not in the %s catalog; sending it anyway",
            settings.prompt_model, settings.selected_provider.value,
        )

    note = MarkdownNote(args.note)
    store = AttachmentStore(resolve_attachment_folder(settings.attachment_folder, args.note))
    orchestrator = GenerationOrchestrator(
        settings,
        store,
        reviewer=TerminalReviewer(),
        progress=print_progress if settings.show_progress else None,
    )

    result = await orchestrator.run(note)

    if result.status is RunStatus.COMPLETE:
        print(f"\nPoster saved: {result.image_path}")
        return 0

    if result.status is RunStatus.CANCELLED:
        print("\nGeneration cancelled.")
        return 130

    failure = result.failure
    print(f"\nGeneration failed: {failure.message}")
    if failure.detail:
        print(f"  {failure.detail}")
    tips = suggestions_for(failure.kind)
    if tips:
        print("Suggestions:")
        for tip in tips:
            print(f" - {tip}")
    return 1


def main(argv=None) -> int:
    """Parse arguments, run one generation, and return the process exit code."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _configure_stdout()

    if not os.path.isfile(args.note):
        print(f"Note not found: {args.note}")
        return 2

    try:
        return asyncio.run(run_cli(args))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())

"""Generation orchestrator for the knowledge poster pipeline.

Architectural role:
    Drives one end-to-end run that turns a note into an embedded poster image. Used by
    the CLI adapter and by any plugin host that supplies the collaborator interfaces
    defined here.

Control-flow model:
    1. Analyzing: read note content, build the immutable `GenerationRequest`.
    2. GeneratingPrompt: call the prompt client (bounded automatic retry).
    3. Preview (optional): reviewer confirms (possibly edited text), requests a
       regeneration (back to step 2), or cancels.
    4. GeneratingImage: call the image client (bounded automatic retry).
    5. Saving: image store persists the bytes and returns the stored path.
    6. Embedding: the note embeds a reference to the stored path.
    7. Complete.

Retry behavior:
    `auto_retry_count` from the settings snapshot bounds retries of steps 2 and 4
    only, and only for failures flagged `retryable`. Counts are per stage. Attempts
    are separated by exponential backoff (`retry_backoff_seconds * 2 ** n`).

Cancellation:
    Cooperative. The token is checked before each stage and after each awaited call;
    a result that arrives after cancellation is discarded.

Progress reporting:
    Every transition is written to the progress sink with a non-decreasing percent.
    Sink failures are logged and ignored.

Error handling strategy:
    Stage failures surface as `GenerationFailure` and end the run in the Error state.
    Persistence/embedding errors become SAVE_ERROR; anything unexpected becomes
    UNKNOWN and is logged with its traceback.

Concurrency:
    One run at a time per orchestrator instance. Concurrent runs use separate
    instances; the only shared structure is the read-only provider registry.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

import httpx
from pydantic import ValidationError

from knowledge_poster.core.errors import GenerationFailure, failure
from knowledge_poster.core.settings import PluginSettings
from knowledge_poster.core.types import (
    ErrorKind,
    GenerationRequest,
    GenerationResult,
    ImageResult,
    ProgressEvent,
    PromptResult,
    RunStatus,
    Stage,
)
from knowledge_poster.image.service import generate_image
from knowledge_poster.llm.service import generate_prompt


logger = logging.getLogger(__name__)

DEFAULT_RETRY_BACKOFF_SECONDS = 1.0

STAGE_PERCENT = {
    Stage.ANALYZING: 5,
    Stage.GENERATING_PROMPT: 20,
    Stage.PREVIEW: 40,
    Stage.GENERATING_IMAGE: 50,
    Stage.SAVING: 80,
    Stage.EMBEDDING: 90,
    Stage.COMPLETE: 100,
}

STAGE_MESSAGES = {
    Stage.ANALYZING: "Analyzing note",
    Stage.GENERATING_PROMPT: "Generating image prompt",
    Stage.PREVIEW: "Waiting for prompt review",
    Stage.GENERATING_IMAGE: "Generating image",
    Stage.SAVING: "Saving image",
    Stage.EMBEDDING: "Embedding image in note",
    Stage.COMPLETE: "Knowledge poster created",
}


# =========================================================
# COLLABORATOR INTERFACES
# =========================================================

class NoteDocument(Protocol):
    """Source document of a run (blocking methods are called via a worker thread)."""

    name: str

    def read_content(self) -> str:
        ...

    def embed_image(self, image_path: str) -> None:
        ...


class ImageStore(Protocol):
    """Persists generated images and returns the stored path."""

    def save_image(self, image: ImageResult, note_name: str) -> str:
        ...


class ReviewAction(str, Enum):
    CONFIRM = "confirm"
    REGENERATE = "regenerate"
    CANCEL = "cancel"


@dataclass(frozen=True)
class ReviewDecision:
    action: ReviewAction
    prompt: str = ""

    @classmethod
    def confirm(cls, prompt: str) -> "ReviewDecision":
        return cls(ReviewAction.CONFIRM, prompt)

    @classmethod
    def regenerate(cls) -> "ReviewDecision":
        return cls(ReviewAction.REGENERATE)

    @classmethod
    def cancel(cls) -> "ReviewDecision":
        return cls(ReviewAction.CANCEL)


class PromptReviewer(Protocol):
    """Interactive preview step. Suspends the run until the user decides."""

    async def review(self, result: PromptResult) -> ReviewDecision:
        ...


class AutoConfirmReviewer:
    """Reviewer that accepts every prompt unchanged (headless runs)."""

    async def review(self, result: PromptResult) -> ReviewDecision:
        return ReviewDecision.confirm(result.text)


ProgressSink = Callable[[ProgressEvent], None]


class CancellationToken:
    """Advisory cancellation flag shared between the host and one run."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class _RunCancelled(Exception):
    pass


# =========================================================
# ORCHESTRATOR
# =========================================================

class GenerationOrchestrator:
    """Sequential poster pipeline with retry, preview, cancellation, and progress.

    Args:
        settings: Configuration snapshot. Captured as-is; later edits elsewhere
            produce new snapshots and do not affect this orchestrator.
        store: Image persistence collaborator.
        reviewer: Preview collaborator (used only when `settings.show_preview`).
            Defaults to `AutoConfirmReviewer`.
        progress: Optional progress sink.
        cancel_token: Optional cancellation token (a private one is created otherwise).
        prompt_generator: Prompt client coroutine (defaults to `generate_prompt`).
        image_generator: Image client coroutine (defaults to `generate_image`).
        http_client: Optional shared `httpx.AsyncClient` passed to both clients.
        retry_backoff_seconds: Base delay between automatic retries.
    """

    def __init__(
        self,
        settings: PluginSettings,
        store: ImageStore,
        reviewer: PromptReviewer | None = None,
        progress: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
        prompt_generator: Callable[..., Awaitable[PromptResult]] = generate_prompt,
        image_generator: Callable[..., Awaitable[ImageResult]] = generate_image,
        http_client: httpx.AsyncClient | None = None,
        retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS,
    ) -> None:
        self.settings = settings
        self.store = store
        self.reviewer = reviewer or AutoConfirmReviewer()
        self.progress = progress
        self.cancel_token = cancel_token or CancellationToken()
        self.prompt_generator = prompt_generator
        self.image_generator = image_generator
        self.http_client = http_client
        self.retry_backoff_seconds = retry_backoff_seconds
        self._percent = 0

    # -----------------------------------------------------
    # Public entrypoint
    # -----------------------------------------------------

    async def run(self, document: NoteDocument) -> GenerationResult:
        """Execute the full pipeline for `document`.

        Returns:
            `GenerationResult` with status COMPLETE (stored path set), CANCELLED, or
            ERROR (failure attached). This method does not raise for stage failures.
        """
        self._percent = 0
        prompt_text: str | None = None

        try:
            request = await self._analyze(document)
            prompt_text = await self._author_prompt(request)
            image = await self._render_image(request, prompt_text)
            image_path = await self._save(image, document.name)
            await self._embed(document, image_path)

        except _RunCancelled:
            logger.info("Poster generation cancelled for note=%s", document.name)
            return GenerationResult(RunStatus.CANCELLED, prompt=prompt_text)

        except GenerationFailure as exc:
            logger.warning(
                "Poster generation failed for note=%s kind=%s: %s",
                document.name, exc.kind.value, exc.message,
            )
            self._emit(Stage.ERROR, exc.message, exc.detail)
            return GenerationResult(RunStatus.ERROR, prompt=prompt_text, failure=exc)

        except Exception as exc:
            logger.exception("Unexpected error during poster generation")
            unknown = failure(
                ErrorKind.UNKNOWN,
                "An unexpected error occurred.",
                detail=str(exc) or type(exc).__name__,
            )
            self._emit(Stage.ERROR, unknown.message, unknown.detail)
            return GenerationResult(RunStatus.ERROR, prompt=prompt_text, failure=unknown)

        self._emit(Stage.COMPLETE, STAGE_MESSAGES[Stage.COMPLETE], image_path)
        logger.info("Poster saved to %s", image_path)
        return GenerationResult(RunStatus.COMPLETE, image_path=image_path, prompt=prompt_text)

    # -----------------------------------------------------
    # Stages
    # -----------------------------------------------------

    async def _analyze(self, document: NoteDocument) -> GenerationRequest:
        self._enter(Stage.ANALYZING)
        content = await asyncio.to_thread(document.read_content)
        self._checkpoint()

        if not content or not content.strip():
            raise failure(ErrorKind.NO_CONTENT, "Note content is empty")

        settings = self.settings
        try:
            return GenerationRequest(
                note_content=content,
                style=settings.image_style,
                language=settings.preferred_language,
                quality=settings.image_quality,
                prompt_provider=settings.selected_provider,
                prompt_model=settings.prompt_model,
                image_model=settings.image_model,
                custom_prefix=settings.custom_prompt_prefix or None,
            )
        except ValidationError as exc:
            raise failure(
                ErrorKind.UNKNOWN,
                "The generation settings are incomplete.",
                detail=str(exc),
            ) from exc

    async def _author_prompt(self, request: GenerationRequest) -> str:
        api_key = self.settings.api_key_for(request.prompt_provider)

        while True:
            self._enter(Stage.GENERATING_PROMPT)
            result = await self._with_retry(
                Stage.GENERATING_PROMPT,
                lambda: self.prompt_generator(
                    request.note_content,
                    request.prompt_provider,
                    request.prompt_model,
                    api_key,
                    request.style,
                    request.language,
                    http_client=self.http_client,
                ),
            )

            if not self.settings.show_preview:
                return result.text

            self._enter(Stage.PREVIEW)
            decision = await self.reviewer.review(result)
            self._checkpoint()

            if decision.action is ReviewAction.CANCEL:
                raise _RunCancelled()
            if decision.action is ReviewAction.REGENERATE:
                logger.info("Prompt regeneration requested")
                continue
            # Edited text replaces the generated prompt verbatim.
            return decision.prompt

    async def _render_image(self, request: GenerationRequest, prompt_text: str) -> ImageResult:
        self._enter(Stage.GENERATING_IMAGE)

        final_prompt = prompt_text
        prefix = (request.custom_prefix or "").strip()
        if prefix and prompt_text.strip():
            final_prompt = f"{prefix}\n\n{prompt_text}"

        return await self._with_retry(
            Stage.GENERATING_IMAGE,
            lambda: self.image_generator(
                final_prompt,
                self.settings.image_api_key,
                request.image_model,
                request.style,
                request.language,
                request.quality,
                http_client=self.http_client,
            ),
        )

    async def _save(self, image: ImageResult, note_name: str) -> str:
        self._enter(Stage.SAVING)
        try:
            image_path = await asyncio.to_thread(self.store.save_image, image, note_name)
        except GenerationFailure:
            raise
        except Exception as exc:
            raise failure(
                ErrorKind.SAVE_ERROR,
                f"Failed to save image: {exc}",
                detail=type(exc).__name__,
            ) from exc
        self._checkpoint()
        return image_path

    async def _embed(self, document: NoteDocument, image_path: str) -> None:
        self._enter(Stage.EMBEDDING)
        try:
            await asyncio.to_thread(document.embed_image, image_path)
        except GenerationFailure:
            raise
        except Exception as exc:
            raise failure(
                ErrorKind.SAVE_ERROR,
                f"Failed to embed image: {exc}",
                detail=type(exc).__name__,
            ) from exc

    # -----------------------------------------------------
    # Helpers
    # -----------------------------------------------------

    async def _with_retry(self, stage: Stage, call: Callable[[], Awaitable[Any]]) -> Any:
        """Run `call`, retrying retryable failures up to `auto_retry_count` times."""
        retries = self.settings.auto_retry_count
        attempt = 0

        while True:
            self._checkpoint()
            try:
                result = await call()
            except GenerationFailure as exc:
                self._checkpoint()
                if not exc.retryable or attempt >= retries:
                    raise
                attempt += 1
                logger.warning(
                    "%s failed with %s; retry %d/%d",
                    stage.value, exc.kind.value, attempt, retries,
                )
                self._emit(stage, f"Retrying ({attempt}/{retries})", exc.message)
                await asyncio.sleep(self._backoff(attempt - 1))
                continue

            # A result that arrives after cancellation is discarded.
            self._checkpoint()
            return result

    def _backoff(self, attempt: int) -> float:
        return self.retry_backoff_seconds * (2 ** attempt)

    def _checkpoint(self) -> None:
        if self.cancel_token.cancelled:
            raise _RunCancelled()

    def _enter(self, stage: Stage) -> None:
        self._checkpoint()
        logger.info("Stage: %s", stage.value)
        self._emit(stage, STAGE_MESSAGES[stage])

    def _emit(self, stage: Stage, message: str, detail: str | None = None) -> None:
        self._percent = max(self._percent, STAGE_PERCENT.get(stage, self._percent))
        if self.progress is None:
            return
        event = ProgressEvent(stage=stage, percent=self._percent, message=message, detail=detail)
        try:
            self.progress(event)
        except Exception:
            logger.exception("Progress sink raised; continuing")

"""Data contracts shared by the poster generation pipeline.

Architectural role:
    Defines the enumerations and records exchanged between the prompt client, the
    image client, the orchestrator, and the host collaborators.

Immutability:
    Every record is frozen. `GenerationRequest` is a frozen pydantic model so the
    values of an in-flight run cannot be changed by later settings edits.

Determinism:
    Pure structures with no I/O or global state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from knowledge_poster.core.errors import GenerationFailure


class ImageStyle(str, Enum):
    INFOGRAPHIC = "infographic"
    POSTER = "poster"
    DIAGRAM = "diagram"
    MINDMAP = "mindmap"
    TIMELINE = "timeline"


class Language(str, Enum):
    KO = "ko"
    EN = "en"
    JA = "ja"
    ZH = "zh"
    ES = "es"
    FR = "fr"
    DE = "de"


class ImageQuality(str, Enum):
    STANDARD = "standard"
    HIGH = "high"
    ULTRA = "ultra"


class Provider(str, Enum):
    OPENAI = "openai"
    GOOGLE = "google"
    ANTHROPIC = "anthropic"
    XAI = "xai"


class ModelTier(str, Enum):
    FLAGSHIP = "flagship"
    BALANCED = "balanced"
    FAST = "fast"
    VISION = "vision"


class Stage(str, Enum):
    """Orchestrator stages, in pipeline order, plus the two terminal markers."""

    ANALYZING = "analyzing"
    GENERATING_PROMPT = "generating-prompt"
    PREVIEW = "preview"
    GENERATING_IMAGE = "generating-image"
    SAVING = "saving"
    EMBEDDING = "embedding"
    COMPLETE = "complete"
    ERROR = "error"


class ErrorKind(str, Enum):
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMIT = "RATE_LIMIT"
    NETWORK_ERROR = "NETWORK_ERROR"
    GENERATION_FAILED = "GENERATION_FAILED"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    NO_CONTENT = "NO_CONTENT"
    SAVE_ERROR = "SAVE_ERROR"
    UNKNOWN = "UNKNOWN"


# MIME type -> file extension for every image type the pipeline accepts.
SUPPORTED_MIME_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


class GenerationRequest(BaseModel):
    """Immutable inputs of one orchestration run.

    Built by the orchestrator in the Analyzing stage from the settings snapshot and
    the note content it just read.
    """

    model_config = ConfigDict(frozen=True)

    note_content: str
    style: ImageStyle = ImageStyle.INFOGRAPHIC
    language: Language = Language.EN
    quality: ImageQuality = ImageQuality.HIGH
    prompt_provider: Provider = Provider.GOOGLE
    prompt_model: str = Field(min_length=1)
    image_model: str = Field(min_length=1)
    custom_prefix: str | None = None


@dataclass(frozen=True)
class PromptResult:
    text: str
    source_model: str
    source_provider: Provider


@dataclass(frozen=True)
class ImageResult:
    """Decoded image payload returned by the image client.

    Attributes:
        data: Raw image bytes (never empty).
        mime_type: One of `SUPPORTED_MIME_TYPES`.
        source_model: Image model that produced the payload.
    """

    data: bytes
    mime_type: str
    source_model: str

    @property
    def extension(self) -> str:
        return SUPPORTED_MIME_TYPES.get(self.mime_type, "png")


@dataclass(frozen=True)
class ProgressEvent:
    stage: Stage
    percent: int
    message: str
    detail: str | None = None


class RunStatus(str, Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class GenerationResult:
    """Terminal report of one orchestrator run.

    Exactly one of the following holds:
        - `status == COMPLETE` and `image_path` is set.
        - `status == ERROR` and `failure` is set.
        - `status == CANCELLED`.
    """

    status: RunStatus
    image_path: str | None = None
    prompt: str | None = None
    failure: "GenerationFailure | None" = None

    @property
    def success(self) -> bool:
        return self.status is RunStatus.COMPLETE

"""Persisted configuration for the poster pipeline.

Architectural role:
    Holds the user-facing configuration surface (API keys, provider/model choice,
    style defaults, UX toggles) as a frozen `PluginSettings` snapshot. The
    orchestrator captures one snapshot at run start, so edits made while a run is in
    flight only apply to the next run.

Resolution order (`load_settings`):
    1. Built-in defaults.
    2. `.env` file and process environment (`load_dotenv` does not override values
       already present in the environment).
    3. Optional JSON settings file using the plugin's camelCase keys.

Failure behavior:
    Unknown enum values and malformed numbers fall back to defaults with a logged
    warning. A missing settings file is treated as empty. Malformed JSON raises.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, replace

from dotenv import load_dotenv

from knowledge_poster.core.types import ImageQuality, ImageStyle, Language, Provider
from knowledge_poster.llm.provider_config import DEFAULT_IMAGE_MODEL, get_provider_config


logger = logging.getLogger(__name__)

MAX_AUTO_RETRY_COUNT = 5


def clamp_retry_count(value) -> int:
    """Clamp a retry count to the supported 0-5 range (non-numbers -> 0)."""
    try:
        count = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid auto retry count %r; using 0", value)
        return 0
    return max(0, min(MAX_AUTO_RETRY_COUNT, count))


@dataclass(frozen=True)
class PluginSettings:
    """Immutable configuration snapshot.

    The Google key doubles as the image backend credential and is therefore the
    only key required for a full run.
    """

    google_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    xai_api_key: str = ""

    selected_provider: Provider = Provider.GOOGLE
    prompt_model: str = "gemini-2.5-flash"

    image_model: str = DEFAULT_IMAGE_MODEL
    image_style: ImageStyle = ImageStyle.INFOGRAPHIC
    preferred_language: Language = Language.KO
    image_quality: ImageQuality = ImageQuality.HIGH

    show_preview: bool = True
    show_progress: bool = True
    attachment_folder: str = "999-Attachments"
    auto_retry_count: int = 2

    custom_prompt_prefix: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "auto_retry_count", clamp_retry_count(self.auto_retry_count))

    def api_key_for(self, provider) -> str:
        """Return the configured key for a prompt provider (empty when unset)."""
        keys = {
            Provider.GOOGLE: self.google_api_key,
            Provider.OPENAI: self.openai_api_key,
            Provider.ANTHROPIC: self.anthropic_api_key,
            Provider.XAI: self.xai_api_key,
        }
        try:
            return keys[Provider(provider)]
        except ValueError:
            return ""

    @property
    def image_api_key(self) -> str:
        return self.google_api_key

    def replace(self, **changes) -> "PluginSettings":
        """Return a new snapshot with `changes` applied."""
        return replace(self, **changes)

    def to_json_dict(self) -> dict:
        """Serialize to the camelCase key set used by the settings file."""
        data = {}
        for name, value in asdict(self).items():
            if hasattr(value, "value"):
                value = value.value
            data[_JSON_KEYS[name]] = value
        return data


# snake_case field -> persisted camelCase key
_JSON_KEYS = {
    "google_api_key": "googleApiKey",
    "openai_api_key": "openaiApiKey",
    "anthropic_api_key": "anthropicApiKey",
    "xai_api_key": "xaiApiKey",
    "selected_provider": "selectedProvider",
    "prompt_model": "promptModel",
    "image_model": "imageModel",
    "image_style": "imageStyle",
    "preferred_language": "preferredLanguage",
    "image_quality": "imageQuality",
    "show_preview": "showPreviewBeforeGeneration",
    "show_progress": "showProgressModal",
    "attachment_folder": "attachmentFolder",
    "auto_retry_count": "autoRetryCount",
    "custom_prompt_prefix": "customPromptPrefix",
}

# snake_case field -> environment variable
_ENV_KEYS = {
    "google_api_key": "GOOGLE_API_KEY",
    "openai_api_key": "OPENAI_API_KEY",
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "xai_api_key": "XAI_API_KEY",
    "selected_provider": "POSTER_PROVIDER",
    "prompt_model": "POSTER_PROMPT_MODEL",
    "image_model": "POSTER_IMAGE_MODEL",
    "image_style": "POSTER_STYLE",
    "preferred_language": "POSTER_LANGUAGE",
    "image_quality": "POSTER_QUALITY",
    "show_preview": "POSTER_SHOW_PREVIEW",
    "show_progress": "POSTER_SHOW_PROGRESS",
    "attachment_folder": "POSTER_ATTACHMENT_FOLDER",
    "auto_retry_count": "POSTER_AUTO_RETRY_COUNT",
    "custom_prompt_prefix": "POSTER_CUSTOM_PREFIX",
}

_ENUM_FIELDS = {
    "selected_provider": Provider,
    "image_style": ImageStyle,
    "preferred_language": Language,
    "image_quality": ImageQuality,
}
_BOOL_FIELDS = {"show_preview", "show_progress"}

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def _coerce(name: str, raw, default):
    """Convert a raw env/JSON value for field `name`, falling back to `default`."""
    if name in _ENUM_FIELDS:
        enum_type = _ENUM_FIELDS[name]
        try:
            return enum_type(str(raw).strip().lower())
        except ValueError:
            logger.warning("Unknown %s %r; using %s", name, raw, default.value)
            return default

    if name in _BOOL_FIELDS:
        if isinstance(raw, bool):
            return raw
        text = str(raw).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        logger.warning("Invalid boolean for %s: %r; using %s", name, raw, default)
        return default

    if name == "auto_retry_count":
        return clamp_retry_count(raw)

    return "" if raw is None else str(raw)


def _from_environment(base: PluginSettings) -> dict:
    values = {}
    for name, env_key in _ENV_KEYS.items():
        raw = os.getenv(env_key)
        if raw is None or raw == "":
            continue
        values[name] = _coerce(name, raw, getattr(base, name))
    return values


def _from_json_file(path: str, base: PluginSettings) -> dict:
    if not os.path.exists(path):
        logger.info("Settings file %s not found; using environment/defaults", path)
        return {}

    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"Settings file {path} must contain a JSON object")

    by_json_key = {json_key: name for name, json_key in _JSON_KEYS.items()}
    values = {}
    for key, raw in data.items():
        name = by_json_key.get(key)
        if name is None:
            logger.debug("Ignoring unknown settings key %r", key)
            continue
        # Blank entries mean "unset" so they never mask environment keys.
        if raw is None or raw == "":
            continue
        values[name] = _coerce(name, raw, getattr(base, name))
    return values


def load_settings(path: str | None = None, use_dotenv: bool = True) -> PluginSettings:
    """Build a settings snapshot from defaults, environment, and an optional file.

    Args:
        path: Optional JSON settings file (camelCase keys).
        use_dotenv: Load a `.env` file into the environment first.

    Returns:
        Frozen `PluginSettings`.
    """
    if use_dotenv:
        load_dotenv()

    base = PluginSettings()
    values = _from_environment(base)
    if path:
        values.update(_from_json_file(path, base.replace(**values)))

    # A provider chosen without a model gets that provider's default model.
    if "selected_provider" in values and "prompt_model" not in values:
        values["prompt_model"] = get_provider_config(values["selected_provider"]).default_model

    return base.replace(**values)


def save_settings(settings: PluginSettings, path: str) -> None:
    """Persist `settings` as JSON, creating the parent directory when needed."""
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_json_dict(), f, indent=2, ensure_ascii=False)

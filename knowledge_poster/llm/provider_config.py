"""Provider registry for the LLM layer.

Architectural role:
    Static, read-only catalog of the four supported text-generation providers: display
    name, endpoint, default model, and the ordered list of offered models. Consumed by
    `llm.client` (endpoints), `core.settings` (defaults), and the CLI (validation).

Behavior boundary:
    The registry is descriptive only. Request building and response parsing live in
    the strategy table in `llm.client`.

Determinism:
    Fully deterministic. No network access and no mutation after import; the mapping is
    a `MappingProxyType` over frozen records.

Failure behavior:
    Lookups for unknown providers or models return `None` (or an empty list).
"""

from dataclasses import dataclass
from types import MappingProxyType

from knowledge_poster.core.types import ModelTier, Provider


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    tier: ModelTier
    description: str
    context_window: int | None = None
    supports_vision: bool = False


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    endpoint: str
    default_model: str
    models: tuple[ModelInfo, ...]


PROVIDER_CONFIGS = MappingProxyType({

    Provider.OPENAI: ProviderConfig(
        name="OpenAI",
        endpoint="https://api.openai.com/v1/chat/completions",
        default_model="gpt-5.1",
        models=(
            ModelInfo("gpt-5.1", "GPT-5.1", ModelTier.FLAGSHIP,
                      "Latest flagship with advanced reasoning and coding tools", 400000, True),
            ModelInfo("gpt-5-pro", "GPT-5 Pro", ModelTier.FLAGSHIP,
                      "Highest reasoning level for complex analysis", 400000, True),
            ModelInfo("gpt-5-mini", "GPT-5 Mini", ModelTier.BALANCED,
                      "Cost-optimized reasoning and chat", 400000, True),
            ModelInfo("gpt-5-nano", "GPT-5 Nano", ModelTier.FAST,
                      "High-throughput, simple instruction-following", 400000),
            ModelInfo("gpt-4o", "GPT-4o", ModelTier.BALANCED,
                      "Reliable multimodal model with vision", 128000, True),
            ModelInfo("gpt-4o-mini", "GPT-4o Mini", ModelTier.FAST,
                      "Fast and cost-effective for simpler tasks", 128000, True),
            ModelInfo("o3-mini", "o3 Mini", ModelTier.BALANCED,
                      "Fast reasoning model for STEM tasks", 200000),
        ),
    ),

    Provider.GOOGLE: ProviderConfig(
        name="Google Gemini",
        endpoint="https://generativelanguage.googleapis.com/v1beta/models",
        default_model="gemini-2.5-flash",
        models=(
            ModelInfo("gemini-3-pro-preview", "Gemini 3 Pro", ModelTier.FLAGSHIP,
                      "Most powerful agentic model with rich visuals", 1048576, True),
            ModelInfo("gemini-2.5-pro", "Gemini 2.5 Pro", ModelTier.FLAGSHIP,
                      "Full-featured with thinking and code execution", 1048576, True),
            ModelInfo("gemini-2.5-flash", "Gemini 2.5 Flash", ModelTier.BALANCED,
                      "Best price-performance ratio with thinking", 1048576, True),
            ModelInfo("gemini-2.5-flash-lite", "Gemini 2.5 Flash-Lite", ModelTier.FAST,
                      "Fastest and most cost-effective option", 1048576, True),
            ModelInfo("gemini-2.0-flash", "Gemini 2.0 Flash", ModelTier.FAST,
                      "Stable fast model for production", 1048576, True),
            ModelInfo("gemini-1.5-pro", "Gemini 1.5 Pro", ModelTier.BALANCED,
                      "Ultra long context (2M tokens)", 2097152, True),
        ),
    ),

    Provider.ANTHROPIC: ProviderConfig(
        name="Anthropic Claude",
        endpoint="https://api.anthropic.com/v1/messages",
        default_model="claude-sonnet-4-5-20250929",
        models=(
            ModelInfo("claude-opus-4-5-20251101", "Claude 4.5 Opus", ModelTier.FLAGSHIP,
                      "Most powerful Claude ever, superior reasoning", 200000, True),
            ModelInfo("claude-sonnet-4-5-20250929", "Claude 4.5 Sonnet", ModelTier.FLAGSHIP,
                      "Best balance of power and speed", 200000, True),
            ModelInfo("claude-sonnet-4-20250514", "Claude Sonnet 4", ModelTier.BALANCED,
                      "Excellent for complex tasks", 200000, True),
            ModelInfo("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", ModelTier.BALANCED,
                      "Reliable balance of speed and intelligence", 200000, True),
            ModelInfo("claude-3-opus-20240229", "Claude 3 Opus", ModelTier.BALANCED,
                      "Powerful for complex analysis", 200000, True),
            ModelInfo("claude-3-haiku-20240307", "Claude 3 Haiku", ModelTier.FAST,
                      "Fastest Claude, great for simple tasks", 200000, True),
        ),
    ),

    Provider.XAI: ProviderConfig(
        name="xAI Grok",
        endpoint="https://api.x.ai/v1/chat/completions",
        default_model="grok-4-1-fast",
        models=(
            ModelInfo("grok-4-1-fast", "Grok 4.1 Fast", ModelTier.FLAGSHIP,
                      "Latest multimodal with function calling, 2M context", 2000000),
            ModelInfo("grok-4-0709", "Grok 4", ModelTier.FLAGSHIP,
                      "Powerful reasoning model with structured outputs", 256000),
            ModelInfo("grok-3", "Grok 3", ModelTier.BALANCED,
                      "Capable model with function calling", 131072),
            ModelInfo("grok-3-mini", "Grok 3 Mini", ModelTier.BALANCED,
                      "Cost-effective with reasoning", 131072),
            ModelInfo("grok-code-fast-1", "Grok Code Fast", ModelTier.FAST,
                      "Optimized for coding tasks", 256000),
            ModelInfo("grok-2-vision-1212", "Grok 2 Vision", ModelTier.VISION,
                      "Vision-enabled for image understanding", 32768, True),
        ),
    ),

})


# Image generation backend (fixed). Consumed by `image.client`.
IMAGE_ENDPOINT_TEMPLATE = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "{model}:generateContent"
)
DEFAULT_IMAGE_MODEL = "gemini-3-pro-image-preview"


def resolve_provider(provider) -> Provider | None:
    """Return the `Provider` for an enum or identifier string, or `None`."""
    if isinstance(provider, Provider):
        return provider
    try:
        return Provider(str(provider).strip().lower())
    except ValueError:
        return None


def get_provider_config(provider) -> ProviderConfig | None:
    """Return the registry entry for `provider` (enum or identifier string).

    Edge cases:
        Unknown identifiers return `None`.
    """
    key = resolve_provider(provider)
    if key is None:
        return None
    return PROVIDER_CONFIGS.get(key)


def get_model_info(provider, model_id: str) -> ModelInfo | None:
    """Return the descriptor for `model_id` offered by `provider`, or `None`."""
    config = get_provider_config(provider)
    if config is None:
        return None
    for model in config.models:
        if model.id == model_id:
            return model
    return None


def get_model_ids(provider) -> list[str]:
    """Return model ids offered by `provider` in catalog order (empty if unknown)."""
    config = get_provider_config(provider)
    if config is None:
        return []
    return [model.id for model in config.models]


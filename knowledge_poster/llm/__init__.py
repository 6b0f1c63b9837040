"""LLM access package.

Architectural role:
    Provides the provider registry, the per-provider request/response strategy table,
    and the prompt-generation entrypoint used by the orchestrator to turn note text
    into an image-generation prompt.

Module split:
    - `provider_config`: static provider/model catalog and API key resolution.
    - `client`: provider-specific HTTP payloads and response extraction.
    - `service`: validation, preprocessing, dispatch, and prompt clean-up.
"""

"""Image generation adapter package.

Scope:
    Provides the Gemini image client and the `generate_image` service used by the
    orchestrator's GeneratingImage stage.

Non-goals:
    - No file persistence (see `knowledge_poster.storage`).
    - No retry loop (retries are an orchestrator concern).
"""

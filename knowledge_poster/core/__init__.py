"""Core pipeline package.

Architectural role:
    Hosts the shared data contracts, the failure taxonomy, the HTTP transport helper,
    the settings snapshot, and the generation orchestrator that drives the end-to-end
    poster pipeline.

Composition:
    - `types`: enums and records exchanged between pipeline stages.
    - `errors`: `GenerationFailure` and user-facing remediation suggestions.
    - `transport`: single-attempt JSON POST helper over `httpx`.
    - `settings`: persisted configuration and its immutable run snapshot.
    - `engine`: stage sequencing, retry, cancellation, and progress reporting.
"""

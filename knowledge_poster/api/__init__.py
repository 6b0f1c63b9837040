"""Knowledge poster interface adapters.

Architectural role:
- Defines the external interaction boundary (terminal CLI).
- Performs argument validation and renders progress/outcome text.
- Delegates all pipeline work to `knowledge_poster.core.engine`.
"""

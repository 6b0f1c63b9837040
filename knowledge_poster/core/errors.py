"""Failure taxonomy for the poster generation pipeline.

Architectural role:
    Every stage that cannot produce its expected result raises `GenerationFailure`.
    The orchestrator inspects `retryable` to decide on automatic retries and surfaces
    the failure (plus `suggestions_for`) to the user otherwise.

Retry classification:
    Only `RATE_LIMIT` and `NETWORK_ERROR` are transient. `SAVE_ERROR` always needs
    user intervention (folder permissions, disk space).
"""

from knowledge_poster.core.types import ErrorKind


RETRYABLE_KINDS = frozenset({ErrorKind.RATE_LIMIT, ErrorKind.NETWORK_ERROR})


class GenerationFailure(Exception):
    """Classified, terminal failure of one pipeline stage.

    Attributes:
        kind: Failure classification.
        message: Human-readable summary suitable for display.
        detail: Optional technical detail (for example a raw provider response body).
        retryable: Whether the orchestrator may retry the stage automatically.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        detail: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.detail = detail
        self.retryable = retryable

    def __repr__(self) -> str:
        return (
            f"GenerationFailure(kind={self.kind.value}, message={self.message!r}, "
            f"retryable={self.retryable})"
        )


def failure(kind: ErrorKind, message: str, detail: str | None = None) -> GenerationFailure:
    """Build a failure whose retryable flag is derived from its kind."""
    return GenerationFailure(kind, message, detail=detail, retryable=kind in RETRYABLE_KINDS)


_SUGGESTIONS = {
    ErrorKind.INVALID_API_KEY: (
        "Check the API key in your settings",
        "Make sure the key was entered without extra spaces",
        "Confirm the key is enabled for this service",
    ),
    ErrorKind.RATE_LIMIT: (
        "Wait a moment and try again",
        "Check your API usage quota",
    ),
    ErrorKind.NETWORK_ERROR: (
        "Check your internet connection",
        "Check VPN or proxy settings",
    ),
    ErrorKind.GENERATION_FAILED: (
        "Try a different style",
        "Edit the note content and try again",
    ),
    ErrorKind.CONTENT_FILTERED: (
        "Revise the note content",
        "The note may contain sensitive material",
    ),
    ErrorKind.NO_CONTENT: (
        "Add some content to the note",
    ),
    ErrorKind.SAVE_ERROR: (
        "Check that the attachment folder is writable",
        "Check that the attachment folder path is not an existing file",
    ),
}


def suggestions_for(kind: ErrorKind) -> list[str]:
    """Return the fixed remediation suggestions for a failure kind (may be empty)."""
    return list(_SUGGESTIONS.get(kind, ()))

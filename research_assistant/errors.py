"""research_assistant/errors.py

Failure taxonomy for the answer pipeline.

Every stage failure is raised as a :class:`PipelineError` tagged with an
:class:`ErrorKind`.  The orchestrator catches it at its boundary and turns it
into the uniform ``{"error": ..., "details": ...}`` envelope, so no stack
trace ever reaches the caller.
"""

from __future__ import annotations

# Standard Library
from enum import StrEnum


class ErrorKind(StrEnum):
    """Failure kinds surfaced to callers."""

    INVALID_INPUT = "InvalidInput"
    BACKEND_TIMEOUT = "BackendTimeout"
    BACKEND_UNAVAILABLE = "BackendUnavailable"
    TOOL_UNAVAILABLE = "ToolUnavailable"
    RETRIEVAL_EMPTY = "RetrievalEmpty"
    NOT_JSON = "NotJSON"
    SCHEMA_MISMATCH = "SchemaMismatch"


# HTTP status used by the API layer for each kind.
HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.RETRIEVAL_EMPTY: 404,
    ErrorKind.NOT_JSON: 502,
    ErrorKind.SCHEMA_MISMATCH: 502,
    ErrorKind.BACKEND_UNAVAILABLE: 502,
    ErrorKind.TOOL_UNAVAILABLE: 503,
    ErrorKind.BACKEND_TIMEOUT: 504,
}


class PipelineError(Exception):
    """A terminal stage failure.

    Attributes:
        kind: The taxonomy entry for this failure.
        details: Human-readable explanation, safe to show to the caller.
        raw_output: Raw model text, disclosed only in debug mode.
        repair_output: Repair-attempt text, disclosed only in debug mode.
    """

    def __init__(
        self,
        kind: ErrorKind,
        details: str = "",
        *,
        raw_output: str | None = None,
        repair_output: str | None = None,
    ) -> None:
        super().__init__(f"{kind}: {details}" if details else str(kind))
        self.kind = kind
        self.details = details
        self.raw_output = raw_output
        self.repair_output = repair_output

    @property
    def status_code(self) -> int:
        """HTTP status for this failure kind."""
        return HTTP_STATUS.get(self.kind, 500)

    def to_envelope(self, debug: bool = False) -> dict[str, str]:
        """Render the caller-facing error envelope.

        Args:
            debug: When true, attach the raw and repair model text.

        Returns:
            ``{"error": kind}`` plus ``details`` and, in debug mode, the
            retained model output.
        """
        envelope: dict[str, str] = {"error": str(self.kind)}
        if self.details:
            envelope["details"] = self.details
        if debug:
            if self.raw_output is not None:
                envelope["raw_output"] = self.raw_output
            if self.repair_output is not None:
                envelope["repair_output"] = self.repair_output
        return envelope

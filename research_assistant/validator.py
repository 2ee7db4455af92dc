"""research_assistant/validator.py

Structural validation of the extracted answer against the output contract.
"""

from __future__ import annotations

# Standard Library
import logging
from collections.abc import Iterable, Mapping
from typing import Any

# Third-Party Libraries
from pydantic import ValidationError

# Local Modules
from research_assistant.errors import ErrorKind, PipelineError
from research_assistant.models import AnswerPayload

logger = logging.getLogger(__name__)


def summarise_errors(errors: Iterable[Mapping[str, Any]]) -> str:
    """Render pydantic error dicts as ``loc: msg`` pairs joined by ``; ``."""
    parts: list[str] = []
    for error in errors:
        location = ".".join(str(item) for item in error.get("loc", ())) or "<root>"
        parts.append(f"{location}: {error.get('msg', 'invalid')}")
    return "; ".join(parts)


def validate_answer(candidate: Any) -> AnswerPayload:
    """Check a candidate object against the answer schema.

    ``summary`` must be a string; ``key_points`` and ``source_links`` must be
    lists of strings (empty lists are fine).  All three are required.  Content
    is not checked for truthfulness.

    Args:
        candidate: The parsed JSON object from the extractor.

    Returns:
        The validated :class:`AnswerPayload`.

    Raises:
        PipelineError: ``SchemaMismatch`` when the shape is wrong.
    """
    if not isinstance(candidate, dict):
        raise PipelineError(
            ErrorKind.SCHEMA_MISMATCH,
            f"Expected a JSON object, got {type(candidate).__name__}",
        )
    try:
        return AnswerPayload.model_validate(candidate)
    except ValidationError as exc:
        details = summarise_errors(exc.errors())
        logger.warning("[validator] schema mismatch: %s", details)
        raise PipelineError(ErrorKind.SCHEMA_MISMATCH, details) from exc

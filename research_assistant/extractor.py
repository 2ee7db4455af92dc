"""research_assistant/extractor.py

Turns raw model text into a candidate JSON object.

Stages, terminal on the first success:

  1. strip code-fence markers (and the reasoning block, when allowed)
  2. balanced-brace scan from the first ``{``
  3. greedy ``{...}`` regex, only when no balanced span exists
  4. ``json.loads`` the candidate; anything that is not an object is discarded
  5. one repair call through the model invoker, then 1-4 again on its output

Nothing in here raises on malformed text, and a truncated or partially
matched object is never accepted.
"""

from __future__ import annotations

# Standard Library
import dataclasses
import json
import logging
import re
from typing import TYPE_CHECKING, Any

# Local Modules
from research_assistant.models import SamplingParams
from research_assistant.prompts import REASONING_CLOSE, REASONING_OPEN, compose_repair

if TYPE_CHECKING:
    from research_assistant.invoker import ModelInvoker

logger = logging.getLogger(__name__)

_FENCE_PATTERN: re.Pattern[str] = re.compile(r"```[A-Za-z0-9_-]*")
_REASONING_PATTERN: re.Pattern[str] = re.compile(
    re.escape(REASONING_OPEN) + r".*?" + re.escape(REASONING_CLOSE),
    re.IGNORECASE | re.DOTALL,
)
_ORPHAN_CLOSE_PATTERN: re.Pattern[str] = re.compile(
    r".*" + re.escape(REASONING_CLOSE), re.IGNORECASE | re.DOTALL
)
_GREEDY_OBJECT_PATTERN: re.Pattern[str] = re.compile(r"\{.*\}", re.DOTALL)


# ---------------------------------------------------------------------------
# Pure extraction steps
# ---------------------------------------------------------------------------


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers, keeping their contents."""
    return _FENCE_PATTERN.sub("", text)


def strip_reasoning(text: str) -> str:
    """Excise ``<reasoning>...</reasoning>`` blocks from model output.

    If the model dropped the opening tag but kept the closing one, everything
    up to the last closing tag is treated as reasoning.
    """
    text = _REASONING_PATTERN.sub("", text)
    match = _ORPHAN_CLOSE_PATTERN.match(text)
    if match:
        text = text[match.end():]
    return text


def balanced_span(text: str) -> str | None:
    """Return the first brace-balanced object span, or None.

    Scanning starts at the first ``{`` and stops the first time nesting depth
    returns to zero, so prose appended after a valid object is ignored.
    Braces inside JSON string literals do not count.

    Args:
        text: Text that may contain a JSON object.

    Returns:
        The candidate span, or None when the object never closes.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start:idx + 1]
    return None


def greedy_span(text: str) -> str | None:
    """Return the first-to-last brace span, or None."""
    match = _GREEDY_OBJECT_PATTERN.search(text)
    return match.group(0) if match else None


def parse_object(span: str) -> dict[str, Any] | None:
    """Deserialize a candidate span; only JSON objects are accepted."""
    try:
        parsed = json.loads(span)
    except (json.JSONDecodeError, RecursionError) as exc:
        logger.debug("[extractor] candidate rejected: %s", exc)
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def find_json_object(text: str, allow_reasoning_preamble: bool = False) -> dict[str, Any] | None:
    """Run stages 1-4 on a single piece of model output.

    Args:
        text: Raw model text.
        allow_reasoning_preamble: Excise a reasoning block before scanning.

    Returns:
        The parsed object, or None when no valid object could be found.
    """
    cleaned = strip_code_fences(text or "")
    if allow_reasoning_preamble:
        cleaned = strip_reasoning(cleaned)

    span = balanced_span(cleaned)
    if span is None:
        span = greedy_span(cleaned)
        if span is not None:
            logger.debug("[extractor] no balanced span, using greedy fallback")
    if span is None:
        return None
    return parse_object(span)


# ---------------------------------------------------------------------------
# Extractor with repair pass
# ---------------------------------------------------------------------------


@dataclasses.dataclass(slots=True)
class ExtractionResult:
    """Outcome of extraction, including diagnostics for debug disclosure.

    Attributes:
        candidate: The parsed JSON object, or None on failure.
        raw_output: The first-pass model text.
        repair_output: Text returned by the repair call, if one was made.
        repair_error: Why the repair call itself failed, if it did.
    """

    candidate: dict[str, Any] | None
    raw_output: str
    repair_output: str | None = None
    repair_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.candidate is not None

    @property
    def repaired(self) -> bool:
        return self.repair_output is not None and self.candidate is not None


class ResponseExtractor:
    """Extracts a JSON object from model output, repairing once if needed."""

    def __init__(self, invoker: ModelInvoker | None = None) -> None:
        """Initialize the extractor.

        Args:
            invoker: Used for the single repair call.  Without one, extraction
                stops after the first pass.
        """
        self.invoker = invoker

    def extract(
        self,
        raw_text: str,
        allow_reasoning_preamble: bool = False,
        sampling: SamplingParams | None = None,
    ) -> ExtractionResult:
        """Extract a candidate object from ``raw_text``.

        Args:
            raw_text: Model output for the answer call.
            allow_reasoning_preamble: The output may open with a reasoning block.
            sampling: Sampling parameters for the repair call.

        Returns:
            An :class:`ExtractionResult`.  Never raises.
        """
        candidate = find_json_object(raw_text, allow_reasoning_preamble)
        if candidate is not None:
            return ExtractionResult(candidate=candidate, raw_output=raw_text)

        if self.invoker is None:
            logger.warning("[extractor] first pass failed and no repair invoker is set")
            return ExtractionResult(candidate=None, raw_output=raw_text)

        logger.warning(
            "[extractor] first pass found no JSON object (%d chars) - attempting repair",
            len(raw_text or ""),
        )
        repair = self.invoker.invoke(
            compose_repair(raw_text).text,
            sampling or SamplingParams(),
            structured=True,
        )
        if not repair.ok:
            logger.error("[extractor] repair call failed: %s", repair.error_message)
            return ExtractionResult(
                candidate=None,
                raw_output=raw_text,
                repair_output=repair.text,
                repair_error=repair.error_message,
            )

        candidate = find_json_object(repair.text, allow_reasoning_preamble)
        if candidate is None:
            logger.error("[extractor] repair output is still not a JSON object")
        else:
            logger.info("[extractor] repair pass recovered a JSON object")
        return ExtractionResult(
            candidate=candidate,
            raw_output=raw_text,
            repair_output=repair.text,
        )

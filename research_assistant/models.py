"""research_assistant/models.py

Request-scoped data model for the answer pipeline.

Everything here is created and discarded within a single query.  Internal
records are slotted dataclasses; the caller-facing :class:`AnswerPayload` is a
strict pydantic model so it doubles as the output schema.
"""

from __future__ import annotations

# Standard Library
import dataclasses
from enum import StrEnum

# Third-Party Libraries
from pydantic import BaseModel, ConfigDict


class QueryMode(StrEnum):
    """Prompt mode requested by the caller."""

    AUTO = "auto"
    ZERO_SHOT = "zero-shot"
    ONE_SHOT = "one-shot"
    FEW_SHOT = "few-shot"


class PromptStrategy(StrEnum):
    """Prompt strategy chosen once per query."""

    ZERO_SHOT = "zero-shot"
    ONE_SHOT = "one-shot"
    FEW_SHOT = "few-shot"
    RETRIEVAL_AUGMENTED = "retrieval-augmented"
    TOOL_AUGMENTED = "tool-augmented"


@dataclasses.dataclass(frozen=True, slots=True)
class SamplingParams:
    """Decoding parameters passed through to the backend unmodified."""

    temperature: float = 0.7
    top_p: float = 0.9
    top_k: int = 40


@dataclasses.dataclass(frozen=True, slots=True)
class QueryFlags:
    """Optional augmentations and disclosure switches for one query."""

    use_rag: bool = False
    use_tool: bool = False
    use_reasoning: bool = False
    debug: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class Query:
    """A single immutable user question.

    Attributes:
        text: The natural-language question exactly as received.
        mode: Explicit prompt mode, or ``auto`` for the heuristic.
        sampling: Decoding parameters for the answer call.
        flags: RAG / tool / reasoning / debug switches.
    """

    text: str
    mode: QueryMode = QueryMode.AUTO
    sampling: SamplingParams = dataclasses.field(default_factory=SamplingParams)
    flags: QueryFlags = dataclasses.field(default_factory=QueryFlags)


@dataclasses.dataclass(frozen=True, slots=True)
class ComposedPrompt:
    """Final instruction text sent to the model.

    Attributes:
        text: The full prompt string.
        expects_structured_output: False when free-text reasoning precedes the
            JSON, in which case the backend JSON hint must not be requested.
    """

    text: str
    expects_structured_output: bool = True


@dataclasses.dataclass(frozen=True, slots=True)
class ToolDecision:
    """Outcome of the tool-routing call.

    Attributes:
        invoke: Whether an external tool should run before answering.
        tool_name: Name of the requested tool when ``invoke`` is true.
        query: Search query for the tool when ``invoke`` is true.
        raw: The raw model text the decision was parsed from.
    """

    invoke: bool
    tool_name: str | None = None
    query: str | None = None
    raw: str = ""


@dataclasses.dataclass(frozen=True, slots=True)
class RetrievedPassage:
    """One ranked passage returned by the retrieval collaborator."""

    text: str
    source_id: str
    page_number: int | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class SearchHit:
    url: str
    title: str


@dataclasses.dataclass(frozen=True, slots=True)
class SearchResponse:
    """Normalised web-search result.

    Attributes:
        consolidated_answer: Provider-synthesised answer, when available.
        results: Supporting sources in provider order.
    """

    consolidated_answer: str | None = None
    results: tuple[SearchHit, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.consolidated_answer and not self.results


@dataclasses.dataclass(frozen=True, slots=True)
class ModelOutput:
    """Raw generation result.  Never raised; failures live in the fields.

    Attributes:
        text: Model text, or a synthetic ``{"error": ...}`` payload on failure.
        timed_out: True when the wall-clock budget expired.
        error_message: Transport or backend failure description.
    """

    text: str
    timed_out: bool = False
    error_message: str | None = None

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.error_message is None


class AnswerPayload(BaseModel):
    """The structured answer returned to callers.

    Validated in strict mode: no coercion of numbers to strings, and all three
    fields are required.  Unknown keys emitted by the model are dropped.
    """

    model_config = ConfigDict(strict=True, extra="ignore")

    summary: str
    key_points: list[str]
    source_links: list[str]

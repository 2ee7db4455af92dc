"""research_assistant/pipeline.py

Answer pipeline orchestrator.

Sequence per query:
  validate input
  -> branch: tool flow | retrieval (RAG) | heuristic strategy
  -> compose prompt -> optional reasoning wrap
  -> model call -> extract / repair -> schema validation

Call budget:
  - heuristic and RAG paths make exactly one model call
  - the tool path makes two (decision + answer) plus one web search
  - a failed first-pass extraction adds one repair call
  - reasoning adds no calls

Every stage failure surfaces as a :class:`PipelineError`; :meth:`AnswerPipeline.answer`
turns those, and anything unexpected, into the caller-facing envelope.
"""

from __future__ import annotations

# Standard Library
import dataclasses
import logging
from enum import StrEnum
from typing import Any

# Local Modules
from research_assistant.config import AssistantSettings
from research_assistant.errors import ErrorKind, PipelineError
from research_assistant.extractor import ResponseExtractor
from research_assistant.invoker import ModelInvoker
from research_assistant.models import (
    AnswerPayload,
    ComposedPrompt,
    ModelOutput,
    PromptStrategy,
    Query,
    QueryFlags,
    QueryMode,
    SamplingParams,
    SearchResponse,
)
from research_assistant.prompts import compose, wrap_with_reasoning
from research_assistant.retrieval import ChromaRetriever, Retriever
from research_assistant.search import SearchClient, build_search_client
from research_assistant.strategy import select_strategy
from research_assistant.tool_router import ToolRouter
from research_assistant.validator import validate_answer

logger = logging.getLogger(__name__)


class ToolFlowState(StrEnum):
    """States of the two-phase tool-augmented flow."""

    AWAITING_TOOL_DECISION = "awaiting_tool_decision"
    TOOL_INVOKED = "tool_invoked"
    DIRECT_ANSWER = "direct_answer"
    AWAITING_FINAL_ANSWER = "awaiting_final_answer"
    DONE = "done"


@dataclasses.dataclass(slots=True)
class PipelineTrace:
    """Per-query bookkeeping, surfaced to callers only in debug mode."""

    strategy: PromptStrategy | None = None
    model_calls: int = 0
    repaired: bool = False
    tool_states: list[ToolFlowState] = dataclasses.field(default_factory=list)
    search_query: str | None = None
    raw_output: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "strategy": str(self.strategy) if self.strategy else None,
            "model_calls": self.model_calls,
            "repaired": self.repaired,
        }
        if self.tool_states:
            data["tool_states"] = [str(state) for state in self.tool_states]
        if self.search_query is not None:
            data["search_query"] = self.search_query
        if self.raw_output is not None:
            data["raw_output"] = self.raw_output
        return data


def build_query(
    text: str | None,
    *,
    mode: QueryMode | str | None = QueryMode.AUTO,
    temperature: float | None = None,
    top_p: float | None = None,
    top_k: int | None = None,
    use_rag: bool = False,
    use_tool: bool = False,
    use_reasoning: bool = False,
    debug: bool = False,
    defaults: SamplingParams | None = None,
) -> Query:
    """Assemble an immutable :class:`Query` from loose caller inputs.

    A missing ``text`` becomes the empty prompt and a missing ``mode`` means
    ``auto``.  Sampling values left as None fall back to ``defaults``.

    Raises:
        PipelineError: ``InvalidInput`` for an unknown mode.
    """
    if mode is None:
        mode = QueryMode.AUTO
    try:
        query_mode = QueryMode(mode)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in QueryMode)
        raise PipelineError(
            ErrorKind.INVALID_INPUT, f"Unknown mode {mode!r}; expected one of: {allowed}"
        ) from exc

    base = defaults or SamplingParams()
    sampling = SamplingParams(
        temperature=base.temperature if temperature is None else temperature,
        top_p=base.top_p if top_p is None else top_p,
        top_k=base.top_k if top_k is None else top_k,
    )
    flags = QueryFlags(
        use_rag=use_rag,
        use_tool=use_tool,
        use_reasoning=use_reasoning,
        debug=debug,
    )
    return Query(text=text or "", mode=query_mode, sampling=sampling, flags=flags)


class AnswerPipeline:
    """Sequences the stages for one query at a time.

    Holds only collaborator handles; no per-query state survives a call, so a
    single instance can serve concurrent requests from a thread pool.
    """

    def __init__(
        self,
        invoker: ModelInvoker,
        retriever: Retriever | None = None,
        search: SearchClient | None = None,
        rag_top_k: int = 4,
        max_search_results: int = 5,
    ) -> None:
        """Initialize the pipeline.

        Args:
            invoker: Model invoker used for every generation call.
            retriever: Document index for retrieval-augmented queries.
            search: Web search backend for tool-augmented queries.
            rag_top_k: Passages retrieved per RAG query.
            max_search_results: Sources requested per web search.
        """
        self.invoker = invoker
        self.retriever = retriever
        self.search = search
        self.rag_top_k = rag_top_k
        self.max_search_results = max_search_results
        self.router = ToolRouter(invoker)
        self.extractor = ResponseExtractor(invoker)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, query: Query) -> AnswerPayload:
        """Answer ``query`` or raise the stage failure.

        Raises:
            PipelineError: On any terminal stage failure.
        """
        payload, _ = self._execute(query)
        return payload

    def respond(self, query: Query) -> tuple[int, dict[str, Any]]:
        """Answer ``query`` as ``(http_status, envelope)``.  Never raises."""
        debug = query.flags.debug
        try:
            payload, trace = self._execute(query)
        except PipelineError as exc:
            logger.warning("[pipeline] %s: %s", exc.kind, exc.details)
            return exc.status_code, exc.to_envelope(debug)
        except Exception as exc:
            logger.error("[pipeline] unexpected failure: %s", exc, exc_info=True)
            error = PipelineError(ErrorKind.BACKEND_UNAVAILABLE, "Unexpected pipeline failure")
            return error.status_code, error.to_envelope(debug)

        envelope: dict[str, Any] = {"response": payload.model_dump()}
        if debug:
            envelope["debug"] = trace.as_dict()
        return 200, envelope

    def answer(self, query: Query) -> dict[str, Any]:
        """Answer ``query`` as the caller-facing envelope.

        Returns:
            ``{"response": {...}}`` on success, ``{"error": kind, ...}``
            otherwise.
        """
        _, envelope = self.respond(query)
        return envelope

    def close(self) -> None:
        """Release collaborators that hold network or storage handles."""
        for collaborator in (self.search, self.retriever):
            close = getattr(collaborator, "close", None)
            if callable(close):
                close()

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    def _execute(self, query: Query) -> tuple[AnswerPayload, PipelineTrace]:
        if not query.text or not query.text.strip():
            raise PipelineError(ErrorKind.INVALID_INPUT, "Prompt must not be empty")

        trace = PipelineTrace()
        flags = query.flags
        logger.info(
            "[pipeline] chars=%d mode=%s rag=%s tool=%s reasoning=%s",
            len(query.text),
            query.mode,
            flags.use_rag,
            flags.use_tool,
            flags.use_reasoning,
        )

        if flags.use_tool:
            trace.strategy = PromptStrategy.TOOL_AUGMENTED
            payload = self._run_tool_flow(query, trace)
        elif flags.use_rag:
            trace.strategy = PromptStrategy.RETRIEVAL_AUGMENTED
            payload = self._answer(query, self._compose_retrieval(query), trace)
        else:
            trace.strategy = select_strategy(query.text, query.mode)
            payload = self._answer(query, compose(trace.strategy, query.text), trace)

        logger.info(
            "[pipeline] done strategy=%s calls=%d repaired=%s",
            trace.strategy,
            trace.model_calls,
            trace.repaired,
        )
        return payload, trace

    def _compose_retrieval(self, query: Query) -> ComposedPrompt:
        if self.retriever is None:
            raise PipelineError(ErrorKind.RETRIEVAL_EMPTY, "No document index is configured")

        embedding = self.retriever.embed(query.text)
        if not embedding:
            raise PipelineError(ErrorKind.RETRIEVAL_EMPTY, "Query embedding is empty")

        passages = self.retriever.query(embedding, self.rag_top_k)
        if not passages:
            raise PipelineError(ErrorKind.RETRIEVAL_EMPTY, "No passages matched the query")
        logger.info("[pipeline] retrieved %d passages", len(passages))
        return compose(PromptStrategy.RETRIEVAL_AUGMENTED, query.text, passages)

    def _run_tool_flow(self, query: Query, trace: PipelineTrace) -> AnswerPayload:
        state = ToolFlowState.AWAITING_TOOL_DECISION
        trace.tool_states.append(state)

        decision = self.router.decide(query.text)
        trace.model_calls += 1
        state = ToolFlowState.TOOL_INVOKED if decision.invoke else ToolFlowState.DIRECT_ANSWER
        trace.tool_states.append(state)

        if state is ToolFlowState.TOOL_INVOKED:
            search_query = decision.query or query.text
            trace.search_query = search_query
            search = self._web_search(search_query)
            prompt = compose(PromptStrategy.TOOL_AUGMENTED, query.text, search)
        else:
            prompt = compose(select_strategy(query.text, query.mode), query.text)

        state = ToolFlowState.AWAITING_FINAL_ANSWER
        trace.tool_states.append(state)
        payload = self._answer(query, prompt, trace)

        trace.tool_states.append(ToolFlowState.DONE)
        return payload

    def _web_search(self, search_query: str) -> SearchResponse:
        if self.search is None:
            raise PipelineError(ErrorKind.TOOL_UNAVAILABLE, "No web search backend is configured")
        try:
            response = self.search.search(search_query, max_results=self.max_search_results)
        except PipelineError:
            raise
        except Exception as exc:
            logger.error("[pipeline] web search failed: %s", exc, exc_info=True)
            raise PipelineError(ErrorKind.TOOL_UNAVAILABLE, f"Web search failed: {exc}") from exc

        if response.is_empty:
            raise PipelineError(
                ErrorKind.TOOL_UNAVAILABLE, "Web search returned no answer and no sources"
            )
        return response

    def _answer(self, query: Query, prompt: ComposedPrompt, trace: PipelineTrace) -> AnswerPayload:
        """Run the answer call, then extraction and validation."""
        if query.flags.use_reasoning:
            prompt = wrap_with_reasoning(prompt)

        output = self.invoker.invoke(
            prompt.text,
            query.sampling,
            structured=prompt.expects_structured_output,
        )
        trace.model_calls += 1
        trace.raw_output = output.text
        _raise_for_output(output)

        result = self.extractor.extract(
            output.text,
            allow_reasoning_preamble=not prompt.expects_structured_output,
            sampling=query.sampling,
        )
        if result.repair_output is not None:
            trace.model_calls += 1
        trace.repaired = result.repaired

        if result.candidate is None:
            details = "Model output did not contain a JSON object"
            if result.repair_error:
                details = f"{details}; repair call failed: {result.repair_error}"
            raise PipelineError(
                ErrorKind.NOT_JSON,
                details,
                raw_output=result.raw_output,
                repair_output=result.repair_output,
            )

        try:
            return validate_answer(result.candidate)
        except PipelineError as exc:
            exc.raw_output = result.raw_output
            exc.repair_output = result.repair_output
            raise


def _raise_for_output(output: ModelOutput) -> None:
    if output.timed_out:
        raise PipelineError(
            ErrorKind.BACKEND_TIMEOUT,
            output.error_message or "Model call timed out",
            raw_output=output.text,
        )
    if output.error_message is not None:
        raise PipelineError(
            ErrorKind.BACKEND_UNAVAILABLE,
            output.error_message,
            raw_output=output.text,
        )


def build_pipeline(settings: AssistantSettings | None = None) -> AnswerPipeline:
    """Construct the pipeline and its collaborators from settings.

    A document index that cannot be opened disables RAG (such queries then
    fail with ``RetrievalEmpty``) instead of preventing startup.
    """
    settings = settings or AssistantSettings()
    invoker = ModelInvoker(
        model=settings.ollama_model,
        ollama_host=settings.ollama_host,
        timeout_s=settings.request_timeout_s,
    )

    retriever: Retriever | None
    try:
        retriever = ChromaRetriever.from_settings(settings)
    except Exception as exc:
        logger.warning("Document index unavailable, RAG disabled: %s", exc)
        retriever = None

    return AnswerPipeline(
        invoker=invoker,
        retriever=retriever,
        search=build_search_client(settings),
        rag_top_k=settings.rag_top_k,
        max_search_results=settings.max_search_results,
    )

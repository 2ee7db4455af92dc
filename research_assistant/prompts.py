"""research_assistant/prompts.py

Prompt composition for every answering strategy.

All builders are pure string construction.  Each prompt ends with a
``Q: <question>`` / ``A:`` pair; the invoker sends ``"Q:"`` as a stop
sequence so the model cannot run on into invented follow-up questions.
"""

from __future__ import annotations

# Standard Library
import json
from collections.abc import Sequence
from datetime import date
from typing import Any

# Local Modules
from research_assistant.models import (
    ComposedPrompt,
    PromptStrategy,
    RetrievedPassage,
    SearchResponse,
)

# ---------------------------------------------------------------------------
# Shared fragments
# ---------------------------------------------------------------------------

OUTPUT_SCHEMA: str = (
    "{\n"
    '  "summary": "<short direct answer>",\n'
    '  "key_points": ["<supporting fact>", "<supporting fact>"],\n'
    '  "source_links": ["<url or source reference>"]\n'
    "}"
)

_NO_MARKDOWN: str = (
    "Return ONLY the JSON object. Do not use markdown, code fences, or any "
    "explanation before or after it."
)

_SYSTEM_INSTRUCTION: str = (
    "You are a research assistant. Answer the question as exactly one JSON "
    "object in this format:\n"
    f"{OUTPUT_SCHEMA}\n\n"
    f"{_NO_MARKDOWN}"
)

REASONING_OPEN: str = "<reasoning>"
REASONING_CLOSE: str = "</reasoning>"

# ---------------------------------------------------------------------------
# Worked examples (question, fully-formed answer)
# ---------------------------------------------------------------------------

_EXAMPLES: tuple[tuple[str, dict[str, Any]], ...] = (
    (
        "Compare solar and wind power growth in Germany between 2015 and 2023.",
        {
            "summary": (
                "Both grew substantially, but solar capacity expanded faster in "
                "relative terms while wind remained the larger source of electricity."
            ),
            "key_points": [
                "Installed solar capacity roughly doubled over the period",
                "Onshore and offshore wind supplied the largest renewable share",
                "Both were driven by feed-in tariffs and later auctions",
            ],
            "source_links": ["https://example.com/energy-germany"],
        },
    ),
    (
        "What are the main causes of coral reef bleaching?",
        {
            "summary": (
                "Bleaching is mainly caused by sustained ocean warming, with "
                "pollution and acidification as contributing stressors."
            ),
            "key_points": [
                "Heat stress makes corals expel their symbiotic algae",
                "Runoff and pollution weaken reef resilience",
                "Ocean acidification slows skeleton growth and recovery",
            ],
            "source_links": ["https://example.com/coral-bleaching"],
        },
    ),
)

# Number of worked examples embedded per strategy.
_EXAMPLE_COUNT: dict[PromptStrategy, int] = {
    PromptStrategy.ZERO_SHOT: 0,
    PromptStrategy.ONE_SHOT: 1,
    PromptStrategy.FEW_SHOT: 2,
}


def _question_block(question: str) -> str:
    return f"Q: {question}\nA:"


def _format_example(question: str, answer: dict[str, Any]) -> str:
    return f"Q: {question}\nA: {json.dumps(answer, indent=2, ensure_ascii=False)}"


def _examples_block(count: int) -> str:
    if count == 1:
        question, answer = _EXAMPLES[0]
        return "Example:\n" + _format_example(question, answer)
    return "\n\n".join(
        f"Example {idx}:\n" + _format_example(question, answer)
        for idx, (question, answer) in enumerate(_EXAMPLES[:count], start=1)
    )


# ---------------------------------------------------------------------------
# Context serialisers
# ---------------------------------------------------------------------------


def format_passages(passages: Sequence[RetrievedPassage]) -> str:
    """Serialise retrieved passages as an ordered, numbered list.

    Order is preserved exactly as ranked by the retrieval collaborator so the
    same retrieval always yields the same prompt.

    Args:
        passages: Passages in relevance order.

    Returns:
        One ``[n] (source: <id>, page <p>) <text>`` entry per line.
    """
    lines: list[str] = []
    for idx, passage in enumerate(passages, start=1):
        if passage.page_number is not None:
            tag = f"(source: {passage.source_id}, page {passage.page_number})"
        else:
            tag = f"(source: {passage.source_id})"
        text = " ".join(passage.text.split())
        lines.append(f"[{idx}] {tag} {text}")
    return "\n".join(lines)


def format_search_context(response: SearchResponse) -> str:
    """Serialise a web-search response for the tool-answer prompt.

    The consolidated answer (if any) comes first on its own line, followed by
    one ``{"url": ..., "title": ...}`` object per supporting source.

    Args:
        response: The normalised search response.

    Returns:
        The context block, one item per line.
    """
    lines: list[str] = []
    if response.consolidated_answer:
        lines.append(f"Answer: {response.consolidated_answer.strip()}")
    for hit in response.results:
        lines.append(json.dumps({"url": hit.url, "title": hit.title}, ensure_ascii=False))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Strategy builders
# ---------------------------------------------------------------------------


def compose_examples(strategy: PromptStrategy, question: str) -> ComposedPrompt:
    """Build a zero-, one- or few-shot prompt."""
    count = _EXAMPLE_COUNT[strategy]
    parts = [_SYSTEM_INSTRUCTION]
    if count:
        parts.append(_examples_block(count))
    parts.append(_question_block(question))
    return ComposedPrompt(text="\n\n".join(parts))


def compose_retrieval(question: str, passages: Sequence[RetrievedPassage]) -> ComposedPrompt:
    """Build a prompt grounded only in the supplied document passages."""
    instruction = (
        "You are a research assistant answering from a private document "
        "collection. Use ONLY the numbered context passages below; do not use "
        "outside knowledge.\n"
        "Build source_links from the source and page of every passage you "
        'relied on, written as "<source> (page <n>)".\n'
        "If the answer is not present in the context, say explicitly in the "
        "summary that the provided documents do not contain it, and leave "
        "key_points and source_links empty.\n\n"
        "Answer as exactly one JSON object in this format:\n"
        f"{OUTPUT_SCHEMA}\n\n"
        f"{_NO_MARKDOWN}"
    )
    context = f"Context:\n{format_passages(passages)}"
    return ComposedPrompt(text="\n\n".join([instruction, context, _question_block(question)]))


def compose_tool_decision(question: str, today: date | None = None) -> ComposedPrompt:
    """Build the first-phase prompt that decides whether to search the web.

    Args:
        question: The user question.
        today: Date injected so "latest" or "this year" can be resolved.
            Defaults to the current local date.

    Returns:
        The decision prompt.
    """
    today = today or date.today()
    instruction = (
        "You are the tool-routing step of a research assistant. "
        f"Today's date is {today.isoformat()}. Use it to resolve relative time "
        'references such as "latest", "current", "recent" or "this year".\n\n'
        "If answering the question needs current, live or recent information, "
        "request a web search by responding with exactly:\n"
        '{"tool": "web_search", "query": "<concise search query>"}\n\n'
        "Otherwise answer directly with exactly one JSON object in this format:\n"
        f"{OUTPUT_SCHEMA}\n\n"
        f"{_NO_MARKDOWN}"
    )
    return ComposedPrompt(text="\n\n".join([instruction, _question_block(question)]))


def compose_tool_answer(question: str, search: SearchResponse) -> ComposedPrompt:
    """Build the second-phase prompt that answers from web-search output."""
    instruction = (
        "You are a research assistant. A web search was run for the question "
        "below. Answer strictly from the search answer and sources listed; do "
        "not add facts that are not supported by them. Take source_links only "
        "from the listed source URLs.\n\n"
        "Answer as exactly one JSON object in this format:\n"
        f"{OUTPUT_SCHEMA}\n\n"
        f"{_NO_MARKDOWN}"
    )
    context = f"Search results:\n{format_search_context(search)}"
    return ComposedPrompt(text="\n\n".join([instruction, context, _question_block(question)]))


def compose(
    strategy: PromptStrategy,
    question: str,
    context: Sequence[RetrievedPassage] | SearchResponse | None = None,
) -> ComposedPrompt:
    """Compose the prompt for a strategy.

    For ``tool-augmented`` the result depends on the phase: without context it
    is the decision prompt, with a :class:`SearchResponse` it is the answer
    prompt.

    Args:
        strategy: The selected prompt strategy.
        question: The user question.
        context: Retrieved passages (RAG) or a search response (tool answer).

    Returns:
        The composed prompt.
    """
    if strategy is PromptStrategy.RETRIEVAL_AUGMENTED:
        passages = context if isinstance(context, Sequence) else ()
        return compose_retrieval(question, passages)
    if strategy is PromptStrategy.TOOL_AUGMENTED:
        if isinstance(context, SearchResponse):
            return compose_tool_answer(question, context)
        return compose_tool_decision(question)
    return compose_examples(strategy, question)


def wrap_with_reasoning(prompt: ComposedPrompt) -> ComposedPrompt:
    """Ask for step-by-step reasoning before the final JSON object.

    The output will contain prose ahead of the JSON, so the wrapped prompt no
    longer expects structured output.

    Args:
        prompt: An already composed prompt of any strategy.

    Returns:
        The wrapped prompt with ``expects_structured_output=False``.
    """
    instruction = (
        "Before answering, think through the problem step by step inside "
        f"{REASONING_OPEN} and {REASONING_CLOSE} tags. After the closing "
        f"{REASONING_CLOSE} tag, output the final answer as one standalone "
        "JSON object in the required format, with nothing after it."
    )
    return ComposedPrompt(
        text=f"{instruction}\n\n{prompt.text}",
        expects_structured_output=False,
    )


def compose_repair(raw_output: str) -> ComposedPrompt:
    """Build the corrective prompt used when the first answer was not JSON."""
    text = (
        "The text between <output> tags was supposed to contain a JSON object "
        "answering a research question, but it could not be parsed.\n"
        "Extract the answer it contains and return it as exactly one valid "
        "JSON object in this format:\n"
        f"{OUTPUT_SCHEMA}\n\n"
        f"{_NO_MARKDOWN}\n\n"
        f"<output>\n{raw_output}\n</output>"
    )
    return ComposedPrompt(text=text)

"""tests/test_prompts.py

Unit tests for prompt composition (research_assistant/prompts.py).
"""

from __future__ import annotations

import json
from datetime import date

import pytest

from research_assistant.models import (
    PromptStrategy,
    RetrievedPassage,
    SearchHit,
    SearchResponse,
)
from research_assistant.prompts import (
    OUTPUT_SCHEMA,
    REASONING_CLOSE,
    REASONING_OPEN,
    compose,
    compose_repair,
    compose_tool_decision,
    format_passages,
    format_search_context,
    wrap_with_reasoning,
)

QUESTION = "What is the capital of France?"


class TestExampleStrategies:
    """Test suite for zero / one / few-shot prompts."""

    @pytest.mark.parametrize(
        ("strategy", "question_blocks"),
        [
            (PromptStrategy.ZERO_SHOT, 1),
            (PromptStrategy.ONE_SHOT, 2),
            (PromptStrategy.FEW_SHOT, 3),
        ],
    )
    def test_worked_example_count(self, strategy: PromptStrategy, question_blocks: int) -> None:
        """Test each strategy embeds the right number of Q/A pairs."""
        prompt = compose(strategy, QUESTION)
        assert prompt.text.count("Q: ") == question_blocks

    @pytest.mark.parametrize(
        "strategy",
        [PromptStrategy.ZERO_SHOT, PromptStrategy.ONE_SHOT, PromptStrategy.FEW_SHOT],
    )
    def test_prompt_ends_with_question_block(self, strategy: PromptStrategy) -> None:
        """Test the question is the final Q/A pair so the stop sequence applies."""
        prompt = compose(strategy, QUESTION)
        assert prompt.text.endswith(f"Q: {QUESTION}\nA:")

    def test_schema_and_no_markdown_directive_present(self) -> None:
        """Test the system instruction carries the schema and format rules."""
        prompt = compose(PromptStrategy.ZERO_SHOT, QUESTION)
        assert OUTPUT_SCHEMA in prompt.text
        assert "Do not use markdown" in prompt.text
        assert prompt.expects_structured_output is True

    def test_example_answers_are_valid_json(self) -> None:
        """Test the worked example answers are themselves schema-shaped JSON."""
        prompt = compose(PromptStrategy.ONE_SHOT, QUESTION)
        example = prompt.text.split("Example:\n", 1)[1].split(f"\n\nQ: {QUESTION}")[0]
        answer = json.loads(example.split("\nA: ", 1)[1])
        assert set(answer) == {"summary", "key_points", "source_links"}


class TestRetrievalPrompt:
    """Test suite for retrieval-augmented prompts."""

    def test_passages_numbered_in_rank_order(self, sample_passages: list[RetrievedPassage]) -> None:
        """Test passages are serialised in order with source and page."""
        text = format_passages(sample_passages)
        assert text.splitlines() == [
            "[1] (source: history.pdf, page 12) The Treaty of Westphalia was signed in 1648.",
            "[2] (source: history.pdf, page 13) It ended the Thirty Years' War.",
        ]

    def test_missing_page_is_omitted(self) -> None:
        """Test a passage without a page number still carries its source."""
        text = format_passages([RetrievedPassage(text="Body", source_id="notes.txt")])
        assert text == "[1] (source: notes.txt) Body"

    def test_compose_grounds_answer_in_context(self, sample_passages: list[RetrievedPassage]) -> None:
        """Test the RAG prompt restricts the model to the supplied context."""
        prompt = compose(PromptStrategy.RETRIEVAL_AUGMENTED, "When was it signed?", sample_passages)
        assert "Use ONLY the numbered context passages" in prompt.text
        assert "do not contain it" in prompt.text
        assert "[1] (source: history.pdf, page 12)" in prompt.text
        assert prompt.text.endswith("Q: When was it signed?\nA:")

    def test_same_passages_yield_same_prompt(self, sample_passages: list[RetrievedPassage]) -> None:
        """Test composition is deterministic for identical retrieval output."""
        first = compose(PromptStrategy.RETRIEVAL_AUGMENTED, QUESTION, sample_passages)
        second = compose(PromptStrategy.RETRIEVAL_AUGMENTED, QUESTION, list(sample_passages))
        assert first == second


class TestToolPrompts:
    """Test suite for the two tool-augmented phases."""

    def test_decision_prompt_includes_date_and_tool_shape(self) -> None:
        """Test the decision prompt embeds today's date and the tool object."""
        prompt = compose_tool_decision("Latest Python release?", today=date(2026, 3, 1))
        assert "2026-03-01" in prompt.text
        assert '{"tool": "web_search", "query":' in prompt.text

    def test_compose_without_context_is_decision_phase(self) -> None:
        """Test tool-augmented composition without context builds the decision prompt."""
        prompt = compose(PromptStrategy.TOOL_AUGMENTED, QUESTION)
        assert "web_search" in prompt.text

    def test_search_context_serialisation(self, sample_search_response: SearchResponse) -> None:
        """Test the answer line precedes one url/title object per source."""
        lines = format_search_context(sample_search_response).splitlines()
        assert lines[0] == "Answer: The latest release is version 3.13."
        assert json.loads(lines[1]) == {
            "url": "https://www.python.org/downloads/",
            "title": "Download Python",
        }
        assert len(lines) == 3

    def test_search_context_without_answer(self) -> None:
        """Test sources are listed alone when no consolidated answer exists."""
        response = SearchResponse(results=(SearchHit(url="https://a.example", title="A"),))
        assert format_search_context(response) == '{"url": "https://a.example", "title": "A"}'

    def test_compose_with_search_is_answer_phase(self, sample_search_response: SearchResponse) -> None:
        """Test the answer-phase prompt contains the search context."""
        prompt = compose(PromptStrategy.TOOL_AUGMENTED, "Latest Python release?", sample_search_response)
        assert "Search results:" in prompt.text
        assert "https://www.python.org/downloads/" in prompt.text
        assert prompt.text.endswith("Q: Latest Python release?\nA:")


class TestWrappers:
    """Test suite for the reasoning wrapper and repair prompt."""

    def test_reasoning_wrap_disables_structured_output(self) -> None:
        """Test reasoning wrapping clears the structured-output expectation."""
        base = compose(PromptStrategy.ONE_SHOT, QUESTION)
        wrapped = wrap_with_reasoning(base)
        assert wrapped.expects_structured_output is False
        assert REASONING_OPEN in wrapped.text and REASONING_CLOSE in wrapped.text
        assert wrapped.text.endswith(base.text)

    def test_repair_prompt_embeds_raw_output(self) -> None:
        """Test the repair prompt carries the unparseable text verbatim."""
        prompt = compose_repair('{"summary": "cut off')
        assert '<output>\n{"summary": "cut off\n</output>' in prompt.text
        assert OUTPUT_SCHEMA in prompt.text

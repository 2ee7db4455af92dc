"""tests/conftest.py

Pytest configuration and shared fixtures for the research assistant test suite.
"""

from __future__ import annotations

# Standard Library
import json
from typing import Any
from unittest.mock import Mock

# Third-Party Libraries
import pytest

# Local Modules
from research_assistant.invoker import ModelInvoker
from research_assistant.models import ModelOutput, RetrievedPassage, SearchHit, SearchResponse


@pytest.fixture
def valid_answer() -> dict[str, Any]:
    """A schema-conformant answer payload.

    Returns:
        Answer dict with all three required fields.
    """
    return {
        "summary": "Paris is the capital of France.",
        "key_points": ["Paris has been the capital since 987 AD"],
        "source_links": ["https://en.wikipedia.org/wiki/Paris"],
    }


@pytest.fixture
def valid_answer_text(valid_answer: dict[str, Any]) -> str:
    return json.dumps(valid_answer)


@pytest.fixture
def mock_ollama_client(valid_answer_text: str) -> Mock:
    """Create a mock Ollama client for testing.

    Returns:
        Mock Ollama client with pre-configured generate / embed responses.
    """
    mock_client = Mock()
    mock_client.generate.return_value = {
        "model": "llama3",
        "created_at": "2026-02-23T00:00:00Z",
        "response": valid_answer_text,
        "done": True,
    }
    mock_client.embed.return_value = {"embeddings": [[0.1, 0.2, 0.3]]}
    return mock_client


@pytest.fixture
def scripted_invoker() -> Mock:
    """Create a mock invoker whose outputs are scripted per test.

    Set ``invoker.invoke.side_effect`` to a list of :class:`ModelOutput`.

    Returns:
        Mock constrained to the :class:`ModelInvoker` interface.
    """
    invoker = Mock(spec=ModelInvoker)
    invoker.invoke.return_value = ModelOutput(text="")
    return invoker


@pytest.fixture
def sample_passages() -> list[RetrievedPassage]:
    """Create ranked passages as returned by the document index.

    Returns:
        Two passages, most relevant first.
    """
    return [
        RetrievedPassage(
            text="The Treaty of Westphalia was signed in 1648.",
            source_id="history.pdf",
            page_number=12,
        ),
        RetrievedPassage(
            text="It ended the Thirty Years' War.",
            source_id="history.pdf",
            page_number=13,
        ),
    ]


@pytest.fixture
def sample_search_response() -> SearchResponse:
    return SearchResponse(
        consolidated_answer="The latest release is version 3.13.",
        results=(
            SearchHit(url="https://www.python.org/downloads/", title="Download Python"),
            SearchHit(url="https://docs.python.org/3/whatsnew/", title="What's New"),
        ),
    )

"""tests/test_retrieval.py

Unit tests for the ChromaDB retrieval adapter (research_assistant/retrieval.py).
The collection and the Ollama embedding client are mocked.
"""

from __future__ import annotations

from unittest.mock import Mock

import httpx
import pytest

from research_assistant.errors import ErrorKind, PipelineError
from research_assistant.models import RetrievedPassage
from research_assistant.retrieval import ChromaRetriever, passage_id


@pytest.fixture
def collection() -> Mock:
    mock_collection = Mock()
    mock_collection.query.return_value = {
        "ids": [["a", "b"]],
        "documents": [["First passage.", "Second passage."]],
        "metadatas": [[{"source_id": "report.pdf", "page_number": 3}, None]],
    }
    return mock_collection


class TestEmbed:
    """Test suite for ChromaRetriever.embed."""

    def test_returns_first_vector(self, collection: Mock, mock_ollama_client: Mock) -> None:
        """Test the first embedding is returned for the configured model."""
        retriever = ChromaRetriever(collection, embed_model="nomic-embed-text", client=mock_ollama_client)

        assert retriever.embed("question") == [0.1, 0.2, 0.3]
        mock_ollama_client.embed.assert_called_once_with(model="nomic-embed-text", input="question")

    def test_empty_embedding_is_hard_error(self, collection: Mock) -> None:
        """Test an empty vector raises RetrievalEmpty."""
        client = Mock()
        client.embed.return_value = {"embeddings": []}

        with pytest.raises(PipelineError) as excinfo:
            ChromaRetriever(collection, client=client).embed("question")

        assert excinfo.value.kind is ErrorKind.RETRIEVAL_EMPTY
        assert excinfo.value.status_code == 404

    def test_unreachable_backend(self, collection: Mock) -> None:
        """Test a transport error surfaces as BackendUnavailable."""
        client = Mock()
        client.embed.side_effect = httpx.ConnectError("refused")

        with pytest.raises(PipelineError) as excinfo:
            ChromaRetriever(collection, client=client).embed("question")

        assert excinfo.value.kind is ErrorKind.BACKEND_UNAVAILABLE


class TestQuery:
    """Test suite for ChromaRetriever.query."""

    def test_passages_in_rank_order(self, collection: Mock, mock_ollama_client: Mock) -> None:
        """Test results keep Chroma's order and map metadata."""
        passages = ChromaRetriever(collection, client=mock_ollama_client).query([0.1, 0.2], k=2)

        collection.query.assert_called_once_with(
            query_embeddings=[[0.1, 0.2]],
            n_results=2,
            include=["documents", "metadatas"],
        )
        assert passages == [
            RetrievedPassage(text="First passage.", source_id="report.pdf", page_number=3),
            RetrievedPassage(text="Second passage.", source_id="b", page_number=None),
        ]

    def test_no_matches(self, mock_ollama_client: Mock) -> None:
        """Test an empty collection returns no passages."""
        empty = Mock()
        empty.query.return_value = {"ids": [[]], "documents": [[]], "metadatas": [[]]}

        assert ChromaRetriever(empty, client=mock_ollama_client).query([0.1], k=4) == []


class TestAddPassages:
    """Test suite for staging passages into the index."""

    def test_upsert_with_embeddings_and_metadata(
        self, collection: Mock, mock_ollama_client: Mock, sample_passages: list[RetrievedPassage]
    ) -> None:
        """Test passages are embedded and upserted with source metadata."""
        ids = ChromaRetriever(collection, client=mock_ollama_client).add_passages(sample_passages)

        kwargs = collection.upsert.call_args.kwargs
        assert kwargs["ids"] == ids
        assert kwargs["documents"] == [passage.text for passage in sample_passages]
        assert kwargs["metadatas"] == [
            {"source_id": "history.pdf", "page_number": 12},
            {"source_id": "history.pdf", "page_number": 13},
        ]
        assert kwargs["embeddings"] == [[0.1, 0.2, 0.3], [0.1, 0.2, 0.3]]

    def test_page_number_omitted_when_absent(self, collection: Mock, mock_ollama_client: Mock) -> None:
        """Test None page numbers are not written to metadata."""
        ChromaRetriever(collection, client=mock_ollama_client).add_passages(
            [RetrievedPassage(text="Body", source_id="notes.txt")]
        )
        assert collection.upsert.call_args.kwargs["metadatas"] == [{"source_id": "notes.txt"}]

    def test_ids_are_stable(self, sample_passages: list[RetrievedPassage]) -> None:
        """Test the same passage always maps to the same ID."""
        assert passage_id(sample_passages[0]) == passage_id(sample_passages[0])
        assert passage_id(sample_passages[0]) != passage_id(sample_passages[1])

    def test_empty_batch_is_noop(self, collection: Mock, mock_ollama_client: Mock) -> None:
        """Test nothing is written for an empty batch."""
        assert ChromaRetriever(collection, client=mock_ollama_client).add_passages([]) == []
        collection.upsert.assert_not_called()

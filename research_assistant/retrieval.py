"""research_assistant/retrieval.py

Retrieval collaborator for the retrieval-augmented strategy.

The pipeline only depends on the :class:`Retriever` protocol (``embed`` then
``query``).  :class:`ChromaRetriever` implements it on top of an Ollama
embedding model and a ChromaDB collection, and also stages new passages so
the index has something to answer from.
"""

from __future__ import annotations

# Standard Library
import hashlib
import logging
from collections.abc import Iterable
from typing import Any, Protocol

# Third-Party Libraries
import chromadb
import httpx
from chromadb.config import Settings as ChromaSettings
from ollama import Client, ResponseError

# Local Modules
from research_assistant.config import AssistantSettings
from research_assistant.errors import ErrorKind, PipelineError
from research_assistant.models import RetrievedPassage

logger = logging.getLogger(__name__)


class Retriever(Protocol):
    def embed(self, text: str) -> list[float]: ...

    def query(self, embedding: list[float], k: int) -> list[RetrievedPassage]: ...


def _first_embedding(raw: Any) -> list[float]:
    """Return the first vector of an Ollama embed response, or ``[]``."""
    embeddings = getattr(raw, "embeddings", None)
    if embeddings is None and isinstance(raw, dict):
        embeddings = raw.get("embeddings")
    if not embeddings:
        return []
    return [float(value) for value in embeddings[0]]


def passage_id(passage: RetrievedPassage) -> str:
    """Stable document ID so re-staging the same passage upserts in place."""
    digest = hashlib.sha1(passage.text.encode("utf-8")).hexdigest()[:16]
    page = "" if passage.page_number is None else str(passage.page_number)
    return f"{passage.source_id}:{page}:{digest}"


def build_chroma_client(settings: AssistantSettings) -> chromadb.ClientAPI:
    """Return a ChromaDB client (remote HTTP, local persistent, or ephemeral)."""
    chroma_settings = ChromaSettings(anonymized_telemetry=False)
    if settings.use_remote_chroma:
        logger.info(
            "Connecting to remote ChromaDB at %s:%s",
            settings.chroma_host,
            settings.chroma_port,
        )
        return chromadb.HttpClient(
            host=settings.chroma_host,
            port=settings.chroma_port,
            settings=chroma_settings,
        )
    if settings.chroma_path:
        logger.info("Using local ChromaDB store at %s", settings.chroma_path)
        return chromadb.PersistentClient(path=settings.chroma_path, settings=chroma_settings)
    logger.info("Using local ephemeral ChromaDB (no persistence)")
    return chromadb.EphemeralClient(settings=chroma_settings)


class ChromaRetriever:
    """Ollama embeddings + ChromaDB nearest-neighbour lookup."""

    def __init__(
        self,
        collection: chromadb.Collection,
        embed_model: str = "nomic-embed-text",
        client: Client | None = None,
        ollama_host: str = "http://localhost:11434",
    ) -> None:
        """Initialize the retriever.

        Args:
            collection: Collection holding the document passages.  Vectors are
                always supplied by this class, never by Chroma's default
                embedding function.
            embed_model: Ollama embedding model tag.
            client: Pre-built Ollama client; built from ``ollama_host`` if omitted.
            ollama_host: Ollama API endpoint.
        """
        self.collection = collection
        self.embed_model = embed_model
        self.client = client or Client(host=ollama_host)

    @classmethod
    def from_settings(cls, settings: AssistantSettings) -> ChromaRetriever:
        chroma = build_chroma_client(settings)
        collection = chroma.get_or_create_collection(
            name=settings.chroma_collection,
            metadata={"hnsw:space": "cosine"},
        )
        return cls(
            collection=collection,
            embed_model=settings.ollama_embed_model,
            ollama_host=settings.ollama_host,
        )

    def embed(self, text: str) -> list[float]:
        """Embed ``text`` with the configured Ollama model.

        Raises:
            PipelineError: ``RetrievalEmpty`` when the backend returns no
                vector, ``BackendUnavailable`` when it cannot be reached.
        """
        try:
            raw = self.client.embed(model=self.embed_model, input=text)
        except (ResponseError, httpx.HTTPError, ConnectionError) as exc:
            logger.error("[retrieval] embedding call failed: %s", exc)
            raise PipelineError(
                ErrorKind.BACKEND_UNAVAILABLE, f"Embedding backend failed: {exc}"
            ) from exc

        vector = _first_embedding(raw)
        if not vector:
            raise PipelineError(ErrorKind.RETRIEVAL_EMPTY, "Embedding backend returned no vector")
        return vector

    def query(self, embedding: list[float], k: int) -> list[RetrievedPassage]:
        """Return up to ``k`` passages in relevance-rank order."""
        try:
            results = self.collection.query(
                query_embeddings=[embedding],
                n_results=k,
                include=["documents", "metadatas"],
            )
        except Exception as exc:
            logger.error("[retrieval] ChromaDB error: %s", exc, exc_info=True)
            raise PipelineError(
                ErrorKind.BACKEND_UNAVAILABLE, f"Document index query failed: {exc}"
            ) from exc

        ids: list[str] = (results.get("ids") or [[]])[0]
        docs: list[str] = (results.get("documents") or [[]])[0]
        metas: list[dict[str, Any] | None] = (results.get("metadatas") or [[]])[0]

        passages: list[RetrievedPassage] = []
        for doc_id, doc, meta in zip(ids, docs, metas):
            meta = meta or {}
            page = meta.get("page_number")
            passages.append(
                RetrievedPassage(
                    text=doc or "",
                    source_id=str(meta.get("source_id") or doc_id),
                    page_number=int(page) if page is not None else None,
                )
            )
        logger.info("[retrieval] returned %d passages (k=%d)", len(passages), k)
        return passages

    def add_passages(self, passages: Iterable[RetrievedPassage]) -> list[str]:
        """Embed and upsert passages into the collection.

        Args:
            passages: Passages to stage.  Identical passages map to the same ID.

        Returns:
            The document IDs written, in input order.
        """
        batch = list(passages)
        if not batch:
            return []

        ids = [passage_id(passage) for passage in batch]
        embeddings = [self.embed(passage.text) for passage in batch]
        metadatas: list[dict[str, Any]] = []
        for passage in batch:
            # Chroma rejects None metadata values.
            meta: dict[str, Any] = {"source_id": passage.source_id}
            if passage.page_number is not None:
                meta["page_number"] = passage.page_number
            metadatas.append(meta)

        self.collection.upsert(
            ids=ids,
            embeddings=embeddings,
            documents=[passage.text for passage in batch],
            metadatas=metadatas,
        )
        logger.info("[retrieval] staged %d passages", len(ids))
        return ids

"""research_assistant/config.py

Runtime configuration loaded from environment variables / ``.env`` file.
"""

from __future__ import annotations

# Third-Party Libraries
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Local Modules
from research_assistant.models import SamplingParams


class AssistantSettings(BaseSettings):
    """Settings for the answer pipeline and its collaborators.

    Attributes:
        ollama_host: Base URL of the Ollama server.
        ollama_model: Generation model tag.
        ollama_embed_model: Embedding model tag used for RAG queries.
        request_timeout_s: Hard wall-clock budget for one model call.
        default_temperature: Sampling temperature when the caller sends none.
        default_top_p: Nucleus sampling cutoff when the caller sends none.
        default_top_k: Top-k cutoff when the caller sends none.
        rag_top_k: Number of passages retrieved for RAG mode.
        search_backend: ``"duckduckgo"`` or ``"tavily"``.
        tavily_api_key: API key, required only for the Tavily backend.
        max_search_results: Cap on sources returned by web search.
        chroma_host: Remote ChromaDB host.
        chroma_port: Remote ChromaDB port.
        use_remote_chroma: Use an HTTP ChromaDB server instead of a local store.
        chroma_path: On-disk location of the local ChromaDB store.
        chroma_collection: Collection holding the document passages.
        api_host: Bind address for the HTTP API.
        api_port: Port for the HTTP API.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ollama_host: str = Field(
        "http://localhost:11434",
        description="Base URL of the Ollama server.",
    )
    ollama_model: str = Field("llama3", description="Generation model tag.")
    ollama_embed_model: str = Field(
        "nomic-embed-text",
        description="Embedding model tag used for retrieval queries.",
    )
    request_timeout_s: float = Field(
        180.0,
        gt=0,
        description="Wall-clock budget for a single model call, in seconds.",
    )

    default_temperature: float = Field(0.7, ge=0.0)
    default_top_p: float = Field(0.9, gt=0.0, le=1.0)
    default_top_k: int = Field(40, ge=1)

    rag_top_k: int = Field(4, ge=1, le=50)

    search_backend: str = Field(
        "duckduckgo",
        description="Web search provider: 'duckduckgo' or 'tavily'.",
    )
    tavily_api_key: str = Field("", description="Tavily API key.")
    max_search_results: int = Field(5, ge=1, le=20)

    chroma_host: str = Field("localhost")
    chroma_port: int = Field(8000)
    use_remote_chroma: bool = Field(False)
    chroma_path: str = Field(".chroma", description="Local ChromaDB directory.")
    chroma_collection: str = Field("research_documents")

    api_host: str = Field("0.0.0.0")
    api_port: int = Field(5000)

    def default_sampling(self) -> SamplingParams:
        """Return the configured default sampling parameters."""
        return SamplingParams(
            temperature=self.default_temperature,
            top_p=self.default_top_p,
            top_k=self.default_top_k,
        )

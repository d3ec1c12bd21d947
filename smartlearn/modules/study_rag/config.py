"""
Study RAG Configuration
=======================
Configuration settings for the study RAG module.
All settings can be overridden via environment variables.

Supports multiple LLM providers:
- Ollama (local inference)
- Groq Cloud (OpenAI-compatible API)

Supports multiple embedding providers:
- HuggingFace sentence-transformers (local)
- Ollama embeddings
"""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

# Output size of the embedding models we ship defaults for
KNOWN_EMBEDDING_DIMENSIONS = {
    "BAAI/bge-m3": 1024,
    "BAAI/bge-small-en-v1.5": 384,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "nomic-embed-text": 768,
    "mxbai-embed-large": 1024,
    "all-minilm": 384,
}


@dataclass
class RAGConfig:
    """Configuration for the study RAG module"""

    # ===== Chunking Settings =====
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200
    CHUNK_SEPARATORS: List[str] = field(default_factory=lambda: [
        "\n\n", "\n", ". ", "! ", "? ", " "
    ])

    # ===== Embedding Settings =====
    EMBEDDING_PROVIDER: str = "huggingface"  # "huggingface" or "ollama"
    EMBEDDING_MODEL: str = "BAAI/bge-m3"
    EMBEDDING_DIMENSION: Optional[int] = None  # Derived from the active model
    EMBEDDING_DEVICE: str = "cpu"  # Will be auto-detected
    NORMALIZE_EMBEDDINGS: bool = True
    EMBEDDING_BATCH_SIZE: int = 64
    EMBEDDING_MAX_ATTEMPTS: int = 3
    EMBEDDING_BACKOFF_SECONDS: float = 1.0
    EMBEDDING_TIMEOUT: float = 60.0

    # ===== Vector Store Settings =====
    VECTOR_BACKEND: str = "chroma"  # "chroma" or "memory"
    PERSIST_DIRECTORY: str = "./data/chroma/study_rag"
    INDEX_METRIC: str = "cosine"
    INDEX_READY_TIMEOUT: float = 60.0
    INDEX_POLL_INTERVAL: float = 1.0
    UPSERT_BATCH_SIZE: int = 100
    VECTOR_QUERY_TIMEOUT: float = 30.0

    # ===== Retriever Settings =====
    RETRIEVER_K: int = 5

    # ===== LLM Provider Settings =====
    LLM_PROVIDER: str = "ollama"  # "ollama" or "groq"
    GENERATION_TIMEOUT: float = 120.0

    # ===== Ollama Settings =====
    OLLAMA_MODEL: str = "llama3.1:latest"
    OLLAMA_EMBEDDING_MODEL: str = "nomic-embed-text"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    OLLAMA_TEMPERATURE: float = 0.3
    OLLAMA_NUM_CTX: int = 8192

    # ===== Groq Cloud Settings =====
    GROQ_API_KEY: Optional[str] = None
    GROQ_MODEL: str = "llama-3.3-70b-versatile"
    GROQ_BASE_URL: str = "https://api.groq.com/openai/v1"
    GROQ_FALLBACK_TO_OLLAMA: bool = True  # Fallback to Ollama on Groq errors

    # ===== Quiz Settings =====
    QUIZ_CONTEXT_CHAR_LIMIT: int = 12000
    QUIZ_RETRIEVAL_K: int = 8
    QUIZ_RETRIEVAL_QUERY: str = "key concepts, definitions and important facts"

    # ===== Progress Settings =====
    PROGRESS_UPDATE_RETRIES: int = 3

    # ===== Persistence Settings =====
    REPOSITORY_FILE: str = "./data/smartlearn_store.json"

    # ===== Recommendation Settings =====
    YOUTUBE_API_KEY: Optional[str] = None
    YOUTUBE_SEARCH_URL: str = "https://www.googleapis.com/youtube/v3/search"
    RECOMMENDATION_TIMEOUT: float = 8.0
    MAX_RECOMMENDATIONS: int = 5

    # ===== Logging Settings =====
    ENABLE_DEBUG_LOGGING: bool = True
    SNIPPET_LENGTH: int = 200  # Characters to show in debug logs

    def __post_init__(self):
        """Load settings from environment variables"""
        # Chunking
        self.CHUNK_SIZE = int(os.getenv("RAG_CHUNK_SIZE", self.CHUNK_SIZE))
        self.CHUNK_OVERLAP = int(os.getenv("RAG_CHUNK_OVERLAP", self.CHUNK_OVERLAP))

        # Embedding
        self.EMBEDDING_PROVIDER = os.getenv("RAG_EMBEDDING_PROVIDER", self.EMBEDDING_PROVIDER).lower()
        self.EMBEDDING_MODEL = os.getenv("RAG_EMBEDDING_MODEL", self.EMBEDDING_MODEL)
        self.EMBEDDING_DEVICE = os.getenv("RAG_EMBEDDING_DEVICE", self.EMBEDDING_DEVICE)
        self.EMBEDDING_BATCH_SIZE = int(os.getenv("RAG_EMBEDDING_BATCH_SIZE", self.EMBEDDING_BATCH_SIZE))
        self.EMBEDDING_MAX_ATTEMPTS = int(os.getenv("RAG_EMBEDDING_MAX_ATTEMPTS", self.EMBEDDING_MAX_ATTEMPTS))
        self.EMBEDDING_TIMEOUT = float(os.getenv("RAG_EMBEDDING_TIMEOUT", self.EMBEDDING_TIMEOUT))

        # Vector Store
        self.VECTOR_BACKEND = os.getenv("RAG_VECTOR_BACKEND", self.VECTOR_BACKEND).lower()
        self.PERSIST_DIRECTORY = os.getenv("RAG_PERSIST_DIRECTORY", self.PERSIST_DIRECTORY)
        self.INDEX_READY_TIMEOUT = float(os.getenv("RAG_INDEX_READY_TIMEOUT", self.INDEX_READY_TIMEOUT))
        self.INDEX_POLL_INTERVAL = float(os.getenv("RAG_INDEX_POLL_INTERVAL", self.INDEX_POLL_INTERVAL))
        self.VECTOR_QUERY_TIMEOUT = float(os.getenv("RAG_VECTOR_QUERY_TIMEOUT", self.VECTOR_QUERY_TIMEOUT))

        # Retriever
        self.RETRIEVER_K = int(os.getenv("RAG_RETRIEVER_K", self.RETRIEVER_K))

        # LLM Provider
        self.LLM_PROVIDER = os.getenv("LLM_PROVIDER", self.LLM_PROVIDER).lower()
        self.GENERATION_TIMEOUT = float(os.getenv("RAG_GENERATION_TIMEOUT", self.GENERATION_TIMEOUT))

        # Ollama
        self.OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", self.OLLAMA_MODEL)
        self.OLLAMA_EMBEDDING_MODEL = os.getenv("OLLAMA_EMBEDDING_MODEL", self.OLLAMA_EMBEDDING_MODEL)
        self.OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", self.OLLAMA_BASE_URL)
        self.OLLAMA_TEMPERATURE = float(os.getenv("OLLAMA_TEMPERATURE", self.OLLAMA_TEMPERATURE))

        # Embedding dimension follows the provider's model unless pinned
        self.EMBEDDING_DIMENSION = self._resolve_embedding_dimension()

        # Groq Cloud
        self.GROQ_API_KEY = os.getenv("GROQ_API_KEY")
        self.GROQ_MODEL = os.getenv("GROQ_MODEL", self.GROQ_MODEL)
        self.GROQ_BASE_URL = os.getenv("GROQ_BASE_URL", self.GROQ_BASE_URL)
        self.GROQ_FALLBACK_TO_OLLAMA = os.getenv(
            "GROQ_FALLBACK_TO_OLLAMA", "true"
        ).lower() == "true"

        # Quiz
        self.QUIZ_CONTEXT_CHAR_LIMIT = int(os.getenv("RAG_QUIZ_CONTEXT_CHAR_LIMIT", self.QUIZ_CONTEXT_CHAR_LIMIT))
        self.QUIZ_RETRIEVAL_K = int(os.getenv("RAG_QUIZ_RETRIEVAL_K", self.QUIZ_RETRIEVAL_K))

        # Progress
        self.PROGRESS_UPDATE_RETRIES = int(os.getenv("RAG_PROGRESS_UPDATE_RETRIES", self.PROGRESS_UPDATE_RETRIES))

        # Persistence
        self.REPOSITORY_FILE = os.getenv("SMARTLEARN_REPOSITORY_FILE", self.REPOSITORY_FILE)

        # Recommendations
        self.YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY")
        self.RECOMMENDATION_TIMEOUT = float(os.getenv("RECOMMENDATION_TIMEOUT", self.RECOMMENDATION_TIMEOUT))

        # Logging
        self.ENABLE_DEBUG_LOGGING = os.getenv("RAG_DEBUG", "true").lower() == "true"

        # Auto-detect GPU
        self._detect_device()

        # Ensure persist directory exists
        Path(self.PERSIST_DIRECTORY).mkdir(parents=True, exist_ok=True)

    @property
    def active_embedding_model(self) -> str:
        """Model name used by the configured embedding provider"""
        if self.EMBEDDING_PROVIDER == "ollama":
            return self.OLLAMA_EMBEDDING_MODEL
        return self.EMBEDDING_MODEL

    def _resolve_embedding_dimension(self) -> int:
        pinned = os.getenv("RAG_EMBEDDING_DIMENSION")
        if pinned:
            return int(pinned)
        if self.EMBEDDING_DIMENSION:
            return self.EMBEDDING_DIMENSION

        model = self.active_embedding_model
        if model not in KNOWN_EMBEDDING_DIMENSIONS:
            raise ValueError(
                f"Unknown embedding dimension for model {model!r}; "
                f"set RAG_EMBEDDING_DIMENSION"
            )
        return KNOWN_EMBEDDING_DIMENSIONS[model]

    def _detect_device(self):
        """Auto-detect CUDA availability"""
        if self.EMBEDDING_DEVICE == "auto" or self.EMBEDDING_DEVICE == "cpu":
            try:
                import torch
                if torch.cuda.is_available():
                    self.EMBEDDING_DEVICE = "cuda"
                else:
                    self.EMBEDDING_DEVICE = "cpu"
            except ImportError:
                self.EMBEDDING_DEVICE = "cpu"


# Global config instance
rag_config = RAGConfig()

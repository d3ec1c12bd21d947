"""
Embedding Client Module
=======================
Batched, retried, deadline-bound access to an embedding model.

The client implements LangChain's ``Embeddings`` interface so it can be
handed directly to any LangChain vector store.
"""

import logging
from typing import Callable, List, Optional

from langchain_core.embeddings import Embeddings
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from smartlearn.core.exceptions import EmbeddingUnavailable
from smartlearn.utils.helpers import call_with_deadline
from .config import rag_config

logger = logging.getLogger(__name__)


def create_embedding_model(provider: Optional[str] = None) -> Embeddings:
    """
    Build the underlying embedding model for the configured provider.

    Args:
        provider: "huggingface" or "ollama" (default from config)

    Returns:
        LangChain Embeddings instance
    """
    provider = (provider or rag_config.EMBEDDING_PROVIDER).lower()

    if provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        logger.info(f"Loading embedding model: {rag_config.EMBEDDING_MODEL}")
        logger.info(f"Using device: {rag_config.EMBEDDING_DEVICE}")
        return HuggingFaceEmbeddings(
            model_name=rag_config.EMBEDDING_MODEL,
            model_kwargs={'device': rag_config.EMBEDDING_DEVICE},
            encode_kwargs={'normalize_embeddings': rag_config.NORMALIZE_EMBEDDINGS}
        )

    if provider == "ollama":
        from langchain_ollama import OllamaEmbeddings

        logger.info(f"Using Ollama embeddings: {rag_config.OLLAMA_EMBEDDING_MODEL}")
        return OllamaEmbeddings(
            model=rag_config.OLLAMA_EMBEDDING_MODEL,
            base_url=rag_config.OLLAMA_BASE_URL,
        )

    raise ValueError(f"Unknown embedding provider: {provider}. Supported: huggingface, ollama")


class EmbeddingClient(Embeddings):
    """
    Converts texts into fixed-dimension vectors.

    Features:
    - Batching to respect provider size limits
    - Per-call deadline
    - Exponential backoff retries on transient failures
    - Dimension check against the configured index dimension
    """

    def __init__(
        self,
        model: Optional[Embeddings] = None,
        dimension: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        backoff_seconds: Optional[float] = None,
    ):
        """
        Initialize the embedding client.

        Args:
            model: Underlying LangChain embedding model (created from config if None)
            dimension: Expected vector length
            batch_size: Maximum texts per provider call
            max_attempts: Attempts per batch before giving up
            timeout: Deadline in seconds for a single provider call
            backoff_seconds: Base delay for exponential backoff (0 disables waiting)
        """
        self._model = model
        self.dimension = dimension or rag_config.EMBEDDING_DIMENSION
        self.batch_size = batch_size or rag_config.EMBEDDING_BATCH_SIZE
        self.max_attempts = max_attempts or rag_config.EMBEDDING_MAX_ATTEMPTS
        self.timeout = rag_config.EMBEDDING_TIMEOUT if timeout is None else timeout
        self.backoff_seconds = (
            rag_config.EMBEDDING_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        )

    @property
    def model(self) -> Embeddings:
        """Underlying embedding model (lazy initialization)"""
        if self._model is None:
            self._model = create_embedding_model()
        return self._model

    def embed(self, texts: List[str]) -> List[List[float]]:
        """Embed texts, one vector per input, same order."""
        return self.embed_documents(texts)

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        vectors: List[List[float]] = []
        batch_count = (len(texts) + self.batch_size - 1) // self.batch_size

        for batch_number, offset in enumerate(range(0, len(texts), self.batch_size), start=1):
            batch = list(texts[offset:offset + self.batch_size])
            logger.debug(f"Embedding batch {batch_number}/{batch_count} ({len(batch)} texts)")

            batch_vectors = self._call_with_retry(
                lambda: self.model.embed_documents(batch),
                description=f"batch {batch_number}/{batch_count}",
            )

            if len(batch_vectors) != len(batch):
                raise EmbeddingUnavailable(
                    f"Embedding model returned {len(batch_vectors)} vectors for {len(batch)} texts"
                )
            for vector in batch_vectors:
                self._check_dimension(vector)
            vectors.extend(batch_vectors)

        logger.info(f"Embedded {len(texts)} texts in {batch_count} batches")
        return vectors

    def embed_query(self, text: str) -> List[float]:
        vector = self._call_with_retry(
            lambda: self.model.embed_query(text),
            description="query",
        )
        self._check_dimension(vector)
        return vector

    def _call_with_retry(self, func: Callable[[], List], description: str):
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=30),
            retry=retry_if_exception_type(Exception),
            before_sleep=self._log_retry,
        )

        try:
            for attempt in retrying:
                with attempt:
                    return call_with_deadline(func, timeout=self.timeout, service="embedding")
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error(f"Embedding {description} failed after {self.max_attempts} attempts: {cause}")
            raise EmbeddingUnavailable(
                f"Embedding service unavailable after {self.max_attempts} attempts: {cause}"
            ) from cause

    def _check_dimension(self, vector: List[float]):
        if len(vector) != self.dimension:
            raise EmbeddingUnavailable(
                f"Embedding dimension {len(vector)} does not match configured dimension {self.dimension}"
            )

    @staticmethod
    def _log_retry(retry_state):
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(f"Embedding attempt {retry_state.attempt_number} failed: {exc}; retrying")

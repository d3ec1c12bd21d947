"""
Vector Index Module
===================
One isolated vector index per uploaded document.

The manager provisions an index, waits for it to report ready, upserts
chunk embeddings with their page metadata, answers nearest-neighbour
queries and tears the index down when the document is deleted.

Backends:
- ChromaIndexBackend: persistent ChromaDB, one collection per document
- InMemoryIndexBackend: LangChain InMemoryVectorStore, for development and tests
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from langchain_core.documents import Document
from langchain_core.vectorstores import InMemoryVectorStore, VectorStore

from smartlearn.core.exceptions import (
    DeadlineExceeded,
    IndexProvisioningTimeout,
    ResourceNotFound,
    VectorSearchTimeout,
)
from smartlearn.utils.helpers import call_with_deadline, generate_id, slugify
from .config import rag_config
from .embeddings import EmbeddingClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexHandle:
    """Reference to one provisioned vector index"""
    name: str
    dimension: int
    metric: str = "cosine"


@dataclass
class IndexMatch:
    """A single nearest-neighbour result"""
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    score: float = 0.0


def make_index_name(title: str) -> str:
    """
    Build a unique index name that is safe for every backend.

    Names are 3-63 characters of [a-z0-9-], starting and ending alphanumeric.
    """
    slug = slugify(title, max_length=40) or "document"
    return f"{slug}-{generate_id()[:12]}"


def chunk_id(index_name: str, chunk: Document) -> str:
    """Deterministic id of a chunk inside its index"""
    page = chunk.metadata.get("page", 0)
    chunk_index = chunk.metadata.get("chunk_index", chunk.metadata.get("position", 0))
    return f"{index_name}-p{page}-c{chunk_index}"


# ===== Backends =====

class IndexBackend(ABC):
    """Storage engine holding one collection per index"""

    @abstractmethod
    def create(self, name: str, dimension: int, metric: str) -> None:
        """Start provisioning an index"""

    @abstractmethod
    def is_ready(self, name: str) -> bool:
        """True once the index accepts writes and queries"""

    @abstractmethod
    def exists(self, name: str) -> bool:
        """True if the index was created and not deleted"""

    @abstractmethod
    def upsert(self, name: str, documents: List[Document], ids: List[str]) -> None:
        """Embed and write documents, overwriting existing ids"""

    @abstractmethod
    def query(self, name: str, vector: List[float], k: int) -> List[Tuple[Document, float]]:
        """Return up to k (document, similarity) pairs"""

    @abstractmethod
    def count(self, name: str) -> int:
        """Number of vectors stored in the index"""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove the index and its storage"""


class ChromaIndexBackend(IndexBackend):
    """
    ChromaDB backend with persistent storage.

    Each document gets its own collection configured for cosine distance.
    """

    def __init__(
        self,
        embeddings: EmbeddingClient,
        persist_directory: Optional[str] = None,
        client=None
    ):
        import chromadb

        self.embeddings = embeddings
        self.persist_directory = persist_directory or rag_config.PERSIST_DIRECTORY

        if client is None:
            Path(self.persist_directory).mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(path=self.persist_directory)
        self._client = client
        self._stores: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def _store(self, name: str):
        from langchain_chroma import Chroma

        with self._lock:
            store = self._stores.get(name)
            if store is None:
                store = Chroma(
                    collection_name=name,
                    embedding_function=self.embeddings,
                    client=self._client,
                    create_collection_if_not_exists=False,
                )
                self._stores[name] = store
            return store

    def create(self, name: str, dimension: int, metric: str) -> None:
        logger.info(f"Creating Chroma collection: {name} (dimension={dimension}, metric={metric})")
        self._client.get_or_create_collection(
            name=name,
            metadata={"hnsw:space": metric, "dimension": dimension},
        )

    def is_ready(self, name: str) -> bool:
        try:
            self._client.get_collection(name=name).count()
            return True
        except Exception as e:
            logger.debug(f"Collection {name} not ready yet: {e}")
            return False

    def exists(self, name: str) -> bool:
        return self.is_ready(name)

    def upsert(self, name: str, documents: List[Document], ids: List[str]) -> None:
        # Chroma.add_documents writes through collection.upsert
        self._store(name).add_documents(documents=documents, ids=ids)

    def query(self, name: str, vector: List[float], k: int) -> List[Tuple[Document, float]]:
        results = self._store(name).similarity_search_by_vector_with_relevance_scores(
            embedding=vector, k=k
        )
        # Chroma reports cosine distance; convert to similarity
        return [(doc, 1.0 - distance) for doc, distance in results]

    def count(self, name: str) -> int:
        return self._client.get_collection(name=name).count()

    def delete(self, name: str) -> None:
        with self._lock:
            self._stores.pop(name, None)
        self._client.delete_collection(name=name)
        logger.info(f"Deleted Chroma collection: {name}")


class InMemoryIndexBackend(IndexBackend):
    """
    In-process backend built on LangChain's InMemoryVectorStore.

    ``provisioning_polls`` simulates asynchronous provisioning: an index only
    reports ready after being polled that many times.
    """

    def __init__(self, embeddings: EmbeddingClient, provisioning_polls: int = 0):
        self.embeddings = embeddings
        self.provisioning_polls = provisioning_polls
        self._stores: Dict[str, InMemoryVectorStore] = {}
        self._pending: Dict[str, int] = {}
        self._lock = threading.Lock()

    def create(self, name: str, dimension: int, metric: str) -> None:
        if metric != "cosine":
            raise ValueError(f"InMemoryIndexBackend only supports cosine, got {metric}")
        with self._lock:
            self._stores[name] = InMemoryVectorStore(embedding=self.embeddings)
            self._pending[name] = self.provisioning_polls

    def is_ready(self, name: str) -> bool:
        with self._lock:
            if name not in self._stores:
                return False
            remaining = self._pending.get(name, 0)
            if remaining > 0:
                self._pending[name] = remaining - 1
                return False
            return True

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._stores

    def _get(self, name: str) -> InMemoryVectorStore:
        with self._lock:
            store = self._stores.get(name)
        if store is None:
            raise ResourceNotFound("Vector index", name)
        return store

    def upsert(self, name: str, documents: List[Document], ids: List[str]) -> None:
        self._get(name).add_documents(documents=documents, ids=ids)

    def query(self, name: str, vector: List[float], k: int) -> List[Tuple[Document, float]]:
        store = self._get(name)
        if not store.store:
            return []
        return store.similarity_search_with_score_by_vector(embedding=vector, k=k)

    def count(self, name: str) -> int:
        return len(self._get(name).store)

    def delete(self, name: str) -> None:
        with self._lock:
            self._stores.pop(name, None)
            self._pending.pop(name, None)


def create_index_backend(
    embeddings: EmbeddingClient,
    backend: Optional[str] = None
) -> IndexBackend:
    """Build the configured index backend ("chroma" or "memory")."""
    backend = (backend or rag_config.VECTOR_BACKEND).lower()
    if backend == "chroma":
        return ChromaIndexBackend(embeddings)
    if backend == "memory":
        return InMemoryIndexBackend(embeddings)
    raise ValueError(f"Unknown vector backend: {backend}. Supported: chroma, memory")


# ===== Manager =====

class VectorIndexManager:
    """
    Lifecycle manager for per-document vector indexes.

    Features:
    - Readiness polling with a bounded wait after creation
    - Batched, idempotent upserts keyed by chunk identity
    - Deadline-bound similarity queries with stable ordering
    """

    def __init__(
        self,
        backend: IndexBackend,
        embeddings: EmbeddingClient,
        ready_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        upsert_batch_size: Optional[int] = None,
        query_timeout: Optional[float] = None,
    ):
        self.backend = backend
        self.embeddings = embeddings
        self.ready_timeout = rag_config.INDEX_READY_TIMEOUT if ready_timeout is None else ready_timeout
        self.poll_interval = rag_config.INDEX_POLL_INTERVAL if poll_interval is None else poll_interval
        self.upsert_batch_size = upsert_batch_size or rag_config.UPSERT_BATCH_SIZE
        self.query_timeout = rag_config.VECTOR_QUERY_TIMEOUT if query_timeout is None else query_timeout

    def create_index(
        self,
        name: str,
        dimension: Optional[int] = None,
        metric: Optional[str] = None
    ) -> IndexHandle:
        """
        Provision a new index and block until it is ready.

        Args:
            name: Unique index name
            dimension: Vector dimension (defaults to the embedding client's)
            metric: Similarity metric (default cosine)

        Returns:
            Handle of the ready index

        Raises:
            ValueError: If the dimension differs from the embedding client's
            IndexProvisioningTimeout: If the index is not ready in time
        """
        dimension = dimension or self.embeddings.dimension
        metric = metric or rag_config.INDEX_METRIC

        if dimension != self.embeddings.dimension:
            raise ValueError(
                f"Index dimension {dimension} does not match embedding dimension {self.embeddings.dimension}"
            )

        logger.info(f"Provisioning vector index: {name}")
        self.backend.create(name, dimension, metric)
        handle = IndexHandle(name=name, dimension=dimension, metric=metric)

        deadline = time.monotonic() + self.ready_timeout
        while not self.backend.is_ready(name):
            if time.monotonic() >= deadline:
                logger.error(f"Index {name} not ready after {self.ready_timeout:g}s")
                self.delete_index(handle, best_effort=True)
                raise IndexProvisioningTimeout(name, self.ready_timeout)
            time.sleep(self.poll_interval)

        logger.info(f"Vector index ready: {name}")
        return handle

    def open_index(self, index_id: str) -> IndexHandle:
        """Re-attach to an existing index by its id."""
        if not self.backend.exists(index_id):
            raise ResourceNotFound("Vector index", index_id)
        return IndexHandle(name=index_id, dimension=self.embeddings.dimension)

    def upsert(self, handle: IndexHandle, chunks: List[Document]) -> int:
        """
        Write chunk embeddings with their metadata.

        Re-upserting a chunk with the same page/chunk identity overwrites it.

        Returns:
            Number of chunks written
        """
        if not chunks:
            logger.warning("No chunks to upsert")
            return 0

        written = 0
        for offset in range(0, len(chunks), self.upsert_batch_size):
            batch = chunks[offset:offset + self.upsert_batch_size]
            ids = [chunk_id(handle.name, chunk) for chunk in batch]
            self.backend.upsert(handle.name, batch, ids)
            written += len(batch)
            logger.debug(f"Upserted {written}/{len(chunks)} chunks into {handle.name}")

        logger.info(f"Upserted {written} chunks into {handle.name}")
        return written

    def query(self, handle: IndexHandle, vector: List[float], k: int) -> List[IndexMatch]:
        """
        Nearest-neighbour search ordered by similarity descending.

        Ties keep the chunks' original insertion order. Backends cut ties
        arbitrarily at k, so every candidate is fetched before the cut.
        """
        total = self.count(handle)
        if total == 0:
            return []

        try:
            results = call_with_deadline(
                self.backend.query, handle.name, vector, total,
                timeout=self.query_timeout, service="vector-search"
            )
        except DeadlineExceeded as e:
            raise VectorSearchTimeout(e.service, e.timeout) from e

        matches = [
            IndexMatch(text=doc.page_content, metadata=dict(doc.metadata), score=float(score))
            for doc, score in results
        ]
        matches.sort(key=lambda m: (-m.score, m.metadata.get("position", 0)))
        return matches[:k]

    def count(self, handle: IndexHandle) -> int:
        return self.backend.count(handle.name)

    def delete_index(self, handle: IndexHandle, best_effort: bool = False) -> bool:
        """
        Tear down an index.

        Args:
            handle: Index to delete
            best_effort: Log instead of raising on failure

        Returns:
            True if the index was deleted
        """
        try:
            self.backend.delete(handle.name)
            logger.info(f"Deleted vector index: {handle.name}")
            return True
        except Exception as e:
            if not best_effort:
                raise
            logger.warning(f"Could not delete vector index {handle.name}: {e}")
            return False

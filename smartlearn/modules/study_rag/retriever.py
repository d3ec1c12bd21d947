"""
Document Retriever Module
=========================
Citation-bearing retrieval against a single document's index.
"""

import logging
from typing import List, Optional

from .config import rag_config
from .embeddings import EmbeddingClient
from .models import Citation
from .vectorstore import IndexHandle, IndexMatch, VectorIndexManager

logger = logging.getLogger(__name__)


class DocumentRetriever:
    """
    Embeds a question and looks it up in one document's vector index.

    Results are ordered by similarity descending with ties kept in
    insertion order. An empty index yields an empty list.
    """

    def __init__(
        self,
        index_manager: VectorIndexManager,
        embeddings: EmbeddingClient,
        k: Optional[int] = None
    ):
        """
        Initialize retriever.

        Args:
            index_manager: VectorIndexManager instance
            embeddings: EmbeddingClient used for question vectors
            k: Number of chunks to retrieve by default
        """
        self.index_manager = index_manager
        self.embeddings = embeddings
        self.k = k or rag_config.RETRIEVER_K

    def retrieve(
        self,
        question: str,
        handle: IndexHandle,
        k: Optional[int] = None
    ) -> List[Citation]:
        """
        Retrieve the chunks most similar to a question.

        Args:
            question: Free-text question
            handle: Index of the document being asked about
            k: Number of chunks to retrieve (overrides default)

        Returns:
            List of citations, best match first
        """
        k = k or self.k

        logger.info(f"Retrieving documents for query: {question[:100]}...")
        logger.info(f"Index: {handle.name}, k={k}")

        if self.index_manager.count(handle) == 0:
            logger.info("Index is empty, nothing to retrieve")
            return []

        vector = self.embeddings.embed_query(question)
        matches = self.index_manager.query(handle, vector, k)
        citations = [self._to_citation(match) for match in matches]

        logger.info(f"Retrieved {len(citations)} chunks")

        # Log retrieved chunks if debug enabled
        if rag_config.ENABLE_DEBUG_LOGGING:
            self._log_retrieved(citations)

        return citations

    @staticmethod
    def _to_citation(match: IndexMatch) -> Citation:
        page = int(match.metadata.get("page", 0))
        return Citation(
            page_number=page,
            content=match.text,
            source=match.metadata.get("source", f"Page {page}"),
            score=match.score,
        )

    def _log_retrieved(self, citations: List[Citation]):
        """Log retrieved chunks for debugging."""
        logger.debug("=" * 60)
        logger.debug("RETRIEVED CHUNKS:")
        for i, citation in enumerate(citations):
            snippet = citation.content[:rag_config.SNIPPET_LENGTH]
            logger.debug(f"[{i+1}] {citation.source} (score={citation.score:.3f}): {snippet}...")
        logger.debug("=" * 60)

    @staticmethod
    def format_context(citations: List[Citation]) -> str:
        """
        Format retrieved chunks into a context block for prompts.

        Args:
            citations: Retrieved citations

        Returns:
            Formatted context string, empty when there are no citations
        """
        if not citations:
            return ""

        return "\n\n---\n\n".join(
            f"[page {citation.page_number}]\n{citation.content}"
            for citation in citations
        )

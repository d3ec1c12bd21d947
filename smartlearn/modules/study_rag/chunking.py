"""
Document Chunking Module
========================
Split extracted pages into overlapping, page-confined chunks.

Chunks are exact substrings of the page text. Each chunk after the first
starts ``chunk_overlap`` characters before the previous chunk ends, so the
tail of one chunk always equals the head of the next.

Example (chunk_size=5, chunk_overlap=2, no boundaries):
    "ABCDEFGHIJ" -> "ABCDE", "DEFGH", "GHIJ"
"""

import logging
from typing import List, Optional, Sequence, Tuple

from langchain_text_splitters import TextSplitter
from langchain_core.documents import Document

from .config import rag_config
from .models import Page

logger = logging.getLogger(__name__)


def page_source(page_number: int) -> str:
    """Human-readable source label stored with every chunk"""
    return f"Page {page_number}"


class PageTextSplitter(TextSplitter):
    """
    Greedy character splitter that snaps chunk ends to natural boundaries.

    The end of a chunk is moved back to the last paragraph, line, sentence or
    word separator found in the second half of the window; without one the
    chunk is cut at ``chunk_size``.
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        separators: Optional[List[str]] = None,
    ):
        chunk_size = rag_config.CHUNK_SIZE if chunk_size is None else chunk_size
        chunk_overlap = rag_config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if chunk_overlap < 0 or chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be >= 0 and smaller than chunk_size ({chunk_size})"
            )

        super().__init__(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            strip_whitespace=False,
        )
        self.separators = separators if separators is not None else rag_config.CHUNK_SEPARATORS

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def chunk_overlap(self) -> int:
        return self._chunk_overlap

    def split_spans(self, text: str) -> List[Tuple[int, int]]:
        """
        Compute ``(start, end)`` offsets of every chunk of ``text``.

        Whitespace-only text yields no spans.
        """
        if not text or not text.strip():
            return []

        size = self._chunk_size
        overlap = self._chunk_overlap
        length = len(text)

        spans = []
        start = 0
        while length - start > size:
            end = self._find_break(text, start)
            spans.append((start, end))
            start = end - overlap
        spans.append((start, length))
        return spans

    def _find_break(self, text: str, start: int) -> int:
        hard_end = start + self._chunk_size
        # The break must leave the next chunk starting after this one
        lower = start + max(self._chunk_overlap + 1, self._chunk_size // 2)

        for separator in self.separators:
            if not separator:
                continue
            pos = text.rfind(separator, lower, hard_end)
            if pos != -1:
                return pos + len(separator)
        return hard_end

    def split_text(self, text: str) -> List[str]:
        return [text[start:end] for start, end in self.split_spans(text)]


def chunk_pages(
    pages: Sequence[Page],
    chunk_size: Optional[int] = None,
    chunk_overlap: Optional[int] = None,
    separators: Optional[List[str]] = None,
) -> List[Document]:
    """
    Split every page into chunks, never crossing a page boundary.

    Each chunk carries metadata:
    - page: 1-based page number
    - source: "Page {n}"
    - chunk_index: index of the chunk within its page
    - start_index / end_index: offsets into the page text
    - position: running index across the whole document

    Args:
        pages: Ordered pages of one document
        chunk_size: Character budget per chunk
        chunk_overlap: Characters carried over from the previous chunk
        separators: Boundary strings in order of preference

    Returns:
        List of chunk Documents in page order
    """
    if not pages:
        logger.warning("No pages to chunk")
        return []

    splitter = PageTextSplitter(chunk_size, chunk_overlap, separators)
    page_count = len(pages)

    logger.info(
        f"Chunking {page_count} pages with chunk_size={splitter.chunk_size}, "
        f"chunk_overlap={splitter.chunk_overlap}"
    )

    chunks: List[Document] = []
    for page in pages:
        if not 1 <= page.page_number <= page_count:
            raise ValueError(
                f"Page number {page.page_number} outside document range 1..{page_count}"
            )

        for chunk_index, (start, end) in enumerate(splitter.split_spans(page.text)):
            chunks.append(Document(
                page_content=page.text[start:end],
                metadata={
                    "page": page.page_number,
                    "source": page_source(page.page_number),
                    "chunk_index": chunk_index,
                    "start_index": start,
                    "end_index": end,
                    "position": len(chunks),
                },
            ))

    logger.info(f"Created {len(chunks)} chunks from {page_count} pages")

    return chunks

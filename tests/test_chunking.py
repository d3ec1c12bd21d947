"""
Unit tests for page chunking
"""
import pytest

from smartlearn.modules.study_rag.chunking import PageTextSplitter, chunk_pages, page_source
from smartlearn.modules.study_rag.models import Page


def _unbroken(length: int) -> str:
    """Text without any separator"""
    return ("abcdefghij" * (length // 10 + 1))[:length]


def _reconstruct(text: str, spans):
    """Join spans dropping the overlapping head of each later chunk"""
    parts = [text[spans[0][0]:spans[0][1]]]
    for (_, prev_end), (start, end) in zip(spans, spans[1:]):
        parts.append(text[prev_end:end])
    return "".join(parts)


class TestPageTextSplitter:
    """Test cases for the span splitter"""

    def test_docstring_example(self):
        """Test the small example without boundaries"""
        splitter = PageTextSplitter(chunk_size=5, chunk_overlap=2, separators=[])
        assert splitter.split_text("ABCDEFGHIJ") == ["ABCDE", "DEFGH", "GHIJ"]

    def test_short_text_is_one_chunk(self):
        splitter = PageTextSplitter(chunk_size=1000, chunk_overlap=200)
        assert splitter.split_text("Short page.") == ["Short page."]

    def test_whitespace_only_yields_nothing(self):
        splitter = PageTextSplitter(chunk_size=1000, chunk_overlap=200)
        assert splitter.split_text("   \n\n  ") == []
        assert splitter.split_text("") == []

    def test_invalid_overlap(self):
        """Test overlap must be smaller than size"""
        with pytest.raises(ValueError):
            PageTextSplitter(chunk_size=100, chunk_overlap=100)
        with pytest.raises(ValueError):
            PageTextSplitter(chunk_size=100, chunk_overlap=-1)

    @pytest.mark.parametrize("length", [1, 999, 1000, 1001, 1500, 2200, 5321])
    def test_coverage_and_overlap(self, length):
        """Test spans reconstruct the text and overlap exactly"""
        text = _unbroken(length)
        splitter = PageTextSplitter(chunk_size=1000, chunk_overlap=200, separators=[])
        spans = splitter.split_spans(text)

        assert _reconstruct(text, spans) == text
        for start, end in spans:
            assert end - start <= 1000
        for (_, prev_end), (start, _) in zip(spans, spans[1:]):
            assert prev_end - start == 200

    def test_snaps_to_sentence_boundary(self):
        """Test chunk end moves back to a separator in the window"""
        sentence = "The cell membrane controls transport. "
        text = sentence * 60
        splitter = PageTextSplitter(chunk_size=1000, chunk_overlap=200)
        chunks = splitter.split_text(text)

        assert len(chunks) > 1
        assert chunks[0].endswith(". ")
        assert _reconstruct(text, splitter.split_spans(text)) == text

    def test_deterministic(self):
        text = "Mitosis has four phases. " * 100
        splitter = PageTextSplitter(chunk_size=300, chunk_overlap=50)
        assert splitter.split_spans(text) == splitter.split_spans(text)


class TestChunkPages:
    """Test cases for chunk_pages"""

    def test_page_sizes_scenario(self):
        """Test pages of 1500, 400 and 2200 characters"""
        pages = [
            Page(page_number=1, text=_unbroken(1500)),
            Page(page_number=2, text=_unbroken(400)),
            Page(page_number=3, text=_unbroken(2200)),
        ]
        chunks = chunk_pages(pages, chunk_size=1000, chunk_overlap=200)

        per_page = {}
        for chunk in chunks:
            per_page[chunk.metadata["page"]] = per_page.get(chunk.metadata["page"], 0) + 1
        assert per_page == {1: 2, 2: 1, 3: 3}

    def test_metadata(self):
        """Test every chunk carries its page provenance"""
        pages = [
            Page(page_number=1, text=_unbroken(1500)),
            Page(page_number=2, text="Second page text."),
        ]
        chunks = chunk_pages(pages, chunk_size=1000, chunk_overlap=200)

        assert [c.metadata["position"] for c in chunks] == list(range(len(chunks)))
        for chunk in chunks:
            page = chunk.metadata["page"]
            assert chunk.metadata["source"] == page_source(page) == f"Page {page}"
            page_text = pages[page - 1].text
            start, end = chunk.metadata["start_index"], chunk.metadata["end_index"]
            assert page_text[start:end] == chunk.page_content

        assert [c.metadata["chunk_index"] for c in chunks if c.metadata["page"] == 1] == [0, 1]

    def test_chunks_never_cross_pages(self):
        pages = [
            Page(page_number=1, text="alpha " * 300),
            Page(page_number=2, text="beta " * 300),
        ]
        for chunk in chunk_pages(pages, chunk_size=500, chunk_overlap=100):
            page = chunk.metadata["page"]
            start, end = chunk.metadata["start_index"], chunk.metadata["end_index"]
            assert pages[page - 1].text[start:end] == chunk.page_content
            alphabet = set("alpha ") if page == 1 else set("beta ")
            assert set(chunk.page_content) <= alphabet

    def test_blank_pages_are_skipped(self):
        pages = [
            Page(page_number=1, text="   "),
            Page(page_number=2, text="Only this page has text."),
        ]
        chunks = chunk_pages(pages)
        assert len(chunks) == 1
        assert chunks[0].metadata["page"] == 2

    def test_page_number_out_of_range(self):
        with pytest.raises(ValueError):
            chunk_pages([Page(page_number=2, text="orphan")])

    def test_no_pages(self):
        assert chunk_pages([]) == []

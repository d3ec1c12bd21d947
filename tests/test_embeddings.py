"""
Unit tests for the embedding client
"""
import time

import pytest

from smartlearn.core.exceptions import EmbeddingUnavailable
from smartlearn.modules.study_rag.embeddings import EmbeddingClient
from conftest import TEST_DIMENSION, FlakyEmbeddings, KeywordEmbeddings


def _client(model, **kwargs):
    options = dict(dimension=TEST_DIMENSION, batch_size=4, max_attempts=3, timeout=0, backoff_seconds=0)
    options.update(kwargs)
    return EmbeddingClient(model=model, **options)


class TestEmbeddingClient:
    """Test cases for EmbeddingClient"""

    def test_order_and_dimension(self):
        """Test one vector per text in input order"""
        model = KeywordEmbeddings()
        client = _client(model)
        texts = [f"text number {i}" for i in range(10)]

        vectors = client.embed(texts)

        assert len(vectors) == 10
        assert all(len(v) == TEST_DIMENSION for v in vectors)
        assert vectors == model.embed_documents(texts)

    def test_batching(self):
        """Test texts are sent in batches of batch_size"""
        model = KeywordEmbeddings()
        client = _client(model, batch_size=4)
        client.embed([f"t{i}" for i in range(10)])
        assert model.document_calls == 3

    def test_empty_input(self):
        model = KeywordEmbeddings()
        assert _client(model).embed([]) == []
        assert model.document_calls == 0

    def test_retries_transient_failures(self):
        """Test transient errors are retried"""
        model = FlakyEmbeddings(failures=2)
        vectors = _client(model, max_attempts=3).embed(["osmosis"])
        assert len(vectors) == 1
        assert model.attempts == 3

    def test_gives_up_after_max_attempts(self):
        model = FlakyEmbeddings(failures=5)
        with pytest.raises(EmbeddingUnavailable):
            _client(model, max_attempts=3).embed(["osmosis"])
        assert model.attempts == 3

    def test_query_retry(self):
        model = FlakyEmbeddings(failures=1)
        vector = _client(model).embed_query("what is osmosis")
        assert len(vector) == TEST_DIMENSION

    def test_dimension_mismatch(self):
        """Test vectors of the wrong length are rejected"""
        client = _client(KeywordEmbeddings(dimension=8))
        with pytest.raises(EmbeddingUnavailable):
            client.embed(["anything"])

    def test_deadline(self):
        """Test a hung call counts as a failed attempt"""

        class SlowEmbeddings(KeywordEmbeddings):
            def embed_documents(self, texts):
                time.sleep(0.5)
                return super().embed_documents(texts)

        client = _client(SlowEmbeddings(), timeout=0.05, max_attempts=1)
        with pytest.raises(EmbeddingUnavailable):
            client.embed(["slow"])

"""
Shared fixtures: deterministic embeddings, a scripted LLM, in-memory
vector backend and repository, and a fully wired study service.
"""
import json
import re
import zlib
from typing import List

import pytest
from fastapi.testclient import TestClient
from langchain_core.embeddings import Embeddings

from smartlearn.core.exceptions import DocumentUnreadable
from smartlearn.modules.study_rag.embeddings import EmbeddingClient
from smartlearn.modules.study_rag.ingest import PdfPageExtractor
from smartlearn.modules.study_rag.llm_providers import BaseLLM
from smartlearn.modules.study_rag.models import Page
from smartlearn.modules.study_rag.recommendations import SearchLinkSource, VideoRecommender
from smartlearn.modules.study_rag.repository import JsonDocumentRepository
from smartlearn.modules.study_rag.storage import LocalBlobStorage
from smartlearn.modules.study_rag.study_service import StudyService
from smartlearn.modules.study_rag.vectorstore import InMemoryIndexBackend, VectorIndexManager

TEST_DIMENSION = 128


class KeywordEmbeddings(Embeddings):
    """Bag-of-words vectors: texts sharing words point the same way"""

    def __init__(self, dimension: int = TEST_DIMENSION):
        self.dimension = dimension
        self.document_calls = 0

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for word in re.findall(r"[a-z]+", text.lower()):
            vector[zlib.crc32(word.encode()) % (self.dimension - 1)] += 1.0
        # Keeps every vector away from zero
        vector[-1] = 0.1
        return vector

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.document_calls += 1
        return [self._vector(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        return self._vector(text)


class FlakyEmbeddings(KeywordEmbeddings):
    """Fails the first ``failures`` calls, then behaves"""

    def __init__(self, failures: int, dimension: int = TEST_DIMENSION):
        super().__init__(dimension)
        self.failures = failures
        self.attempts = 0

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("embedding endpoint unavailable")
        return super().embed_documents(texts)

    def embed_query(self, text: str) -> List[float]:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("embedding endpoint unavailable")
        return super().embed_query(text)


class ScriptedLLM(BaseLLM):
    """
    LLM double returning queued responses.

    A queued Exception is raised; a callable is called with the prompt.
    When the queue is empty ``default`` is used.
    """

    def __init__(self, responses=None, default="Scripted answer."):
        super().__init__(model="scripted", timeout=0)
        self.responses = list(responses or [])
        self.default = default
        self.prompts: List[str] = []
        self.json_modes: List[bool] = []
        self.history_sizes: List[int] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    def _create_llm(self, json_mode: bool = False):
        raise NotImplementedError("ScriptedLLM never builds a real model")

    def queue(self, *responses):
        self.responses.extend(responses)

    def _invoke(self, messages, json_mode):
        prompt = messages[-1].content
        self.prompts.append(prompt)
        self.json_modes.append(json_mode)
        self.history_sizes.append(len(messages) - 1)

        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(prompt)
        return response


class StaticPageExtractor(PdfPageExtractor):
    """Returns preset page texts instead of parsing a PDF"""

    def __init__(self, texts: List[str]):
        super().__init__()
        self.texts = texts

    def extract_pages(self, file_bytes: bytes, filename: str = "document.pdf") -> List[Page]:
        if not any(text.strip() for text in self.texts):
            raise DocumentUnreadable(filename, "no extractable text")
        return [Page(page_number=i + 1, text=text) for i, text in enumerate(self.texts)]


def single_choice_payload(count: int, wrap: bool = False) -> str:
    """Model output for ``count`` well-formed single-choice questions"""
    items = [
        {
            "question": f"Question {i + 1} about photosynthesis?",
            "options": [f"Right {i + 1}", f"Wrong A{i + 1}", f"Wrong B{i + 1}", f"Wrong C{i + 1}"],
            "correctAnswer": f"Right {i + 1}",
            "explanation": f"Because of fact {i + 1}.",
        }
        for i in range(count)
    ]
    return json.dumps({"quiz": items} if wrap else items)


def short_answer_payload(count: int) -> str:
    items = [
        {
            "question": f"Explain concept {i + 1}.",
            "correctAnswer": f"Concept {i + 1} means something specific.",
            "explanation": "From the text.",
        }
        for i in range(count)
    ]
    return json.dumps(items)


BIOLOGY_PAGES = [
    "Photosynthesis converts light energy into chemical energy. Chlorophyll in the "
    "chloroplast absorbs sunlight and the plant produces glucose and oxygen.",
    "Cellular respiration breaks down glucose in the mitochondria to release energy "
    "as ATP. Oxygen is consumed and carbon dioxide is released.",
    "Osmosis is the movement of water across a semipermeable membrane from low "
    "solute concentration to high solute concentration.",
]


@pytest.fixture
def keyword_embeddings():
    return KeywordEmbeddings()


@pytest.fixture
def embedding_client(keyword_embeddings):
    return EmbeddingClient(
        model=keyword_embeddings,
        dimension=TEST_DIMENSION,
        batch_size=8,
        max_attempts=3,
        timeout=0,
        backoff_seconds=0,
    )


@pytest.fixture
def index_backend(embedding_client):
    return InMemoryIndexBackend(embedding_client)


@pytest.fixture
def index_manager(index_backend, embedding_client):
    return VectorIndexManager(
        index_backend,
        embedding_client,
        ready_timeout=1.0,
        poll_interval=0.001,
        upsert_batch_size=4,
        query_timeout=0,
    )


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest.fixture
def repository():
    return JsonDocumentRepository()


@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(str(tmp_path / "uploads"))


@pytest.fixture
def extractor():
    return StaticPageExtractor(list(BIOLOGY_PAGES))


@pytest.fixture
def service(repository, index_manager, embedding_client, llm, storage, extractor):
    return StudyService(
        repository=repository,
        index_manager=index_manager,
        embeddings=embedding_client,
        llm_provider=llm,
        storage=storage,
        extractor=extractor,
        recommender=VideoRecommender(sources=[SearchLinkSource()]),
        chunk_size=1000,
        chunk_overlap=200,
    )


@pytest.fixture
def ingested(service):
    """A three-page biology document owned by learner-1"""
    return service.ingest_document("learner-1", b"%PDF-1.4 fake", "biology.pdf")


@pytest.fixture
def client(service):
    from smartlearn.main import app
    from smartlearn.routes.dependencies import get_study_service

    app.dependency_overrides[get_study_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

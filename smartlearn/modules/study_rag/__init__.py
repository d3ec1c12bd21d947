"""
Study RAG Module
================
PDF study assistant: retrieval-augmented Q&A with page citations, quiz
generation and grading.

Provides:
- PDF page extraction and page-confined chunking
- One vector index per document (ChromaDB or in-memory)
- Citation-bearing retrieval and grounded answers
- Quiz generation from document content
- Answer evaluation and learner progress tracking
- Runtime LLM provider switching (Ollama/Groq)

Usage:
    from smartlearn.modules.study_rag import StudyService

    service = StudyService.get_instance()
    document = service.ingest_document("learner-1", pdf_bytes, "notes.pdf")
    reply = service.ask("learner-1", document.id, "What is the main topic?")
    quiz = service.generate_quiz("learner-1", document.id, "single-choice", 5)
"""

from .study_service import StudyService
from .ingest import PdfPageExtractor
from .chunking import PageTextSplitter, chunk_pages
from .embeddings import EmbeddingClient
from .vectorstore import (
    ChromaIndexBackend,
    InMemoryIndexBackend,
    IndexHandle,
    VectorIndexManager,
)
from .retriever import DocumentRetriever
from .rag_chain import AnswerSynthesizer
from .quiz_generator import QuizGenerator
from .quiz_evaluator import AnswerEvaluator, ProgressAggregator, QuizGrader
from .repository import DocumentRepository, JsonDocumentRepository
from .storage import BlobStorage, LocalBlobStorage
from .recommendations import VideoRecommender
from .llm_providers import (
    BaseLLM,
    OllamaLLM,
    GroqLLM,
    LLMFactory,
    LLMProvider,
)

__all__ = [
    "StudyService",
    "PdfPageExtractor",
    "PageTextSplitter",
    "chunk_pages",
    "EmbeddingClient",
    "ChromaIndexBackend",
    "InMemoryIndexBackend",
    "IndexHandle",
    "VectorIndexManager",
    "DocumentRetriever",
    "AnswerSynthesizer",
    "QuizGenerator",
    "AnswerEvaluator",
    "ProgressAggregator",
    "QuizGrader",
    "DocumentRepository",
    "JsonDocumentRepository",
    "BlobStorage",
    "LocalBlobStorage",
    "VideoRecommender",
    "BaseLLM",
    "OllamaLLM",
    "GroqLLM",
    "LLMFactory",
    "LLMProvider",
]

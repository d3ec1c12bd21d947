"""
Study Service Module
====================
Main service class that coordinates all study operations.
This is the primary interface used by the API routes.

Supports multiple LLM providers:
- Ollama (local inference)
- Groq Cloud (OpenAI-compatible API)
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from smartlearn.core.constants import ActivityType, MessageRole, QuizType, RECENT_ACTIVITY_LIMIT
from smartlearn.core.exceptions import DocumentUnreadable, ResourceNotFound, ValidationFailed
from smartlearn.core.logger import ingestion_logger
from .chunking import chunk_pages
from .config import rag_config
from .embeddings import EmbeddingClient
from .ingest import PdfPageExtractor
from .llm_providers import BaseLLM, LLMFactory
from .models import (
    ChatTurn,
    LearnerProgress,
    Quiz,
    QuizSubmission,
    StudyDocument,
)
from .quiz_evaluator import AnswerEvaluator, QuizGrader
from .quiz_generator import QuizGenerator
from .rag_chain import AnswerSynthesizer, SynthesizedAnswer
from .recommendations import RecommendationResult, VideoRecommender
from .repository import DocumentRepository, JsonDocumentRepository
from .retriever import DocumentRetriever
from .storage import BlobStorage, LocalBlobStorage
from .vectorstore import IndexHandle, VectorIndexManager, create_index_backend, make_index_name

logger = logging.getLogger(__name__)

# Prior turns sent along with a new question
CHAT_HISTORY_TURNS = 10


class StudyService:
    """
    Main service for study operations.

    Provides a simple API for:
    - Document ingestion (PDF upload, chunking, indexing)
    - Question answering with page citations
    - Quiz generation and grading
    - Learner progress and dashboard
    - Runtime LLM provider switching

    Usage:
        service = StudyService.get_instance()

        document = service.ingest_document("learner-1", pdf_bytes, "biology.pdf")
        reply = service.ask("learner-1", document.id, "What is osmosis?")
        quiz = service.generate_quiz("learner-1", document.id, "single-choice", 5)
    """

    _instance: Optional["StudyService"] = None

    def __init__(
        self,
        repository: DocumentRepository,
        index_manager: VectorIndexManager,
        embeddings: EmbeddingClient,
        llm_provider: BaseLLM,
        storage: Optional[BlobStorage] = None,
        extractor: Optional[PdfPageExtractor] = None,
        recommender: Optional[VideoRecommender] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        """
        Initialize Study Service.

        Args:
            repository: Document/progress persistence
            index_manager: Vector index lifecycle manager
            embeddings: Embedding client shared with the index backend
            llm_provider: LLM provider used for answers, quizzes and grading
            storage: Blob storage for raw uploads
            extractor: PDF page extractor
            recommender: Video recommender
            chunk_size: Chunk size override
            chunk_overlap: Chunk overlap override
        """
        self.repository = repository
        self.index_manager = index_manager
        self.embeddings = embeddings
        self.storage = storage or LocalBlobStorage()
        self.extractor = extractor or PdfPageExtractor()
        self.recommender = recommender or VideoRecommender()
        self.chunk_size = chunk_size or rag_config.CHUNK_SIZE
        self.chunk_overlap = rag_config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        self._llm_provider = llm_provider
        self.retriever = DocumentRetriever(index_manager, embeddings)
        self.synthesizer = AnswerSynthesizer(llm_provider)
        self.quiz_generator = QuizGenerator(llm_provider, retriever=self.retriever)
        self.evaluator = AnswerEvaluator(llm_provider)
        self.grader = QuizGrader(repository, self.evaluator)

        logger.info(f"Study service initialized with provider: {llm_provider.provider_name}")

    @classmethod
    def from_config(cls) -> "StudyService":
        """Wire every component from the configuration."""
        embeddings = EmbeddingClient()
        backend = create_index_backend(embeddings)
        return cls(
            repository=JsonDocumentRepository(rag_config.REPOSITORY_FILE),
            index_manager=VectorIndexManager(backend, embeddings),
            embeddings=embeddings,
            llm_provider=LLMFactory.create(),
        )

    @classmethod
    def get_instance(cls) -> "StudyService":
        """Get singleton instance of Study Service."""
        if cls._instance is None:
            cls._instance = cls.from_config()
        return cls._instance

    # ===== Documents =====

    def ingest_document(
        self,
        learner_id: str,
        file_bytes: bytes,
        filename: str,
        title: Optional[str] = None,
        description: str = ""
    ) -> StudyDocument:
        """
        Ingest an uploaded PDF.

        Extraction and chunking happen before anything is provisioned. Once
        the index exists, any failure (including interruption) deletes it
        before the error propagates.

        Raises:
            DocumentUnreadable: No usable text in the PDF
            EmbeddingUnavailable: Embedding retries exhausted
            IndexProvisioningTimeout: Index never became ready
        """
        title = (title or filename.rsplit(".", 1)[0]).strip() or "Untitled"
        ingestion_logger.info(f"Ingesting '{filename}' for learner {learner_id}")

        pages = self.extractor.extract_pages(file_bytes, filename)
        chunks = chunk_pages(pages, self.chunk_size, self.chunk_overlap, rag_config.CHUNK_SEPARATORS)
        if not chunks:
            raise DocumentUnreadable(filename, "no text to index")

        storage_url = self.storage.store(file_bytes, filename)
        handle: Optional[IndexHandle] = None
        try:
            handle = self.index_manager.create_index(make_index_name(title))
            written = self.index_manager.upsert(handle, chunks)

            document = StudyDocument(
                learner_id=learner_id,
                title=title,
                description=description,
                storage_url=storage_url,
                index_id=handle.name,
                pages=pages,
            )
            self.repository.save_document(document)
        except BaseException as e:
            ingestion_logger.error(f"Ingestion of '{filename}' failed: {e!r}")
            if handle is not None:
                self.index_manager.delete_index(handle, best_effort=True)
            self._discard_blob(storage_url)
            raise

        ingestion_logger.info(
            f"Ingested '{filename}' as {document.id}: {len(pages)} pages, "
            f"{written} chunks, index {handle.name}"
        )
        return document

    def _discard_blob(self, storage_url: str):
        try:
            self.storage.remove(storage_url)
        except OSError as e:
            logger.warning(f"Could not remove stored upload {storage_url}: {e}")

    def get_document(self, learner_id: str, document_id: str) -> StudyDocument:
        """Fetch a document owned by the learner."""
        document = self.repository.get_document(document_id)
        if document is None or document.learner_id != learner_id:
            raise ResourceNotFound("Document", document_id)
        return document

    def list_documents(self, learner_id: str) -> List[StudyDocument]:
        return self.repository.list_documents(learner_id)

    def delete_document(self, learner_id: str, document_id: str) -> bool:
        """Delete a document together with its index and stored upload."""
        document = self.get_document(learner_id, document_id)

        if self.index_manager.backend.exists(document.index_id):
            self.index_manager.delete_index(IndexHandle(
                name=document.index_id, dimension=self.embeddings.dimension
            ))
        if document.storage_url:
            self._discard_blob(document.storage_url)

        deleted = self.repository.delete_document(document_id)
        ingestion_logger.info(f"Deleted document {document_id} of learner {learner_id}")
        return deleted

    # ===== Question answering =====

    def ask(self, learner_id: str, document_id: str, question: str) -> SynthesizedAnswer:
        """
        Answer a question about one document and record the exchange.

        An index with no matching content still produces a best-effort
        answer with no citations.
        """
        question = (question or "").strip()
        if not question:
            raise ValidationFailed("Question must not be empty")

        document = self.get_document(learner_id, document_id)
        handle = self.index_manager.open_index(document.index_id)

        citations = self.retriever.retrieve(question, handle)
        history = document.chat_history[-CHAT_HISTORY_TURNS:]
        result = self.synthesizer.answer(question, citations, history=history)

        self.repository.append_chat_turns(document_id, [
            ChatTurn(role=MessageRole.USER, content=question),
            ChatTurn(role=MessageRole.ASSISTANT, content=result.answer, citations=result.citations),
        ])
        return result

    def get_chat_history(self, learner_id: str, document_id: str) -> List[ChatTurn]:
        return self.get_document(learner_id, document_id).chat_history

    # ===== Quizzes =====

    def generate_quiz(
        self,
        learner_id: str,
        document_id: str,
        quiz_type: Union[QuizType, str],
        num_questions: int = 5
    ) -> Quiz:
        """Generate a quiz and append it to the document's quiz history."""
        document = self.get_document(learner_id, document_id)

        try:
            handle = self.index_manager.open_index(document.index_id)
        except ResourceNotFound:
            logger.warning(f"Index {document.index_id} missing, quiz context falls back to page text")
            handle = None

        quiz = self.quiz_generator.generate(document, quiz_type, num_questions, handle=handle)
        self.repository.append_quiz(document_id, quiz)
        return quiz

    def submit_attempt(
        self,
        learner_id: str,
        document_id: str,
        quiz_id: str,
        submission: QuizSubmission
    ) -> Tuple[Quiz, LearnerProgress]:
        return self.grader.submit(learner_id, document_id, quiz_id, submission)

    def get_latest_quiz(self, learner_id: str, document_id: str) -> Optional[Quiz]:
        document = self.get_document(learner_id, document_id)
        if not document.quizzes:
            return None
        return max(document.quizzes, key=lambda q: q.created_at)

    def list_quizzes(self, learner_id: str, document_id: str) -> List[Quiz]:
        return self.get_document(learner_id, document_id).quizzes

    def count_quizzes(self, learner_id: str) -> Dict[str, int]:
        documents = self.repository.list_documents(learner_id)
        quizzes = [quiz for doc in documents for quiz in doc.quizzes]
        return {
            "total": len(quizzes),
            "attempted": sum(1 for quiz in quizzes if quiz.is_attempted),
        }

    # ===== Progress =====

    def get_progress(self, learner_id: str) -> LearnerProgress:
        return self.repository.get_progress(learner_id)

    def get_dashboard(self, learner_id: str) -> Dict[str, Any]:
        """
        Summary statistics and recent activity for a learner.

        Returns:
            Dictionary with "stats" and "recent_activities"
        """
        documents = self.repository.list_documents(learner_id)
        progress = self.repository.get_progress(learner_id)

        attempted = []
        activities = []
        chat_sessions = 0
        chat_turns = 0

        for document in documents:
            activities.append({
                "id": document.id,
                "type": ActivityType.DOCUMENT.value,
                "title": f"Uploaded: {document.title}",
                "time": document.created_at,
                "document_id": document.id,
            })

            for quiz in document.quizzes:
                if not quiz.is_attempted:
                    continue
                attempted.append(quiz)
                activities.append({
                    "id": quiz.id,
                    "type": ActivityType.QUIZ.value,
                    "title": f"Quiz: {document.title}",
                    "score": quiz.score,
                    "time": quiz.attempted_at or quiz.created_at,
                    "document_id": document.id,
                })

            if document.chat_history:
                chat_sessions += 1
                chat_turns += len(document.chat_history)
                activities.append({
                    "id": f"chat_{document.id}",
                    "type": ActivityType.CHAT.value,
                    "title": f"AI Tutor Session: {document.title}",
                    "time": document.chat_history[-1].timestamp,
                    "document_id": document.id,
                })

        average = round(sum(q.score for q in attempted) / len(attempted), 2) if attempted else 0.0
        activities.sort(key=lambda a: a["time"], reverse=True)

        return {
            "stats": {
                "total_quizzes_attempted": len(attempted),
                "average_score": average,
                "total_study_materials": len(documents),
                "total_chat_sessions": chat_sessions,
                "total_chat_turns": chat_turns,
                "strengths": progress.strengths,
                "weaknesses": progress.weaknesses,
            },
            "recent_activities": activities[:RECENT_ACTIVITY_LIMIT],
        }

    # ===== Recommendations =====

    def get_recommendations(
        self,
        learner_id: str,
        document_id: str,
        page_number: int
    ) -> RecommendationResult:
        """Video suggestions for one page; empty rather than failing."""
        document = self.get_document(learner_id, document_id)
        page = document.get_page(page_number)
        if page is None:
            raise ResourceNotFound("Page", str(page_number))

        return self.recommender.recommend(page.summary or page.text)

    # ===== LLM provider =====

    @property
    def llm_provider(self) -> BaseLLM:
        return self._llm_provider

    def set_llm_provider(self, provider: str, model: Optional[str] = None) -> Dict[str, Any]:
        """
        Switch LLM provider at runtime.

        Args:
            provider: Provider name ("ollama" or "groq")
            model: Optional model name override

        Returns:
            Dictionary with switch status
        """
        logger.info(f"Switching LLM provider to: {provider}, model: {model}")

        result = LLMFactory.set_provider(provider, model)
        if not result.get("success"):
            return result

        new_provider = LLMFactory.create(provider=provider, model=model)
        self._llm_provider = new_provider
        self.synthesizer.set_llm_provider(new_provider)
        self.quiz_generator.set_llm_provider(new_provider)
        self.evaluator.set_llm_provider(new_provider)

        return {
            "success": True,
            "provider": provider,
            "model": model or new_provider.model,
            "message": f"Successfully switched to {provider}",
        }

    def get_llm_provider_info(self) -> Dict[str, Any]:
        current = LLMFactory.get_current_provider()
        return {
            "success": True,
            "current_provider": current["provider"],
            "current_model": current["model"],
            "available_providers": current["available_providers"],
            "groq_configured": bool(rag_config.GROQ_API_KEY),
            "ollama_base_url": rag_config.OLLAMA_BASE_URL,
        }

    def check_llm_status(self) -> Dict[str, Any]:
        return self._llm_provider.check_connection()

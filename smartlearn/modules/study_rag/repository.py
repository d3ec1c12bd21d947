"""
Document Repository Module
==========================
Persistence for documents, their quizzes and chat history, and learner
progress.
"""

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from smartlearn.core.exceptions import (
    ConcurrentUpdateConflict,
    QuizAlreadyAttempted,
    ResourceNotFound,
)
from .models import ChatTurn, LearnerProgress, Quiz, StudyDocument

logger = logging.getLogger(__name__)


class DocumentRepository(ABC):
    """Storage interface used by the study service."""

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[StudyDocument]:
        ...

    @abstractmethod
    def save_document(self, document: StudyDocument) -> None:
        ...

    @abstractmethod
    def delete_document(self, document_id: str) -> bool:
        ...

    @abstractmethod
    def list_documents(self, learner_id: str) -> List[StudyDocument]:
        ...

    @abstractmethod
    def append_quiz(self, document_id: str, quiz: Quiz) -> None:
        ...

    @abstractmethod
    def append_chat_turns(self, document_id: str, turns: Sequence[ChatTurn]) -> None:
        ...

    @abstractmethod
    def get_progress(self, learner_id: str) -> LearnerProgress:
        ...

    @abstractmethod
    def commit_attempt(
        self,
        document_id: str,
        quiz: Quiz,
        progress: LearnerProgress,
        expected_version: int
    ) -> LearnerProgress:
        """
        Store an attempted quiz and the learner's new progress together.

        Raises:
            ConcurrentUpdateConflict: Progress moved past ``expected_version``
            QuizAlreadyAttempted: Stored quiz is already attempted
        """


class JsonDocumentRepository(DocumentRepository):
    """
    In-memory repository with optional JSON file persistence.

    Every mutation is applied to memory and then written to disk with an
    atomic replace; if the write fails the in-memory state is rolled back.
    Callers always receive copies, never the stored objects.
    """

    def __init__(self, storage_file: Optional[str] = None):
        """
        Initialize repository.

        Args:
            storage_file: JSON file to persist to, None for memory only
        """
        self.storage_file = Path(storage_file) if storage_file else None
        self._documents: Dict[str, StudyDocument] = {}
        self._progress: Dict[str, LearnerProgress] = {}
        self._lock = threading.RLock()

        if self.storage_file:
            self.storage_file.parent.mkdir(parents=True, exist_ok=True)
            self._load()

    # ===== Persistence =====

    def _load(self):
        """Load state from disk."""
        if not self.storage_file.exists():
            return

        with open(self.storage_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        self._documents = {
            doc["id"]: StudyDocument.model_validate(doc)
            for doc in data.get("documents", [])
        }
        self._progress = {
            item["learner_id"]: LearnerProgress.model_validate(item)
            for item in data.get("progress", [])
        }
        logger.info(
            f"Loaded {len(self._documents)} documents and "
            f"{len(self._progress)} learner records from {self.storage_file}"
        )

    def _save(self):
        """Write state to disk atomically."""
        if not self.storage_file:
            return

        data = {
            "documents": [doc.model_dump(mode="json") for doc in self._documents.values()],
            "progress": [p.model_dump(mode="json") for p in self._progress.values()],
        }

        fd, tmp_path = tempfile.mkstemp(
            dir=self.storage_file.parent, prefix=".store-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.storage_file)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    @contextmanager
    def _transaction(self):
        """Apply a mutation, persist it, and roll back memory if that fails."""
        with self._lock:
            documents = dict(self._documents)
            progress = dict(self._progress)
            try:
                yield
                self._save()
            except BaseException:
                self._documents = documents
                self._progress = progress
                raise

    def _require(self, document_id: str) -> StudyDocument:
        document = self._documents.get(document_id)
        if document is None:
            raise ResourceNotFound("Document", document_id)
        return document

    # ===== Documents =====

    def get_document(self, document_id: str) -> Optional[StudyDocument]:
        with self._lock:
            document = self._documents.get(document_id)
            return document.model_copy(deep=True) if document else None

    def save_document(self, document: StudyDocument) -> None:
        with self._transaction():
            self._documents[document.id] = document.model_copy(deep=True)
        logger.info(f"Saved document {document.id} ({document.title})")

    def delete_document(self, document_id: str) -> bool:
        with self._transaction():
            removed = self._documents.pop(document_id, None)
        return removed is not None

    def list_documents(self, learner_id: str) -> List[StudyDocument]:
        """Documents of a learner, newest first."""
        with self._lock:
            documents = [
                doc.model_copy(deep=True)
                for doc in self._documents.values()
                if doc.learner_id == learner_id
            ]
        return sorted(documents, key=lambda d: d.created_at, reverse=True)

    def append_quiz(self, document_id: str, quiz: Quiz) -> None:
        with self._transaction():
            document = self._require(document_id)
            self._documents[document_id] = document.model_copy(
                update={"quizzes": document.quizzes + [quiz.model_copy(deep=True)]},
                deep=True,
            )

    def append_chat_turns(self, document_id: str, turns: Sequence[ChatTurn]) -> None:
        with self._transaction():
            document = self._require(document_id)
            new_turns = [turn.model_copy(deep=True) for turn in turns]
            self._documents[document_id] = document.model_copy(
                update={"chat_history": document.chat_history + new_turns},
                deep=True,
            )

    # ===== Progress =====

    def get_progress(self, learner_id: str) -> LearnerProgress:
        """Progress of a learner; a fresh record if they have none yet."""
        with self._lock:
            progress = self._progress.get(learner_id)
            if progress is None:
                return LearnerProgress(learner_id=learner_id)
            return progress.model_copy(deep=True)

    def commit_attempt(
        self,
        document_id: str,
        quiz: Quiz,
        progress: LearnerProgress,
        expected_version: int
    ) -> LearnerProgress:
        with self._transaction():
            document = self._require(document_id)

            index = next(
                (i for i, stored in enumerate(document.quizzes) if stored.id == quiz.id),
                None,
            )
            if index is None:
                raise ResourceNotFound("Quiz", quiz.id)
            if document.quizzes[index].is_attempted:
                raise QuizAlreadyAttempted(quiz.id)

            current = self._progress.get(progress.learner_id)
            current_version = current.version if current else 0
            if current_version != expected_version:
                raise ConcurrentUpdateConflict(
                    f"Progress of learner '{progress.learner_id}' is at version "
                    f"{current_version}, expected {expected_version}"
                )

            quizzes = list(document.quizzes)
            quizzes[index] = quiz.model_copy(deep=True)
            self._documents[document_id] = document.model_copy(
                update={"quizzes": quizzes}, deep=True
            )

            committed = progress.model_copy(update={"version": expected_version + 1}, deep=True)
            self._progress[progress.learner_id] = committed

        return committed.model_copy(deep=True)

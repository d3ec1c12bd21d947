"""
Pydantic schemas for API request/response models
"""
from pydantic import BaseModel, Field, field_validator
from typing import List, Dict, Optional, Any
from datetime import datetime

from smartlearn.core.constants import QuizLimits, QuizType
from smartlearn.modules.study_rag.models import (
    ChatTurn,
    Citation,
    LearnerProgress,
    Quiz,
    StudyDocument,
)
from smartlearn.modules.study_rag.recommendations import VideoRecommendation


# ===== Document Schemas =====
class DocumentSummary(BaseModel):
    id: str
    title: str
    description: str = ""
    created_at: datetime
    page_count: int
    quiz_count: int

    @classmethod
    def from_document(cls, document: StudyDocument) -> "DocumentSummary":
        return cls(
            id=document.id,
            title=document.title,
            description=document.description,
            created_at=document.created_at,
            page_count=document.page_count,
            quiz_count=len(document.quizzes),
        )


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    document: DocumentSummary


class DocumentListResponse(BaseModel):
    documents: List[DocumentSummary]
    total: int


class DocumentResponse(BaseModel):
    success: bool = True
    document: StudyDocument


class RecommendationResponse(BaseModel):
    success: bool = True
    page_number: int
    keywords: List[str] = []
    recommendations: List[VideoRecommendation] = []
    message: Optional[str] = None


# ===== Chat Schemas =====
class AskRequest(BaseModel):
    question: str = Field(..., min_length=1, description="Question about the document")


class AskResponse(BaseModel):
    success: bool = True
    answer: str
    citations: List[Citation] = []
    sources: List[Citation] = []


class ChatHistoryResponse(BaseModel):
    history: List[ChatTurn]
    total: int


# ===== Quiz Schemas =====
class QuizGenerateRequest(BaseModel):
    document_id: str
    quiz_type: QuizType = QuizType.SINGLE_CHOICE
    num_questions: int = Field(default=5, ge=QuizLimits.MIN_QUESTIONS, le=QuizLimits.MAX_QUESTIONS)

    @field_validator("quiz_type", mode="before")
    @classmethod
    def _parse_quiz_type(cls, value):
        # Accept the short aliases mcq/saq/laq
        return QuizType.parse(value)


class QuizResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    quiz: Optional[Quiz] = None


class QuizListResponse(BaseModel):
    quizzes: List[Quiz]
    total: int


class QuizAttemptResponse(BaseModel):
    success: bool = True
    message: str
    quiz: Quiz
    progress: LearnerProgress


class QuizCountResponse(BaseModel):
    total: int
    attempted: int


class DashboardResponse(BaseModel):
    success: bool = True
    stats: Dict[str, Any]
    recent_activities: List[Dict[str, Any]]


# ===== Config Schemas =====
class LLMProviderUpdate(BaseModel):
    provider: str = Field(..., description="'ollama' or 'groq'")
    model: Optional[str] = None

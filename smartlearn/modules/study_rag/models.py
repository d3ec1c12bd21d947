"""
Study Data Models
=================
Pydantic models for documents, quizzes, chat turns and learner progress.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from smartlearn.core.constants import MessageRole, QuizType
from smartlearn.utils.helpers import generate_id, utcnow


# ===== Pages & Citations =====

class Page(BaseModel):
    """One extracted PDF page"""
    page_number: int = Field(ge=1, description="1-based page number")
    text: str = ""
    summary: Optional[str] = None


class Citation(BaseModel):
    """Link from an answer back to source material"""
    page_number: int
    content: str
    source: str = ""
    score: Optional[float] = None


class ChatTurn(BaseModel):
    """One message of a document conversation"""
    role: MessageRole
    content: str
    citations: List[Citation] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)


# ===== Answers =====

class TextAnswer(BaseModel):
    """Free-text answer for short/long answer questions"""
    kind: Literal["text"] = "text"
    text: str


class ChoiceAnswer(BaseModel):
    """Index of the selected option"""
    kind: Literal["choice"] = "choice"
    index: int = Field(ge=0)


class MultiChoiceAnswer(BaseModel):
    """Indices of several selected options"""
    kind: Literal["multi_choice"] = "multi_choice"
    indices: List[int] = Field(default_factory=list)


AnswerValue = Annotated[
    Union[TextAnswer, ChoiceAnswer, MultiChoiceAnswer],
    Field(discriminator="kind"),
]


# ===== Quiz =====

class QuizQuestion(BaseModel):
    """A generated question plus its evaluation state"""
    question: str
    options: List[str] = Field(default_factory=list)
    correct_answer: str = ""
    explanation: str = ""
    user_answer: Optional[AnswerValue] = None
    is_correct: bool = False
    similarity: Optional[int] = None
    feedback: Optional[str] = None

    @property
    def correct_index(self) -> Optional[int]:
        """Position of the correct answer among the options"""
        try:
            return self.options.index(self.correct_answer)
        except ValueError:
            return None


class Quiz(BaseModel):
    """A quiz generated from one document"""
    id: str = Field(default_factory=lambda: generate_id("quiz"))
    quiz_type: QuizType
    questions: List[QuizQuestion] = Field(default_factory=list)
    is_attempted: bool = False
    score: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=utcnow)
    attempted_at: Optional[datetime] = None

    @property
    def total_questions(self) -> int:
        return len(self.questions)


class QuizSubmission(BaseModel):
    """Answers submitted for a quiz, one entry per question (None = blank)"""
    answers: List[Optional[AnswerValue]] = Field(default_factory=list)
    score: Optional[float] = Field(
        default=None,
        description="Client-computed score; ignored, the server always regrades"
    )


# ===== Document =====

class StudyDocument(BaseModel):
    """An uploaded PDF owned by one learner"""
    id: str = Field(default_factory=lambda: generate_id("doc"))
    learner_id: str
    title: str
    description: str = ""
    storage_url: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    index_id: str
    pages: List[Page] = Field(default_factory=list)
    quizzes: List[Quiz] = Field(default_factory=list)
    chat_history: List[ChatTurn] = Field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def full_text(self) -> str:
        return "\n\n".join(page.text for page in self.pages if page.text.strip())

    def get_page(self, page_number: int) -> Optional[Page]:
        for page in self.pages:
            if page.page_number == page_number:
                return page
        return None

    def get_quiz(self, quiz_id: str) -> Optional[Quiz]:
        for quiz in self.quizzes:
            if quiz.id == quiz_id:
                return quiz
        return None


# ===== Progress =====

class LearnerProgress(BaseModel):
    """Running performance model of one learner"""
    learner_id: str
    total_quizzes: int = Field(default=0, ge=0)
    average_score: float = Field(default=0.0, ge=0, le=100)
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    version: int = 0

    @field_validator("strengths", "weaknesses")
    @classmethod
    def _dedupe(cls, values: List[str]) -> List[str]:
        return list(dict.fromkeys(values))

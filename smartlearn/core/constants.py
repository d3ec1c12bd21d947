"""
Application constants
"""
from enum import Enum


class MessageRole(str, Enum):
    """Chat message roles"""
    USER = "user"
    ASSISTANT = "assistant"


class QuizType(str, Enum):
    """Supported quiz types"""
    SINGLE_CHOICE = "single-choice"
    SHORT_ANSWER = "short-answer"
    LONG_ANSWER = "long-answer"

    @classmethod
    def parse(cls, value) -> "QuizType":
        """Accept members, canonical names and the short aliases mcq/saq/laq."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid quiz type: {value!r}")
        aliases = {
            "mcq": cls.SINGLE_CHOICE,
            "multiple-choice": cls.SINGLE_CHOICE,
            "saq": cls.SHORT_ANSWER,
            "laq": cls.LONG_ANSWER,
        }
        key = value.strip().lower()
        if key in aliases:
            return aliases[key]
        return cls(key)

    @property
    def is_free_text(self) -> bool:
        return self is not QuizType.SINGLE_CHOICE


class ActivityType(str, Enum):
    """Dashboard activity kinds"""
    QUIZ = "quiz"
    DOCUMENT = "document"
    CHAT = "chat"


# API Response Messages
class Messages:
    """API response messages"""

    # Success messages
    UPLOAD_SUCCESS = "PDF uploaded and indexed successfully"
    DOCUMENT_DELETED = "Document deleted"
    QUIZ_CREATED = "Quiz generated successfully"
    ATTEMPT_SAVED = "Quiz attempt saved and evaluated successfully"

    # Evaluation feedback
    EVALUATION_UNAVAILABLE = "Could not evaluate this answer automatically."
    BLANK_ANSWER = "No answer submitted."

    # Synthesis
    NO_CONTEXT_FOUND = "No relevant content was found in the document for this question."

    # Recommendations
    NO_RECOMMENDATIONS = "No video recommendations are available for this page."


class QuizLimits:
    """Bounds on generated quizzes"""
    MIN_QUESTIONS = 3
    MAX_QUESTIONS = 15
    MIN_OPTIONS = 2


# Number of entries shown in the dashboard activity feed
RECENT_ACTIVITY_LIMIT = 6

"""
Quiz Generator Module
=====================
Generate single-choice, short-answer and long-answer quizzes from a document
using configurable LLM backends with strict JSON output.

Model output is treated as untrusted text: the first well-formed JSON value
is extracted, every item is validated against a schema, and only a quiz that
passes every check is returned.
"""

import logging
import string
from typing import Any, List, Optional, Union

from langchain_core.prompts import PromptTemplate
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from smartlearn.core.constants import QuizLimits, QuizType
from smartlearn.core.exceptions import QuizGenerationFailed, ValidationFailed
from smartlearn.utils.helpers import extract_json, truncate
from .config import rag_config
from .models import Quiz, QuizQuestion, StudyDocument
from .retriever import DocumentRetriever
from .vectorstore import IndexHandle

logger = logging.getLogger(__name__)


# ===== Raw Model Output Schema =====

class GeneratedQuestion(BaseModel):
    """One question exactly as the model is asked to produce it"""
    model_config = ConfigDict(populate_by_name=True)

    question: str = Field(min_length=1)
    options: Optional[List[str]] = None
    correct_answer: Union[str, int] = Field(alias="correctAnswer")
    explanation: str = ""

    @field_validator("question")
    @classmethod
    def _question_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("question text is empty")
        return value

    @field_validator("options")
    @classmethod
    def _clean_options(cls, value: Optional[List[Any]]) -> Optional[List[str]]:
        if value is None:
            return None
        return [str(option).strip() for option in value]


# ===== Prompt Templates =====

TYPE_INSTRUCTIONS = {
    QuizType.SINGLE_CHOICE: """Each question is single-choice:
- "options" is a list of exactly 4 distinct answer texts
- "correctAnswer" is copied word-for-word from "options"
- Wrong options must be plausible but clearly wrong according to the content""",
    QuizType.SHORT_ANSWER: """Each question is short-answer:
- Omit "options"
- "correctAnswer" is a model answer of 1-3 sentences""",
    QuizType.LONG_ANSWER: """Each question is long-answer:
- Omit "options"
- Questions ask the learner to explain, compare or analyse
- "correctAnswer" is a model answer of one or two paragraphs""",
}


QUIZ_GENERATION_PROMPT = """You are an expert teacher writing a quiz from a textbook.
Create exactly {num_questions} {quiz_type} questions based ONLY on the provided content.

CONTENT:
{context}

RULES:
1. Questions MUST be based ONLY on the provided content - DO NOT make up information
2. Questions test understanding, not just memorization
3. Avoid duplicate questions
{type_instructions}

OUTPUT FORMAT (a JSON array only, no markdown, no extra text):
[
  {{
    "question": "Question text?",
    "options": ["Option 1", "Option 2", "Option 3", "Option 4"],
    "correctAnswer": "Option 1",
    "explanation": "Why this answer is correct"
  }}
]

Return ONLY the JSON array with exactly {num_questions} items."""


class QuizGenerator:
    """
    Generate quizzes from a document's content.
    Supports multiple LLM providers with strict JSON output.
    """

    def __init__(
        self,
        llm_provider,
        retriever: Optional[DocumentRetriever] = None,
        context_char_limit: Optional[int] = None,
        retrieval_k: Optional[int] = None,
    ):
        """
        Initialize Quiz Generator.

        Args:
            llm_provider: LLM provider used for generation
            retriever: DocumentRetriever for sampling long documents
            context_char_limit: Largest full text sent to the model as-is
            retrieval_k: Chunks sampled when the full text is too long
        """
        self._llm_provider = llm_provider
        self.retriever = retriever
        self.context_char_limit = context_char_limit or rag_config.QUIZ_CONTEXT_CHAR_LIMIT
        self.retrieval_k = retrieval_k or rag_config.QUIZ_RETRIEVAL_K
        self.prompt = PromptTemplate.from_template(QUIZ_GENERATION_PROMPT)

        logger.info(f"QuizGenerator initialized with provider: {llm_provider.provider_name}")

    def set_llm_provider(self, provider):
        """
        Set a new LLM provider at runtime.

        Args:
            provider: New LLM provider instance
        """
        self._llm_provider = provider
        logger.info(f"QuizGenerator LLM provider updated: {provider.provider_name}")

    def select_context(self, document: StudyDocument, handle: Optional[IndexHandle] = None) -> str:
        """
        Choose the source content for the prompt.

        The full text is used when it fits; otherwise the top chunks for a
        generic key-concepts query, falling back to the truncated full text
        when no index is available.
        """
        full_text = document.full_text

        if len(full_text) <= self.context_char_limit:
            return full_text

        if handle is not None and self.retriever is not None:
            citations = self.retriever.retrieve(
                rag_config.QUIZ_RETRIEVAL_QUERY, handle, k=self.retrieval_k
            )
            if citations:
                logger.info(f"Using {len(citations)} retrieved chunks as quiz context")
                # Present the sample in reading order
                ordered = sorted(citations, key=lambda c: c.page_number)
                return DocumentRetriever.format_context(ordered)[:self.context_char_limit]

        logger.info("Using truncated full text as quiz context")
        return full_text[:self.context_char_limit]

    @staticmethod
    def check_question_count(num_questions: int):
        if not QuizLimits.MIN_QUESTIONS <= num_questions <= QuizLimits.MAX_QUESTIONS:
            raise ValidationFailed(
                f"num_questions must be between {QuizLimits.MIN_QUESTIONS} and "
                f"{QuizLimits.MAX_QUESTIONS}, got {num_questions}"
            )

    def generate(
        self,
        document: StudyDocument,
        quiz_type: Union[QuizType, str],
        num_questions: int = 5,
        handle: Optional[IndexHandle] = None
    ) -> Quiz:
        """
        Generate a new, unattempted quiz.

        Args:
            document: Source document
            quiz_type: single-choice, short-answer or long-answer
            num_questions: Number of questions (3-15)
            handle: Index of the document, used to sample long documents

        Returns:
            New Quiz with is_attempted=False

        Raises:
            ValidationFailed: On bad arguments or output failing shape checks
            QuizGenerationFailed: If the output contains no parseable JSON
            GenerationFailed: If the model call fails
        """
        quiz_type = QuizType.parse(quiz_type)
        self.check_question_count(num_questions)

        logger.info(
            f"Generating quiz: document={document.id}, type={quiz_type.value}, "
            f"num_questions={num_questions}"
        )

        context = self.select_context(document, handle)
        if not context.strip():
            raise ValidationFailed("Document has no text to build a quiz from")

        prompt = self.prompt.format(
            num_questions=num_questions,
            quiz_type=quiz_type.value,
            context=context,
            type_instructions=TYPE_INSTRUCTIONS[quiz_type],
        )

        content = self._llm_provider.generate(prompt)
        logger.info(f"Raw LLM response: {truncate(content, 500)}")

        items = self.parse_items(content)
        questions = self.validate_items(items, quiz_type, num_questions)

        logger.info(f"Generated {len(questions)} questions")
        return Quiz(quiz_type=quiz_type, questions=questions)

    @staticmethod
    def parse_items(content: str) -> List[Any]:
        """
        Extract the list of question objects from raw model output.

        Accepts a bare array or an object wrapping it under "quiz"/"questions".
        """
        data = extract_json(content)

        if isinstance(data, dict):
            for key in ("quiz", "questions", "items"):
                if isinstance(data.get(key), list):
                    data = data[key]
                    break
            else:
                # A single question object
                if "question" in data:
                    data = [data]

        if not isinstance(data, list):
            logger.error(f"Could not parse JSON from response: {truncate(content or '', 200)}")
            raise QuizGenerationFailed("Model output did not contain a JSON list of questions")

        return data

    def validate_items(
        self,
        items: List[Any],
        quiz_type: QuizType,
        num_questions: int
    ) -> List[QuizQuestion]:
        """
        Validate and normalize generated items.

        Raises:
            ValidationFailed: If any item is malformed or too few items exist
        """
        if len(items) < num_questions:
            raise ValidationFailed(
                f"Model produced {len(items)} questions, {num_questions} were requested"
            )
        if len(items) > num_questions:
            logger.warning(f"Model produced {len(items)} questions, keeping the first {num_questions}")
            items = items[:num_questions]

        questions = []
        for i, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                raise ValidationFailed(f"Question {i} is not an object")
            try:
                generated = GeneratedQuestion.model_validate(item)
            except ValidationError as e:
                raise ValidationFailed(f"Question {i} is malformed: {e.errors()[0]['msg']}") from e

            questions.append(self._normalize(generated, quiz_type, i))

        return questions

    @staticmethod
    def _normalize(generated: GeneratedQuestion, quiz_type: QuizType, number: int) -> QuizQuestion:
        correct = generated.correct_answer

        if quiz_type is QuizType.SINGLE_CHOICE:
            options = generated.options or []
            if len(options) < QuizLimits.MIN_OPTIONS:
                raise ValidationFailed(
                    f"Question {number} needs at least {QuizLimits.MIN_OPTIONS} options, got {len(options)}"
                )
            if any(not option for option in options):
                raise ValidationFailed(f"Question {number} has an empty option")
            if len({option.lower() for option in options}) != len(options):
                raise ValidationFailed(f"Question {number} has duplicate options")

            correct = _resolve_correct_option(correct, options)
            if correct is None:
                raise ValidationFailed(
                    f"Question {number}: correctAnswer {generated.correct_answer!r} is not one of the options"
                )

            return QuizQuestion(
                question=generated.question,
                options=options,
                correct_answer=correct,
                explanation=generated.explanation,
            )

        correct = str(correct).strip()
        if not correct:
            raise ValidationFailed(f"Question {number} has an empty correctAnswer")

        return QuizQuestion(
            question=generated.question,
            correct_answer=correct,
            explanation=generated.explanation,
        )


def _resolve_correct_option(correct: Union[str, int], options: List[str]) -> Optional[str]:
    """
    Map a correct answer onto the option text.

    Accepts the exact option text, a case-insensitive match, a letter
    ("A", "b)") or a 0-based index.
    """
    if isinstance(correct, int):
        return options[correct] if 0 <= correct < len(options) else None

    text = correct.strip()
    if text in options:
        return text

    lowered = {option.lower(): option for option in options}
    if text.lower() in lowered:
        return lowered[text.lower()]

    letter = text.rstrip(").:").strip().upper()
    if len(letter) == 1 and letter in string.ascii_uppercase:
        index = string.ascii_uppercase.index(letter)
        if index < len(options):
            return options[index]

    return None

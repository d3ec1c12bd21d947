"""
Quiz Evaluator Module
=====================
Grades submitted quiz attempts and folds them into learner progress.

- Single-choice questions are scored deterministically on the server
- Short/long answers are judged by the language model, one call per answer
- A failed judgement marks that answer incorrect and grading carries on
- Quiz mutation and progress update are committed together
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from langchain_core.prompts import PromptTemplate
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from smartlearn.core.constants import Messages, QuizType
from smartlearn.core.exceptions import (
    ConcurrentUpdateConflict,
    GenerationFailed,
    QuizAlreadyAttempted,
    ResourceNotFound,
    ValidationFailed,
)
from smartlearn.core.logger import grading_logger
from smartlearn.utils.helpers import extract_json, percentage, truncate, utcnow
from .config import rag_config
from .models import (
    AnswerValue,
    ChoiceAnswer,
    LearnerProgress,
    Quiz,
    QuizQuestion,
    QuizSubmission,
    TextAnswer,
)

logger = logging.getLogger(__name__)


EVALUATION_PROMPT = """You are a fair teacher grading a student's answer.

QUESTION:
{question}

EXPECTED ANSWER:
{expected}

STUDENT ANSWER:
{answer}

Compare the student answer with the expected answer. Judge meaning, not wording.
The answer is correct when it covers the key points of the expected answer.

Return ONLY a JSON object, no markdown, no extra text:
{{
  "isCorrect": true,
  "similarity": 85,
  "feedback": "One or two sentences of feedback for the student",
  "strengths": ["topic the student understands"],
  "weaknesses": ["topic the student should review"]
}}

"similarity" is an integer from 0 to 100."""


class AnswerJudgement(BaseModel):
    """Model verdict on one free-text answer"""
    model_config = ConfigDict(populate_by_name=True)

    is_correct: bool = Field(alias="isCorrect")
    similarity: int = 0
    feedback: str = ""
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)

    @field_validator("similarity", mode="before")
    @classmethod
    def _clamp_similarity(cls, value) -> int:
        value = round(float(value))
        return max(0, min(100, value))

    @field_validator("strengths", "weaknesses", mode="before")
    @classmethod
    def _clean_tags(cls, value) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [str(tag).strip() for tag in value if str(tag).strip()]


@dataclass
class EvaluationResult:
    """Outcome of grading one submission"""
    quiz_id: str
    score: int
    questions: List[QuizQuestion]
    answered: int = 0
    correct: int = 0
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)

    def apply_to(self, quiz: Quiz) -> Quiz:
        """Return the quiz in its attempted state."""
        return quiz.model_copy(update={
            "questions": self.questions,
            "is_attempted": True,
            "score": self.score,
            "attempted_at": utcnow(),
        }, deep=True)


def _add_tags(target: List[str], tags: Sequence[str]):
    for tag in tags:
        if tag and tag not in target:
            target.append(tag)


def _is_blank(answer: Optional[AnswerValue]) -> bool:
    if answer is None:
        return True
    if isinstance(answer, TextAnswer):
        return not answer.text.strip()
    return False


def check_submission(quiz: Quiz, submission: QuizSubmission):
    """
    Check the answers against the quiz shape.

    Raises:
        ValidationFailed: On a count mismatch or an answer of the wrong kind
    """
    if len(submission.answers) != quiz.total_questions:
        raise ValidationFailed(
            f"Expected {quiz.total_questions} answers, got {len(submission.answers)}"
        )

    expected = TextAnswer if quiz.quiz_type.is_free_text else ChoiceAnswer
    for number, (question, answer) in enumerate(zip(quiz.questions, submission.answers), start=1):
        if answer is None:
            continue
        if not isinstance(answer, expected):
            raise ValidationFailed(
                f"Answer {number} is a '{answer.kind}' answer, "
                f"{quiz.quiz_type.value} quizzes take '{expected.model_fields['kind'].default}' answers"
            )
        if isinstance(answer, ChoiceAnswer) and answer.index >= len(question.options):
            raise ValidationFailed(
                f"Answer {number} selects option {answer.index}, question has {len(question.options)}"
            )


def score_single_choice(quiz: Quiz, answers: Sequence[Optional[AnswerValue]]) -> EvaluationResult:
    """
    Deterministic grading of a single-choice attempt.

    A question is correct when the selected index is the index of the
    correct answer among its options; blanks count as wrong. The score is
    the percentage of correct answers over all questions.
    """
    questions = []
    strengths: List[str] = []
    weaknesses: List[str] = []
    correct = 0
    answered = 0

    for question, answer in zip(quiz.questions, answers):
        is_correct = False
        if isinstance(answer, ChoiceAnswer):
            answered += 1
            is_correct = answer.index == question.correct_index

        if is_correct:
            correct += 1
            _add_tags(strengths, [question.question])
        else:
            _add_tags(weaknesses, [question.question])

        questions.append(question.model_copy(update={
            "user_answer": answer,
            "is_correct": is_correct,
            "similarity": 100 if is_correct else 0,
            "feedback": None if answer is not None else Messages.BLANK_ANSWER,
        }))

    return EvaluationResult(
        quiz_id=quiz.id,
        score=percentage(correct, quiz.total_questions),
        questions=questions,
        answered=answered,
        correct=correct,
        strengths=strengths,
        weaknesses=weaknesses,
    )


class AnswerEvaluator:
    """
    Grades a quiz attempt.

    Single-choice attempts never touch the model. Free-text answers are
    judged one by one; a model error or an unusable verdict yields an
    incorrect answer with neutral feedback instead of failing the attempt.
    """

    def __init__(self, llm_provider):
        self._llm_provider = llm_provider
        self.prompt = PromptTemplate.from_template(EVALUATION_PROMPT)

    def set_llm_provider(self, provider):
        self._llm_provider = provider
        logger.info(f"AnswerEvaluator LLM provider updated: {provider.provider_name}")

    def evaluate(self, quiz: Quiz, submission: QuizSubmission) -> EvaluationResult:
        """
        Grade a submission against a quiz without mutating either.

        Raises:
            ValidationFailed: If the submission does not fit the quiz
        """
        check_submission(quiz, submission)

        if submission.score is not None:
            logger.debug(f"Ignoring client score {submission.score} for quiz {quiz.id}")

        if quiz.quiz_type is QuizType.SINGLE_CHOICE:
            return score_single_choice(quiz, submission.answers)
        return self._evaluate_free_text(quiz, submission.answers)

    def _evaluate_free_text(
        self,
        quiz: Quiz,
        answers: Sequence[Optional[AnswerValue]]
    ) -> EvaluationResult:
        questions = []
        strengths: List[str] = []
        weaknesses: List[str] = []
        correct = 0
        answered = 0

        for number, (question, answer) in enumerate(zip(quiz.questions, answers), start=1):
            if _is_blank(answer):
                questions.append(question.model_copy(update={
                    "user_answer": answer,
                    "is_correct": False,
                    "similarity": 0,
                    "feedback": Messages.BLANK_ANSWER,
                }))
                continue

            answered += 1
            judgement = self.judge(question, answer.text)
            if judgement.is_correct:
                correct += 1
            _add_tags(strengths, judgement.strengths)
            _add_tags(weaknesses, judgement.weaknesses)

            logger.info(
                f"Quiz {quiz.id} question {number}: correct={judgement.is_correct}, "
                f"similarity={judgement.similarity}"
            )
            questions.append(question.model_copy(update={
                "user_answer": answer,
                "is_correct": judgement.is_correct,
                "similarity": judgement.similarity,
                "feedback": judgement.feedback,
            }))

        return EvaluationResult(
            quiz_id=quiz.id,
            score=percentage(correct, answered),
            questions=questions,
            answered=answered,
            correct=correct,
            strengths=strengths,
            weaknesses=weaknesses,
        )

    def judge(self, question: QuizQuestion, answer_text: str) -> AnswerJudgement:
        """Ask the model for a verdict on one answer."""
        prompt = self.prompt.format(
            question=question.question,
            expected=question.correct_answer,
            answer=answer_text,
        )

        try:
            content = self._llm_provider.generate(prompt, json_mode=True)
        except GenerationFailed as e:
            logger.warning(f"Answer evaluation failed: {e}")
            return self._neutral_judgement()

        data = extract_json(content, expect=dict)
        if data is None:
            logger.warning(f"Unparseable evaluation: {truncate(content, 200)}")
            return self._neutral_judgement()

        try:
            judgement = AnswerJudgement.model_validate(data)
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning(f"Invalid evaluation payload: {e}")
            return self._neutral_judgement()

        if not judgement.feedback:
            judgement.feedback = "Correct." if judgement.is_correct else "Incorrect."
        return judgement

    @staticmethod
    def _neutral_judgement() -> AnswerJudgement:
        return AnswerJudgement(
            is_correct=False,
            similarity=0,
            feedback=Messages.EVALUATION_UNAVAILABLE,
        )


class ProgressAggregator:
    """Folds graded attempts into a learner's running progress."""

    @staticmethod
    def apply(progress: LearnerProgress, result: EvaluationResult) -> LearnerProgress:
        """
        Return the progress after one more graded attempt.

        The average is the incremental mean of all scores, kept to two
        decimals; strengths and weaknesses only ever grow. ``version`` is
        left for the repository to advance on commit.
        """
        count = progress.total_quizzes
        average = (progress.average_score * count + result.score) / (count + 1)

        strengths = list(progress.strengths)
        weaknesses = list(progress.weaknesses)
        _add_tags(strengths, result.strengths)
        _add_tags(weaknesses, result.weaknesses)

        return progress.model_copy(update={
            "total_quizzes": count + 1,
            "average_score": round(average, 2),
            "strengths": strengths,
            "weaknesses": weaknesses,
        })


class QuizGrader:
    """
    Evaluates a submission and commits it with the learner's progress.

    The read-modify-write of progress runs under a per-learner lock and is
    committed with an optimistic version check; a lost race is retried
    with a fresh read.
    """

    def __init__(
        self,
        repository,
        evaluator: AnswerEvaluator,
        aggregator: Optional[ProgressAggregator] = None,
        max_retries: Optional[int] = None
    ):
        self.repository = repository
        self.evaluator = evaluator
        self.aggregator = aggregator or ProgressAggregator()
        self.max_retries = max_retries or rag_config.PROGRESS_UPDATE_RETRIES
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, learner_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(learner_id, threading.Lock())

    def submit(
        self,
        learner_id: str,
        document_id: str,
        quiz_id: str,
        submission: QuizSubmission
    ) -> Tuple[Quiz, LearnerProgress]:
        """
        Grade an attempt and persist it.

        Returns:
            (attempted quiz, updated progress)

        Raises:
            ResourceNotFound: Unknown document/quiz, or not owned by the learner
            QuizAlreadyAttempted: The quiz was graded before
            ValidationFailed: Submission does not fit the quiz
            ConcurrentUpdateConflict: Commit kept losing races
        """
        quiz = self._load_quiz(learner_id, document_id, quiz_id)
        result = self.evaluator.evaluate(quiz, submission)
        graded = result.apply_to(quiz)

        with self._lock_for(learner_id):
            for attempt in range(1, self.max_retries + 1):
                progress = self.repository.get_progress(learner_id)
                updated = self.aggregator.apply(progress, result)
                try:
                    committed = self.repository.commit_attempt(
                        document_id, graded, updated, expected_version=progress.version
                    )
                    break
                except ConcurrentUpdateConflict:
                    logger.warning(
                        f"Progress update conflict for learner {learner_id} "
                        f"(attempt {attempt}/{self.max_retries})"
                    )
            else:
                raise ConcurrentUpdateConflict(
                    f"Could not save attempt for quiz '{quiz_id}' after {self.max_retries} tries"
                )

        grading_logger.info(
            f"learner={learner_id} document={document_id} quiz={quiz_id} "
            f"type={quiz.quiz_type.value} score={result.score} "
            f"correct={result.correct}/{result.answered} average={committed.average_score}"
        )
        return graded, committed

    def _load_quiz(self, learner_id: str, document_id: str, quiz_id: str) -> Quiz:
        document = self.repository.get_document(document_id)
        if document is None or document.learner_id != learner_id:
            raise ResourceNotFound("Document", document_id)

        quiz = document.get_quiz(quiz_id)
        if quiz is None:
            raise ResourceNotFound("Quiz", quiz_id)
        if quiz.is_attempted:
            raise QuizAlreadyAttempted(quiz_id)
        return quiz

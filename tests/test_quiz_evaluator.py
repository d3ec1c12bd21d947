"""
Unit tests for answer evaluation, progress aggregation and grading
"""
import json
import threading

import pytest

from smartlearn.core.constants import Messages, QuizType
from smartlearn.core.exceptions import (
    ConcurrentUpdateConflict,
    QuizAlreadyAttempted,
    ResourceNotFound,
    ValidationFailed,
)
from smartlearn.modules.study_rag.models import (
    ChoiceAnswer,
    LearnerProgress,
    MultiChoiceAnswer,
    Quiz,
    QuizQuestion,
    QuizSubmission,
    StudyDocument,
    TextAnswer,
)
from smartlearn.modules.study_rag.quiz_evaluator import (
    AnswerEvaluator,
    EvaluationResult,
    ProgressAggregator,
    QuizGrader,
    score_single_choice,
)
from smartlearn.modules.study_rag.repository import JsonDocumentRepository
from conftest import ScriptedLLM


def _single_choice_quiz(count=5):
    return Quiz(
        quiz_type=QuizType.SINGLE_CHOICE,
        questions=[
            QuizQuestion(
                question=f"Q{i}?",
                options=["A", "B", "C", "D"],
                correct_answer=["A", "B", "C", "D"][i % 4],
            )
            for i in range(count)
        ],
    )


def _free_text_quiz(count=3, quiz_type=QuizType.SHORT_ANSWER):
    return Quiz(
        quiz_type=quiz_type,
        questions=[
            QuizQuestion(question=f"Explain {i}.", correct_answer=f"Answer {i}.")
            for i in range(count)
        ],
    )


def _judgement(is_correct, similarity=80, strengths=(), weaknesses=()):
    return json.dumps({
        "isCorrect": is_correct,
        "similarity": similarity,
        "feedback": "Good." if is_correct else "Review this.",
        "strengths": list(strengths),
        "weaknesses": list(weaknesses),
    })


def _correct_answers(quiz):
    return [ChoiceAnswer(index=q.correct_index) for q in quiz.questions]


class TestSingleChoiceScoring:
    """Test cases for deterministic single-choice grading"""

    def test_all_correct(self):
        """Test a fully correct attempt scores 100"""
        quiz = _single_choice_quiz(5)
        result = score_single_choice(quiz, _correct_answers(quiz))
        assert result.score == 100
        assert result.correct == 5
        assert all(q.is_correct for q in result.questions)
        assert result.strengths == [q.question for q in quiz.questions]
        assert result.weaknesses == []

    def test_partial_and_blank(self):
        quiz = _single_choice_quiz(3)
        answers = [ChoiceAnswer(index=quiz.questions[0].correct_index), ChoiceAnswer(index=3), None]
        result = score_single_choice(quiz, answers)

        assert result.score == 33
        assert [q.is_correct for q in result.questions] == [True, False, False]
        assert result.questions[2].feedback == Messages.BLANK_ANSWER
        assert result.weaknesses == ["Q1?", "Q2?"]

    def test_rounds_half_up(self):
        quiz = _single_choice_quiz(8)
        answers = _correct_answers(quiz)[:5] + [None, None, None]
        # 5/8 = 62.5
        assert score_single_choice(quiz, answers).score == 63

    def test_idempotent(self):
        """Test re-scoring the same answers gives the same result"""
        quiz = _single_choice_quiz(5)
        answers = [ChoiceAnswer(index=0)] * 5
        scores = {score_single_choice(quiz, answers).score for _ in range(5)}
        assert len(scores) == 1

    def test_client_score_is_ignored(self):
        quiz = _single_choice_quiz(4)
        submission = QuizSubmission(answers=[ChoiceAnswer(index=3)] * 4, score=100)
        result = AnswerEvaluator(ScriptedLLM()).evaluate(quiz, submission)
        assert result.score == 25


class TestSubmissionChecks:
    """Test cases for submission shape checks"""

    def test_answer_count_mismatch(self):
        quiz = _single_choice_quiz(3)
        with pytest.raises(ValidationFailed):
            AnswerEvaluator(ScriptedLLM()).evaluate(quiz, QuizSubmission(answers=[None]))

    def test_wrong_answer_kind(self):
        quiz = _single_choice_quiz(3)
        submission = QuizSubmission(answers=[TextAnswer(text="A"), None, None])
        with pytest.raises(ValidationFailed):
            AnswerEvaluator(ScriptedLLM()).evaluate(quiz, submission)

    def test_multi_choice_rejected_for_single_choice(self):
        quiz = _single_choice_quiz(3)
        submission = QuizSubmission(answers=[MultiChoiceAnswer(indices=[0, 1]), None, None])
        with pytest.raises(ValidationFailed):
            AnswerEvaluator(ScriptedLLM()).evaluate(quiz, submission)

    def test_option_index_out_of_range(self):
        quiz = _single_choice_quiz(3)
        submission = QuizSubmission(answers=[ChoiceAnswer(index=9), None, None])
        with pytest.raises(ValidationFailed):
            AnswerEvaluator(ScriptedLLM()).evaluate(quiz, submission)

    def test_parses_tagged_answers(self):
        submission = QuizSubmission.model_validate({
            "answers": [{"kind": "choice", "index": 1}, None, {"kind": "text", "text": "hi"}],
        })
        assert isinstance(submission.answers[0], ChoiceAnswer)
        assert submission.answers[1] is None
        assert isinstance(submission.answers[2], TextAnswer)


class TestFreeTextEvaluation:
    """Test cases for model-judged answers"""

    def test_judged_answers(self):
        llm = ScriptedLLM([
            _judgement(True, 90, strengths=["osmosis"]),
            _judgement(False, 30, weaknesses=["diffusion"]),
            _judgement(True, 75, strengths=["osmosis", "membranes"]),
        ])
        quiz = _free_text_quiz(3)
        submission = QuizSubmission(answers=[TextAnswer(text=f"my answer {i}") for i in range(3)])

        result = AnswerEvaluator(llm).evaluate(quiz, submission)

        assert result.score == 67
        assert result.answered == 3
        assert result.correct == 2
        assert [q.similarity for q in result.questions] == [90, 30, 75]
        assert result.strengths == ["osmosis", "membranes"]
        assert result.weaknesses == ["diffusion"]
        assert all(llm.json_modes)
        assert "my answer 0" in llm.prompts[0]
        assert "Answer 0." in llm.prompts[0]

    def test_blank_attempt(self):
        """Test a fully blank attempt scores 0 without calling the model"""
        llm = ScriptedLLM()
        quiz = _free_text_quiz(3)
        submission = QuizSubmission(answers=[None, TextAnswer(text="  "), None])

        result = AnswerEvaluator(llm).evaluate(quiz, submission)

        assert result.score == 0
        assert result.answered == 0
        assert all(q.is_correct is False for q in result.questions)
        assert all(q.feedback == Messages.BLANK_ANSWER for q in result.questions)
        assert llm.prompts == []

    def test_blanks_are_not_counted(self):
        llm = ScriptedLLM([_judgement(True)])
        quiz = _free_text_quiz(3, QuizType.LONG_ANSWER)
        submission = QuizSubmission(answers=[TextAnswer(text="answer"), None, None])
        assert AnswerEvaluator(llm).evaluate(quiz, submission).score == 100

    def test_failures_do_not_abort_grading(self):
        """Test a model error or garbage marks only that answer wrong"""
        llm = ScriptedLLM([
            RuntimeError("model down"),
            "not json at all",
            json.dumps({"similarity": 50}),
            _judgement(True, 150),
        ])
        quiz = _free_text_quiz(4)
        submission = QuizSubmission(answers=[TextAnswer(text="x")] * 4)

        result = AnswerEvaluator(llm).evaluate(quiz, submission)

        assert [q.is_correct for q in result.questions] == [False, False, False, True]
        for question in result.questions[:3]:
            assert question.similarity == 0
            assert question.feedback == Messages.EVALUATION_UNAVAILABLE
        # Out-of-range similarity is clamped
        assert result.questions[3].similarity == 100
        assert result.score == 25

    def test_judgement_wrapped_in_prose(self):
        llm = ScriptedLLM([f"Here you go: {_judgement(True, 88)} Thanks!"])
        quiz = _free_text_quiz(3)
        submission = QuizSubmission(answers=[TextAnswer(text="x"), None, None])
        result = AnswerEvaluator(llm).evaluate(quiz, submission)
        assert result.questions[0].is_correct is True
        assert result.questions[0].similarity == 88


class TestProgressAggregator:
    """Test cases for ProgressAggregator"""

    def _result(self, score, strengths=(), weaknesses=()):
        return EvaluationResult(
            quiz_id="quiz_x",
            score=score,
            questions=[],
            strengths=list(strengths),
            weaknesses=list(weaknesses),
        )

    def test_incremental_mean(self):
        """Test the running average after each attempt"""
        progress = LearnerProgress(learner_id="learner-1")
        for expected_count, score in enumerate([100, 50, 0, 75], start=1):
            previous = progress
            progress = ProgressAggregator.apply(progress, self._result(score))
            assert progress.total_quizzes == previous.total_quizzes + 1 == expected_count
            expected = (previous.average_score * previous.total_quizzes + score) / expected_count
            assert progress.average_score == pytest.approx(expected, abs=0.01)

        assert progress.average_score == pytest.approx(56.25)

    def test_rounded_to_two_decimals(self):
        progress = LearnerProgress(learner_id="l", total_quizzes=2, average_score=50.0)
        progress = ProgressAggregator.apply(progress, self._result(67))
        assert progress.average_score == 55.67

    def test_tags_are_merged(self):
        """Test strengths and weaknesses grow as sets"""
        progress = LearnerProgress(learner_id="l", strengths=["osmosis"], weaknesses=["atp"])
        progress = ProgressAggregator.apply(
            progress, self._result(80, strengths=["osmosis", "light"], weaknesses=["atp", "dna"])
        )
        assert progress.strengths == ["osmosis", "light"]
        assert progress.weaknesses == ["atp", "dna"]

    def test_does_not_mutate_input(self):
        progress = LearnerProgress(learner_id="l")
        ProgressAggregator.apply(progress, self._result(90, strengths=["x"]))
        assert progress.total_quizzes == 0
        assert progress.strengths == []


class TestQuizGrader:
    """Test cases for QuizGrader"""

    def _setup(self, quiz, repository=None):
        repository = repository or JsonDocumentRepository()
        document = StudyDocument(learner_id="learner-1", title="Bio", index_id="bio-idx", quizzes=[quiz])
        repository.save_document(document)
        grader = QuizGrader(repository, AnswerEvaluator(ScriptedLLM()), max_retries=3)
        return repository, document, grader

    def test_submit_fully_correct(self):
        """Test a 5/5 attempt is stored and averaged"""
        quiz = _single_choice_quiz(5)
        repository, document, grader = self._setup(quiz)

        graded, progress = grader.submit(
            "learner-1", document.id, quiz.id, QuizSubmission(answers=_correct_answers(quiz))
        )

        assert graded.score == 100
        assert graded.is_attempted is True
        assert graded.attempted_at is not None
        assert progress.total_quizzes == 1
        assert progress.average_score == 100
        assert progress.version == 1

        stored = repository.get_document(document.id).get_quiz(quiz.id)
        assert stored.is_attempted is True
        assert stored.score == 100
        assert repository.get_progress("learner-1") == progress

    def test_second_submission_rejected(self):
        quiz = _single_choice_quiz(3)
        _, document, grader = self._setup(quiz)
        submission = QuizSubmission(answers=_correct_answers(quiz))

        grader.submit("learner-1", document.id, quiz.id, submission)
        with pytest.raises(QuizAlreadyAttempted):
            grader.submit("learner-1", document.id, quiz.id, submission)

    def test_other_learner_cannot_submit(self):
        quiz = _single_choice_quiz(3)
        _, document, grader = self._setup(quiz)
        with pytest.raises(ResourceNotFound):
            grader.submit("intruder", document.id, quiz.id, QuizSubmission(answers=[None] * 3))

    def test_unknown_quiz(self):
        quiz = _single_choice_quiz(3)
        _, document, grader = self._setup(quiz)
        with pytest.raises(ResourceNotFound):
            grader.submit("learner-1", document.id, "quiz_missing", QuizSubmission(answers=[]))

    def test_conflict_is_retried(self):
        """Test a lost optimistic race is retried with a fresh read"""

        class RacingRepository(JsonDocumentRepository):
            def __init__(self, conflicts):
                super().__init__()
                self.conflicts = conflicts
                self.commits = 0

            def commit_attempt(self, document_id, quiz, progress, expected_version):
                self.commits += 1
                if self.commits <= self.conflicts:
                    raise ConcurrentUpdateConflict("raced")
                return super().commit_attempt(document_id, quiz, progress, expected_version)

        quiz = _single_choice_quiz(3)
        repository, document, grader = self._setup(quiz, RacingRepository(conflicts=2))
        _, progress = grader.submit(
            "learner-1", document.id, quiz.id, QuizSubmission(answers=_correct_answers(quiz))
        )
        assert repository.commits == 3
        assert progress.total_quizzes == 1

        quiz2 = _single_choice_quiz(3)
        repository.append_quiz(document.id, quiz2)
        repository.conflicts, repository.commits = 5, 0
        with pytest.raises(ConcurrentUpdateConflict):
            grader.submit("learner-1", document.id, quiz2.id, QuizSubmission(answers=[None] * 3))
        assert repository.get_document(document.id).get_quiz(quiz2.id).is_attempted is False

    def test_concurrent_submissions_do_not_lose_updates(self):
        """Test parallel attempts on different quizzes all count"""
        quizzes = [_single_choice_quiz(4) for _ in range(8)]
        repository = JsonDocumentRepository()
        document = StudyDocument(learner_id="learner-1", title="Bio", index_id="bio-idx", quizzes=quizzes)
        repository.save_document(document)
        grader = QuizGrader(repository, AnswerEvaluator(ScriptedLLM()))

        def submit(quiz):
            grader.submit("learner-1", document.id, quiz.id, QuizSubmission(answers=_correct_answers(quiz)))

        threads = [threading.Thread(target=submit, args=(q,)) for q in quizzes]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        progress = repository.get_progress("learner-1")
        assert progress.total_quizzes == 8
        assert progress.average_score == 100
        assert progress.version == 8

"""
Quiz API routes
Handles quiz generation, submission, progress and dashboard
"""
from fastapi import APIRouter, Depends

from smartlearn.core.constants import Messages
from smartlearn.modules.study_rag import StudyService
from smartlearn.modules.study_rag.models import LearnerProgress, QuizSubmission
from smartlearn.schemas import (
    DashboardResponse,
    QuizAttemptResponse,
    QuizCountResponse,
    QuizGenerateRequest,
    QuizListResponse,
    QuizResponse,
)
from .dependencies import get_learner_id, get_study_service

router = APIRouter()


@router.post("", response_model=QuizResponse)
def generate_quiz(
    request: QuizGenerateRequest,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    """
    Generate a new quiz from a document
    """
    quiz = service.generate_quiz(
        learner_id, request.document_id, request.quiz_type, request.num_questions
    )
    return QuizResponse(message=Messages.QUIZ_CREATED, quiz=quiz)


@router.get("/count", response_model=QuizCountResponse)
def count_quizzes(
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    return QuizCountResponse(**service.count_quizzes(learner_id))


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    """
    Attempt statistics, strengths/weaknesses and recent activity
    """
    return DashboardResponse(**service.get_dashboard(learner_id))


@router.get("/progress", response_model=LearnerProgress)
def get_progress(
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    return service.get_progress(learner_id)


@router.get("/document/{document_id}", response_model=QuizListResponse)
def list_quizzes(
    document_id: str,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    quizzes = service.list_quizzes(learner_id, document_id)
    return QuizListResponse(quizzes=quizzes, total=len(quizzes))


@router.get("/document/{document_id}/latest", response_model=QuizResponse)
def get_latest_quiz(
    document_id: str,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    quiz = service.get_latest_quiz(learner_id, document_id)
    if quiz is None:
        return QuizResponse(message="No quiz generated for this document yet")
    return QuizResponse(quiz=quiz)


@router.post("/document/{document_id}/{quiz_id}/submit", response_model=QuizAttemptResponse)
def submit_attempt(
    document_id: str,
    quiz_id: str,
    submission: QuizSubmission,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    """
    Submit answers for a quiz.
    The server grades the attempt; any client score is ignored.
    """
    quiz, progress = service.submit_attempt(learner_id, document_id, quiz_id, submission)
    return QuizAttemptResponse(message=Messages.ATTEMPT_SAVED, quiz=quiz, progress=progress)

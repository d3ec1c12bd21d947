"""
Chat API routes
Question answering over one document with page citations
"""
from fastapi import APIRouter, Depends

from smartlearn.modules.study_rag import StudyService
from smartlearn.schemas import AskRequest, AskResponse, ChatHistoryResponse
from .dependencies import get_learner_id, get_study_service

router = APIRouter()


@router.post("/{document_id}", response_model=AskResponse)
def ask_question(
    document_id: str,
    request: AskRequest,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    """
    Ask a question about a document.
    The answer cites the pages it is based on.
    """
    result = service.ask(learner_id, document_id, request.question)
    return AskResponse(answer=result.answer, citations=result.citations, sources=result.retrieved)


@router.get("/{document_id}/history", response_model=ChatHistoryResponse)
def get_history(
    document_id: str,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    history = service.get_chat_history(learner_id, document_id)
    return ChatHistoryResponse(history=history, total=len(history))

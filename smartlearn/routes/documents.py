"""
Document API routes
Handles PDF upload/indexing, listing, deletion and page recommendations
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from smartlearn.config import settings
from smartlearn.core.constants import Messages
from smartlearn.core.exceptions import ValidationFailed
from smartlearn.modules.study_rag import StudyService
from smartlearn.schemas import (
    DocumentListResponse,
    DocumentResponse,
    DocumentSummary,
    RecommendationResponse,
    UploadResponse,
)
from smartlearn.utils.helpers import is_valid_pdf
from .dependencies import get_learner_id, get_study_service

logger = logging.getLogger(__name__)

router = APIRouter()


# Plain ``def`` endpoints run in the worker thread pool, so a client
# disconnect does not interrupt an ingestion that has already started.

@router.post("", response_model=UploadResponse)
def upload_document(
    file: UploadFile = File(...),
    title: Optional[str] = Form(default=None),
    description: str = Form(default=""),
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    """
    Upload a PDF and index it for Q&A and quizzes.
    """
    logger.info(f"Upload and index: {file.filename}")

    if not file.filename or not is_valid_pdf(file.filename):
        raise ValidationFailed("Only PDF files are supported")

    content = file.file.read()
    if len(content) > settings.MAX_PDF_SIZE:
        raise ValidationFailed(
            f"File exceeds the {settings.MAX_PDF_SIZE // (1024 * 1024)}MB upload limit"
        )

    document = service.ingest_document(
        learner_id, content, file.filename, title=title, description=description
    )
    return UploadResponse(
        message=Messages.UPLOAD_SUCCESS,
        document=DocumentSummary.from_document(document),
    )


@router.get("", response_model=DocumentListResponse)
def list_documents(
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    """
    List the learner's documents, newest first
    """
    documents = [DocumentSummary.from_document(d) for d in service.list_documents(learner_id)]
    return DocumentListResponse(documents=documents, total=len(documents))


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: str,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    return DocumentResponse(document=service.get_document(learner_id, document_id))


@router.delete("/{document_id}")
def delete_document(
    document_id: str,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    """
    Delete a document, its vector index and its stored upload
    """
    service.delete_document(learner_id, document_id)
    return {"success": True, "message": Messages.DOCUMENT_DELETED}


@router.get(
    "/{document_id}/pages/{page_number}/recommendations",
    response_model=RecommendationResponse,
)
def get_recommendations(
    document_id: str,
    page_number: int,
    learner_id: str = Depends(get_learner_id),
    service: StudyService = Depends(get_study_service),
):
    """
    Video recommendations for one page (best effort)
    """
    result = service.get_recommendations(learner_id, document_id, page_number)
    return RecommendationResponse(
        page_number=page_number,
        keywords=result.keywords,
        recommendations=result.recommendations,
        message=result.message,
    )

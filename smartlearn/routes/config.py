"""
Configuration API routes
Handles runtime LLM provider switching
"""
from fastapi import APIRouter, Depends, HTTPException

from smartlearn.modules.study_rag import StudyService
from smartlearn.schemas import LLMProviderUpdate
from .dependencies import get_study_service

router = APIRouter()


@router.get("/llm")
def get_llm_provider(service: StudyService = Depends(get_study_service)):
    """
    Get current LLM provider configuration
    """
    return service.get_llm_provider_info()


@router.post("/llm")
def set_llm_provider(
    request: LLMProviderUpdate,
    service: StudyService = Depends(get_study_service),
):
    """
    Switch LLM provider (ollama or groq)
    """
    result = service.set_llm_provider(request.provider, request.model)
    if not result.get("success"):
        raise HTTPException(status_code=400, detail=result.get("error"))
    return result


@router.get("/llm/status")
def get_llm_status(service: StudyService = Depends(get_study_service)):
    """
    Check connection to the current LLM provider
    """
    return service.check_llm_status()

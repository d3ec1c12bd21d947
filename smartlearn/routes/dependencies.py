"""
Shared route dependencies
"""
from typing import Optional

from fastapi import Header, HTTPException

from smartlearn.config import settings
from smartlearn.modules.study_rag import StudyService


def get_study_service() -> StudyService:
    """Get Study service singleton instance"""
    return StudyService.get_instance()


def get_learner_id(
    learner_id: Optional[str] = Header(default=None, alias=settings.LEARNER_HEADER)
) -> str:
    """Learner identity set by the upstream auth layer"""
    if not learner_id or not learner_id.strip():
        raise HTTPException(status_code=401, detail=f"Missing {settings.LEARNER_HEADER} header")
    return learner_id.strip()

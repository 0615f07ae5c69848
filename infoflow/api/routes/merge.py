"""Merge API Routes - Preview per-field aggregation without persisting"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_current_user_dep, get_request_service_dep
from ...domain.models import ActorContext
from ...domain.enums import MergeStrategy
from ...services.request_service import RequestService

router = APIRouter()


class InlineSubmission(BaseModel):
    """Submission payload supplied directly in the preview call"""
    branch: Optional[str] = None
    state: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class MergePreviewBody(BaseModel):
    strategies: Dict[str, MergeStrategy] = Field(default_factory=dict)
    submission_ids: List[str] = Field(default_factory=list)
    submissions: List[InlineSubmission] = Field(default_factory=list)


class MergePreviewResponse(BaseModel):
    merged: Dict[str, Any]
    count: int


@router.post("/preview", response_model=MergePreviewResponse)
async def preview_merge(
    body: MergePreviewBody,
    actor: ActorContext = Depends(get_current_user_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """Merge stored and/or inline submissions with the given strategies"""
    merged = service.preview_merge(
        strategies=body.strategies,
        submission_ids=body.submission_ids,
        submissions=[item.model_dump() for item in body.submissions]
    )
    return MergePreviewResponse(
        merged=merged,
        count=len(body.submission_ids) + len(body.submissions)
    )

"""Submission API Routes - Division Head review of submitted forms"""
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_current_user_dep, get_correlation_id_dep, get_engine_dep
from ...domain.models import ActorContext, ChildSubmission
from ...domain.enums import ReviewAction
from ...engine.engine import WorkflowEngine
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class ReviewBody(BaseModel):
    """Division Head decision on a submitted form"""
    action: ReviewAction
    notes: Optional[str] = Field(None, max_length=2000)


# ============================================================================
# Routes
# ============================================================================

@router.post("/{submission_id}/review", response_model=ChildSubmission)
async def review_submission(
    submission_id: str,
    body: ReviewBody,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """
    Approve or return a submitted division form

    Returning a form requires notes and sends it back to the Division Analyst
    as a draft.
    """
    return engine.review_child_form(submission_id, actor.user_id, body.action, body.notes)

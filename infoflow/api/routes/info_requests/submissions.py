"""
Request Submission Routes

Division form submission and the consolidated state report.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from ...deps import (
    get_current_user_dep, get_correlation_id_dep, get_engine_dep, get_request_service_dep
)
from ....domain.models import ActorContext, ChildSubmission
from ....engine.engine import WorkflowEngine
from ....services.request_service import RequestService
from ....utils.logger import get_logger
from .schemas import SubmitFormBody, SubmitFormResponse

logger = get_logger(__name__)
router = APIRouter()


@router.post("/{request_id}/submissions", response_model=SubmitFormResponse, status_code=201)
async def submit_form(
    request_id: str,
    body: SubmitFormBody,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """
    Save a draft or submit the division's form.

    Only the Division Analyst the request was routed to can submit, and only
    after the Division Head's first-pass approval.
    """
    submission_id = engine.submit_child_form(
        request_id,
        actor.user_id,
        division=body.division,
        state=body.state,
        data=body.data,
        is_draft=body.is_draft
    )
    return SubmitFormResponse(
        submission_id=submission_id,
        request_id=request_id,
        dry_run=service.repo.is_dry_run
    )


@router.get("/{request_id}/submissions", response_model=List[ChildSubmission])
async def list_submissions(
    request_id: str,
    state: Optional[str] = Query(None),
    branch: Optional[str] = Query(None, description="Division"),
    actor: ActorContext = Depends(get_current_user_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """List division and state-level submissions in creation order."""
    return service.list_submissions(request_id, state=state, branch=branch)


@router.get("/{request_id}/state-report", response_model=ChildSubmission)
async def state_report(
    request_id: str,
    state: str = Query(..., min_length=1),
    actor: ActorContext = Depends(get_current_user_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """Get the consolidated state-level record."""
    return service.get_state_report(request_id, state)

"""
Request Actions Routes

Workflow action endpoints:
- Approve / forward
- Decline & improve
- Fan-out to divisions
- Reject / close
- Available actions
"""

from fastapi import APIRouter, Depends

from ...deps import (
    get_current_user_dep, get_correlation_id_dep, get_engine_dep, get_request_service_dep
)
from ....domain.models import ActorContext
from ....engine.engine import WorkflowEngine
from ....services.request_service import RequestService
from ....utils.logger import get_logger
from .schemas import (
    ApproveBody, DeclineBody, NotesBody, FanOutBody,
    ActionResponse, FanOutResponse, AvailableActionsResponse
)

logger = get_logger(__name__)
router = APIRouter()


@router.get("/{request_id}/actions", response_model=AvailableActionsResponse)
async def available_actions(
    request_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """List the actions the caller can take on the request right now."""
    request = service.get_request(request_id)
    return AvailableActionsResponse(
        request_id=request_id,
        actions=engine.available_actions(request, actor.user_id)
    )


@router.post("/{request_id}/approve", response_model=ActionResponse)
async def approve(
    request_id: str,
    body: ApproveBody,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """
    Approve and forward the request.

    Division Heads pass ``division`` to act on their assignment; the two-pass
    cycle decides whether this routes to the Analyst or approves the form.
    """
    next_assignee = engine.approve(
        request_id,
        actor.user_id,
        notes=body.notes,
        revised_deadline=body.revised_deadline,
        division=body.division,
        state=body.state,
        merge_strategy=body.merge_strategy
    )
    return ActionResponse(
        request_id=request_id,
        assignee_id=next_assignee,
        request=service.get_detail(request_id, actor.user_id)
    )


@router.post("/{request_id}/decline", response_model=ActionResponse)
async def decline(
    request_id: str,
    body: DeclineBody,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """Send the request back one tier. Not available on the first pass."""
    previous = engine.decline(
        request_id,
        actor.user_id,
        body.notes,
        division=body.division,
        state=body.state,
        revised_deadline=body.revised_deadline
    )
    return ActionResponse(
        request_id=request_id,
        assignee_id=previous,
        request=service.get_detail(request_id, actor.user_id)
    )


@router.post("/{request_id}/fanout", response_model=FanOutResponse)
async def fan_out(
    request_id: str,
    body: FanOutBody,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """Create one DivisionAssignment per division of the state (State Coordinator)."""
    created = engine.fan_out(request_id, actor.user_id, body.state, body.divisions)
    return FanOutResponse(
        request_id=request_id,
        created=created,
        request=service.get_detail(request_id, actor.user_id)
    )


@router.post("/{request_id}/reject", response_model=ActionResponse)
async def reject(
    request_id: str,
    body: NotesBody,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """Terminally reject the request."""
    request = engine.reject_request(request_id, actor.user_id, body.notes)
    return ActionResponse(
        request_id=request_id,
        assignee_id=request.current_assignee_id,
        request=service.build_detail(request, actor.user_id)
    )


@router.post("/{request_id}/close", response_model=ActionResponse)
async def close(
    request_id: str,
    body: NotesBody,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """Close an approved or rejected request."""
    request = engine.close_request(request_id, actor.user_id, body.notes)
    return ActionResponse(
        request_id=request_id,
        assignee_id=None,
        request=service.build_detail(request, actor.user_id)
    )

"""
Request CRUD Routes

Endpoints for creating, listing, reading and deleting requests.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from ...deps import (
    get_current_user_dep, get_correlation_id_dep, get_engine_dep, get_request_service_dep
)
from ....domain.models import ActorContext, RequestDetail
from ....domain.enums import RequestStatus
from ....engine.engine import WorkflowEngine
from ....services.request_service import RequestService
from ....utils.logger import get_logger
from .schemas import CreateRequestBody, RequestListResponse, DeleteResponse

logger = get_logger(__name__)
router = APIRouter()


@router.post("/", response_model=RequestDetail, status_code=201)
async def create_request(
    body: CreateRequestBody,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """
    Create a new information request.

    Caller must hold National Oversight. The timeline must be at least
    three days out.
    """
    request = engine.create_request(
        actor_id=actor.user_id,
        title=body.title,
        info_need=body.info_need,
        timeline=body.timeline,
        states=body.states,
        branches=body.branches,
        domains=body.domains,
        deadline=body.deadline,
        merge_strategy=body.merge_strategy
    )
    return service.build_detail(request, actor.user_id)


@router.get("/", response_model=RequestListResponse)
async def list_requests(
    status: Optional[RequestStatus] = Query(None),
    state: Optional[str] = Query(None),
    assignee_id: Optional[str] = Query(None),
    mine: bool = Query(False, description="Only requests assigned to the caller"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_user_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """List requests, earliest timeline first."""
    items = service.list_requests(
        status=status,
        state=state,
        assignee_id=actor.user_id if mine else assignee_id,
        skip=skip,
        limit=limit
    )
    return RequestListResponse(items=items, skip=skip, limit=limit, dry_run=service.repo.is_dry_run)


@router.get("/{request_id}", response_model=RequestDetail)
async def get_request(
    request_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """Get request detail with resolved assignee, history and the caller's actions."""
    return service.get_detail(request_id, actor.user_id)


@router.delete("/{request_id}", response_model=DeleteResponse)
async def delete_request(
    request_id: str,
    actor: ActorContext = Depends(get_current_user_dep),
    correlation_id: str = Depends(get_correlation_id_dep),
    engine: WorkflowEngine = Depends(get_engine_dep)
):
    """Delete a request and its submissions (National Oversight or Executive)."""
    deleted = engine.delete_request(request_id, actor.user_id)
    return DeleteResponse(request_id=request_id, deleted_submissions=deleted)

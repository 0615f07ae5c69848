"""
Request Schemas

Request and response models for information request API endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from ....domain.models import InfoRequest, RequestDetail, DivisionAssignment
from ....domain.enums import MergeStrategy, WorkflowAction


# =============================================================================
# CRUD Schemas
# =============================================================================

class CreateRequestBody(BaseModel):
    """Request to create a new information request"""
    title: str = Field(..., min_length=1, max_length=500)
    info_need: str = Field(..., min_length=1, max_length=10000)
    timeline: datetime
    states: List[str] = Field(..., min_length=1)
    branches: List[str] = Field(default_factory=list, description="Optional division hint")
    domains: List[str] = Field(default_factory=list)
    deadline: Optional[datetime] = None
    merge_strategy: Dict[str, MergeStrategy] = Field(default_factory=dict)

    @field_validator("states")
    @classmethod
    def states_not_blank(cls, v: List[str]) -> List[str]:
        if not any(s.strip() for s in v):
            raise ValueError("At least one non-empty state is required")
        return v


class RequestListResponse(BaseModel):
    """Response for request list"""
    items: List[InfoRequest]
    skip: int
    limit: int
    dry_run: bool = False


class DeleteResponse(BaseModel):
    """Response after deleting a request"""
    request_id: str
    deleted_submissions: int


# =============================================================================
# Action Schemas
# =============================================================================

class ApproveBody(BaseModel):
    """Request to approve / forward"""
    notes: Optional[str] = Field(None, max_length=2000)
    revised_deadline: Optional[datetime] = None
    division: Optional[str] = None
    state: Optional[str] = None
    merge_strategy: Optional[Dict[str, MergeStrategy]] = None


class DeclineBody(BaseModel):
    """Request to decline & improve"""
    notes: str = Field(..., min_length=1, max_length=2000)
    division: Optional[str] = None
    state: Optional[str] = None
    revised_deadline: Optional[datetime] = None


class NotesBody(BaseModel):
    """Request carrying only optional notes (reject, close)"""
    notes: Optional[str] = Field(None, max_length=2000)


class FanOutBody(BaseModel):
    """Request to fan out to divisions; omit divisions to auto-discover"""
    state: str = Field(..., min_length=1)
    divisions: Optional[List[str]] = None


class ActionResponse(BaseModel):
    """Response after a workflow action"""
    request_id: str
    assignee_id: Optional[str] = None
    request: RequestDetail


class FanOutResponse(BaseModel):
    """Response after fan-out"""
    request_id: str
    created: List[DivisionAssignment]
    request: RequestDetail


class AvailableActionsResponse(BaseModel):
    """Actions the caller can take now"""
    request_id: str
    actions: List[WorkflowAction]


# =============================================================================
# Submission Schemas
# =============================================================================

class SubmitFormBody(BaseModel):
    """Request to save or submit a division form"""
    division: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)
    is_draft: bool = False


class SubmitFormResponse(BaseModel):
    """Response after saving a division form"""
    submission_id: str
    request_id: str
    dry_run: bool = False

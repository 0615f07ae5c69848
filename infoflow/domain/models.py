"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict

from .enums import (
    Role, RequestStatus, FlowDirection, DivisionStatus, SubmissionStatus,
    HistoryAction, NotificationStatus, NotificationTemplateKey, WorkflowAction,
    TERMINAL_REQUEST_STATUSES
)


# ============================================================================
# Principals & Identity
# ============================================================================

class RoleAssignment(BaseModel):
    """One role held by a principal, optionally bound to a state/division"""
    model_config = ConfigDict(extra="forbid")

    role: Role = Field(..., description="Tier held")
    state: Optional[str] = Field(None, description="State the role is bound to")
    division: Optional[str] = Field(None, description="Division the role is bound to")

    def matches(self, role: Role, state: Optional[str] = None, division: Optional[str] = None) -> bool:
        """Check role plus whichever context is requested"""
        if self.role != role:
            return False
        if state is not None and self.state != state:
            return False
        if division is not None and self.division != division:
            return False
        return True


class Principal(BaseModel):
    """Directory record for a user and their role assignments"""
    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., description="Stable user identifier")
    name: str = Field(..., description="Display name")
    email: Optional[EmailStr] = Field(None, description="Contact email")
    active: bool = Field(default=True)
    roles: List[RoleAssignment] = Field(default_factory=list)

    def holds(self, role: Role, state: Optional[str] = None, division: Optional[str] = None) -> bool:
        """Check whether any assignment grants the role in the given context"""
        return any(assignment.matches(role, state, division) for assignment in self.roles)


class ActorContext(BaseModel):
    """Current actor context from the bearer token"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="User identifier (token subject)")
    email: str = Field(default="", description="User email")
    display_name: str = Field(..., description="User display name")


class PrincipalSummary(BaseModel):
    """Resolved reference to a principal inside read models"""
    user_id: str
    name: Optional[str] = None


# ============================================================================
# Audit
# ============================================================================

class AuditEntry(BaseModel):
    """One history entry - immutable once appended"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    action: HistoryAction
    user_id: str
    timestamp: datetime
    notes: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# Request
# ============================================================================

class Targets(BaseModel):
    """Scope a request has been expanded to"""
    model_config = ConfigDict(extra="ignore")

    states: List[str] = Field(default_factory=list)
    branches: List[str] = Field(default_factory=list, description="Divisions named at creation or reached by fan-out")
    requested_branches: List[str] = Field(default_factory=list, description="Division hint given at creation")
    domains: List[str] = Field(default_factory=list)


class DivisionAssignment(BaseModel):
    """Per-division progress once a request has been fanned out"""
    model_config = ConfigDict(extra="ignore")

    division: str
    state: str
    division_hod_id: str
    division_yp_id: Optional[str] = None
    status: DivisionStatus = Field(default=DivisionStatus.PENDING)
    submission_id: Optional[str] = Field(None, description="Form approved by the Head, set with hod_approved_form")
    deadline: datetime
    approved_at: Optional[datetime] = None
    created_at: datetime


class InfoRequest(BaseModel):
    """Information request flowing through the hierarchy"""
    model_config = ConfigDict(extra="ignore")

    request_id: str
    title: str
    info_need: str
    timeline: datetime
    deadline: datetime
    status: RequestStatus = Field(default=RequestStatus.OPEN)
    targets: Targets = Field(default_factory=Targets)

    # Top-level routing pointer
    current_assignee_id: Optional[str] = None
    current_tier: Optional[Role] = None
    current_state: Optional[str] = None
    flow: FlowDirection = Field(default=FlowDirection.DOWN)

    division_assignments: List[DivisionAssignment] = Field(default_factory=list)
    merge_strategy: Dict[str, str] = Field(default_factory=dict)

    created_by: str
    history: List[AuditEntry] = Field(default_factory=list)

    version: int = Field(default=1, description="Compare-and-swap counter")
    created_at: datetime
    updated_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    def assignments_for_state(self, state: Optional[str]) -> List[DivisionAssignment]:
        return [a for a in self.division_assignments if a.state == state]

    def find_assignment(self, state: Optional[str], division: str) -> Optional[DivisionAssignment]:
        for assignment in self.division_assignments:
            if assignment.state == state and assignment.division == division:
                return assignment
        return None

    def primary_assignment(self, state: Optional[str]) -> Optional[DivisionAssignment]:
        """First-created assignment of a state; the one current_assignee_id follows"""
        assignments = self.assignments_for_state(state)
        return assignments[0] if assignments else None


# ============================================================================
# Child Submission
# ============================================================================

class ChildSubmission(BaseModel):
    """A division's (or, once merged, a state's) answer to a request"""
    model_config = ConfigDict(extra="ignore")

    submission_id: str
    request_id: str
    branch: Optional[str] = Field(None, description="Division; None for state-level merged records")
    state: Optional[str] = None
    submitted_by: str
    data: Dict[str, Any] = Field(default_factory=dict)
    status: SubmissionStatus = Field(default=SubmissionStatus.SUBMITTED)
    audit: List[AuditEntry] = Field(default_factory=list)
    version: int = Field(default=1, description="Revision counter, bumped when sent back")
    source_submission_ids: List[str] = Field(default_factory=list)
    merged_into: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Notification Outbox
# ============================================================================

class NotificationEvent(BaseModel):
    """Notify request emitted by the engine"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    request_id: Optional[str] = None
    template_key: NotificationTemplateKey
    recipient_id: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    status: NotificationStatus = Field(default=NotificationStatus.PENDING)
    created_at: datetime


# ============================================================================
# Read Models
# ============================================================================

class HistoryView(BaseModel):
    """History entry with its actor resolved"""
    action: HistoryAction
    actor: PrincipalSummary
    timestamp: datetime
    notes: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class AnalyticsSummary(BaseModel):
    """Store-wide counts for dashboards"""
    total_requests: int
    total_submissions: int
    overdue_requests: int
    dry_run: bool = False


class RequestDetail(BaseModel):
    """Fully-resolved request returned to callers"""
    request: InfoRequest
    current_assignee: Optional[PrincipalSummary] = None
    history: List[HistoryView] = Field(default_factory=list)
    is_overdue: bool = False
    available_actions: List[WorkflowAction] = Field(default_factory=list)
    dry_run: bool = False

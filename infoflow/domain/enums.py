"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class Role(str, Enum):
    """The six tiers of the hierarchy, top to bottom"""
    NATIONAL_OVERSIGHT = "National Oversight"
    EXECUTIVE = "Executive"
    STATE_ADVISOR = "State Advisor"
    STATE_COORDINATOR = "State Coordinator"
    DIVISION_HEAD = "Division Head"
    DIVISION_ANALYST = "Division Analyst"


class RoleScope(str, Enum):
    """Context a role assignment is bound to"""
    GLOBAL = "global"
    STATE = "state"
    DIVISION = "division"


class RequestStatus(str, Enum):
    """Top-level request status"""
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLOSED = "closed"


TERMINAL_REQUEST_STATUSES = (
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.CLOSED,
)


class FlowDirection(str, Enum):
    """Down = first pass (no content yet), up = second pass (content present)"""
    DOWN = "down"
    UP = "up"


class DivisionStatus(str, Enum):
    """Per-division two-pass cycle state"""
    PENDING = "pending"
    HOD_APPROVED = "hod_approved"
    YP_SUBMITTED = "yp_submitted"
    HOD_APPROVED_FORM = "hod_approved_form"
    COMPLETED = "completed"


DIVISION_DONE_STATUSES = (DivisionStatus.HOD_APPROVED_FORM, DivisionStatus.COMPLETED)


class SubmissionStatus(str, Enum):
    """Child submission status"""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    MERGED = "merged"


# A division with a submission in one of these is on its second pass
SECOND_PASS_SUBMISSION_STATUSES = (SubmissionStatus.SUBMITTED, SubmissionStatus.APPROVED)


class MergeStrategy(str, Enum):
    """Per-field aggregation operator"""
    SUM = "sum"
    AVG = "avg"
    MAX = "max"
    MIN = "min"
    CONCAT = "concat"


class ReviewAction(str, Enum):
    """Division Head decision on a submitted form"""
    APPROVE = "approve"
    REJECT = "reject"


class WorkflowAction(str, Enum):
    """Actions a principal can be offered on a request"""
    APPROVE = "approve"
    APPROVE_FORM = "approve_form"
    DECLINE = "decline"
    FAN_OUT = "fan_out"
    SUBMIT_FORM = "submit_form"
    SAVE_DRAFT = "save_draft"
    REJECT = "reject"
    CLOSE = "close"
    DELETE = "delete"


class HistoryAction(str, Enum):
    """Actions recorded in the request history"""
    CREATED = "created"
    FORWARD = "forward"
    DECLINED = "declined"
    FANOUT = "fanout"
    HOD_FORWARDED = "hod_forwarded"
    FORM_DRAFT_SAVED = "form_draft_saved"
    FORM_SUBMITTED = "form_submitted"
    FORM_APPROVED = "form_approved"
    FORM_RETURNED = "form_returned"
    CONSOLIDATED = "consolidated"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLOSED = "closed"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class NotificationTemplateKey(str, Enum):
    """Notification template identifiers"""
    REQUEST_ASSIGNED = "REQUEST_ASSIGNED"
    REQUEST_DECLINED = "REQUEST_DECLINED"
    DIVISION_ASSIGNED = "DIVISION_ASSIGNED"
    FORM_SUBMITTED = "FORM_SUBMITTED"
    FORM_APPROVED = "FORM_APPROVED"
    FORM_RETURNED = "FORM_RETURNED"
    STATE_CONSOLIDATED = "STATE_CONSOLIDATED"
    REQUEST_APPROVED = "REQUEST_APPROVED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    REQUEST_CLOSED = "REQUEST_CLOSED"

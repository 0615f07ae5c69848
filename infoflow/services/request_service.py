"""Request Service - Read model for requests and submissions

Builds the DTOs handed to callers. Nothing here mutates state; every
transition goes through the WorkflowEngine.
"""
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TYPE_CHECKING

from ..domain.models import (
    InfoRequest, ChildSubmission, RequestDetail, HistoryView, PrincipalSummary, AnalyticsSummary
)
from ..domain.enums import RequestStatus, SubmissionStatus
from ..domain.errors import NotFoundError, ValidationError
from ..repositories.base import RequestRepository
from ..engine.merge_engine import merge_submissions
from .directory_service import DirectoryService
from ..utils.time import utc_now, is_overdue
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..engine.engine import WorkflowEngine

logger = get_logger(__name__)


class RequestService:
    """Service for request queries"""

    def __init__(
        self,
        request_repo: RequestRepository,
        directory: DirectoryService,
        engine: "WorkflowEngine",
        clock: Callable[[], datetime] = utc_now
    ):
        self.repo = request_repo
        self.directory = directory
        self.engine = engine
        self.clock = clock

    def get_request(self, request_id: str) -> InfoRequest:
        return self.repo.get_request_or_raise(request_id)

    def get_detail(self, request_id: str, actor_id: str) -> RequestDetail:
        """
        Get the fully-resolved request view

        Resolves the current assignee and every history actor, computes
        ``is_overdue`` against the clock and lists the caller's actions.
        """
        request = self.repo.get_request_or_raise(request_id)
        return self.build_detail(request, actor_id)

    def build_detail(self, request: InfoRequest, actor_id: str) -> RequestDetail:
        names: Dict[str, PrincipalSummary] = {}

        def summary(user_id: str) -> PrincipalSummary:
            if user_id not in names:
                names[user_id] = self.directory.summarize(user_id)
            return names[user_id]

        history = [
            HistoryView(
                action=entry.action,
                actor=summary(entry.user_id),
                timestamp=entry.timestamp,
                notes=entry.notes,
                details=entry.details
            )
            for entry in request.history
        ]

        return RequestDetail(
            request=request,
            current_assignee=summary(request.current_assignee_id) if request.current_assignee_id else None,
            history=history,
            is_overdue=not request.is_terminal and is_overdue(request.deadline, self.clock()),
            available_actions=self.engine.available_actions(request, actor_id),
            dry_run=self.repo.is_dry_run
        )

    def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        state: Optional[str] = None,
        assignee_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[InfoRequest]:
        """List requests, earliest timeline first"""
        return self.repo.list_requests(
            status=status, state=state, assignee_id=assignee_id, skip=skip, limit=limit
        )

    def list_submissions(
        self,
        request_id: str,
        state: Optional[str] = None,
        branch: Optional[str] = None,
        statuses: Optional[Sequence[SubmissionStatus]] = None
    ) -> List[ChildSubmission]:
        self.repo.get_request_or_raise(request_id)
        return self.repo.list_submissions(request_id, state=state, branch=branch, statuses=statuses)

    def get_state_report(self, request_id: str, state: str) -> ChildSubmission:
        """Get the consolidated state-level record"""
        self.repo.get_request_or_raise(request_id)
        record = self.repo.find_state_record(request_id, state)
        if record is None:
            raise NotFoundError(
                f"State {state} has not been consolidated yet",
                details={"request_id": request_id, "state": state}
            )
        return record

    def preview_merge(
        self,
        strategies: Optional[Mapping[str, Any]] = None,
        submission_ids: Optional[List[str]] = None,
        submissions: Optional[List[Mapping[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Run the merge over stored or inline submissions without persisting

        Stored submissions come first, in the order their ids were given.
        """
        items: List[Any] = [self.repo.get_submission_or_raise(sid) for sid in submission_ids or []]
        items.extend(submissions or [])
        if not items:
            raise ValidationError(
                "Nothing to merge",
                details={"fields": ["submission_ids", "submissions"]}
            )
        return merge_submissions(items, strategies)

    def get_analytics(self) -> AnalyticsSummary:
        """Store-wide totals; overdue counts every unclosed request past its deadline"""
        summary = AnalyticsSummary(
            total_requests=self.repo.count_requests(),
            total_submissions=self.repo.count_submissions(),
            overdue_requests=self.repo.count_overdue_requests(self.clock()),
            dry_run=self.repo.is_dry_run
        )
        logger.debug(
            f"Analytics: {summary.total_requests} requests, {summary.overdue_requests} overdue"
        )
        return summary

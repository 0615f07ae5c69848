"""Dry-Run Repositories - In-memory implementations of the repository interfaces

Selected with ``REPOSITORY_BACKEND=dry_run``. Nothing is persisted and every
identifier carries the ``DRYRUN-`` prefix so a dry-run result can never be
mistaken for a real commit. The same classes back the test suite.
"""
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .base import RequestRepository, UserRepository, NotificationRepository
from ..domain.models import InfoRequest, ChildSubmission, Principal, NotificationEvent
from ..domain.enums import Role, RequestStatus, SubmissionStatus
from ..domain.errors import ConcurrencyError, RequestNotFoundError, ValidationError
from ..utils.idgen import generate_request_id, generate_submission_id, mark_dry_run
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DryRunRepository(RequestRepository):
    """Non-persisted request store with the same compare-and-swap semantics"""

    is_dry_run = True

    def __init__(self):
        self._lock = threading.Lock()
        self._requests: Dict[str, InfoRequest] = {}
        self._submissions: Dict[str, ChildSubmission] = {}

    def new_request_id(self) -> str:
        return mark_dry_run(generate_request_id())

    def new_submission_id(self) -> str:
        return mark_dry_run(generate_submission_id())

    # =========================================================================
    # Requests
    # =========================================================================

    def create_request(self, request: InfoRequest) -> InfoRequest:
        with self._lock:
            if request.request_id in self._requests:
                raise ValidationError(
                    f"Request {request.request_id} already exists",
                    details={"request_id": request.request_id}
                )
            self._requests[request.request_id] = request.model_copy(deep=True)
        logger.info(f"[dry-run] Created request: {request.request_id}", extra={"request_id": request.request_id})
        return request

    def get_request(self, request_id: str) -> Optional[InfoRequest]:
        with self._lock:
            stored = self._requests.get(request_id)
            return stored.model_copy(deep=True) if stored else None

    def save_request(self, request: InfoRequest, expected_version: int) -> InfoRequest:
        with self._lock:
            stored = self._requests.get(request.request_id)
            if stored is None:
                raise RequestNotFoundError(
                    f"Request {request.request_id} not found",
                    details={"request_id": request.request_id}
                )
            if stored.version != expected_version:
                raise ConcurrencyError(
                    f"Request {request.request_id} was modified concurrently",
                    details={"request_id": request.request_id, "expected_version": expected_version}
                )
            saved = request.model_copy(update={
                "version": expected_version + 1,
                "updated_at": utc_now(),
            }, deep=True)
            self._requests[request.request_id] = saved
            return saved.model_copy(deep=True)

    def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        state: Optional[str] = None,
        assignee_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[InfoRequest]:
        with self._lock:
            items = [r.model_copy(deep=True) for r in self._requests.values()]

        if status:
            items = [r for r in items if r.status == status]
        if state:
            items = [r for r in items if state in r.targets.states]
        if assignee_id:
            items = [r for r in items if _involves(r, assignee_id)]

        items.sort(key=lambda r: r.timeline)
        return items[skip:skip + limit]

    def delete_request(self, request_id: str) -> bool:
        with self._lock:
            return self._requests.pop(request_id, None) is not None

    # =========================================================================
    # Child Submissions
    # =========================================================================

    def save_submission(self, submission: ChildSubmission) -> ChildSubmission:
        with self._lock:
            self._submissions[submission.submission_id] = submission.model_copy(deep=True)
        return submission

    def get_submission(self, submission_id: str) -> Optional[ChildSubmission]:
        with self._lock:
            stored = self._submissions.get(submission_id)
            return stored.model_copy(deep=True) if stored else None

    def list_submissions(
        self,
        request_id: str,
        state: Optional[str] = None,
        branch: Optional[str] = None,
        statuses: Optional[Sequence[SubmissionStatus]] = None
    ) -> List[ChildSubmission]:
        with self._lock:
            # dicts keep insertion order, which is creation order here
            items = [s.model_copy(deep=True) for s in self._submissions.values() if s.request_id == request_id]

        if state:
            items = [s for s in items if s.state == state]
        if branch:
            items = [s for s in items if s.branch == branch]
        if statuses:
            items = [s for s in items if s.status in statuses]
        return items

    def find_state_record(self, request_id: str, state: str) -> Optional[ChildSubmission]:
        records = [
            s for s in self.list_submissions(request_id, state=state)
            if s.branch is None
        ]
        return records[-1] if records else None

    def delete_submissions_for_request(self, request_id: str) -> int:
        with self._lock:
            doomed = [sid for sid, s in self._submissions.items() if s.request_id == request_id]
            for sid in doomed:
                del self._submissions[sid]
        return len(doomed)

    # =========================================================================
    # Analytics
    # =========================================================================

    def count_requests(self) -> int:
        with self._lock:
            return len(self._requests)

    def count_submissions(self) -> int:
        with self._lock:
            return len(self._submissions)

    def count_overdue_requests(self, now: datetime) -> int:
        with self._lock:
            return sum(
                1 for r in self._requests.values()
                if r.deadline < now and r.status != RequestStatus.CLOSED
            )


def _involves(request: InfoRequest, user_id: str) -> bool:
    if request.current_assignee_id == user_id:
        return True
    return any(
        user_id in (a.division_hod_id, a.division_yp_id)
        for a in request.division_assignments
    )


class InMemoryUserRepository(UserRepository):
    """Role directory held in memory"""

    def __init__(self, principals: Optional[Iterable[Principal]] = None):
        self._lock = threading.Lock()
        self._users: Dict[str, Principal] = {}
        for principal in principals or []:
            self.upsert_user(principal)

    def get_user(self, user_id: str) -> Optional[Principal]:
        with self._lock:
            return self._users.get(user_id)

    def find_users(
        self,
        role: Role,
        state: Optional[str] = None,
        division: Optional[str] = None
    ) -> List[Principal]:
        with self._lock:
            matches = [
                p for p in self._users.values()
                if p.active and p.holds(role, state, division)
            ]
        return sorted(matches, key=lambda p: p.user_id)

    def upsert_user(self, principal: Principal) -> Principal:
        with self._lock:
            self._users[principal.user_id] = principal
        return principal


class InMemoryNotificationRepository(NotificationRepository):
    """Outbox held in memory"""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[NotificationEvent] = []

    def create_notification(self, notification: NotificationEvent) -> NotificationEvent:
        with self._lock:
            self._events.append(notification)
        return notification

    def list_for_request(self, request_id: str) -> List[NotificationEvent]:
        with self._lock:
            return [e for e in self._events if e.request_id == request_id]

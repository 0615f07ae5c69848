"""Repository Interfaces

The workflow engine only talks to these abstractions. Two implementations
exist: MongoDB (``request_repo``, ``user_repo``, ``notification_repo``) and
the in-memory dry-run set (``dry_run``), chosen by configuration.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from ..domain.models import InfoRequest, ChildSubmission, Principal, NotificationEvent
from ..domain.enums import Role, RequestStatus, SubmissionStatus
from ..domain.errors import RequestNotFoundError, SubmissionNotFoundError


class RequestRepository(ABC):
    """Storage for requests and child submissions

    ``save_request`` is the serialization point: it must atomically replace
    the document only when the stored version equals ``expected_version``
    and raise ``ConcurrencyError`` otherwise.
    """

    is_dry_run: bool = False

    # Identifiers ----------------------------------------------------------

    @abstractmethod
    def new_request_id(self) -> str:
        ...

    @abstractmethod
    def new_submission_id(self) -> str:
        ...

    # Requests -------------------------------------------------------------

    @abstractmethod
    def create_request(self, request: InfoRequest) -> InfoRequest:
        ...

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[InfoRequest]:
        ...

    def get_request_or_raise(self, request_id: str) -> InfoRequest:
        """Get request by ID or raise error"""
        request = self.get_request(request_id)
        if request is None:
            raise RequestNotFoundError(
                f"Request {request_id} not found",
                details={"request_id": request_id}
            )
        return request

    @abstractmethod
    def save_request(self, request: InfoRequest, expected_version: int) -> InfoRequest:
        ...

    @abstractmethod
    def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        state: Optional[str] = None,
        assignee_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[InfoRequest]:
        ...

    @abstractmethod
    def delete_request(self, request_id: str) -> bool:
        ...

    # Child submissions ----------------------------------------------------

    @abstractmethod
    def save_submission(self, submission: ChildSubmission) -> ChildSubmission:
        ...

    @abstractmethod
    def get_submission(self, submission_id: str) -> Optional[ChildSubmission]:
        ...

    def get_submission_or_raise(self, submission_id: str) -> ChildSubmission:
        """Get submission by ID or raise error"""
        submission = self.get_submission(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(
                f"Submission {submission_id} not found",
                details={"submission_id": submission_id}
            )
        return submission

    @abstractmethod
    def list_submissions(
        self,
        request_id: str,
        state: Optional[str] = None,
        branch: Optional[str] = None,
        statuses: Optional[Sequence[SubmissionStatus]] = None
    ) -> List[ChildSubmission]:
        """Division-level and state-level submissions in creation order"""
        ...

    @abstractmethod
    def find_state_record(self, request_id: str, state: str) -> Optional[ChildSubmission]:
        """The state-level (branch-less) consolidated record, if any"""
        ...

    @abstractmethod
    def delete_submissions_for_request(self, request_id: str) -> int:
        ...

    # Analytics ------------------------------------------------------------

    @abstractmethod
    def count_requests(self) -> int:
        ...

    @abstractmethod
    def count_submissions(self) -> int:
        """Every stored submission, division forms and state records alike"""
        ...

    @abstractmethod
    def count_overdue_requests(self, now: datetime) -> int:
        """Requests past their deadline that are not closed"""
        ...


class UserRepository(ABC):
    """Read access to principals and their role assignments"""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[Principal]:
        ...

    @abstractmethod
    def find_users(
        self,
        role: Role,
        state: Optional[str] = None,
        division: Optional[str] = None
    ) -> List[Principal]:
        """Active principals holding the role in context, ordered by user_id"""
        ...

    @abstractmethod
    def upsert_user(self, principal: Principal) -> Principal:
        ...


class NotificationRepository(ABC):
    """Outbox for engine-emitted notify events"""

    @abstractmethod
    def create_notification(self, notification: NotificationEvent) -> NotificationEvent:
        ...

    @abstractmethod
    def list_for_request(self, request_id: str) -> List[NotificationEvent]:
        ...

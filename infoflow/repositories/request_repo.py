"""Request Repository - MongoDB data access for requests and child submissions"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo import ASCENDING

from .base import RequestRepository
from .mongo_client import get_database, translate_connection_errors
from ..domain.models import InfoRequest, ChildSubmission
from ..domain.enums import RequestStatus, SubmissionStatus
from ..domain.errors import RequestNotFoundError, ConcurrencyError
from ..utils.idgen import generate_request_id, generate_submission_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class MongoRequestRepository(RequestRepository):
    """Repository for request and submission documents"""

    is_dry_run = False

    def __init__(self, database: Optional[Database] = None):
        db = database if database is not None else get_database()
        self._requests: Collection = db["info_requests"]
        self._submissions: Collection = db["child_submissions"]

    def new_request_id(self) -> str:
        return generate_request_id()

    def new_submission_id(self) -> str:
        return generate_submission_id()

    # =========================================================================
    # Requests
    # =========================================================================

    @translate_connection_errors
    def create_request(self, request: InfoRequest) -> InfoRequest:
        """Create a new request"""
        # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
        doc = request.model_dump()
        doc["_id"] = request.request_id

        self._requests.insert_one(doc)
        logger.info(f"Created request: {request.request_id}", extra={"request_id": request.request_id})
        return request

    @translate_connection_errors
    def get_request(self, request_id: str) -> Optional[InfoRequest]:
        """Get request by ID"""
        doc = self._requests.find_one({"request_id": request_id})
        if doc:
            doc.pop("_id", None)
            return InfoRequest.model_validate(doc)
        return None

    @translate_connection_errors
    def save_request(self, request: InfoRequest, expected_version: int) -> InfoRequest:
        """Replace the whole request document with optimistic concurrency"""
        saved = request.model_copy(update={
            "version": expected_version + 1,
            "updated_at": utc_now(),
        })
        doc = saved.model_dump()
        doc["_id"] = saved.request_id

        result = self._requests.replace_one(
            {"request_id": request.request_id, "version": expected_version},
            doc
        )

        if result.matched_count == 0:
            if self._requests.count_documents({"request_id": request.request_id}, limit=1):
                raise ConcurrencyError(
                    f"Request {request.request_id} was modified concurrently",
                    details={"request_id": request.request_id, "expected_version": expected_version}
                )
            raise RequestNotFoundError(
                f"Request {request.request_id} not found",
                details={"request_id": request.request_id}
            )

        logger.info(
            f"Saved request: {request.request_id}",
            extra={"request_id": request.request_id, "status": saved.status.value}
        )
        return saved

    @translate_connection_errors
    def list_requests(
        self,
        status: Optional[RequestStatus] = None,
        state: Optional[str] = None,
        assignee_id: Optional[str] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[InfoRequest]:
        """List requests with filters, earliest timeline first"""
        query: Dict[str, Any] = {}
        if status:
            query["status"] = status.value
        if state:
            query["targets.states"] = state
        if assignee_id:
            query["$or"] = [
                {"current_assignee_id": assignee_id},
                {"division_assignments.division_hod_id": assignee_id},
                {"division_assignments.division_yp_id": assignee_id},
            ]

        cursor = self._requests.find(query).sort("timeline", ASCENDING).skip(skip).limit(limit)

        requests = []
        for doc in cursor:
            doc.pop("_id", None)
            requests.append(InfoRequest.model_validate(doc))
        return requests

    @translate_connection_errors
    def delete_request(self, request_id: str) -> bool:
        """Delete a request document"""
        result = self._requests.delete_one({"request_id": request_id})
        return result.deleted_count > 0

    # =========================================================================
    # Child Submissions
    # =========================================================================

    @translate_connection_errors
    def save_submission(self, submission: ChildSubmission) -> ChildSubmission:
        """Insert or replace a submission"""
        doc = submission.model_dump()
        doc["_id"] = submission.submission_id

        self._submissions.replace_one(
            {"submission_id": submission.submission_id},
            doc,
            upsert=True
        )
        logger.info(
            f"Saved submission: {submission.submission_id}",
            extra={
                "request_id": submission.request_id,
                "submission_id": submission.submission_id,
                "status": submission.status.value
            }
        )
        return submission

    @translate_connection_errors
    def get_submission(self, submission_id: str) -> Optional[ChildSubmission]:
        """Get submission by ID"""
        doc = self._submissions.find_one({"submission_id": submission_id})
        if doc:
            doc.pop("_id", None)
            return ChildSubmission.model_validate(doc)
        return None

    @translate_connection_errors
    def list_submissions(
        self,
        request_id: str,
        state: Optional[str] = None,
        branch: Optional[str] = None,
        statuses: Optional[Sequence[SubmissionStatus]] = None
    ) -> List[ChildSubmission]:
        """List submissions for a request"""
        query: Dict[str, Any] = {"request_id": request_id}
        if state:
            query["state"] = state
        if branch:
            query["branch"] = branch
        if statuses:
            query["status"] = {"$in": [s.value for s in statuses]}

        cursor = self._submissions.find(query).sort([("created_at", ASCENDING), ("submission_id", ASCENDING)])

        submissions = []
        for doc in cursor:
            doc.pop("_id", None)
            submissions.append(ChildSubmission.model_validate(doc))
        return submissions

    @translate_connection_errors
    def find_state_record(self, request_id: str, state: str) -> Optional[ChildSubmission]:
        """Get the consolidated state-level record"""
        doc = self._submissions.find_one(
            {"request_id": request_id, "state": state, "branch": None},
            sort=[("created_at", -1)]
        )
        if doc:
            doc.pop("_id", None)
            return ChildSubmission.model_validate(doc)
        return None

    @translate_connection_errors
    def delete_submissions_for_request(self, request_id: str) -> int:
        """Delete every submission attached to a request"""
        result = self._submissions.delete_many({"request_id": request_id})
        if result.deleted_count:
            logger.info(
                f"Deleted {result.deleted_count} submissions",
                extra={"request_id": request_id}
            )
        return result.deleted_count

    # =========================================================================
    # Analytics
    # =========================================================================

    @translate_connection_errors
    def count_requests(self) -> int:
        return self._requests.count_documents({})

    @translate_connection_errors
    def count_submissions(self) -> int:
        return self._submissions.count_documents({})

    @translate_connection_errors
    def count_overdue_requests(self, now: datetime) -> int:
        return self._requests.count_documents({
            "deadline": {"$lt": now},
            "status": {"$ne": RequestStatus.CLOSED.value}
        })

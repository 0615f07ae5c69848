"""
Workflow Engine - The Brain of the System

This module contains the WorkflowEngine class that orchestrates every
request operation and hierarchy transition.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Constructor with repository, directory and notification dependencies

2. TRANSACTION
   - _execute: load, mutate a copy, compare-and-swap save, retry on conflict,
     then apply deferred submission writes and notifications

3. REQUEST CREATION
   - create_request

4. ACTION HANDLERS
   - approve / decline: top-level hops and the division two-pass cycle
   - fan_out: expand a state into DivisionAssignments
   - submit_child_form / review_child_form
   - reject_request / close_request / delete_request

5. TRANSITION HELPERS
   - _approve_tier, _approve_division, _approve_form, _return_form
   - _fan_out, _consolidate, _reopen_divisions
   - _route_to, _sync_division_pointer, deadline rules

6. AVAILABLE ACTIONS
   - available_actions: what an actor may do right now

=============================================================================
DEPENDENCIES
=============================================================================

Repositories:
    - RequestRepository: requests and child submissions (MongoDB or dry-run)

Services:
    - DirectoryService: role lookups
    - NotificationService: outbox

Guards & Resolvers:
    - PermissionGuard: authorization checks
    - TransitionResolver: routing table
    - AuditWriter: history entries
    - merge_engine: consolidation

=============================================================================
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..domain.models import (
    InfoRequest, DivisionAssignment, ChildSubmission, Principal, Targets
)
from ..domain.enums import (
    Role, FlowDirection, RequestStatus, DivisionStatus, SubmissionStatus,
    HistoryAction, ReviewAction, WorkflowAction, NotificationTemplateKey,
    DIVISION_DONE_STATUSES, SECOND_PASS_SUBMISSION_STATUSES
)
from ..domain.errors import (
    ValidationError, TimelineTooSoonError, PermissionDeniedError,
    InvalidStateError, DeadlineIncreasedError, DeclineNotAllowedError,
    NoDivisionHeadsError, ConcurrencyError, DivisionAssignmentNotFoundError
)
from ..repositories.base import RequestRepository
from ..services.directory_service import DirectoryService
from ..services.notification_service import NotificationService
from ..config.settings import Settings, get_settings
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver, HopEffect
from .audit_writer import AuditWriter
from .merge_engine import merge_submissions, parse_strategies
from ..utils.time import utc_now, ensure_utc, add_days, format_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Submission statuses a division can still be working on
OPEN_SUBMISSION_STATUSES = (
    SubmissionStatus.DRAFT,
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.APPROVED,
)


class _PendingWrites:
    """Side writes applied only after the request document commits"""

    def __init__(self):
        self.submissions: List[ChildSubmission] = []
        self.notifications: List[Dict[str, Any]] = []

    def save(self, submission: ChildSubmission) -> None:
        self.submissions = [s for s in self.submissions if s.submission_id != submission.submission_id]
        self.submissions.append(submission)

    def notify(
        self,
        template_key: NotificationTemplateKey,
        recipient_id: Optional[str],
        request: InfoRequest,
        **payload: Any
    ) -> None:
        if not recipient_id:
            return
        self.notifications.append({
            "template_key": template_key,
            "recipient_id": recipient_id,
            "request_id": request.request_id,
            "payload": {"title": request.title, **payload},
        })


class WorkflowEngine:
    """
    The Workflow Engine - Central orchestrator for all request operations

    Responsibilities:
    - Create requests and route them down the hierarchy
    - Fan requests out to divisions and drive the two-pass division cycle
    - Consolidate division answers into one state-level record
    - Enforce permissions, deadline monotonicity and append-only history
    - Serialize concurrent transitions with version compare-and-swap
    """

    def __init__(
        self,
        request_repo: RequestRepository,
        directory: DirectoryService,
        notification_service: NotificationService,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        settings = settings or get_settings()
        self.requests = request_repo
        self.directory = directory
        self.notification_service = notification_service
        self.resolver = TransitionResolver()
        self.permission_guard = PermissionGuard(self.resolver)
        self.audit_writer = AuditWriter(clock)
        self.clock = clock
        self.min_timeline_days = settings.min_timeline_days
        self.deadline_buffer_days = settings.deadline_buffer_days
        self.max_conflict_retries = settings.max_conflict_retries

    # =========================================================================
    # TRANSACTION
    # =========================================================================

    def _execute(
        self,
        request_id: str,
        operation: str,
        mutate: Callable[[InfoRequest, _PendingWrites], Any]
    ) -> Tuple[InfoRequest, Any]:
        """
        Run one transition as a compare-and-swap transaction

        The whole transition is recomputed against the fresh document after a
        conflict, so checks like deadline monotonicity see the winner's state.
        A mutation that finds submission writes of a committed transition not
        yet applied raises ConcurrencyError and is retried the same way.
        """
        attempt = 0
        while True:
            current = self.requests.get_request_or_raise(request_id)
            working = current.model_copy(deep=True)
            pending = _PendingWrites()
            try:
                result = mutate(working, pending)
                saved = self.requests.save_request(working, expected_version=current.version)
                break
            except ConcurrencyError:
                attempt += 1
                if attempt > self.max_conflict_retries:
                    logger.error(
                        f"Giving up on {operation} after {attempt} conflicts",
                        extra={"request_id": request_id, "action": operation}
                    )
                    raise
                logger.warning(
                    f"Version conflict on {operation}, retrying ({attempt}/{self.max_conflict_retries})",
                    extra={"request_id": request_id, "action": operation}
                )

        for submission in pending.submissions:
            self.requests.save_submission(submission)
        for event in pending.notifications:
            self.notification_service.enqueue_notification(**event)

        logger.info(
            f"Applied {operation}",
            extra={
                "request_id": request_id,
                "action": operation,
                "status": saved.status.value,
                "tier": saved.current_tier.value if saved.current_tier else None,
                "state": saved.current_state
            }
        )
        return saved, result

    def _principal(self, actor_id: str) -> Principal:
        principal = self.directory.get_principal(actor_id)
        if principal is None:
            raise PermissionDeniedError(
                "Unknown or inactive principal",
                details={"user_id": actor_id}
            )
        return principal

    # =========================================================================
    # REQUEST CREATION
    # =========================================================================

    def create_request(
        self,
        actor_id: str,
        title: str,
        info_need: str,
        timeline: datetime,
        states: List[str],
        branches: Optional[List[str]] = None,
        domains: Optional[List[str]] = None,
        deadline: Optional[datetime] = None,
        merge_strategy: Optional[Mapping[str, Any]] = None
    ) -> InfoRequest:
        """
        Create a new request and hand it to the Executive

        Args:
            actor_id: Creator; must hold National Oversight
            title: Short title
            info_need: What information is needed
            timeline: Requested completion, at least ``min_timeline_days`` out
            states: Target states
            branches: Optional division hint; the State Advisor fans out to
                these directly
            domains: Optional subject domains
            deadline: Optional explicit deadline, no later than the timeline
            merge_strategy: Default per-field consolidation strategies

        Returns:
            The created request
        """
        principal = self._principal(actor_id)
        self.permission_guard.require_role(principal, Role.NATIONAL_OVERSIGHT, action="create requests")

        title = (title or "").strip()
        info_need = (info_need or "").strip()
        if not title:
            raise ValidationError("Title is required", details={"field": "title"})
        if not info_need:
            raise ValidationError("Information need is required", details={"field": "info_need"})

        target_states = _dedupe(states or [])
        if not target_states:
            raise ValidationError("At least one target state is required", details={"field": "states"})

        now = self.clock()
        timeline = ensure_utc(timeline)
        earliest = add_days(now, self.min_timeline_days)
        if timeline < earliest:
            raise TimelineTooSoonError(
                f"Timeline must be at least {self.min_timeline_days} days from now",
                details={
                    "timeline": format_iso(timeline),
                    "earliest_allowed": format_iso(earliest),
                    "min_timeline_days": self.min_timeline_days
                }
            )

        if deadline is None:
            deadline = add_days(timeline, -self.deadline_buffer_days)
        else:
            deadline = ensure_utc(deadline)
            if deadline > timeline:
                raise ValidationError(
                    "Deadline cannot be later than the timeline",
                    details={"deadline": format_iso(deadline), "timeline": format_iso(timeline)}
                )

        strategies = parse_strategies(merge_strategy)

        hop = self.resolver.next_hop(Role.NATIONAL_OVERSIGHT, FlowDirection.DOWN)
        executive = self.directory.find_principal(hop.next_role)

        request = InfoRequest(
            request_id=self.requests.new_request_id(),
            title=title,
            info_need=info_need,
            timeline=timeline,
            deadline=deadline,
            status=RequestStatus.IN_PROGRESS if executive else RequestStatus.OPEN,
            targets=Targets(
                states=target_states,
                branches=_dedupe(branches or []),
                requested_branches=_dedupe(branches or []),
                domains=_dedupe(domains or [])
            ),
            current_assignee_id=executive.user_id if executive else None,
            current_tier=hop.next_role,
            flow=FlowDirection.DOWN,
            merge_strategy={field: s.value for field, s in strategies.items()},
            created_by=actor_id,
            created_at=now,
            updated_at=now
        )
        self.audit_writer.record(
            request, HistoryAction.CREATED, actor_id,
            details={"states": target_states, "assigned_to": request.current_assignee_id}
        )

        self.requests.create_request(request)

        if executive:
            self.notification_service.enqueue_notification(
                template_key=NotificationTemplateKey.REQUEST_ASSIGNED,
                recipient_id=executive.user_id,
                payload={"title": request.title, "tier": hop.next_role.value},
                request_id=request.request_id
            )
        else:
            logger.warning(
                "No Executive resolved; request left open and unassigned",
                extra={"request_id": request.request_id}
            )

        logger.info(
            f"Created request: {request.request_id}",
            extra={"request_id": request.request_id, "actor_id": actor_id, "status": request.status.value}
        )
        return request

    # =========================================================================
    # ACTION HANDLERS
    # =========================================================================

    def approve(
        self,
        request_id: str,
        actor_id: str,
        notes: Optional[str] = None,
        revised_deadline: Optional[datetime] = None,
        division: Optional[str] = None,
        state: Optional[str] = None,
        merge_strategy: Optional[Mapping[str, Any]] = None
    ) -> Optional[str]:
        """
        Approve / forward the request one step

        A Division Head acting on their division runs the two-pass cycle;
        everyone else forwards the request along the routing table.

        Returns:
            The next assignee's user id, or None when nobody resolved (or the
            request reached its terminal approval)
        """
        principal = self._principal(actor_id)

        def mutate(request: InfoRequest, pending: _PendingWrites) -> Optional[str]:
            self._ensure_active(request, "approve")
            assignment = self._division_target(request, principal, division, state)
            if assignment is not None:
                return self._approve_division(request, assignment, principal, notes, revised_deadline, pending)

            self.permission_guard.require_tier_actor(principal, request, "approve")
            self._apply_request_deadline(request, revised_deadline)
            return self._approve_tier(request, principal, notes, state, merge_strategy, pending)

        _, next_assignee = self._execute(request_id, "approve", mutate)
        return next_assignee

    def decline(
        self,
        request_id: str,
        actor_id: str,
        notes: str,
        division: Optional[str] = None,
        state: Optional[str] = None,
        revised_deadline: Optional[datetime] = None
    ) -> Optional[str]:
        """
        Decline & improve - send the request back exactly one tier

        Only allowed on the upward pass. At the Division Head tier it returns
        the submitted form to the Analyst.

        Returns:
            The previous tier's assignee
        """
        if not notes or not notes.strip():
            raise ValidationError("Notes are required when declining", details={"field": "notes"})
        principal = self._principal(actor_id)

        def mutate(request: InfoRequest, pending: _PendingWrites) -> Optional[str]:
            self._ensure_active(request, "decline")
            assignment = self._division_target(request, principal, division, state)
            if assignment is not None:
                return self._return_form(request, assignment, principal, notes, revised_deadline, pending)

            self.permission_guard.require_tier_actor(principal, request, "decline")
            tier = request.current_tier
            target = self.resolver.decline_target(tier)
            if request.flow != FlowDirection.UP or target is None:
                raise DeclineNotAllowedError(
                    "Decline is only available once content is coming back up",
                    details={"tier": tier.value, "flow": request.flow.value}
                )

            self._apply_request_deadline(request, revised_deadline)
            if target == Role.DIVISION_HEAD:
                previous = self._reopen_divisions(request, principal, notes, pending)
            else:
                previous = self._route_to(request, target, FlowDirection.UP)
            request.status = RequestStatus.IN_PROGRESS

            self.audit_writer.record(
                request, HistoryAction.DECLINED, principal.user_id, notes,
                details={"from_tier": tier.value, "to_tier": target.value, "previous_assignee_id": previous}
            )
            pending.notify(NotificationTemplateKey.REQUEST_DECLINED, previous, request, notes=notes)
            return previous

        _, previous_assignee = self._execute(request_id, "decline", mutate)
        return previous_assignee

    def fan_out(
        self,
        request_id: str,
        actor_id: str,
        state: str,
        divisions: Optional[List[str]] = None
    ) -> List[DivisionAssignment]:
        """
        Expand the request into one DivisionAssignment per division of a state

        Idempotent by division name. When ``divisions`` is omitted every
        division with a registered Head in the state is used.

        Returns:
            Assignments created by this call
        """
        principal = self._principal(actor_id)

        def mutate(request: InfoRequest, pending: _PendingWrites) -> List[DivisionAssignment]:
            self._ensure_active(request, "fan out")
            self.permission_guard.require_role(principal, Role.STATE_COORDINATOR, state=state, action="fan out")
            if state not in request.targets.states:
                raise ValidationError(
                    f"State {state} is not targeted by this request",
                    details={"state": state, "targets": request.targets.states}
                )
            reachable = (Role.STATE_COORDINATOR, Role.DIVISION_HEAD, Role.DIVISION_ANALYST)
            if request.current_tier not in reachable or request.current_state != state:
                raise InvalidStateError(
                    f"Request is not with the State Coordinator of {state}",
                    details={
                        "current_tier": request.current_tier.value if request.current_tier else None,
                        "current_state": request.current_state
                    }
                )

            created = self._fan_out(request, state, divisions, pending)
            request.status = RequestStatus.IN_PROGRESS
            self.audit_writer.record(
                request, HistoryAction.FANOUT, principal.user_id,
                details={
                    "state": state,
                    "requested": divisions or [],
                    "created": [a.division for a in created]
                }
            )
            return created

        _, created = self._execute(request_id, "fan_out", mutate)
        return created

    def submit_child_form(
        self,
        request_id: str,
        actor_id: str,
        division: str,
        state: str,
        data: Dict[str, Any],
        is_draft: bool = False
    ) -> str:
        """
        Save or submit a division's answer

        The same ChildSubmission record is reused across revisions.

        Returns:
            The submission id
        """
        if not isinstance(data, dict):
            raise ValidationError("Form data must be an object", details={"field": "data"})
        principal = self._principal(actor_id)

        def mutate(request: InfoRequest, pending: _PendingWrites) -> str:
            self._ensure_active(request, "submit forms on")
            assignment = self._assignment_or_raise(request, state, division)
            self.permission_guard.require_division_analyst(principal, assignment)
            if assignment.status != DivisionStatus.HOD_APPROVED:
                raise InvalidStateError(
                    f"Division {division} is not waiting for its analyst",
                    details={"division": division, "state": state, "status": assignment.status.value}
                )

            now = self.clock()
            submission = self._division_submission(request.request_id, state, division)
            if submission is None:
                submission = ChildSubmission(
                    submission_id=self.requests.new_submission_id(),
                    request_id=request.request_id,
                    branch=division,
                    state=state,
                    submitted_by=principal.user_id,
                    data=dict(data),
                    status=SubmissionStatus.DRAFT,
                    created_at=now,
                    updated_at=now
                )
            else:
                submission.data = dict(data)
                submission.submitted_by = principal.user_id
                submission.updated_at = now

            if is_draft:
                submission.status = SubmissionStatus.DRAFT
                action = HistoryAction.FORM_DRAFT_SAVED
            else:
                submission.status = SubmissionStatus.SUBMITTED
                assignment.status = DivisionStatus.YP_SUBMITTED
                if assignment.division_yp_id is None:
                    assignment.division_yp_id = principal.user_id
                action = HistoryAction.FORM_SUBMITTED
                self._sync_division_pointer(request)
                pending.notify(
                    NotificationTemplateKey.FORM_SUBMITTED, assignment.division_hod_id, request,
                    division=division, state=state, submission_id=submission.submission_id
                )

            self.audit_writer.record_submission(submission, action, principal.user_id)
            pending.save(submission)
            self.audit_writer.record(
                request, action, principal.user_id,
                details={
                    "division": division,
                    "state": state,
                    "submission_id": submission.submission_id,
                    "revision": submission.version
                }
            )
            return submission.submission_id

        _, submission_id = self._execute(request_id, "submit_form" if not is_draft else "save_draft", mutate)
        return submission_id

    def review_child_form(
        self,
        submission_id: str,
        actor_id: str,
        action: ReviewAction,
        notes: Optional[str] = None
    ) -> ChildSubmission:
        """Division Head approves or returns a submitted form"""
        submission = self.requests.get_submission_or_raise(submission_id)
        if submission.branch is None:
            raise ValidationError(
                "State-level records are not reviewed by a Division Head",
                details={"submission_id": submission_id}
            )
        if submission.status != SubmissionStatus.SUBMITTED:
            raise InvalidStateError(
                f"Only submitted forms can be reviewed (status: {submission.status.value})",
                details={"submission_id": submission_id, "status": submission.status.value}
            )

        if ReviewAction(action) == ReviewAction.APPROVE:
            self.approve(
                submission.request_id, actor_id, notes=notes,
                division=submission.branch, state=submission.state
            )
        else:
            self.decline(
                submission.request_id, actor_id, notes or "",
                division=submission.branch, state=submission.state
            )
        return self.requests.get_submission_or_raise(submission_id)

    def reject_request(self, request_id: str, actor_id: str, notes: Optional[str] = None) -> InfoRequest:
        """Terminally reject the request (Executive or National Oversight)"""
        principal = self._principal(actor_id)

        def mutate(request: InfoRequest, pending: _PendingWrites) -> None:
            self._ensure_active(request, "reject")
            self.permission_guard.require_reject(principal, request)
            request.status = RequestStatus.REJECTED
            self.audit_writer.record(
                request, HistoryAction.REJECTED, principal.user_id, notes,
                details={"tier": request.current_tier.value if request.current_tier else None}
            )
            pending.notify(NotificationTemplateKey.REQUEST_REJECTED, request.created_by, request, notes=notes)

        saved, _ = self._execute(request_id, "reject", mutate)
        return saved

    def close_request(self, request_id: str, actor_id: str, notes: Optional[str] = None) -> InfoRequest:
        """Close an approved (or rejected) request"""
        principal = self._principal(actor_id)

        def mutate(request: InfoRequest, pending: _PendingWrites) -> None:
            if request.status not in (RequestStatus.APPROVED, RequestStatus.REJECTED):
                raise InvalidStateError(
                    f"Only approved or rejected requests can be closed (status: {request.status.value})",
                    details={"status": request.status.value}
                )
            self.permission_guard.require_role(principal, Role.NATIONAL_OVERSIGHT, action="close requests")
            previous_status = request.status
            request.status = RequestStatus.CLOSED
            request.current_assignee_id = None
            self.audit_writer.record(
                request, HistoryAction.CLOSED, principal.user_id, notes,
                details={"previous_status": previous_status.value}
            )
            pending.notify(NotificationTemplateKey.REQUEST_CLOSED, request.created_by, request)

        saved, _ = self._execute(request_id, "close", mutate)
        return saved

    def delete_request(self, request_id: str, actor_id: str) -> int:
        """
        Delete a request and cascade to its submissions

        Returns:
            Number of child submissions deleted
        """
        principal = self._principal(actor_id)
        request = self.requests.get_request_or_raise(request_id)
        if not self.permission_guard.can_delete(principal):
            self.permission_guard.require_role(principal, Role.NATIONAL_OVERSIGHT, action="delete requests")

        deleted = self.requests.delete_submissions_for_request(request.request_id)
        self.requests.delete_request(request.request_id)
        logger.info(
            f"Deleted request {request_id} and {deleted} submissions",
            extra={"request_id": request_id, "actor_id": actor_id, "action": "delete"}
        )
        return deleted

    # =========================================================================
    # TRANSITION HELPERS
    # =========================================================================

    def _ensure_active(self, request: InfoRequest, action: str) -> None:
        if request.is_terminal:
            raise InvalidStateError(
                f"Request is {request.status.value}; cannot {action} it",
                details={"request_id": request.request_id, "status": request.status.value}
            )

    def _assignment_or_raise(self, request: InfoRequest, state: Optional[str], division: str) -> DivisionAssignment:
        assignment = request.find_assignment(state, division)
        if assignment is None:
            raise DivisionAssignmentNotFoundError(
                f"Division {division} has not been fanned out in {state}",
                details={"request_id": request.request_id, "state": state, "division": division}
            )
        return assignment

    def _division_target(
        self,
        request: InfoRequest,
        principal: Principal,
        division: Optional[str],
        state: Optional[str]
    ) -> Optional[DivisionAssignment]:
        """The DivisionAssignment an approve/decline acts on, if any"""
        if division:
            return self._assignment_or_raise(request, state or request.current_state, division)

        if not self.resolver.is_division_tier(request.current_tier):
            return None

        owned = [
            a for a in request.assignments_for_state(state or request.current_state)
            if self.permission_guard.is_division_head(principal, a)
        ]
        if len(owned) > 1:
            raise ValidationError(
                "Division is required when heading several divisions",
                details={"divisions": [a.division for a in owned]}
            )
        return owned[0] if owned else None

    def _division_submission(
        self,
        request_id: str,
        state: Optional[str],
        division: str
    ) -> Optional[ChildSubmission]:
        """The division's working submission (latest not yet merged)"""
        submissions = self.requests.list_submissions(
            request_id, state=state, branch=division, statuses=OPEN_SUBMISSION_STATUSES
        )
        return submissions[-1] if submissions else None

    def _is_second_pass(self, request_id: str, assignment: DivisionAssignment) -> bool:
        """A submitted or approved form means the Head is on the second pass"""
        return bool(self.requests.list_submissions(
            request_id,
            state=assignment.state,
            branch=assignment.division,
            statuses=SECOND_PASS_SUBMISSION_STATUSES
        ))

    def _resolve_id(self, role: Role, state: Optional[str] = None, division: Optional[str] = None) -> Optional[str]:
        principal = self.directory.find_principal(role, state=state, division=division)
        return principal.user_id if principal else None

    def _route_to(self, request: InfoRequest, role: Role, flow: FlowDirection) -> Optional[str]:
        """Point the request at the holder of ``role`` in its context"""
        state, division = self.resolver.context_for(role, request)
        request.current_tier = role
        request.flow = flow
        request.current_assignee_id = self._resolve_id(role, state, division)
        if request.current_assignee_id is None:
            logger.warning(
                f"No {role.value} resolved; assignee slot left empty",
                extra={"request_id": request.request_id, "tier": role.value, "state": state}
            )
        return request.current_assignee_id

    def _all_divisions_done(self, request: InfoRequest, state: Optional[str]) -> bool:
        assignments = request.assignments_for_state(state)
        return bool(assignments) and all(a.status in DIVISION_DONE_STATUSES for a in assignments)

    def _sync_division_pointer(self, request: InfoRequest) -> Optional[str]:
        """
        Re-derive the top-level pointer while divisions are in progress

        The pointer follows the primary (first-created) assignment of the
        active state; once every division is done it moves to the State
        Coordinator on the upward pass.
        """
        state = request.current_state
        if self._all_divisions_done(request, state):
            hop = self.resolver.next_hop(Role.DIVISION_HEAD, FlowDirection.UP)
            return self._route_to(request, hop.next_role, FlowDirection.UP)

        primary = request.primary_assignment(state)
        if primary is None:
            return request.current_assignee_id
        if primary.status == DivisionStatus.HOD_APPROVED:
            request.current_tier = Role.DIVISION_ANALYST
            request.current_assignee_id = primary.division_yp_id
        else:
            request.current_tier = Role.DIVISION_HEAD
            request.current_assignee_id = primary.division_hod_id
        return request.current_assignee_id

    # Deadlines ---------------------------------------------------------------

    def _check_deadline(self, current: datetime, revised: datetime, scope: Dict[str, Any]) -> datetime:
        revised = ensure_utc(revised)
        if revised > ensure_utc(current):
            raise DeadlineIncreasedError(
                "Revised deadline cannot be later than the current deadline",
                details={
                    "current_deadline": format_iso(current),
                    "revised_deadline": format_iso(revised),
                    **scope
                }
            )
        return revised

    def _apply_request_deadline(self, request: InfoRequest, revised: Optional[datetime]) -> None:
        if revised is None:
            return
        request.deadline = self._check_deadline(request.deadline, revised, {"request_id": request.request_id})
        # assignment deadlines can never exceed the request's
        for assignment in request.division_assignments:
            if assignment.deadline > request.deadline:
                assignment.deadline = request.deadline

    def _apply_division_deadline(self, assignment: DivisionAssignment, revised: Optional[datetime]) -> None:
        if revised is None:
            return
        assignment.deadline = self._check_deadline(
            assignment.deadline, revised,
            {"division": assignment.division, "state": assignment.state}
        )

    # Top-level hops ------------------------------------------------------------

    def _choose_state(self, request: InfoRequest, state: Optional[str]) -> str:
        target = state or request.current_state or (request.targets.states[0] if request.targets.states else None)
        if target is None or target not in request.targets.states:
            raise ValidationError(
                f"State {target} is not targeted by this request",
                details={"state": target, "targets": request.targets.states}
            )
        return target

    def _approve_tier(
        self,
        request: InfoRequest,
        principal: Principal,
        notes: Optional[str],
        state: Optional[str],
        merge_strategy: Optional[Mapping[str, Any]],
        pending: _PendingWrites
    ) -> Optional[str]:
        tier = request.current_tier
        flow = request.flow
        actor_id = principal.user_id

        # Executive on the way up may start the chain of another target state
        if tier == Role.EXECUTIVE and flow == FlowDirection.UP and state and state != request.current_state:
            return self._start_state_chain(request, actor_id, notes, state, pending)

        hop = self.resolver.next_hop(tier, flow)

        if hop.effect == HopEffect.TERMINAL_APPROVE:
            request.status = RequestStatus.APPROVED
            request.current_assignee_id = actor_id
            self.audit_writer.record(request, HistoryAction.APPROVED, actor_id, notes)
            pending.notify(NotificationTemplateKey.REQUEST_APPROVED, request.created_by, request)
            return None

        request.status = RequestStatus.IN_PROGRESS

        if tier == Role.EXECUTIVE and flow == FlowDirection.DOWN:
            request.current_state = self._choose_state(request, state)

        divisions = None
        if hop.effect == HopEffect.FANOUT_IF_BRANCHES:
            divisions = self._hinted_divisions(request, request.current_state)

        if hop.effect == HopEffect.FANOUT or divisions:
            created = self._fan_out(request, request.current_state, divisions, pending)
            self.audit_writer.record(
                request, HistoryAction.FANOUT, actor_id, notes,
                details={
                    "state": request.current_state,
                    "from_tier": tier.value,
                    "created": [a.division for a in created],
                    "next_assignee_id": request.current_assignee_id
                }
            )
            return request.current_assignee_id

        if hop.effect == HopEffect.CONSOLIDATE:
            record = self._consolidate(request, actor_id, merge_strategy, pending)
            next_id = self._route_to(request, hop.next_role, FlowDirection.UP)
            self.audit_writer.record(
                request, HistoryAction.CONSOLIDATED, actor_id, notes,
                details={
                    "state": request.current_state,
                    "submission_id": record.submission_id,
                    "source_submission_ids": record.source_submission_ids,
                    "next_assignee_id": next_id
                }
            )
            pending.notify(
                NotificationTemplateKey.STATE_CONSOLIDATED, next_id, request,
                state=request.current_state, submission_id=record.submission_id
            )
            return next_id

        next_id = self._route_to(request, hop.next_role, flow)
        self.audit_writer.record(
            request, HistoryAction.FORWARD, actor_id, notes,
            details={
                "from_tier": tier.value,
                "to_tier": hop.next_role.value,
                "state": request.current_state,
                "next_assignee_id": next_id
            }
        )
        pending.notify(
            NotificationTemplateKey.REQUEST_ASSIGNED, next_id, request,
            tier=hop.next_role.value, state=request.current_state
        )
        return next_id

    def _hinted_divisions(self, request: InfoRequest, state: Optional[str]) -> List[str]:
        """
        Divisions named at creation that have a Head in ``state``

        An empty result sends the request on to the State Coordinator, who
        fans out by discovery.
        """
        hint = request.targets.requested_branches
        resolved = [
            division for division in hint
            if self.directory.find_principal(Role.DIVISION_HEAD, state=state, division=division)
        ]
        if hint and len(resolved) < len(hint):
            logger.warning(
                f"Division hint only partly resolves in {state}: {', '.join(resolved) or 'none'}",
                extra={"request_id": request.request_id, "state": state}
            )
        return resolved

    def _start_state_chain(
        self,
        request: InfoRequest,
        actor_id: str,
        notes: Optional[str],
        state: str,
        pending: _PendingWrites
    ) -> Optional[str]:
        state = self._choose_state(request, state)
        if self.requests.find_state_record(request.request_id, state) is not None:
            raise InvalidStateError(
                f"State {state} has already been consolidated",
                details={"state": state}
            )
        request.current_state = state
        request.status = RequestStatus.IN_PROGRESS
        hop = self.resolver.next_hop(Role.EXECUTIVE, FlowDirection.DOWN)
        next_id = self._route_to(request, hop.next_role, FlowDirection.DOWN)
        self.audit_writer.record(
            request, HistoryAction.FORWARD, actor_id, notes,
            details={
                "from_tier": Role.EXECUTIVE.value,
                "to_tier": hop.next_role.value,
                "state": state,
                "next_assignee_id": next_id
            }
        )
        pending.notify(NotificationTemplateKey.REQUEST_ASSIGNED, next_id, request, tier=hop.next_role.value, state=state)
        return next_id

    def _fan_out(
        self,
        request: InfoRequest,
        state: str,
        divisions: Optional[List[str]],
        pending: _PendingWrites
    ) -> List[DivisionAssignment]:
        candidates = _dedupe(divisions) if divisions else self.directory.list_divisions(state)

        resolved: List[Tuple[str, Principal]] = []
        skipped: List[str] = []
        for division in candidates:
            head = self.directory.find_principal(Role.DIVISION_HEAD, state=state, division=division)
            if head is None:
                skipped.append(division)
            else:
                resolved.append((division, head))

        if not resolved:
            raise NoDivisionHeadsError(
                "No qualifying division heads found",
                details={"state": state, "divisions": candidates}
            )
        if skipped:
            logger.warning(
                f"Skipping divisions without a Head: {', '.join(skipped)}",
                extra={"request_id": request.request_id, "state": state}
            )

        now = self.clock()
        created: List[DivisionAssignment] = []
        for division, head in resolved:
            if division not in request.targets.branches:
                request.targets.branches.append(division)
            if request.find_assignment(state, division) is not None:
                continue
            assignment = DivisionAssignment(
                division=division,
                state=state,
                division_hod_id=head.user_id,
                division_yp_id=self._resolve_id(Role.DIVISION_ANALYST, state, division),
                status=DivisionStatus.PENDING,
                deadline=request.deadline,
                created_at=now
            )
            request.division_assignments.append(assignment)
            created.append(assignment)
            pending.notify(
                NotificationTemplateKey.DIVISION_ASSIGNED, head.user_id, request,
                division=division, state=state, deadline=format_iso(assignment.deadline)
            )

        request.current_state = state
        if created:
            request.flow = FlowDirection.DOWN
        self._sync_division_pointer(request)

        logger.info(
            f"Fan-out created {len(created)} division assignments",
            extra={"request_id": request.request_id, "state": state}
        )
        return created

    # Division two-pass cycle ----------------------------------------------------

    def _approve_division(
        self,
        request: InfoRequest,
        assignment: DivisionAssignment,
        principal: Principal,
        notes: Optional[str],
        revised_deadline: Optional[datetime],
        pending: _PendingWrites
    ) -> Optional[str]:
        self.permission_guard.require_division_head(principal, assignment, "approve")
        self._apply_division_deadline(assignment, revised_deadline)

        if self._is_second_pass(request.request_id, assignment):
            submission = self._division_submission(request.request_id, assignment.state, assignment.division)
            return self._approve_form(request, assignment, submission, principal, notes, pending)

        if assignment.status != DivisionStatus.PENDING:
            raise InvalidStateError(
                f"Division {assignment.division} is waiting for its analyst",
                details={"division": assignment.division, "status": assignment.status.value}
            )

        hop = self.resolver.next_hop(Role.DIVISION_HEAD, FlowDirection.DOWN)
        analyst_id = assignment.division_yp_id or self._resolve_id(
            hop.next_role, assignment.state, assignment.division
        )
        assignment.division_yp_id = analyst_id
        assignment.status = DivisionStatus.HOD_APPROVED
        request.status = RequestStatus.IN_PROGRESS
        self._sync_division_pointer(request)

        self.audit_writer.record(
            request, HistoryAction.HOD_FORWARDED, principal.user_id, notes,
            details={
                "division": assignment.division,
                "state": assignment.state,
                "next_assignee_id": analyst_id
            }
        )
        pending.notify(
            NotificationTemplateKey.REQUEST_ASSIGNED, analyst_id, request,
            tier=hop.next_role.value, division=assignment.division, state=assignment.state
        )
        return analyst_id

    def _approve_form(
        self,
        request: InfoRequest,
        assignment: DivisionAssignment,
        submission: ChildSubmission,
        principal: Principal,
        notes: Optional[str],
        pending: _PendingWrites
    ) -> Optional[str]:
        if assignment.status != DivisionStatus.YP_SUBMITTED or submission.status != SubmissionStatus.SUBMITTED:
            raise InvalidStateError(
                f"Form for {assignment.division} has already been approved",
                details={"division": assignment.division, "status": assignment.status.value}
            )

        now = self.clock()
        submission.status = SubmissionStatus.APPROVED
        submission.updated_at = now
        self.audit_writer.record_submission(submission, HistoryAction.FORM_APPROVED, principal.user_id, notes)
        pending.save(submission)

        assignment.status = DivisionStatus.HOD_APPROVED_FORM
        assignment.submission_id = submission.submission_id
        assignment.approved_at = now
        all_done = self._all_divisions_done(request, assignment.state)
        next_id = self._sync_division_pointer(request)

        self.audit_writer.record(
            request, HistoryAction.FORM_APPROVED, principal.user_id, notes,
            details={
                "division": assignment.division,
                "state": assignment.state,
                "submission_id": submission.submission_id,
                "all_divisions_done": all_done,
                "next_assignee_id": next_id
            }
        )
        pending.notify(
            NotificationTemplateKey.FORM_APPROVED, submission.submitted_by, request,
            division=assignment.division, submission_id=submission.submission_id
        )
        if all_done:
            pending.notify(
                NotificationTemplateKey.REQUEST_ASSIGNED, next_id, request,
                tier=Role.STATE_COORDINATOR.value, state=assignment.state
            )
        return next_id

    def _return_form(
        self,
        request: InfoRequest,
        assignment: DivisionAssignment,
        principal: Principal,
        notes: str,
        revised_deadline: Optional[datetime],
        pending: _PendingWrites
    ) -> Optional[str]:
        self.permission_guard.require_division_head(principal, assignment, "return the form")
        if not self._is_second_pass(request.request_id, assignment):
            raise DeclineNotAllowedError(
                f"Division {assignment.division} has no submitted form to return",
                details={"division": assignment.division, "status": assignment.status.value}
            )
        if assignment.status != DivisionStatus.YP_SUBMITTED:
            raise InvalidStateError(
                f"Form for {assignment.division} has already been approved",
                details={"division": assignment.division, "status": assignment.status.value}
            )
        self._apply_division_deadline(assignment, revised_deadline)

        submission = self._division_submission(request.request_id, assignment.state, assignment.division)
        submission.status = SubmissionStatus.DRAFT
        submission.version += 1
        submission.updated_at = self.clock()
        self.audit_writer.record_submission(submission, HistoryAction.FORM_RETURNED, principal.user_id, notes)
        pending.save(submission)

        assignment.status = DivisionStatus.HOD_APPROVED
        analyst_id = assignment.division_yp_id or submission.submitted_by
        assignment.division_yp_id = analyst_id
        self._sync_division_pointer(request)

        self.audit_writer.record(
            request, HistoryAction.FORM_RETURNED, principal.user_id, notes,
            details={
                "division": assignment.division,
                "state": assignment.state,
                "submission_id": submission.submission_id,
                "revision": submission.version
            }
        )
        pending.notify(
            NotificationTemplateKey.FORM_RETURNED, analyst_id, request,
            division=assignment.division, notes=notes
        )
        return analyst_id

    # Consolidation ----------------------------------------------------------------

    def _consolidate(
        self,
        request: InfoRequest,
        actor_id: str,
        merge_strategy: Optional[Mapping[str, Any]],
        pending: _PendingWrites
    ) -> ChildSubmission:
        """Merge the state's approved division submissions into one record"""
        state = request.current_state
        assignments = request.assignments_for_state(state)
        unfinished = [a.division for a in assignments if a.status not in DIVISION_DONE_STATUSES]
        if unfinished:
            raise InvalidStateError(
                "Divisions are still in progress",
                details={"state": state, "pending_divisions": unfinished}
            )

        if all(a.status == DivisionStatus.COMPLETED for a in assignments):
            # Declined back from the State Advisor: the record already exists
            record = self.requests.find_state_record(request.request_id, state)
            if record is None or record.status == SubmissionStatus.REJECTED:
                raise InvalidStateError(
                    "No approved division submissions to consolidate",
                    details={"state": state}
                )
            return record

        approved = [self._approved_submission(request, a) for a in assignments]

        strategies = dict(request.merge_strategy)
        strategies.update(merge_strategy or {})
        plan = parse_strategies(strategies)
        request.merge_strategy = {field: s.value for field, s in plan.items()}

        now = self.clock()
        record = ChildSubmission(
            submission_id=self.requests.new_submission_id(),
            request_id=request.request_id,
            branch=None,
            state=state,
            submitted_by=actor_id,
            data=merge_submissions(approved, request.merge_strategy),
            status=SubmissionStatus.SUBMITTED,
            source_submission_ids=[s.submission_id for s in approved],
            created_at=now,
            updated_at=now
        )
        self.audit_writer.record_submission(
            record, HistoryAction.CONSOLIDATED, actor_id,
            details={"merge_strategy": request.merge_strategy}
        )

        for submission in approved:
            submission.status = SubmissionStatus.MERGED
            submission.merged_into = record.submission_id
            submission.updated_at = now
            self.audit_writer.record_submission(
                submission, HistoryAction.CONSOLIDATED, actor_id,
                details={"merged_into": record.submission_id}
            )
            pending.save(submission)
        pending.save(record)

        for assignment in assignments:
            assignment.status = DivisionStatus.COMPLETED

        logger.info(
            f"Consolidated {len(approved)} submissions for {state}",
            extra={"request_id": request.request_id, "state": state, "submission_id": record.submission_id}
        )
        return record

    def _approved_submission(self, request: InfoRequest, assignment: DivisionAssignment) -> ChildSubmission:
        """
        The form an approved division contributes to the merge

        The committed assignment names the submission; its stored status must
        already reflect that approval (or an earlier merge).
        """
        if assignment.submission_id is None:
            raise InvalidStateError(
                f"Division {assignment.division} has no approved form on record",
                details={"division": assignment.division, "state": assignment.state}
            )
        submission = self.requests.get_submission_or_raise(assignment.submission_id)
        expected = (
            SubmissionStatus.MERGED if assignment.status == DivisionStatus.COMPLETED
            else SubmissionStatus.APPROVED
        )
        if submission.status != expected:
            raise ConcurrencyError(
                f"Form for {assignment.division} is not written as {expected.value} yet",
                details={
                    "request_id": request.request_id,
                    "division": assignment.division,
                    "submission_id": submission.submission_id,
                    "status": submission.status.value
                }
            )
        return submission

    def _reopen_divisions(
        self,
        request: InfoRequest,
        principal: Principal,
        notes: str,
        pending: _PendingWrites
    ) -> Optional[str]:
        """State Coordinator sends the state's approved forms back to the Heads"""
        state = request.current_state
        assignments = request.assignments_for_state(state)
        if not assignments:
            raise DeclineNotAllowedError(
                "There are no divisions to send this request back to",
                details={"state": state}
            )

        now = self.clock()
        for submission in self.requests.list_submissions(request.request_id, state=state):
            if submission.branch is None:
                if submission.status == SubmissionStatus.REJECTED:
                    continue
                submission.status = SubmissionStatus.REJECTED
            elif submission.status in (SubmissionStatus.APPROVED, SubmissionStatus.MERGED):
                submission.status = SubmissionStatus.SUBMITTED
                submission.merged_into = None
            else:
                continue
            submission.updated_at = now
            self.audit_writer.record_submission(submission, HistoryAction.DECLINED, principal.user_id, notes)
            pending.save(submission)

        for assignment in assignments:
            if assignment.status in DIVISION_DONE_STATUSES:
                assignment.status = DivisionStatus.YP_SUBMITTED
                assignment.submission_id = None
                assignment.approved_at = None

        request.flow = FlowDirection.UP
        return self._sync_division_pointer(request)

    # =========================================================================
    # AVAILABLE ACTIONS
    # =========================================================================

    def available_actions(self, request: InfoRequest, actor_id: str) -> List[WorkflowAction]:
        """Actions the actor may take on the request right now"""
        principal = self.directory.get_principal(actor_id)
        if principal is None:
            return []

        guard = self.permission_guard
        actions: List[WorkflowAction] = []

        if request.status in (RequestStatus.APPROVED, RequestStatus.REJECTED) and guard.can_close(principal):
            actions.append(WorkflowAction.CLOSE)

        if not request.is_terminal:
            if guard.can_act_on_tier(principal, request):
                actions.append(WorkflowAction.APPROVE)
                if request.flow == FlowDirection.UP and self.resolver.decline_target(request.current_tier):
                    actions.append(WorkflowAction.DECLINE)
                if guard.can_reject(principal, request):
                    actions.append(WorkflowAction.REJECT)

            if request.current_tier in (Role.STATE_COORDINATOR, Role.DIVISION_HEAD, Role.DIVISION_ANALYST) \
                    and guard.can_fan_out(principal, request.current_state):
                actions.append(WorkflowAction.FAN_OUT)

            for assignment in request.assignments_for_state(request.current_state):
                if guard.is_division_head(principal, assignment):
                    if self._is_second_pass(request.request_id, assignment):
                        if assignment.status == DivisionStatus.YP_SUBMITTED:
                            actions.extend([WorkflowAction.APPROVE_FORM, WorkflowAction.DECLINE])
                    elif assignment.status == DivisionStatus.PENDING:
                        actions.append(WorkflowAction.APPROVE)
                if guard.is_division_analyst(principal, assignment) \
                        and assignment.status == DivisionStatus.HOD_APPROVED:
                    actions.extend([WorkflowAction.SUBMIT_FORM, WorkflowAction.SAVE_DRAFT])

        if guard.can_delete(principal):
            actions.append(WorkflowAction.DELETE)

        return list(dict.fromkeys(actions))


def _dedupe(names: List[str]) -> List[str]:
    """Strip names, drop blanks and duplicates, keep first-seen order"""
    result: List[str] = []
    for name in names:
        name = (name or "").strip()
        if name and name not in result:
            result.append(name)
    return result

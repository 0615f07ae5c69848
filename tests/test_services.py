"""Tests for read services, the directory, the outbox and the dry-run store"""

from datetime import timedelta

import pytest

from infoflow.config.settings import Settings
from infoflow.domain.enums import (
    Role, RequestStatus, WorkflowAction, NotificationTemplateKey, HistoryAction
)
from infoflow.domain.errors import (
    ConcurrencyError, NotFoundError, RequestNotFoundError, ValidationError, PrincipalNotFoundError
)
from infoflow.repositories.dry_run import DryRunRepository
from infoflow.repositories.factory import build_repositories
from infoflow.repositories.base import NotificationRepository
from infoflow.services.notification_service import NotificationService
from infoflow.utils.idgen import is_dry_run_id


# =============================================================================
# Request Service
# =============================================================================

class TestRequestService:

    def test_detail_resolves_people(self, service, new_request):
        detail = service.get_detail(new_request(), "exec-1")

        assert detail.current_assignee.user_id == "exec-1"
        assert detail.current_assignee.name == "Executive"
        assert detail.history[0].actor.name == "National Oversight"
        assert detail.history[0].action == HistoryAction.CREATED
        assert detail.available_actions == [
            WorkflowAction.APPROVE, WorkflowAction.REJECT, WorkflowAction.DELETE
        ]
        assert detail.dry_run is True

    def test_overdue_follows_clock(self, service, clock, new_request):
        request_id = new_request()
        assert service.get_detail(request_id, "no-1").is_overdue is False

        clock.advance(days=8)
        assert service.get_detail(request_id, "no-1").is_overdue is True

    def test_terminal_requests_are_never_overdue(self, service, engine, clock, new_request):
        request_id = new_request()
        engine.reject_request(request_id, "exec-1")
        clock.advance(days=30)
        assert service.get_detail(request_id, "no-1").is_overdue is False

    def test_unknown_request(self, service):
        with pytest.raises(RequestNotFoundError):
            service.get_detail("DRYRUN-REQ-missing", "no-1")
        with pytest.raises(RequestNotFoundError):
            service.list_submissions("DRYRUN-REQ-missing")

    def test_state_report(self, service, engine, divisions_done):
        with pytest.raises(NotFoundError):
            service.get_state_report(divisions_done, "X")

        engine.approve(divisions_done, "sc-x", merge_strategy={"mw": "sum"})
        assert service.get_state_report(divisions_done, "X").data == {"mw": 15}

    def test_list_requests_by_involvement(self, service, new_request, at_divisions):
        other = new_request(title="Other")

        mine = service.list_requests(assignee_id="dh-b")
        assert [r.request_id for r in mine] == [at_divisions]
        assert {r.request_id for r in service.list_requests(status=RequestStatus.IN_PROGRESS)} == {
            at_divisions, other
        }

    def test_preview_merge(self, service, divisions_done):
        ids = [s.submission_id for s in service.list_submissions(divisions_done)]
        merged = service.preview_merge(
            strategies={"mw": "avg", "notes": "concat"},
            submission_ids=ids,
            submissions=[{"branch": "C", "data": {"mw": 0, "notes": "gamma"}}]
        )
        assert merged == {"mw": 5, "notes": "[A]\nalpha\n\n[B]\nbeta\n\n[C]\ngamma"}

    def test_preview_needs_input(self, service):
        with pytest.raises(ValidationError):
            service.preview_merge(strategies={"mw": "sum"})

    def test_analytics_counts(self, service, engine, clock, new_request, divisions_done):
        rejected = new_request(title="Rejected")
        engine.reject_request(rejected, "exec-1")
        closed = new_request(title="Closed")
        engine.reject_request(closed, "exec-1")
        engine.close_request(closed, "no-1")

        summary = service.get_analytics()
        assert summary.total_requests == 3
        assert summary.total_submissions == 2
        assert summary.overdue_requests == 0
        assert summary.dry_run is True

        # rejected but not closed still counts once the deadline passes
        clock.advance(days=8)
        assert service.get_analytics().overdue_requests == 2


# =============================================================================
# Directory
# =============================================================================

class TestDirectory:

    def test_find_principal_by_context(self, directory):
        assert directory.find_principal(Role.DIVISION_HEAD, state="X", division="B").user_id == "dh-b"
        assert directory.find_principal(Role.DIVISION_HEAD, state="Y", division="B") is None

    def test_list_divisions(self, directory):
        assert directory.list_divisions("X") == ["A", "B"]
        assert directory.list_divisions("Y") == []

    def test_inactive_principal_is_invisible(self, directory, users):
        users.upsert_user(users.get_user("sa-x").model_copy(update={"active": False}))
        assert directory.get_principal("sa-x") is None
        assert directory.find_principal(Role.STATE_ADVISOR, state="X") is None
        with pytest.raises(PrincipalNotFoundError):
            directory.get_principal_or_raise("sa-x")


# =============================================================================
# Notifications
# =============================================================================

class BrokenOutbox(NotificationRepository):

    def create_notification(self, notification):
        raise RuntimeError("outbox offline")

    def list_for_request(self, request_id):
        return []


class TestNotifications:

    def test_hand_offs_are_queued(self, outbox, divisions_done):
        events = [(e.template_key, e.recipient_id) for e in outbox.list_for_request(divisions_done)]

        assert (NotificationTemplateKey.DIVISION_ASSIGNED, "dh-a") in events
        assert (NotificationTemplateKey.DIVISION_ASSIGNED, "dh-b") in events
        assert (NotificationTemplateKey.FORM_SUBMITTED, "dh-b") in events
        assert (NotificationTemplateKey.FORM_APPROVED, "da-a") in events
        assert events[-1] == (NotificationTemplateKey.REQUEST_ASSIGNED, "sc-x")

    def test_outbox_failure_does_not_undo_transition(self, engine, repo, new_request):
        request_id = new_request()
        engine.notification_service = NotificationService(BrokenOutbox())

        assert engine.approve(request_id, "exec-1") == "sa-x"
        assert repo.get_request(request_id).current_assignee_id == "sa-x"

    def test_no_recipient_no_event(self, outbox):
        service = NotificationService(outbox)
        assert service.enqueue_notification(NotificationTemplateKey.REQUEST_ASSIGNED, None, {}) is None


# =============================================================================
# Dry-run store
# =============================================================================

class TestDryRunRepository:

    def test_ids_are_marked(self, repo, new_request):
        assert is_dry_run_id(new_request())
        assert is_dry_run_id(repo.new_submission_id())

    def test_stale_version_is_rejected(self, repo, new_request):
        request = repo.get_request(new_request())
        repo.save_request(request, expected_version=request.version)

        with pytest.raises(ConcurrencyError):
            repo.save_request(request, expected_version=request.version)

    def test_reads_are_copies(self, repo, new_request):
        request_id = new_request()
        copy = repo.get_request(request_id)
        copy.title = "changed"
        assert repo.get_request(request_id).title != "changed"

    def test_missing_request_cannot_be_saved(self, repo, new_request):
        request = repo.get_request(new_request())
        request = request.model_copy(update={"request_id": "DRYRUN-REQ-missing"})
        with pytest.raises(RequestNotFoundError):
            repo.save_request(request, expected_version=1)

    def test_list_orders_by_timeline(self, repo, clock, new_request):
        late = new_request(timeline=clock() + timedelta(days=20))
        early = new_request(timeline=clock() + timedelta(days=5))

        assert [r.request_id for r in repo.list_requests()] == [early, late]
        assert [r.request_id for r in repo.list_requests(skip=1, limit=1)] == [late]

    def test_factory_selects_dry_run_only_by_configuration(self):
        bundle = build_repositories(Settings(repository_backend="dry_run"))

        assert bundle.is_dry_run
        assert isinstance(bundle.requests, DryRunRepository)
        assert bundle.users.get_user("no-1") is not None

"""Tests for deadlines, reject/close/delete, history and concurrent writers"""

from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from infoflow.domain.enums import (
    RequestStatus, HistoryAction, NotificationTemplateKey, DivisionStatus, SubmissionStatus
)
from infoflow.domain.errors import (
    DeadlineIncreasedError, InvalidStateError, PermissionDeniedError,
    ConcurrencyError, RequestNotFoundError
)
from infoflow.engine.engine import WorkflowEngine
from infoflow.repositories.dry_run import DryRunRepository
from infoflow.services.notification_service import NotificationService


# =============================================================================
# Deadlines
# =============================================================================

class TestDeadlines:

    def test_request_deadline_can_only_move_earlier(self, engine, repo, new_request):
        request_id = new_request()
        original = repo.get_request(request_id)

        with pytest.raises(DeadlineIncreasedError):
            engine.approve(request_id, "exec-1", revised_deadline=original.deadline + timedelta(hours=1))
        assert repo.get_request(request_id).version == original.version

        engine.approve(request_id, "exec-1", revised_deadline=original.deadline - timedelta(days=1))
        assert repo.get_request(request_id).deadline == original.deadline - timedelta(days=1)

    def test_same_deadline_is_accepted(self, engine, repo, new_request):
        request_id = new_request()
        deadline = repo.get_request(request_id).deadline
        engine.approve(request_id, "exec-1", revised_deadline=deadline)
        assert repo.get_request(request_id).deadline == deadline

    def test_division_deadline_is_independent(self, engine, repo, at_divisions):
        request = repo.get_request(at_divisions)
        earlier = request.deadline - timedelta(days=2)

        engine.approve(at_divisions, "dh-a", revised_deadline=earlier)

        request = repo.get_request(at_divisions)
        assert request.find_assignment("X", "A").deadline == earlier
        assert request.find_assignment("X", "B").deadline == request.deadline

        engine.submit_child_form(at_divisions, "da-a", "A", "X", {"mw": 1})
        with pytest.raises(DeadlineIncreasedError) as exc_info:
            engine.approve(at_divisions, "dh-a", revised_deadline=earlier + timedelta(days=1))
        assert exc_info.value.details["division"] == "A"

    def test_request_revision_clamps_assignments(self, engine, repo, divisions_done):
        tighter = repo.get_request(divisions_done).deadline - timedelta(days=3)

        engine.approve(divisions_done, "sc-x", revised_deadline=tighter)

        request = repo.get_request(divisions_done)
        assert request.deadline == tighter
        assert all(a.deadline == tighter for a in request.division_assignments)


# =============================================================================
# Reject / Close / Delete
# =============================================================================

class TestTerminalActions:

    def test_executive_rejects(self, engine, repo, outbox, new_request):
        request_id = new_request()
        rejected = engine.reject_request(request_id, "exec-1", "Out of scope")

        assert rejected.status == RequestStatus.REJECTED
        assert rejected.history[-1].action == HistoryAction.REJECTED
        assert (NotificationTemplateKey.REQUEST_REJECTED, "no-1") in [
            (e.template_key, e.recipient_id) for e in outbox.list_for_request(request_id)
        ]

        with pytest.raises(InvalidStateError):
            engine.approve(request_id, "exec-1")

        assert engine.close_request(request_id, "no-1").status == RequestStatus.CLOSED

    def test_lower_tiers_cannot_reject(self, engine, at_coordinator):
        with pytest.raises(PermissionDeniedError):
            engine.reject_request(at_coordinator, "sc-x")

    def test_oversight_rejects_only_while_holding_request(self, engine, repo, new_request, divisions_done):
        with pytest.raises(PermissionDeniedError):
            engine.reject_request(new_request(), "no-1")

        engine.approve(divisions_done, "sc-x")
        engine.approve(divisions_done, "sa-x")
        engine.approve(divisions_done, "exec-1")
        assert engine.reject_request(divisions_done, "no-1").status == RequestStatus.REJECTED

    def test_close_requires_terminal_outcome(self, engine, new_request):
        with pytest.raises(InvalidStateError):
            engine.close_request(new_request(), "no-1")

    def test_close_requires_national_oversight(self, engine, new_request):
        request_id = new_request()
        engine.reject_request(request_id, "exec-1")
        with pytest.raises(PermissionDeniedError):
            engine.close_request(request_id, "exec-1")

    def test_delete_cascades_to_submissions(self, engine, repo, divisions_done):
        assert len(repo.list_submissions(divisions_done)) == 2

        assert engine.delete_request(divisions_done, "exec-1") == 2

        assert repo.get_request(divisions_done) is None
        assert repo.list_submissions(divisions_done) == []

    def test_delete_permissions(self, engine, at_divisions):
        with pytest.raises(PermissionDeniedError):
            engine.delete_request(at_divisions, "dh-a")
        with pytest.raises(RequestNotFoundError):
            engine.delete_request("DRYRUN-REQ-missing", "no-1")


# =============================================================================
# History
# =============================================================================

class TestHistory:

    def test_entries_are_frozen(self, repo, new_request):
        entry = repo.get_request(new_request()).history[0]
        with pytest.raises(PydanticValidationError):
            entry.notes = "rewritten"

    def test_history_only_grows(self, engine, repo, new_request):
        request_id = new_request()
        snapshots = [repo.get_request(request_id).history]

        engine.approve(request_id, "exec-1", notes="Looks good")
        snapshots.append(repo.get_request(request_id).history)
        engine.approve(request_id, "sa-x")
        snapshots.append(repo.get_request(request_id).history)

        for before, after in zip(snapshots, snapshots[1:]):
            assert len(after) == len(before) + 1
            assert after[:len(before)] == before

    def test_failed_action_leaves_no_trace(self, engine, repo, new_request):
        request_id = new_request()
        with pytest.raises(PermissionDeniedError):
            engine.approve(request_id, "sa-x")
        assert len(repo.get_request(request_id).history) == 1


# =============================================================================
# Concurrent writers
# =============================================================================

class RacingRepository(DryRunRepository):
    """Dry-run store that lets another writer commit just before each save"""

    def __init__(self):
        super().__init__()
        self.competitors = []
        self.saves = 0

    def save_request(self, request, expected_version):
        self.saves += 1
        if self.competitors:
            self.competitors.pop(0)(self)
        return super().save_request(request, expected_version)


def commit_other_writer(change=None):
    def run(store):
        current = store.get_request(store.target_id)
        if change:
            change(current)
        DryRunRepository.save_request(store, current, current.version)
    return run


@pytest.fixture
def racing(directory, outbox, settings, clock):
    store = RacingRepository()
    engine = WorkflowEngine(store, directory, NotificationService(outbox), settings=settings, clock=clock)
    request = engine.create_request("no-1", "Race", "need", clock() + timedelta(days=10), ["X"])
    store.target_id = request.request_id
    return store, engine


class TestConcurrency:

    def test_conflict_is_retried_against_fresh_state(self, racing):
        store, engine = racing
        store.competitors.append(commit_other_writer())

        assert engine.approve(store.target_id, "exec-1") == "sa-x"

        request = store.get_request(store.target_id)
        assert request.version == 3
        assert [e.action for e in request.history] == [HistoryAction.CREATED, HistoryAction.FORWARD]

    def test_retry_sees_winning_deadline(self, racing):
        store, engine = racing
        original = store.get_request(store.target_id).deadline

        def tighten(request):
            request.deadline = original - timedelta(days=2)

        store.competitors.append(commit_other_writer(tighten))

        with pytest.raises(DeadlineIncreasedError):
            engine.approve(store.target_id, "exec-1", revised_deadline=original - timedelta(days=1))
        assert store.get_request(store.target_id).deadline == original - timedelta(days=2)

    def test_gives_up_after_max_retries(self, racing, settings):
        store, engine = racing
        store.competitors.extend(commit_other_writer() for _ in range(settings.max_conflict_retries + 1))

        with pytest.raises(ConcurrencyError):
            engine.approve(store.target_id, "exec-1")

        assert store.saves == settings.max_conflict_retries + 1
        assert len(store.get_request(store.target_id).history) == 1


class InterleavingRepository(DryRunRepository):
    """Dry-run store that runs a callback once, just before the next submission write"""

    def __init__(self):
        super().__init__()
        self.before_write = None

    def save_submission(self, submission):
        hook, self.before_write = self.before_write, None
        if hook:
            hook()
        return super().save_submission(submission)


@pytest.fixture
def interleaving(directory, outbox, settings, clock):
    """Request fanned out in X; A approved, B submitted and awaiting its Head"""
    store = InterleavingRepository()
    engine = WorkflowEngine(store, directory, NotificationService(outbox), settings=settings, clock=clock)
    request_id = engine.create_request("no-1", "Race", "need", clock() + timedelta(days=10), ["X"]).request_id
    engine.approve(request_id, "exec-1")
    engine.approve(request_id, "sa-x")
    engine.approve(request_id, "sc-x")
    for division, mw in (("A", 10), ("B", 5)):
        slug = division.lower()
        engine.approve(request_id, f"dh-{slug}", division=division)
        engine.submit_child_form(request_id, f"da-{slug}", division, "X", {"mw": mw})
    engine.approve(request_id, "dh-a", division="A")
    return store, engine, request_id


class TestFormWritesBehindCommit:

    def test_consolidation_waits_for_approved_form(self, interleaving):
        store, engine, request_id = interleaving
        seen = {}

        def consolidate_early():
            seen["version"] = store.get_request(request_id).version
            with pytest.raises(ConcurrencyError):
                engine.approve(request_id, "sc-x", merge_strategy={"mw": "sum"})
            seen["after"] = store.get_request(request_id).version

        store.before_write = consolidate_early
        engine.approve(request_id, "dh-b", division="B")

        assert seen["after"] == seen["version"]
        assert store.find_state_record(request_id, "X") is None
        form_b = store.list_submissions(request_id, branch="B")[0]
        assert form_b.status == SubmissionStatus.APPROVED

        engine.approve(request_id, "sc-x", merge_strategy={"mw": "sum"})
        assert store.find_state_record(request_id, "X").data == {"mw": 15}
        assert {s.status for s in store.list_submissions(request_id) if s.branch} == {SubmissionStatus.MERGED}
        request = store.get_request(request_id)
        assert {a.status for a in request.division_assignments} == {DivisionStatus.COMPLETED}

    def test_assignment_records_approved_form(self, engine, repo, divisions_done):
        request = repo.get_request(divisions_done)
        for assignment in request.division_assignments:
            form = repo.list_submissions(divisions_done, branch=assignment.division)[0]
            assert assignment.status == DivisionStatus.HOD_APPROVED_FORM
            assert assignment.submission_id == form.submission_id

"""Tests for the routing table and permission guard"""

import pytest

from infoflow.domain.enums import Role, RoleScope, FlowDirection, RequestStatus
from infoflow.domain.errors import InvalidStateError, PermissionDeniedError
from infoflow.domain.models import InfoRequest, DivisionAssignment, Principal, RoleAssignment
from infoflow.engine.permission_guard import PermissionGuard
from infoflow.engine.transition_resolver import TransitionResolver, Hop, HopEffect, ROUTING_TABLE

from .conftest import START


@pytest.fixture
def resolver():
    return TransitionResolver()


@pytest.fixture
def guard(resolver):
    return PermissionGuard(resolver)


def make_request(**overrides) -> InfoRequest:
    fields = dict(
        request_id="REQ-1",
        title="t",
        info_need="n",
        timeline=START,
        deadline=START,
        status=RequestStatus.IN_PROGRESS,
        created_by="no-1",
        created_at=START,
        updated_at=START,
    )
    fields.update(overrides)
    return InfoRequest(**fields)


def principal(user_id, role, state=None, division=None):
    return Principal(
        user_id=user_id, name=user_id,
        roles=[RoleAssignment(role=role, state=state, division=division)]
    )


class TestTransitionResolver:

    def test_down_chain(self, resolver):
        assert resolver.next_hop(Role.NATIONAL_OVERSIGHT, FlowDirection.DOWN).next_role == Role.EXECUTIVE
        assert resolver.next_hop(Role.EXECUTIVE, FlowDirection.DOWN).next_role == Role.STATE_ADVISOR
        assert resolver.next_hop(Role.STATE_ADVISOR, FlowDirection.DOWN).effect == HopEffect.FANOUT_IF_BRANCHES
        assert resolver.next_hop(Role.STATE_COORDINATOR, FlowDirection.DOWN).effect == HopEffect.FANOUT

    def test_up_chain_ends_in_terminal_approval(self, resolver):
        assert resolver.next_hop(Role.STATE_COORDINATOR, FlowDirection.UP).effect == HopEffect.CONSOLIDATE
        hop = resolver.next_hop(Role.NATIONAL_OVERSIGHT, FlowDirection.UP)
        assert hop.next_role is None
        assert hop.effect == HopEffect.TERMINAL_APPROVE

    def test_plain_forwards_carry_no_effect(self, resolver):
        assert resolver.next_hop(Role.NATIONAL_OVERSIGHT, FlowDirection.DOWN).effect == HopEffect.NONE
        assert resolver.next_hop(Role.DIVISION_HEAD, FlowDirection.UP) == Hop(
            next_role=Role.STATE_COORDINATOR, scope=RoleScope.STATE
        )
        assert set(HopEffect) == {
            HopEffect.NONE, HopEffect.FANOUT_IF_BRANCHES, HopEffect.FANOUT,
            HopEffect.CONSOLIDATE, HopEffect.TERMINAL_APPROVE
        }

    def test_missing_hop_raises(self, resolver):
        with pytest.raises(InvalidStateError):
            resolver.next_hop(Role.DIVISION_ANALYST, FlowDirection.DOWN)

    @pytest.mark.parametrize("role,target", [
        (Role.NATIONAL_OVERSIGHT, Role.EXECUTIVE),
        (Role.EXECUTIVE, Role.STATE_ADVISOR),
        (Role.STATE_ADVISOR, Role.STATE_COORDINATOR),
        (Role.STATE_COORDINATOR, Role.DIVISION_HEAD),
        (Role.DIVISION_HEAD, Role.DIVISION_ANALYST),
        (Role.DIVISION_ANALYST, None),
    ])
    def test_decline_goes_back_exactly_one_tier(self, resolver, role, target):
        assert resolver.decline_target(role) == target

    def test_every_up_hop_has_a_matching_decline(self, resolver):
        for (role, flow), hop in ROUTING_TABLE.items():
            if flow == FlowDirection.UP and hop.next_role is not None:
                assert resolver.decline_target(hop.next_role) == role

    def test_context_by_scope(self, resolver):
        request = make_request(current_state="X")
        assert resolver.context_for(Role.EXECUTIVE, request) == (None, None)
        assert resolver.context_for(Role.STATE_ADVISOR, request) == ("X", None)
        assert resolver.context_for(Role.DIVISION_HEAD, request, "A") == ("X", "A")


class TestPermissionGuard:

    def test_assignee_acts(self, guard):
        request = make_request(current_tier=Role.EXECUTIVE, current_assignee_id="exec-1")
        assert guard.can_act_on_tier(principal("exec-1", Role.EXECUTIVE), request)
        assert not guard.can_act_on_tier(principal("exec-2", Role.EXECUTIVE), request)

    def test_empty_slot_falls_back_to_role_in_context(self, guard):
        request = make_request(current_tier=Role.STATE_ADVISOR, current_state="X")
        assert guard.can_act_on_tier(principal("sa-x", Role.STATE_ADVISOR, "X"), request)
        assert not guard.can_act_on_tier(principal("sa-y", Role.STATE_ADVISOR, "Y"), request)

    def test_division_tiers_are_not_top_level_actions(self, guard):
        request = make_request(current_tier=Role.DIVISION_HEAD, current_assignee_id="dh-a")
        assert not guard.can_act_on_tier(principal("dh-a", Role.DIVISION_HEAD, "X", "A"), request)

    def test_unresolved_analyst_accepts_role_holder(self, guard):
        assignment = DivisionAssignment(
            division="B", state="X", division_hod_id="dh-b", deadline=START, created_at=START
        )
        assert guard.is_division_analyst(principal("da-b", Role.DIVISION_ANALYST, "X", "B"), assignment)
        assert not guard.is_division_analyst(principal("da-a", Role.DIVISION_ANALYST, "X", "A"), assignment)

    def test_reject_limited_to_top_tiers(self, guard):
        at_advisor = make_request(current_tier=Role.STATE_ADVISOR, current_assignee_id="sa-x")
        with pytest.raises(PermissionDeniedError) as exc_info:
            guard.require_reject(principal("sa-x", Role.STATE_ADVISOR, "X"), at_advisor)
        assert exc_info.value.details["user_id"] == "sa-x"

    def test_denial_carries_context(self, guard):
        with pytest.raises(PermissionDeniedError) as exc_info:
            guard.require_role(principal("da-a", Role.DIVISION_ANALYST, "X", "A"), Role.STATE_COORDINATOR, state="X")
        details = exc_info.value.details
        assert details["required_role"] == Role.STATE_COORDINATOR.value
        assert details["state"] == "X"

"""Permission Guard - Authorization enforcement for workflow actions"""
from typing import Optional

from ..domain.models import InfoRequest, DivisionAssignment, Principal
from ..domain.enums import Role
from ..domain.errors import PermissionDeniedError
from .transition_resolver import TransitionResolver
from ..utils.logger import get_logger

logger = get_logger(__name__)


class PermissionGuard:
    """
    Permission enforcement for request operations

    Rules:
    - The current assignee acts on the request; when the slot is empty any
      holder of the current tier's role in the request's context may act
    - A Division Head acts on their own DivisionAssignment only
    - A Division Analyst submits for the assignment they were routed to, or,
      when none was resolved, for any division where they hold the role
    - Creation needs National Oversight; rejection needs the Executive or
      National Oversight holding the request; deletion needs either role
    """

    def __init__(self, resolver: TransitionResolver):
        self.resolver = resolver

    def _deny(
        self,
        message: str,
        principal: Principal,
        role: Role,
        state: Optional[str] = None,
        division: Optional[str] = None,
        **extra
    ) -> PermissionDeniedError:
        details = {
            "user_id": principal.user_id,
            "required_role": role.value,
            "state": state,
            "division": division,
        }
        details.update(extra)
        logger.warning(
            f"Permission denied: {message}",
            extra={"actor_id": principal.user_id, "tier": role.value, "state": state, "division": division}
        )
        return PermissionDeniedError(message, details=details)

    # =========================================================================
    # Checks (bool)
    # =========================================================================

    def can_act_on_tier(self, principal: Principal, request: InfoRequest) -> bool:
        """Check whether the principal owns the request's next top-level action"""
        tier = request.current_tier
        if tier is None or not self.resolver.is_approval_tier(tier):
            return False
        if request.current_assignee_id:
            return request.current_assignee_id == principal.user_id
        state, _ = self.resolver.context_for(tier, request)
        return principal.holds(tier, state=state)

    def is_division_head(self, principal: Principal, assignment: DivisionAssignment) -> bool:
        return assignment.division_hod_id == principal.user_id

    def is_division_analyst(self, principal: Principal, assignment: DivisionAssignment) -> bool:
        if assignment.division_yp_id:
            return assignment.division_yp_id == principal.user_id
        return principal.holds(Role.DIVISION_ANALYST, state=assignment.state, division=assignment.division)

    def can_fan_out(self, principal: Principal, state: Optional[str]) -> bool:
        return state is not None and principal.holds(Role.STATE_COORDINATOR, state=state)

    def can_reject(self, principal: Principal, request: InfoRequest) -> bool:
        if request.current_tier not in (Role.EXECUTIVE, Role.NATIONAL_OVERSIGHT):
            return False
        return self.can_act_on_tier(principal, request)

    def can_close(self, principal: Principal) -> bool:
        return principal.holds(Role.NATIONAL_OVERSIGHT)

    def can_delete(self, principal: Principal) -> bool:
        return principal.holds(Role.NATIONAL_OVERSIGHT) or principal.holds(Role.EXECUTIVE)

    # =========================================================================
    # Enforcement (raise)
    # =========================================================================

    def require_role(
        self,
        principal: Principal,
        role: Role,
        state: Optional[str] = None,
        division: Optional[str] = None,
        action: str = ""
    ) -> None:
        if not principal.holds(role, state=state, division=division):
            raise self._deny(
                f"{role.value} role required to {action or 'perform this action'}",
                principal, role, state, division
            )

    def require_tier_actor(self, principal: Principal, request: InfoRequest, action: str) -> None:
        """Raise unless the principal owns the request's current tier"""
        if self.can_act_on_tier(principal, request):
            return
        tier = request.current_tier or Role.NATIONAL_OVERSIGHT
        state, _ = self.resolver.context_for(tier, request)
        raise self._deny(
            f"Only the current {tier.value} can {action} this request",
            principal, tier, state,
            current_assignee_id=request.current_assignee_id
        )

    def require_division_head(
        self,
        principal: Principal,
        assignment: DivisionAssignment,
        action: str
    ) -> None:
        if not self.is_division_head(principal, assignment):
            raise self._deny(
                f"Only the Division Head of {assignment.division} can {action}",
                principal, Role.DIVISION_HEAD, assignment.state, assignment.division,
                division_hod_id=assignment.division_hod_id
            )

    def require_division_analyst(self, principal: Principal, assignment: DivisionAssignment) -> None:
        if not self.is_division_analyst(principal, assignment):
            raise self._deny(
                f"Only the Division Analyst of {assignment.division} can submit this form",
                principal, Role.DIVISION_ANALYST, assignment.state, assignment.division,
                division_yp_id=assignment.division_yp_id
            )

    def require_reject(self, principal: Principal, request: InfoRequest) -> None:
        if not self.can_reject(principal, request):
            raise self._deny(
                "Only the Executive or National Oversight holding the request can reject it",
                principal, Role.EXECUTIVE,
                current_tier=request.current_tier.value if request.current_tier else None,
                current_assignee_id=request.current_assignee_id
            )

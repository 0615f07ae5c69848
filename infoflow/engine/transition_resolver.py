"""Transition Resolver - Routing table for the six-tier hierarchy"""
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..domain.models import InfoRequest
from ..domain.enums import Role, RoleScope, FlowDirection
from ..domain.errors import InvalidStateError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class HopEffect(str, Enum):
    """Side effect attached to a hop"""
    NONE = "none"
    FANOUT_IF_BRANCHES = "fanout_if_branches"
    FANOUT = "fanout"
    CONSOLIDATE = "consolidate"
    TERMINAL_APPROVE = "terminal_approve"


class Hop(BaseModel):
    """Where an approval at (role, flow) sends the request"""
    model_config = ConfigDict(frozen=True)

    next_role: Optional[Role] = None
    scope: Optional[RoleScope] = None
    effect: HopEffect = HopEffect.NONE


ROLE_SCOPES: Dict[Role, RoleScope] = {
    Role.NATIONAL_OVERSIGHT: RoleScope.GLOBAL,
    Role.EXECUTIVE: RoleScope.GLOBAL,
    Role.STATE_ADVISOR: RoleScope.STATE,
    Role.STATE_COORDINATOR: RoleScope.STATE,
    Role.DIVISION_HEAD: RoleScope.DIVISION,
    Role.DIVISION_ANALYST: RoleScope.DIVISION,
}

# Roles whose holders approve/decline the request as a whole
APPROVAL_CHAIN: Tuple[Role, ...] = (
    Role.NATIONAL_OVERSIGHT,
    Role.EXECUTIVE,
    Role.STATE_ADVISOR,
    Role.STATE_COORDINATOR,
)

DIVISION_TIERS: Tuple[Role, ...] = (Role.DIVISION_HEAD, Role.DIVISION_ANALYST)


def _hop(next_role: Optional[Role], effect: HopEffect = HopEffect.NONE) -> Hop:
    return Hop(
        next_role=next_role,
        scope=ROLE_SCOPES[next_role] if next_role else None,
        effect=effect
    )


ROUTING_TABLE: Dict[Tuple[Role, FlowDirection], Hop] = {
    (Role.NATIONAL_OVERSIGHT, FlowDirection.DOWN): _hop(Role.EXECUTIVE),
    (Role.EXECUTIVE, FlowDirection.DOWN): _hop(Role.STATE_ADVISOR),
    (Role.STATE_ADVISOR, FlowDirection.DOWN): _hop(Role.STATE_COORDINATOR, HopEffect.FANOUT_IF_BRANCHES),
    (Role.STATE_COORDINATOR, FlowDirection.DOWN): _hop(Role.DIVISION_HEAD, HopEffect.FANOUT),
    (Role.DIVISION_HEAD, FlowDirection.DOWN): _hop(Role.DIVISION_ANALYST),
    (Role.DIVISION_ANALYST, FlowDirection.UP): _hop(Role.DIVISION_HEAD),
    (Role.DIVISION_HEAD, FlowDirection.UP): _hop(Role.STATE_COORDINATOR),
    (Role.STATE_COORDINATOR, FlowDirection.UP): _hop(Role.STATE_ADVISOR, HopEffect.CONSOLIDATE),
    (Role.STATE_ADVISOR, FlowDirection.UP): _hop(Role.EXECUTIVE),
    (Role.EXECUTIVE, FlowDirection.UP): _hop(Role.NATIONAL_OVERSIGHT),
    (Role.NATIONAL_OVERSIGHT, FlowDirection.UP): _hop(None, HopEffect.TERMINAL_APPROVE),
}


class TransitionResolver:
    """
    Resolve hops from the routing table

    Decline targets are not stored: they are the inverse of the upward hops,
    so a tier declines back to whichever tier forwards up into it.
    """

    def __init__(self, table: Optional[Dict[Tuple[Role, FlowDirection], Hop]] = None):
        self.table = table if table is not None else ROUTING_TABLE
        self._decline_targets = self._invert_upward_hops(self.table)

    @staticmethod
    def _invert_upward_hops(
        table: Dict[Tuple[Role, FlowDirection], Hop]
    ) -> Dict[Role, Role]:
        targets: Dict[Role, Role] = {}
        for (role, flow), hop in table.items():
            if flow == FlowDirection.UP and hop.next_role is not None:
                targets[hop.next_role] = role
        return targets

    def next_hop(self, role: Role, flow: FlowDirection) -> Hop:
        """
        Resolve the hop for an approval at (role, flow)

        Raises:
            InvalidStateError: If the tier has no hop in that direction
        """
        hop = self.table.get((role, flow))
        if hop is None:
            raise InvalidStateError(
                f"{role.value} cannot forward a request on the {flow.value} pass",
                details={"tier": role.value, "flow": flow.value}
            )
        logger.debug(
            f"Resolved hop: {role.value}/{flow.value} -> "
            f"{hop.next_role.value if hop.next_role else 'terminal'}",
            extra={"tier": role.value}
        )
        return hop

    def decline_target(self, role: Role) -> Optional[Role]:
        """Tier a decline at ``role`` sends the request back to"""
        return self._decline_targets.get(role)

    def context_for(
        self,
        role: Role,
        request: InfoRequest,
        division: Optional[str] = None
    ) -> Tuple[Optional[str], Optional[str]]:
        """(state, division) a holder of ``role`` is looked up in"""
        scope = ROLE_SCOPES[role]
        if scope == RoleScope.GLOBAL:
            return None, None
        if scope == RoleScope.STATE:
            return request.current_state, None
        return request.current_state, division

    def is_approval_tier(self, role: Optional[Role]) -> bool:
        return role in APPROVAL_CHAIN

    def is_division_tier(self, role: Optional[Role]) -> bool:
        return role in DIVISION_TIERS


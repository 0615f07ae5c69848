"""Sample Directory - A small hierarchy for local runs, dry-run mode and tests"""
from typing import List, Optional

from ..domain.models import Principal, RoleAssignment
from ..domain.enums import Role


SAMPLE_STATE = "X"
SAMPLE_DIVISIONS = ("A", "B")


def _principal(user_id: str, name: str, role: Role, state: Optional[str] = None, division: Optional[str] = None) -> Principal:
    return Principal(
        user_id=user_id,
        name=name,
        email=f"{user_id}@infoflow.org",
        roles=[RoleAssignment(role=role, state=state, division=division)]
    )


def sample_principals() -> List[Principal]:
    """
    One principal per tier for state ``X`` with divisions ``A`` and ``B``

    Every division has both a Head and an Analyst.
    """
    principals = [
        _principal("no-1", "National Oversight", Role.NATIONAL_OVERSIGHT),
        _principal("exec-1", "Executive", Role.EXECUTIVE),
        _principal("sa-x", "State Advisor X", Role.STATE_ADVISOR, state=SAMPLE_STATE),
        _principal("sc-x", "State Coordinator X", Role.STATE_COORDINATOR, state=SAMPLE_STATE),
    ]
    for division in SAMPLE_DIVISIONS:
        slug = division.lower()
        principals.append(_principal(
            f"dh-{slug}", f"Division Head {division}", Role.DIVISION_HEAD,
            state=SAMPLE_STATE, division=division
        ))
        principals.append(_principal(
            f"da-{slug}", f"Division Analyst {division}", Role.DIVISION_ANALYST,
            state=SAMPLE_STATE, division=division
        ))
    return principals

"""Directory Service - Role directory lookups

Pure lookups over the ``users`` store: principal by id, principal by
(role, state, division) and the divisions of a state that have a Head.
Identity itself (login, passwords, sessions) is managed elsewhere.
"""
from typing import List, Optional

from ..domain.models import Principal, PrincipalSummary
from ..domain.enums import Role
from ..domain.errors import PrincipalNotFoundError
from ..repositories.base import UserRepository
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DirectoryService:
    """Service for role directory operations"""

    def __init__(self, user_repo: UserRepository):
        self.repo = user_repo

    def get_principal(self, user_id: Optional[str]) -> Optional[Principal]:
        """Get principal by ID, None for unknown or inactive users"""
        if not user_id:
            return None
        principal = self.repo.get_user(user_id)
        if principal and not principal.active:
            return None
        return principal

    def get_principal_or_raise(self, user_id: str) -> Principal:
        """Get principal by ID or raise error"""
        principal = self.get_principal(user_id)
        if principal is None:
            raise PrincipalNotFoundError(
                f"Principal {user_id} not found",
                details={"user_id": user_id}
            )
        return principal

    def find_principal(
        self,
        role: Role,
        state: Optional[str] = None,
        division: Optional[str] = None
    ) -> Optional[Principal]:
        """
        Resolve the principal holding a role in context

        When several principals qualify the lowest user_id wins so the
        resolution is stable across calls.
        """
        candidates = self.repo.find_users(role, state=state, division=division)
        if not candidates:
            logger.info(
                f"No principal holds {role.value}",
                extra={"tier": role.value, "state": state, "division": division}
            )
            return None
        return candidates[0]

    def list_divisions(self, state: str) -> List[str]:
        """Divisions of a state that have a registered Head, in name order"""
        divisions = set()
        for principal in self.repo.find_users(Role.DIVISION_HEAD, state=state):
            for assignment in principal.roles:
                if assignment.role == Role.DIVISION_HEAD and assignment.state == state and assignment.division:
                    divisions.add(assignment.division)
        return sorted(divisions)

    def summarize(self, user_id: Optional[str]) -> Optional[PrincipalSummary]:
        """Resolve a user id to id + display name for read models"""
        if not user_id:
            return None
        principal = self.repo.get_user(user_id)
        return PrincipalSummary(user_id=user_id, name=principal.name if principal else None)

"""Directory API Routes - Principal and division lookup"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ..deps import get_current_user_dep, get_directory_dep
from ...domain.models import ActorContext, Principal
from ...domain.enums import Role
from ...services.directory_service import DirectoryService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Response Models
# ============================================================================

class DivisionListResponse(BaseModel):
    """Divisions of a state that have a Division Head"""
    state: str
    items: List[str]


# ============================================================================
# Routes
# ============================================================================

@router.get("/me", response_model=Principal)
async def get_me(
    actor: ActorContext = Depends(get_current_user_dep),
    directory: DirectoryService = Depends(get_directory_dep)
):
    """
    Get current principal

    Returns the directory record and role assignments of the logged-in user.
    """
    return directory.get_principal_or_raise(actor.user_id)


@router.get("/divisions", response_model=DivisionListResponse)
async def list_divisions(
    state: str = Query(..., min_length=1),
    actor: ActorContext = Depends(get_current_user_dep),
    directory: DirectoryService = Depends(get_directory_dep)
):
    """List the divisions of a state"""
    return DivisionListResponse(state=state, items=directory.list_divisions(state))


@router.get("/principal", response_model=Optional[Principal])
async def find_principal(
    role: Role = Query(...),
    state: Optional[str] = Query(None),
    division: Optional[str] = Query(None),
    actor: ActorContext = Depends(get_current_user_dep),
    directory: DirectoryService = Depends(get_directory_dep)
):
    """Resolve the principal holding a role in a state/division context"""
    return directory.find_principal(role, state=state, division=division)

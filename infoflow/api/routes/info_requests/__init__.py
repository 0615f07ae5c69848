"""
Request Routes Module

Information request endpoints organized by functionality:

- crud.py: Create, list, get, delete requests
- actions.py: Approve, decline, fan-out, reject, close, available actions
- submissions.py: Division forms and the consolidated state report

All routes are combined into a single router for inclusion in the API.
"""

from fastapi import APIRouter

from .crud import router as crud_router
from .actions import router as actions_router
from .submissions import router as submissions_router

router = APIRouter()

router.include_router(crud_router)
router.include_router(actions_router)
router.include_router(submissions_router)

__all__ = ["router"]

"""API Routes module"""
from fastapi import APIRouter

from .info_requests import router as info_requests_router
from .submissions import router as submissions_router
from .merge import router as merge_router
from .directory import router as directory_router
from .analytics import router as analytics_router

# Main API router
api_router = APIRouter()

# Include all route modules
api_router.include_router(info_requests_router, prefix="/requests", tags=["Requests"])
api_router.include_router(submissions_router, prefix="/submissions", tags=["Submissions"])
api_router.include_router(merge_router, prefix="/merge", tags=["Merge"])
api_router.include_router(directory_router, prefix="/directory", tags=["Directory"])
api_router.include_router(analytics_router, prefix="/analytics", tags=["Analytics"])

__all__ = ["api_router"]

"""Analytics API Routes - Dashboard counts"""
from fastapi import APIRouter, Depends

from ..deps import get_current_user_dep, get_request_service_dep
from ...domain.models import ActorContext, AnalyticsSummary
from ...services.request_service import RequestService

router = APIRouter()


# ============================================================================
# Routes
# ============================================================================

@router.get("/", response_model=AnalyticsSummary)
async def get_analytics(
    actor: ActorContext = Depends(get_current_user_dep),
    service: RequestService = Depends(get_request_service_dep)
):
    """
    Get store-wide totals

    Overdue counts requests whose deadline has passed and that are not closed.
    """
    return service.get_analytics()

"""API Dependencies - Common dependencies for routes"""
from functools import lru_cache
from typing import Optional
from fastapi import Depends, Header

from ..config.settings import Settings, get_settings
from ..domain.models import ActorContext
from ..domain.errors import AuthenticationError
from ..engine.engine import WorkflowEngine
from ..repositories.factory import RepositoryBundle, build_repositories
from ..services.directory_service import DirectoryService
from ..services.notification_service import NotificationService
from ..services.request_service import RequestService
from ..utils.jwt import get_current_user as _jwt_get_current_user  # Internal use only
from ..utils.logger import set_correlation_id
from ..utils.idgen import generate_correlation_id


# =============================================================================
# Service Container
# =============================================================================

class ServiceContainer:
    """Wires repositories, services and the engine for one backend"""

    def __init__(self, repositories: RepositoryBundle, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.repositories = repositories
        self.directory = DirectoryService(repositories.users)
        self.notifications = NotificationService(repositories.notifications)
        self.engine = WorkflowEngine(
            repositories.requests,
            self.directory,
            self.notifications,
            settings=settings
        )
        self.request_service = RequestService(repositories.requests, self.directory, self.engine)

    @property
    def is_dry_run(self) -> bool:
        return self.repositories.is_dry_run


@lru_cache()
def get_container() -> ServiceContainer:
    """Application-wide container built from settings"""
    settings = get_settings()
    return ServiceContainer(build_repositories(settings), settings)


def get_engine_dep(container: ServiceContainer = Depends(get_container)) -> WorkflowEngine:
    return container.engine


def get_request_service_dep(container: ServiceContainer = Depends(get_container)) -> RequestService:
    return container.request_service


def get_directory_dep(container: ServiceContainer = Depends(get_container)) -> DirectoryService:
    return container.directory


# =============================================================================
# Request Context
# =============================================================================

async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """
    Get or generate correlation ID for request tracing

    If client provides X-Correlation-Id, use it.
    Otherwise generate a new one.
    """
    correlation_id = x_correlation_id or generate_correlation_id()
    set_correlation_id(correlation_id)
    return correlation_id


async def get_current_user_dep(
    authorization: Optional[str] = Header(None)
) -> ActorContext:
    """
    Dependency to get current user from Authorization header

    Validates the bearer token; its ``sub`` claim is the acting user id.

    Raises:
        AuthenticationError: 401 if token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError("Authorization header is missing")

    return _jwt_get_current_user(authorization)

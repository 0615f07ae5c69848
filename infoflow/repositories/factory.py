"""Repository Factory - Select the storage backend from configuration"""
from typing import Optional

from .base import RequestRepository, UserRepository, NotificationRepository
from ..config.settings import Settings, get_settings
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RepositoryBundle:
    """The three stores the engine and read services depend on"""

    def __init__(
        self,
        requests: RequestRepository,
        users: UserRepository,
        notifications: NotificationRepository
    ):
        self.requests = requests
        self.users = users
        self.notifications = notifications

    @property
    def is_dry_run(self) -> bool:
        return self.requests.is_dry_run


def build_repositories(settings: Optional[Settings] = None) -> RepositoryBundle:
    """
    Build repositories for the configured backend

    ``dry_run`` is only ever chosen explicitly; a MongoDB connection failure
    surfaces as RepositoryUnavailableError instead of switching backends.
    """
    settings = settings or get_settings()

    if settings.is_dry_run:
        from .dry_run import DryRunRepository, InMemoryUserRepository, InMemoryNotificationRepository
        from .seed import sample_principals

        logger.warning("Using dry-run repositories with the sample directory - nothing will be persisted")
        return RepositoryBundle(
            requests=DryRunRepository(),
            users=InMemoryUserRepository(sample_principals()),
            notifications=InMemoryNotificationRepository(),
        )

    from .request_repo import MongoRequestRepository
    from .user_repo import MongoUserRepository
    from .notification_repo import MongoNotificationRepository

    logger.info(f"Using MongoDB repositories (db={settings.mongo_db})")
    return RepositoryBundle(
        requests=MongoRequestRepository(),
        users=MongoUserRepository(),
        notifications=MongoNotificationRepository(),
    )

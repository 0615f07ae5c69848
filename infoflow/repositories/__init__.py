"""Repository modules - Data access layer"""
from .base import RequestRepository, UserRepository, NotificationRepository
from .dry_run import DryRunRepository, InMemoryUserRepository, InMemoryNotificationRepository
from .factory import RepositoryBundle, build_repositories

__all__ = [
    "RequestRepository",
    "UserRepository",
    "NotificationRepository",
    "DryRunRepository",
    "InMemoryUserRepository",
    "InMemoryNotificationRepository",
    "RepositoryBundle",
    "build_repositories",
]

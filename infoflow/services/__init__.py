"""Service modules - Business logic layer"""
from .directory_service import DirectoryService
from .notification_service import NotificationService
from .request_service import RequestService

__all__ = [
    "DirectoryService",
    "NotificationService",
    "RequestService",
]

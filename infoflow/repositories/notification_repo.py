"""Notification Repository - Data access for the notification outbox

Delivery (email/SMS) is owned by a separate worker that drains PENDING
entries; this side only appends.
"""
from typing import List, Optional
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo import ASCENDING

from .base import NotificationRepository
from .mongo_client import get_database, translate_connection_errors
from ..domain.models import NotificationEvent
from ..utils.logger import get_logger

logger = get_logger(__name__)


class MongoNotificationRepository(NotificationRepository):
    """Repository for notification outbox operations"""

    def __init__(self, database: Optional[Database] = None):
        db = database if database is not None else get_database()
        self._outbox: Collection = db["notification_outbox"]

    @translate_connection_errors
    def create_notification(self, notification: NotificationEvent) -> NotificationEvent:
        """Create a notification in outbox"""
        doc = notification.model_dump()
        doc["_id"] = notification.notification_id

        self._outbox.insert_one(doc)
        logger.info(
            f"Created notification: {notification.template_key.value}",
            extra={
                "request_id": notification.request_id,
                "user_id": notification.recipient_id
            }
        )
        return notification

    @translate_connection_errors
    def list_for_request(self, request_id: str) -> List[NotificationEvent]:
        """Get outbox entries for a request, oldest first"""
        cursor = self._outbox.find({"request_id": request_id}).sort("created_at", ASCENDING)

        notifications = []
        for doc in cursor:
            doc.pop("_id", None)
            notifications.append(NotificationEvent.model_validate(doc))
        return notifications

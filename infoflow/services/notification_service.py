"""Notification Service - Enqueue notify events into the outbox

The engine never delivers anything itself: every hand-off becomes one
PENDING outbox entry that a delivery worker picks up later.
"""
from typing import Any, Dict, List, Optional

from ..domain.models import NotificationEvent
from ..domain.enums import NotificationTemplateKey
from ..repositories.base import NotificationRepository
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Service for queueing notifications"""

    def __init__(self, notification_repo: NotificationRepository):
        self.repo = notification_repo

    # =========================================================================
    # Outbox Creation
    # =========================================================================

    def enqueue_notification(
        self,
        template_key: NotificationTemplateKey,
        recipient_id: Optional[str],
        payload: Dict[str, Any],
        request_id: Optional[str] = None
    ) -> Optional[NotificationEvent]:
        """
        Enqueue a notification for sending

        Failures are logged and swallowed; a notification must never undo a
        committed transition.
        """
        if not recipient_id:
            return None

        notification = NotificationEvent(
            notification_id=generate_notification_id(),
            request_id=request_id,
            template_key=template_key,
            recipient_id=recipient_id,
            payload=payload,
            created_at=utc_now()
        )

        try:
            return self.repo.create_notification(notification)
        except Exception as e:
            logger.error(
                f"Failed to enqueue {template_key.value} notification: {e}",
                extra={"request_id": request_id, "user_id": recipient_id}
            )
            return None

    def list_for_request(self, request_id: str) -> List[NotificationEvent]:
        return self.repo.list_for_request(request_id)

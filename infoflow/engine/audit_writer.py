"""Audit Writer - Append-only history entries"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..domain.models import AuditEntry, InfoRequest, ChildSubmission
from ..domain.enums import HistoryAction
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditWriter:
    """
    Write history entries (append-only)

    Every mutating engine call appends exactly one entry to the request
    history. Entries are frozen models and are never edited or reordered.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def _entry(
        self,
        action: HistoryAction,
        actor_id: str,
        notes: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        return AuditEntry(
            action=action,
            user_id=actor_id,
            timestamp=self._clock(),
            notes=notes,
            details=details or {}
        )

    def record(
        self,
        request: InfoRequest,
        action: HistoryAction,
        actor_id: str,
        notes: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        """Append an entry to the request history"""
        entry = self._entry(action, actor_id, notes, details)
        request.history.append(entry)

        logger.info(
            f"History: {action.value}",
            extra={
                "request_id": request.request_id,
                "actor_id": actor_id,
                "action": action.value,
                "state": request.current_state
            }
        )
        return entry

    def record_submission(
        self,
        submission: ChildSubmission,
        action: HistoryAction,
        actor_id: str,
        notes: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> AuditEntry:
        """Append an entry to a child submission's own audit log"""
        entry = self._entry(action, actor_id, notes, details)
        submission.audit.append(entry)
        return entry

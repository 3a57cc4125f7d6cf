"""
Notification fan-out for request status changes.

Every notification points back at the StatusEvent that caused it. Delivery is
best-effort: each recipient is attempted on its own, failures are logged and
reported in the returned results, and nothing is raised to the caller.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from .models import Notification, StatusEvent

logger = logging.getLogger(__name__)


@dataclass
class Recipient:
    user_id: Optional[int]
    audience_role: str
    title: str
    body: str
    type: str
    metadata: dict = field(default_factory=dict)


@dataclass
class DeliveryResult:
    user_id: Optional[int]
    delivered: bool
    notification_id: Optional[int] = None
    error: Optional[str] = None


class NotificationService:
    """Creates notification rows, one per recipient.

    ``sink`` replaces the default database writer; it receives the event and
    the recipient and returns the stored notification (or anything with an
    ``id``).
    """

    def __init__(self, db: Session, sink: Optional[Callable[[StatusEvent, Recipient], object]] = None):
        self.db = db
        self.sink = sink or self._store

    def _store(self, event: StatusEvent, recipient: Recipient) -> Notification:
        note = Notification(
            user_id=recipient.user_id,
            audience_role=recipient.audience_role,
            title=recipient.title,
            body=recipient.body,
            type=recipient.type,
            request_id=event.request_id,
            status_event_id=event.id,
            meta=recipient.metadata or None,
            delivery_state="pending",
        )
        self.db.add(note)
        self.db.commit()
        self.db.refresh(note)
        return note

    def notify(self, event: StatusEvent, recipient: Recipient) -> DeliveryResult:
        if recipient.user_id is None:
            logger.warning(
                "No user for %s notification on request %s, skipping",
                recipient.type, event.request_id,
            )
            return DeliveryResult(user_id=None, delivered=False, error="recipient has no user")
        try:
            note = self.sink(event, recipient)
        except Exception as e:
            self.db.rollback()
            logger.error(
                "Failed to notify user %s (%s) for event %s: %s",
                recipient.user_id, recipient.type, event.id, e,
            )
            return DeliveryResult(user_id=recipient.user_id, delivered=False, error=str(e))
        logger.info("Notified user %s: %s (event %s)", recipient.user_id, recipient.type, event.id)
        return DeliveryResult(
            user_id=recipient.user_id, delivered=True, notification_id=getattr(note, "id", None),
        )

    def fan_out(self, event: StatusEvent, recipients: Iterable[Recipient]) -> List[DeliveryResult]:
        """Attempt every recipient; never raises."""
        return [self.notify(event, r) for r in recipients]

"""
Audit outbox

Audit writes are queued as events after a mutation succeeds and delivered
independently of it. An event that fails stays queued for the next flush
until it runs out of retries.
"""

import logging
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Callable, List, Optional

from django.conf import settings

from apps.core.errors import AuditLoggingError
from .audit_service import AuditService

logger = logging.getLogger(__name__)


@dataclass
class AuditEvent:
    entity_type: str
    entity_id: str
    action_type: str
    user_id: Optional[str] = None
    user_name: str = ""
    field_name: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    status_from: Optional[str] = None
    status_to: Optional[str] = None
    comments: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = "pending"  # "pending", "delivered", "failed"
    retry_count: int = 0
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    delivered_at: Optional[datetime] = None

    def payload(self) -> dict:
        """Arguments for AuditService.log_change"""
        data = asdict(self)
        for bookkeeping in ("id", "status", "retry_count", "error_message", "created_at", "delivered_at"):
            data.pop(bookkeeping)
        return data


def write_event(event: AuditEvent):
    AuditService.log_change(**event.payload())


class AuditOutbox:
    def __init__(self, writer: Callable[[AuditEvent], None] = None, max_retries: int = None):
        self._writer = writer or write_event
        self.max_retries = max_retries if max_retries is not None else settings.AUDIT_OUTBOX_MAX_RETRIES
        self._queue: List[AuditEvent] = []
        self.failed: List[AuditEvent] = []

    @property
    def pending(self) -> List[AuditEvent]:
        return list(self._queue)

    def emit(self, events: List[AuditEvent]) -> List[AuditEvent]:
        self._queue.extend(events)
        return events

    def flush(self) -> List[AuditEvent]:
        """
        Deliver every queued event in order

        Returns:
            events delivered in this round

        Raises:
            AuditLoggingError: when at least one event failed this round
        """
        delivered, failures = [], []

        for event in list(self._queue):
            try:
                self._writer(event)
            except Exception as e:
                event.retry_count += 1
                event.error_message = str(e)
                failures.append(event)

                if event.retry_count >= self.max_retries:
                    event.status = "failed"
                    self._queue.remove(event)
                    self.failed.append(event)
                    logger.error(f"Audit event {event.id} dropped after {event.retry_count} attempts: {event.error_message}")
                else:
                    logger.warning(f"Audit event {event.id} failed (attempt {event.retry_count}): {event.error_message}")
                continue

            event.status = "delivered"
            event.delivered_at = datetime.now(timezone.utc)
            self._queue.remove(event)
            delivered.append(event)

        if delivered:
            logger.info(f"Delivered {len(delivered)} audit event(s)")

        if failures:
            raise AuditLoggingError(
                f"{len(failures)} audit event(s) could not be written",
                details={"events": [event.id for event in failures]},
            )

        return delivered

import json
import logging
from typing import Iterable, List, Optional

from apps.core.errors import AuditLoggingError
from apps.core.notifications import Notifier
from .audit_service import actor_for
from .outbox import AuditEvent, AuditOutbox

logger = logging.getLogger(__name__)

STATUS_ACTIONS = {
    "pending_approval": "submit",
    "in_review": "submit",
    "approved": "approve",
    "rejected": "reject",
    "draft": "unlock",
}


def render_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def canonical_json(value) -> str:
    return json.dumps(value or [], sort_keys=True, default=str)


def status_action(to_status: str) -> str:
    return STATUS_ACTIONS.get(to_status, "status_change")


class DiffLogger:
    """
    Field-level audit of updates

    Compares an explicit allow-list of fields with strict inequality and emits
    one audit event per changed field; composite fields are compared as one
    JSON unit. Logging is best effort: failures become a warning and never
    undo the mutation that was already saved.
    """

    def __init__(
        self,
        entity_type: str,
        tracked_fields: Iterable[str],
        composite_fields: Iterable[str] = (),
        outbox: AuditOutbox = None,
        notifier: Notifier = None,
    ):
        self.entity_type = entity_type
        self.tracked_fields = tuple(tracked_fields)
        self.composite_fields = tuple(composite_fields)
        self.outbox = outbox or AuditOutbox()
        self.notifier = notifier

    def _event(self, entity_id, action_type: str, user, **fields) -> AuditEvent:
        user_id, user_name = actor_for(user)
        return AuditEvent(
            entity_type=self.entity_type,
            entity_id=str(entity_id),
            action_type=action_type,
            user_id=user_id,
            user_name=user_name,
            **fields,
        )

    def build_field_events(self, entity_id, original: dict, updated: dict, action_type: str = "edit", user=None) -> List[AuditEvent]:
        original = original or {}
        events = []

        for field_name in self.tracked_fields:
            # fields the update did not carry are unchanged
            if field_name not in updated:
                continue

            old_value, new_value = original.get(field_name), updated.get(field_name)
            if old_value != new_value:
                old_text, new_text = render_value(old_value), render_value(new_value)
                events.append(
                    self._event(
                        entity_id,
                        action_type,
                        user,
                        field_name=field_name,
                        old_value=old_text,
                        new_value=new_text,
                        comments=f'Field "{field_name}" changed from "{old_text or "empty"}" to "{new_text or "empty"}"',
                    )
                )

        for field_name in self.composite_fields:
            if field_name not in updated:
                continue

            old_json, new_json = canonical_json(original.get(field_name)), canonical_json(updated.get(field_name))
            if old_json != new_json:
                label = field_name.replace("_", " ").capitalize()
                events.append(
                    self._event(
                        entity_id,
                        action_type,
                        user,
                        field_name=field_name,
                        old_value=old_json,
                        new_value=new_json,
                        comments=f"{label} updated",
                    )
                )

        return events

    def _deliver(self, entity_id, events: List[AuditEvent]) -> List[AuditEvent]:
        if not events:
            return events

        try:
            self.outbox.emit(events)
            self.outbox.flush()
            logger.info(f"Logged {len(events)} change(s) for {self.entity_type} {entity_id}")
        except AuditLoggingError as e:
            logger.warning(f"Audit logging failed for {self.entity_type} {entity_id}: {e.message}")
            if self.notifier:
                self.notifier.warning("Changes were saved but audit logging failed", title="Audit Logging Warning")
        return events

    def log_field_changes(self, entity_id, original: dict, updated: dict, action_type: str = "edit", user=None) -> List[AuditEvent]:
        return self._deliver(entity_id, self.build_field_events(entity_id, original, updated, action_type, user))

    def log_status_change(self, entity_id, from_status: str, to_status: str, user=None, comments: Optional[str] = None) -> List[AuditEvent]:
        event = self._event(
            entity_id,
            status_action(to_status),
            user,
            status_from=from_status,
            status_to=to_status,
            comments=comments or f"Status changed from {from_status} to {to_status}",
        )
        return self._deliver(entity_id, [event])

    def log_action(self, entity_id, action_type: str, user=None, comments: str = None, metadata: dict = None) -> List[AuditEvent]:
        """Lifecycle entries without a field diff: create, email_sent, file_upload..."""
        event = self._event(entity_id, action_type, user, comments=comments, metadata=metadata or {})
        return self._deliver(entity_id, [event])

import logging
from typing import List, Optional, Tuple

from django.db import DatabaseError

from apps.core.errors import AuditLoggingError, RemoteError
from ..models import AuditEntry

logger = logging.getLogger(__name__)

VALID_ACTION_TYPES = {choice for choice, _ in AuditEntry.ACTION_TYPES}


def actor_for(user) -> Tuple[Optional[str], str]:
    """(user_id, user_name) for a Django user or a UserSession"""
    if user is None:
        return None, "System"
    if hasattr(user, "user_id"):
        return user.user_id, user.user_name
    full_name = f"{getattr(user, 'first_name', '')} {getattr(user, 'last_name', '')}".strip()
    return str(user.pk), full_name or getattr(user, "email", "") or "Unknown"


def normalize_entry(entry: AuditEntry) -> dict:
    """Audit row as a plain dict; unknown action types read back as "edit" """
    action_type = entry.action_type if entry.action_type in VALID_ACTION_TYPES else "edit"

    return {
        "id": str(entry.id),
        "entity_type": entry.entity_type,
        "entity_id": str(entry.entity_id),
        "user_id": str(entry.user_id) if entry.user_id else None,
        "user_name": entry.user_name,
        "action_type": action_type,
        "field_name": entry.field_name,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "status_from": entry.status_from,
        "status_to": entry.status_to,
        "comments": entry.comments,
        "metadata": entry.metadata or {},
        "timestamp": entry.timestamp.isoformat(),
    }


class AuditService:
    """
    Append and read change history
    The only writer of AuditEntry rows
    """

    @staticmethod
    def log_change(
        entity_type: str,
        entity_id: str,
        action_type: str,
        user_id: str = None,
        user_name: str = "",
        field_name: str = None,
        old_value: str = None,
        new_value: str = None,
        status_from: str = None,
        status_to: str = None,
        comments: str = None,
        metadata: dict = None,
    ) -> AuditEntry:
        """
        Append one audit entry

        Raises:
            AuditLoggingError: if the entry could not be written
        """
        try:
            entry = AuditEntry.objects.create(
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                user_name=user_name or "",
                action_type=action_type,
                field_name=field_name,
                old_value=old_value,
                new_value=new_value,
                status_from=status_from,
                status_to=status_to,
                comments=comments,
                metadata=metadata or {},
            )
        except DatabaseError as e:
            logger.error(f"Failed to log {action_type} for {entity_type} {entity_id}: {str(e)}")
            raise AuditLoggingError(f"Failed to log {action_type} for {entity_type} {entity_id}", details={"reason": str(e)}) from e

        logger.info(f"Logged {action_type} for {entity_type} {entity_id}" + (f" field {field_name}" if field_name else ""))
        return entry

    @staticmethod
    def get_history(entity_type: str, entity_id: str) -> List[dict]:
        """Change history of one entity, newest first"""
        try:
            entries = AuditEntry.objects.filter(entity_type=entity_type, entity_id=entity_id).order_by("-timestamp")
            return [normalize_entry(entry) for entry in entries]
        except DatabaseError as e:
            logger.error(f"Failed to fetch audit history for {entity_type} {entity_id}: {str(e)}")
            raise RemoteError("Failed to load audit trail", "FETCH_ERROR", details={"reason": str(e)}) from e

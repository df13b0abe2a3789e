from django.db import transaction
from django.utils import timezone
import logging

from apps.audit.services import DiffLogger
from apps.core.errors import ConflictError, InputValidationError
from apps.core.store import RemoteStoreAdapter, remote_call
from ..models import QAInspection
from ..serializers import CreateQAInspectionSerializer, QAInspectionSerializer, UpdateQAInspectionSerializer

logger = logging.getLogger(__name__)

ENTITY_TYPE = "qa_inspection"

TRACKED_FIELDS = ("title", "trade", "location", "comments")

COMPOSITE_FIELDS = ("checklist",)

STATUS_TRANSITIONS = {
    "draft": {"in_review"},
    "in_review": {"approved", "rejected", "draft"},
    "rejected": {"draft"},
    "approved": {"draft"},
}


def inspection_diff_logger(outbox=None, notifier=None) -> DiffLogger:
    return DiffLogger(ENTITY_TYPE, TRACKED_FIELDS, COMPOSITE_FIELDS, outbox=outbox, notifier=notifier)


class InspectionService(RemoteStoreAdapter):
    """
    Service layer for QA inspection operations
    Handles creation, updates, conflict detection, and approval workflows
    """

    model = QAInspection
    serializer_class = QAInspectionSerializer
    create_serializer_class = CreateQAInspectionSerializer
    update_serializer_class = UpdateQAInspectionSerializer
    cache_namespace = "qa_inspections"
    sequence_field = "inspection_number"
    sequence_prefix = "QA"
    entity_label = "QA inspection"

    def __init__(self, cache_backend=None, cache_ttl=None, audit_logger: DiffLogger = None):
        super().__init__(cache_backend=cache_backend, cache_ttl=cache_ttl)
        self.audit_logger = audit_logger or inspection_diff_logger()

    def creation_stamps(self, user_id) -> dict:
        return {"inspector_id": user_id}

    def after_create(self, instance, user):
        self.audit_logger.log_action(instance.pk, "create", user=user, comments=f"QA inspection {instance.inspection_number} created")

    def fetch_inspections(self, project_id, force_refresh: bool = False):
        return self.fetch(project_id, force_refresh=force_refresh)

    def create_inspection(self, project_id, data: dict, user) -> dict:
        return self.create(project_id, data, user)

    def update_inspection(self, inspection_id, data: dict, user, client_version: int = None) -> dict:
        """
        Update an existing inspection with optimistic locking

        Args:
            inspection_id: UUID of inspection to update
            data: Dict containing fields to update
            user: acting user
            client_version: Version number from client (for conflict detection)

        Returns:
            the updated inspection record, version incremented

        Raises:
            ConflictError: If version mismatch detected
            InputValidationError: invalid data or status transition
            RemoteError: NOT_FOUND, UPDATE_ERROR
        """
        user_id = self.user_id_for(user)
        if not user_id:
            raise InputValidationError("User ID is required", "MISSING_USER_ID")

        logger.info(f"Updating QA inspection {inspection_id}; client_version {client_version}")

        with remote_call("UPDATE_ERROR", "Failed to update QA inspection"):
            with transaction.atomic():
                # lock the row for update
                inspection = self.get_instance(inspection_id, for_update=True)

                # check version for conflicts
                if client_version is not None and inspection.version != client_version:
                    logger.warning(f"Conflict detected on QA inspection {inspection_id}: client v{client_version} vs server v{inspection.version}")
                    raise ConflictError(record=self.to_record(inspection), client_version=client_version, server_version=inspection.version)

                serializer = self._validated(self.update_serializer_class, data or {}, instance=inspection)

                from_status = inspection.status
                to_status = serializer.validated_data.get("status", from_status)
                stamps = {}

                if to_status != from_status:
                    if to_status not in STATUS_TRANSITIONS[from_status]:
                        raise InputValidationError(f"Cannot move QA inspection from {from_status} to {to_status}", "INVALID_TRANSITION")

                    now = timezone.now()
                    if to_status == "in_review":
                        stamps["submitted_at"] = now
                        logger.info(f"QA inspection {inspection_id} submitted.")
                    elif to_status == "approved":
                        stamps.update(approved_by_id=user_id, approved_at=now)
                    elif to_status == "draft":
                        stamps.update(approved_by_id=None, approved_at=None)

                inspection = serializer.save(updated_by_id=user_id, version=inspection.version + 1, **stamps)

        self.invalidate(inspection.project_id)
        logger.info(f"Updated QA inspection {inspection_id} to version {inspection.version}")

        if to_status != from_status:
            self.audit_logger.log_status_change(inspection.pk, from_status, to_status, user=user)

        return self.to_record(inspection)

    def submit(self, inspection_id, user, client_version: int = None) -> dict:
        """Send a draft inspection for review"""
        return self.update_inspection(inspection_id, {"status": "in_review"}, user, client_version=client_version)

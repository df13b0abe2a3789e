import logging
from decimal import Decimal
from typing import List

from django.db import transaction
from django.utils import timezone

from apps.audit.services import DiffLogger, actor_for
from apps.core.errors import InputValidationError
from apps.core.store import RemoteStoreAdapter, remote_call
from ..models import Variation
from ..serializers import CreateVariationSerializer, UpdateVariationSerializer, VariationSerializer, form_to_fields
from .email_service import VariationEmailService

logger = logging.getLogger(__name__)

ENTITY_TYPE = "variation"

TRACKED_FIELDS = (
    "title",
    "description",
    "location",
    "cost_impact",
    "time_impact",
    "category",
    "priority",
    "client_email",
    "justification",
    "trade",
    "gst_amount",
    "total_amount",
    "requires_eot",
    "requires_nod",
)

COMPOSITE_FIELDS = ("cost_breakdown",)

# approved -> draft is the unlock path for correcting an approved variation
STATUS_TRANSITIONS = {
    "draft": {"pending_approval"},
    "pending_approval": {"approved", "rejected", "draft"},
    "rejected": {"draft"},
    "approved": {"draft"},
}


def variation_diff_logger(outbox=None, notifier=None) -> DiffLogger:
    return DiffLogger(ENTITY_TYPE, TRACKED_FIELDS, COMPOSITE_FIELDS, outbox=outbox, notifier=notifier)


class VariationService(RemoteStoreAdapter):
    """
    Store adapter for variations (change orders)
    Handles numbering, the approval workflow and client emails
    """

    model = Variation
    serializer_class = VariationSerializer
    create_serializer_class = CreateVariationSerializer
    update_serializer_class = UpdateVariationSerializer
    cache_namespace = "variations"
    sequence_field = "variation_number"
    sequence_prefix = "VAR"
    entity_label = "variation"

    def __init__(self, cache_backend=None, cache_ttl=None, audit_logger: DiffLogger = None):
        super().__init__(cache_backend=cache_backend, cache_ttl=cache_ttl)
        self.audit_logger = audit_logger or variation_diff_logger()

    def build_create_fields(self, form_data: dict, user_id) -> dict:
        return form_to_fields(form_data)

    def creation_stamps(self, user_id) -> dict:
        return {"requested_by_id": user_id, "request_date": timezone.localdate()}

    def after_create(self, instance, user):
        self.audit_logger.log_action(instance.pk, "create", user=user, comments=f"Variation {instance.variation_number} created")

    # --- Reads ---

    def fetch_variations(self, project_id, force_refresh: bool = False) -> List[dict]:
        return self.fetch(project_id, force_refresh=force_refresh)

    # --- Writes ---

    def create_variation(self, project_id, form_data: dict, user) -> dict:
        """
        Create a draft variation with the next VAR-### number

        Args:
            project_id: scope id
            form_data: submitted form (camelCase or snake_case keys)
            user: creating user (Django user or UserSession)

        Returns:
            the created variation record
        """
        return self.create(project_id, form_data, user)

    def update_variation(self, variation_id, updates: dict, user) -> dict:
        """Partial update of business fields; field diffs are logged by the caller"""
        return self.update(variation_id, updates, user)

    def delete_variation(self, variation_id, user) -> dict:
        return self.delete(variation_id, user)

    def change_status(self, variation_id, to_status: str, user, comments: str = None) -> dict:
        """
        Move a variation through the approval workflow

        Args:
            variation_id: UUID of the variation
            to_status: target status
            user: acting user
            comments: approval / rejection comments

        Returns:
            the updated variation record

        Raises:
            InputValidationError: unknown status or transition not allowed (INVALID_TRANSITION)
            RemoteError: NOT_FOUND, UPDATE_ERROR
        """
        user_id = self.user_id_for(user)
        if not user_id:
            raise InputValidationError("User ID is required", "MISSING_USER_ID")

        if to_status not in STATUS_TRANSITIONS:
            raise InputValidationError(f"Unknown status {to_status}", "INVALID_STATUS")

        with remote_call("UPDATE_ERROR", "Failed to update variation status"):
            with transaction.atomic():
                variation = self.get_instance(variation_id, for_update=True)

                from_status = variation.status
                if to_status not in STATUS_TRANSITIONS[from_status]:
                    raise InputValidationError(f"Cannot move variation from {from_status} to {to_status}", "INVALID_TRANSITION")

                now = timezone.now()
                if to_status in ("approved", "rejected"):
                    variation.approved_by_id = user_id
                    variation.approval_date = now
                    variation.approval_comments = comments or ""
                elif to_status == "draft":
                    variation.approved_by_id = None
                    variation.approval_date = None

                variation.status = to_status
                variation.updated_by_id = user_id
                variation.save()

        self.invalidate(variation.project_id)
        logger.info(f"Variation {variation.variation_number} moved from {from_status} to {to_status}")

        self.audit_logger.log_status_change(variation.pk, from_status, to_status, user=user, comments=comments)
        return self.to_record(variation)

    def send_email(self, variation_id, user) -> dict:
        """
        Email the variation to its client and record the send

        Raises:
            InputValidationError: MISSING_CLIENT_EMAIL, before the email call
            RemoteError: NOT_FOUND, EMAIL_SEND_ERROR, UPDATE_ERROR
        """
        user_id = self.user_id_for(user)
        if not user_id:
            raise InputValidationError("User ID is required", "MISSING_USER_ID")

        record = self.get(variation_id)
        VariationEmailService.validate_recipient(record)

        _, sender_name = actor_for(user)
        recipient = VariationEmailService.send_variation_email(record, sender_name=sender_name)

        with remote_call("UPDATE_ERROR", "Failed to record variation email"):
            now = timezone.now()
            self.model.objects.filter(pk=variation_id).update(
                email_sent=True,
                email_sent_date=now,
                email_sent_by_id=user_id,
                updated_by_id=user_id,
                updated_at=now,
            )

        self.invalidate(record["project_id"])
        self.audit_logger.log_action(variation_id, "email_sent", user=user, comments=f"Variation email sent to {recipient}")
        return self.get(variation_id)

    # --- Summary ---

    @staticmethod
    def summarize(variations: List[dict]) -> dict:
        """Counts per status, total cost impact and average time impact"""
        summary = {
            "total": 0,
            "draft": 0,
            "pending_approval": 0,
            "approved": 0,
            "rejected": 0,
            "total_cost_impact": Decimal("0"),
            "average_time_impact": 0.0,
        }

        total_days = 0
        for variation in variations:
            summary["total"] += 1
            if variation.get("status") in summary:
                summary[variation["status"]] += 1
            summary["total_cost_impact"] += Decimal(str(variation.get("cost_impact") or 0))
            total_days += int(variation.get("time_impact") or 0)

        if summary["total"]:
            summary["average_time_impact"] = round(total_days / summary["total"], 1)

        return summary

import uuid
from django.db import models
from django.conf import settings
from django.utils import timezone


class AuditEntry(models.Model):
    """
    Append-only change history of an entity

    One row per changed field per mutation, plus structural and lifecycle
    entries (create, status changes, emails, attachments). Rows are never
    updated or deleted through the ORM instance API.
    """

    ACTION_TYPES = [
        ("create", "Create"),
        ("edit", "Edit"),
        ("status_change", "Status change"),
        ("submit", "Submit"),
        ("approve", "Approve"),
        ("reject", "Reject"),
        ("unlock", "Unlock"),
        ("email_sent", "Email sent"),
        ("file_upload", "File upload"),
        ("file_delete", "File delete"),
        ("file_update", "File update"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    entity_type = models.CharField(max_length=50)  # "variation", "qa_inspection"
    entity_id = models.UUIDField()
    user = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, related_name="audit_entries", on_delete=models.SET_NULL)
    user_name = models.CharField(max_length=255, blank=True)  # denormalized at write time
    action_type = models.CharField(max_length=30, choices=ACTION_TYPES)

    field_name = models.CharField(max_length=100, null=True, blank=True)
    old_value = models.TextField(null=True, blank=True)
    new_value = models.TextField(null=True, blank=True)
    status_from = models.CharField(max_length=30, null=True, blank=True)
    status_to = models.CharField(max_length=30, null=True, blank=True)
    comments = models.TextField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "audit_entries"
        ordering = ["-timestamp"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="audit_entity_idx"),
            models.Index(fields=["timestamp"], name="audit_timestamp_idx"),
        ]

    def __str__(self):
        return f"{self.action_type} on {self.entity_type} {self.entity_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Audit entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Audit entries cannot be deleted")

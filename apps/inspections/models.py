import uuid
from django.db import models
from django.contrib.auth import get_user_model

User = get_user_model()


class QAInspection(models.Model):
    STATUS_CHOICES = (
        ("draft", "Draft"),
        ("in_review", "In Review"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    project_id = models.UUIDField(db_index=True)  # scope id
    inspection_number = models.CharField(max_length=20)  # QA-001
    title = models.CharField(max_length=255)
    trade = models.CharField(max_length=100, blank=True, default="")
    location = models.CharField(max_length=255, blank=True, default="")
    inspector = models.ForeignKey(User, null=True, blank=True, related_name="qa_inspections", on_delete=models.SET_NULL)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="draft")
    checklist = models.JSONField(default=list, blank=True)  # [{id, description, result, comments}]
    comments = models.TextField(blank=True, default="")
    version = models.IntegerField(default=1)  # for optimistic locking

    # approval workflow
    submitted_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(User, null=True, blank=True, related_name="approved_qa_inspections", on_delete=models.SET_NULL)
    approved_at = models.DateTimeField(null=True, blank=True)

    # timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(User, null=True, blank=True, related_name="updated_qa_inspections", on_delete=models.SET_NULL)

    class Meta:
        db_table = "qa_inspections"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["project_id", "inspection_number"], name="unique_inspection_number_per_project"),
        ]
        indexes = [
            models.Index(fields=["project_id", "status"], name="qa_project_status_idx"),
        ]

    def __str__(self):
        return f"{self.inspection_number} {self.title}"

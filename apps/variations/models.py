import uuid
from django.db import models
from django.contrib.auth import get_user_model

User = get_user_model()


class Variation(models.Model):
    STATUS_CHOICES = (
        ("draft", "Draft"),
        ("pending_approval", "Pending Approval"),
        ("approved", "Approved"),
        ("rejected", "Rejected"),
    )

    CATEGORY_CHOICES = (
        ("design_change", "Design Change"),
        ("site_condition", "Site Condition"),
        ("client_request", "Client Request"),
        ("regulatory", "Regulatory"),
        ("other", "Other"),
    )

    PRIORITY_CHOICES = (
        ("high", "High"),
        ("medium", "Medium"),
        ("low", "Low"),
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    project_id = models.UUIDField(db_index=True)  # scope id
    variation_number = models.CharField(max_length=20)  # VAR-001
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    location = models.CharField(max_length=255, blank=True, default="")
    requested_by = models.ForeignKey(User, null=True, blank=True, related_name="requested_variations", on_delete=models.SET_NULL)
    request_date = models.DateField(null=True, blank=True)

    cost_impact = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    time_impact = models.IntegerField(default=0)  # days
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="draft")
    category = models.CharField(max_length=30, choices=CATEGORY_CHOICES, blank=True, default="")
    trade = models.CharField(max_length=100, blank=True, default="")
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default="medium")
    client_email = models.EmailField(blank=True, default="")
    justification = models.TextField(blank=True, default="")

    # approval workflow
    approved_by = models.ForeignKey(User, null=True, blank=True, related_name="approved_variations", on_delete=models.SET_NULL)
    approval_date = models.DateTimeField(null=True, blank=True)
    approval_comments = models.TextField(blank=True, default="")

    # email bookkeeping; does not confirm delivery
    email_sent = models.BooleanField(default=False)
    email_sent_date = models.DateTimeField(null=True, blank=True)
    email_sent_by = models.ForeignKey(User, null=True, blank=True, related_name="sent_variation_emails", on_delete=models.SET_NULL)

    # cost and time detail
    cost_breakdown = models.JSONField(default=list, blank=True)  # [{id, description, quantity, rate, subtotal}]
    time_impact_details = models.JSONField(default=dict, blank=True)
    gst_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=14, decimal_places=2, default=0)
    requires_eot = models.BooleanField(default=False)
    requires_nod = models.BooleanField(default=False)
    eot_days = models.IntegerField(default=0)
    nod_days = models.IntegerField(default=0)

    # cross-module links
    linked_milestones = models.JSONField(default=list, blank=True)
    linked_tasks = models.JSONField(default=list, blank=True)
    linked_qa_items = models.JSONField(default=list, blank=True)
    originating_rfi_id = models.UUIDField(null=True, blank=True)

    # timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    updated_by = models.ForeignKey(User, null=True, blank=True, related_name="updated_variations", on_delete=models.SET_NULL)

    class Meta:
        db_table = "variations"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["project_id", "variation_number"], name="unique_variation_number_per_project"),
        ]
        indexes = [
            models.Index(fields=["project_id", "status"], name="variation_project_status_idx"),
        ]

    def __str__(self):
        return f"{self.variation_number} {self.title}"


class VariationAttachment(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    variation = models.ForeignKey(Variation, related_name="attachments", on_delete=models.CASCADE)
    file_name = models.CharField(max_length=255)
    file_path = models.CharField(max_length=500)  # {variation_id}/attachments/{ts}-{rand}.{ext}
    file_size = models.IntegerField()  # bytes
    file_type = models.CharField(max_length=100, blank=True, default="")
    public_url = models.URLField(max_length=1000)
    uploaded_by = models.ForeignKey(User, null=True, blank=True, related_name="variation_attachments", on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "variation_attachments"
        ordering = ["-created_at"]

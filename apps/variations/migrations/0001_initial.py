import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Variation",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("project_id", models.UUIDField(db_index=True)),
                ("variation_number", models.CharField(max_length=20)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("location", models.CharField(blank=True, default="", max_length=255)),
                ("request_date", models.DateField(blank=True, null=True)),
                ("cost_impact", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("time_impact", models.IntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("pending_approval", "Pending Approval"), ("approved", "Approved"), ("rejected", "Rejected")],
                        default="draft",
                        max_length=20,
                    ),
                ),
                (
                    "category",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("design_change", "Design Change"),
                            ("site_condition", "Site Condition"),
                            ("client_request", "Client Request"),
                            ("regulatory", "Regulatory"),
                            ("other", "Other"),
                        ],
                        default="",
                        max_length=30,
                    ),
                ),
                ("trade", models.CharField(blank=True, default="", max_length=100)),
                ("priority", models.CharField(choices=[("high", "High"), ("medium", "Medium"), ("low", "Low")], default="medium", max_length=10)),
                ("client_email", models.EmailField(blank=True, default="", max_length=254)),
                ("justification", models.TextField(blank=True, default="")),
                ("approval_date", models.DateTimeField(blank=True, null=True)),
                ("approval_comments", models.TextField(blank=True, default="")),
                ("email_sent", models.BooleanField(default=False)),
                ("email_sent_date", models.DateTimeField(blank=True, null=True)),
                ("cost_breakdown", models.JSONField(blank=True, default=list)),
                ("time_impact_details", models.JSONField(blank=True, default=dict)),
                ("gst_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("total_amount", models.DecimalField(decimal_places=2, default=0, max_digits=14)),
                ("requires_eot", models.BooleanField(default=False)),
                ("requires_nod", models.BooleanField(default=False)),
                ("eot_days", models.IntegerField(default=0)),
                ("nod_days", models.IntegerField(default=0)),
                ("linked_milestones", models.JSONField(blank=True, default=list)),
                ("linked_tasks", models.JSONField(blank=True, default=list)),
                ("linked_qa_items", models.JSONField(blank=True, default=list)),
                ("originating_rfi_id", models.UUIDField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="approved_variations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "email_sent_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="sent_variation_emails",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="requested_variations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="updated_variations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "variations",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("project_id", "variation_number"), name="unique_variation_number_per_project"),
                ],
                "indexes": [
                    models.Index(fields=["project_id", "status"], name="variation_project_status_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="VariationAttachment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("file_name", models.CharField(max_length=255)),
                ("file_path", models.CharField(max_length=500)),
                ("file_size", models.IntegerField()),
                ("file_type", models.CharField(blank=True, default="", max_length=100)),
                ("public_url", models.URLField(max_length=1000)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "uploaded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="variation_attachments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "variation",
                    models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="attachments", to="variations.variation"),
                ),
            ],
            options={
                "db_table": "variation_attachments",
                "ordering": ["-created_at"],
            },
        ),
    ]

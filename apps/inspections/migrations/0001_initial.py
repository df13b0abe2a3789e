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
            name="QAInspection",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("project_id", models.UUIDField(db_index=True)),
                ("inspection_number", models.CharField(max_length=20)),
                ("title", models.CharField(max_length=255)),
                ("trade", models.CharField(blank=True, default="", max_length=100)),
                ("location", models.CharField(blank=True, default="", max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("in_review", "In Review"), ("approved", "Approved"), ("rejected", "Rejected")],
                        default="draft",
                        max_length=20,
                    ),
                ),
                ("checklist", models.JSONField(blank=True, default=list)),
                ("comments", models.TextField(blank=True, default="")),
                ("version", models.IntegerField(default=1)),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "approved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="approved_qa_inspections",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "inspector",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="qa_inspections",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="updated_qa_inspections",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "qa_inspections",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("project_id", "inspection_number"), name="unique_inspection_number_per_project"),
                ],
                "indexes": [
                    models.Index(fields=["project_id", "status"], name="qa_project_status_idx"),
                ],
            },
        ),
    ]

from rest_framework import serializers
from .models import QAInspection

EDITABLE_FIELDS = ["title", "trade", "location", "checklist", "comments"]


class QAInspectionSerializer(serializers.ModelSerializer):
    """Full QA inspection record"""

    inspector = serializers.CharField(source="inspector_id", read_only=True)
    approved_by = serializers.CharField(source="approved_by_id", read_only=True)
    updated_by = serializers.CharField(source="updated_by_id", read_only=True)

    class Meta:
        model = QAInspection
        fields = [
            "id",
            "project_id",
            "inspection_number",
            *EDITABLE_FIELDS,
            "inspector",
            "status",
            "version",
            "submitted_at",
            "approved_by",
            "approved_at",
            "created_at",
            "updated_at",
            "updated_by",
        ]
        read_only_fields = fields


class CreateQAInspectionSerializer(serializers.ModelSerializer):
    """Create inspection; project, number and inspector are set by the service"""

    class Meta:
        model = QAInspection
        fields = EDITABLE_FIELDS

    def validate_checklist(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Checklist must be a list.")
        return value


class UpdateQAInspectionSerializer(CreateQAInspectionSerializer):
    """Update inspection; the version check happens in the service"""

    class Meta:
        model = QAInspection
        fields = [*EDITABLE_FIELDS, "status"]

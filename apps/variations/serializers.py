from decimal import Decimal, InvalidOperation

from rest_framework import serializers
from .models import Variation, VariationAttachment

EDITABLE_FIELDS = [
    "title",
    "description",
    "location",
    "request_date",
    "cost_impact",
    "time_impact",
    "category",
    "trade",
    "priority",
    "client_email",
    "justification",
    "cost_breakdown",
    "time_impact_details",
    "gst_amount",
    "total_amount",
    "requires_eot",
    "requires_nod",
    "eot_days",
    "nod_days",
    "linked_milestones",
    "linked_tasks",
    "linked_qa_items",
    "originating_rfi_id",
]


def _number(value, cast=float):
    try:
        if cast is Decimal:
            return Decimal(str(value or 0)).quantize(Decimal("0.01"))
        if cast is int:
            return int(float(value or 0))
        return cast(value or 0)
    except (TypeError, ValueError, InvalidOperation):
        return cast(0)


def normalize_cost_breakdown(items) -> list:
    """Coerce cost breakdown rows to {id, description, quantity, rate, subtotal}"""
    if not isinstance(items, list):
        return []

    rows = []
    for item in items:
        item = item if isinstance(item, dict) else {}
        rows.append(
            {
                "id": str(item.get("id") or ""),
                "description": item.get("description") or "",
                "quantity": _number(item.get("quantity")),
                "rate": _number(item.get("rate")),
                "subtotal": _number(item.get("subtotal")),
            }
        )
    return rows


class VariationAttachmentSerializer(serializers.ModelSerializer):
    uploaded_by = serializers.CharField(source="uploaded_by_id", read_only=True)

    class Meta:
        model = VariationAttachment
        fields = ["id", "variation", "file_name", "file_path", "file_size", "file_type", "public_url", "uploaded_by", "created_at"]
        read_only_fields = fields


class VariationSerializer(serializers.ModelSerializer):
    """Full variation record as served to clients and cached by the store adapter"""

    requested_by = serializers.CharField(source="requested_by_id", read_only=True)
    approved_by = serializers.CharField(source="approved_by_id", read_only=True)
    email_sent_by = serializers.CharField(source="email_sent_by_id", read_only=True)
    updated_by = serializers.CharField(source="updated_by_id", read_only=True)

    class Meta:
        model = Variation
        fields = [
            "id",
            "project_id",
            "variation_number",
            *EDITABLE_FIELDS,
            "requested_by",
            "status",
            "approved_by",
            "approval_date",
            "approval_comments",
            "email_sent",
            "email_sent_date",
            "email_sent_by",
            "created_at",
            "updated_at",
            "updated_by",
        ]
        read_only_fields = fields


class CreateVariationSerializer(serializers.ModelSerializer):
    """Create variation; project, number and requester are set by the service"""

    class Meta:
        model = Variation
        fields = EDITABLE_FIELDS

    def validate_title(self, value):
        if not value.strip():
            raise serializers.ValidationError("Title is required.")
        return value.strip()

    def validate_cost_breakdown(self, value):
        return normalize_cost_breakdown(value)

    def validate_total_amount(self, value):
        if value < 0:
            raise serializers.ValidationError("Total amount cannot be negative.")
        return value

    def validate(self, attrs):
        if self.instance is None and not (attrs.get("description") or "").strip():
            raise serializers.ValidationError({"description": "Description is required."})
        return attrs


class UpdateVariationSerializer(CreateVariationSerializer):
    """Partial update of business fields; status and email bookkeeping have their own actions"""


class VariationStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[choice for choice, _ in Variation.STATUS_CHOICES])
    comments = serializers.CharField(required=False, allow_blank=True, default="")


def form_to_fields(form_data: dict) -> dict:
    """
    Map submitted form data onto model fields

    Accepts the form's camelCase keys (costImpact, timeImpact, clientEmail)
    alongside the snake_case column names.
    """
    fields = {key: form_data[key] for key in EDITABLE_FIELDS if key in form_data}

    cost_impact = _number(form_data.get("costImpact", form_data.get("cost_impact")), Decimal)
    fields["cost_impact"] = cost_impact or _number(form_data.get("total_amount"), Decimal)
    fields["time_impact"] = _number(form_data.get("timeImpact", form_data.get("time_impact")), int)

    if "clientEmail" in form_data:
        fields["client_email"] = form_data["clientEmail"] or ""

    fields.setdefault("priority", "medium")
    fields["cost_breakdown"] = form_data.get("cost_breakdown") or []
    fields["time_impact_details"] = form_data.get("time_impact_details") or {"requiresNoticeOfDelay": False, "requiresExtensionOfTime": False}
    return fields

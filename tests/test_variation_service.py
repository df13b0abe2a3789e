from decimal import Decimal

import pytest
from django.core import mail

from apps.audit.models import AuditEntry
from apps.core.errors import InputValidationError, RemoteError
from apps.variations.models import Variation
from apps.variations.serializers import form_to_fields, normalize_cost_breakdown
from apps.variations.services import VariationService

pytestmark = pytest.mark.django_db


@pytest.fixture
def service():
    return VariationService()


def _form(**overrides):
    form = {
        "title": "Additional slab penetration",
        "description": "Client requested an extra riser penetration on level 2",
        "costImpact": "1250.50",
        "timeImpact": "3",
        "clientEmail": "client@example.com",
        "category": "client_request",
    }
    form.update(overrides)
    return form


def test_create_assigns_sequential_numbers(service, project_id, manager):
    first = service.create_variation(project_id, _form(), manager)
    second = service.create_variation(project_id, _form(title="Second"), manager)

    assert first["variation_number"] == "VAR-001"
    assert second["variation_number"] == "VAR-002"
    assert first["status"] == "draft"
    assert first["requested_by"] == str(manager.pk)
    assert first["cost_impact"] == Decimal("1250.50")
    assert first["time_impact"] == 3
    assert first["client_email"] == "client@example.com"


def test_numbers_are_scoped_per_project(service, project_id, manager):
    Variation.objects.create(project_id=project_id, variation_number="VAR-007", title="Legacy")
    other = service.create_variation("6a0c7f0e-2222-4b4b-8888-000000000002", _form(), manager)
    mine = service.create_variation(project_id, _form(), manager)

    assert other["variation_number"] == "VAR-001"
    assert mine["variation_number"] == "VAR-008"


def test_create_logs_a_create_entry(service, project_id, manager):
    record = service.create_variation(project_id, _form(), manager)

    entry = AuditEntry.objects.get(entity_id=record["id"])
    assert entry.action_type == "create"
    assert entry.comments == "Variation VAR-001 created"
    assert entry.user_name == "Pat Manager"


def test_create_requires_project_and_user(service, manager):
    with pytest.raises(InputValidationError) as exc_info:
        service.create_variation(None, _form(), manager)
    assert exc_info.value.code == "MISSING_REQUIRED_FIELDS"

    with pytest.raises(InputValidationError):
        service.create_variation("6a0c7f0e-2222-4b4b-8888-000000000002", _form(), None)


def test_create_validates_form(service, project_id, manager):
    with pytest.raises(InputValidationError) as exc_info:
        service.create_variation(project_id, _form(description=""), manager)

    assert exc_info.value.code == "VALIDATION_ERROR"
    assert "description" in exc_info.value.details
    assert not Variation.objects.exists()


def test_fetch_uses_cache_until_a_write(service, project_id, manager):
    assert service.fetch_variations(project_id) == []

    # a row written behind the adapter's back is not seen until refresh
    Variation.objects.create(project_id=project_id, variation_number="VAR-001", title="Behind the back")
    assert service.fetch_variations(project_id) == []
    assert len(service.fetch_variations(project_id, force_refresh=True)) == 1

    service.create_variation(project_id, _form(), manager)
    assert len(service.fetch_variations(project_id)) == 2


def test_fetch_requires_project(service):
    with pytest.raises(InputValidationError) as exc_info:
        service.fetch_variations("")
    assert exc_info.value.code == "MISSING_PROJECT_ID"


def test_update_changes_fields_and_stamps_user(service, project_id, manager, estimator):
    record = service.create_variation(project_id, _form(), manager)

    updated = service.update_variation(record["id"], {"title": "Revised penetration", "time_impact": 5}, estimator)

    assert updated["title"] == "Revised penetration"
    assert updated["time_impact"] == 5
    assert updated["updated_by"] == str(estimator.pk)
    assert updated["description"] == record["description"]
    assert service.fetch_variations(project_id)[0]["title"] == "Revised penetration"


def test_update_of_missing_variation(service, manager):
    with pytest.raises(RemoteError) as exc_info:
        service.update_variation("6a0c7f0e-2222-4b4b-8888-00000000dead", {"title": "x"}, manager)
    assert exc_info.value.code == "NOT_FOUND"


def test_malformed_id_is_not_found(service):
    with pytest.raises(RemoteError) as exc_info:
        service.get("not-a-uuid")
    assert exc_info.value.code == "NOT_FOUND"


def test_delete_keeps_audit_history(service, project_id, manager):
    record = service.create_variation(project_id, _form(), manager)

    assert service.delete_variation(record["id"], manager) == {"id": record["id"]}
    assert service.fetch_variations(project_id) == []
    assert AuditEntry.objects.filter(entity_id=record["id"]).exists()


def test_approval_workflow(service, project_id, manager):
    record = service.create_variation(project_id, _form(), manager)

    submitted = service.change_status(record["id"], "pending_approval", manager)
    assert submitted["status"] == "pending_approval"

    approved = service.change_status(record["id"], "approved", manager, comments="Approved on site")
    assert approved["approved_by"] == str(manager.pk)
    assert approved["approval_date"] is not None
    assert approved["approval_comments"] == "Approved on site"

    unlocked = service.change_status(record["id"], "draft", manager)
    assert unlocked["approved_by"] is None
    assert unlocked["approval_date"] is None

    actions = list(AuditEntry.objects.filter(entity_id=record["id"]).order_by("timestamp").values_list("action_type", flat=True))
    assert actions == ["create", "submit", "approve", "unlock"]


def test_invalid_transitions(service, project_id, manager):
    record = service.create_variation(project_id, _form(), manager)

    with pytest.raises(InputValidationError) as exc_info:
        service.change_status(record["id"], "approved", manager)
    assert exc_info.value.code == "INVALID_TRANSITION"

    with pytest.raises(InputValidationError) as exc_info:
        service.change_status(record["id"], "archived", manager)
    assert exc_info.value.code == "INVALID_STATUS"

    assert service.get(record["id"])["status"] == "draft"


def test_send_email(service, project_id, manager):
    record = service.create_variation(project_id, _form(), manager)

    sent = service.send_email(record["id"], manager)

    assert len(mail.outbox) == 1
    assert mail.outbox[0].to == ["client@example.com"]
    assert "VAR-001" in mail.outbox[0].subject
    assert sent["email_sent"] is True
    assert sent["email_sent_by"] == str(manager.pk)
    assert AuditEntry.objects.filter(entity_id=record["id"], action_type="email_sent").count() == 1


def test_send_email_without_client_email(service, project_id, manager):
    record = service.create_variation(project_id, _form(clientEmail=""), manager)

    with pytest.raises(InputValidationError) as exc_info:
        service.send_email(record["id"], manager)

    assert exc_info.value.code == "MISSING_CLIENT_EMAIL"
    assert mail.outbox == []
    assert service.get(record["id"])["email_sent"] is False


def test_summarize():
    summary = VariationService.summarize(
        [
            {"status": "draft", "cost_impact": "100.25", "time_impact": 2},
            {"status": "approved", "cost_impact": 200, "time_impact": 3},
            {"status": "approved", "cost_impact": None, "time_impact": None},
        ]
    )

    assert summary["total"] == 3
    assert summary["draft"] == 1
    assert summary["approved"] == 2
    assert summary["total_cost_impact"] == Decimal("300.25")
    assert summary["average_time_impact"] == 1.7


def test_form_to_fields_accepts_camel_case():
    fields = form_to_fields({"title": "T", "costImpact": "", "total_amount": "99.5", "timeImpact": "2.0"})

    assert fields["cost_impact"] == Decimal("99.50")
    assert fields["time_impact"] == 2
    assert fields["priority"] == "medium"
    assert fields["cost_breakdown"] == []


def test_normalize_cost_breakdown():
    rows = normalize_cost_breakdown([{"id": 1, "description": "Concrete", "quantity": "2", "rate": 150}, "junk"])

    assert rows[0] == {"id": "1", "description": "Concrete", "quantity": 2.0, "rate": 150.0, "subtotal": 0.0}
    assert rows[1]["description"] == ""
    assert normalize_cost_breakdown(None) == []

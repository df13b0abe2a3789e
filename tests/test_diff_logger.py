import pytest

from apps.audit.models import AuditEntry
from apps.audit.services import AuditEvent, AuditOutbox, AuditService, DiffLogger
from apps.audit.services.diff_logger import status_action
from apps.core.context import UserSession
from apps.core.errors import AuditLoggingError
from apps.core.notifications import Notifier
from apps.permissions.gate import Role


class MemoryWriter:
    def __init__(self, fail_times=0):
        self.written = []
        self.fail_times = fail_times

    def __call__(self, event):
        if self.fail_times:
            self.fail_times -= 1
            raise RuntimeError("audit table unavailable")
        self.written.append(event)


@pytest.fixture
def writer():
    return MemoryWriter()


@pytest.fixture
def diff_logger(writer):
    return DiffLogger("variation", ("title", "cost_impact", "requires_eot"), ("cost_breakdown",), outbox=AuditOutbox(writer, max_retries=3))


def test_only_changed_fields_produce_entries(diff_logger, writer):
    events = diff_logger.log_field_changes("v1", {"title": "A", "cost_impact": 100}, {"title": "B", "cost_impact": 100})

    assert len(events) == 1
    assert writer.written == events
    event = events[0]
    assert (event.field_name, event.old_value, event.new_value) == ("title", "A", "B")
    assert event.action_type == "edit"
    assert event.comments == 'Field "title" changed from "A" to "B"'


def test_untracked_and_absent_fields_are_ignored(diff_logger):
    events = diff_logger.build_field_events("v1", {"title": "A", "status": "draft"}, {"status": "approved"})
    assert events == []


def test_values_are_rendered_as_text(diff_logger):
    events = diff_logger.build_field_events("v1", {"title": None, "requires_eot": False}, {"title": "Slab", "requires_eot": True})

    rendered = {event.field_name: (event.old_value, event.new_value) for event in events}
    assert rendered == {"title": ("", "Slab"), "requires_eot": ("false", "true")}
    assert 'from "empty" to "Slab"' in events[0].comments


def test_composite_field_is_one_entry(diff_logger):
    original = {"cost_breakdown": [{"description": "Concrete", "quantity": 1}]}
    updated = {"cost_breakdown": [{"quantity": 2, "description": "Concrete"}]}

    events = diff_logger.build_field_events("v1", original, updated)
    assert len(events) == 1
    assert events[0].field_name == "cost_breakdown"
    assert events[0].comments == "Cost breakdown updated"


def test_reordered_keys_are_not_a_change(diff_logger):
    original = {"cost_breakdown": [{"description": "Concrete", "quantity": 1}]}
    updated = {"cost_breakdown": [{"quantity": 1, "description": "Concrete"}]}
    assert diff_logger.build_field_events("v1", original, updated) == []


def test_actor_comes_from_session(diff_logger):
    session = UserSession(user_id="u-1", user_name="Pat Manager", email="pat@example.com", role=Role.PROJECT_MANAGER)
    events = diff_logger.log_field_changes("v1", {"title": "A"}, {"title": "B"}, user=session)
    assert (events[0].user_id, events[0].user_name) == ("u-1", "Pat Manager")


def test_status_change_entry(diff_logger, writer):
    diff_logger.log_status_change("v1", "pending_approval", "approved", comments="Looks good")

    event = writer.written[0]
    assert event.action_type == "approve"
    assert (event.status_from, event.status_to) == ("pending_approval", "approved")
    assert event.comments == "Looks good"
    assert status_action("draft") == "unlock"
    assert status_action("archived") == "status_change"


def test_failed_write_becomes_a_warning():
    notifier = Notifier()
    diff_logger = DiffLogger("variation", ("title",), outbox=AuditOutbox(MemoryWriter(fail_times=1), max_retries=3), notifier=notifier)

    events = diff_logger.log_field_changes("v1", {"title": "A"}, {"title": "B"})

    assert len(events) == 1
    assert [n.variant for n in notifier.history] == ["warning"]
    assert notifier.history[0].title == "Audit Logging Warning"
    assert diff_logger.outbox.pending == events


def test_outbox_retries_then_gives_up():
    writer = MemoryWriter(fail_times=5)
    outbox = AuditOutbox(writer, max_retries=2)
    event = AuditEvent(entity_type="variation", entity_id="v1", action_type="edit")
    outbox.emit([event])

    with pytest.raises(AuditLoggingError):
        outbox.flush()
    assert event.retry_count == 1
    assert outbox.pending == [event]

    with pytest.raises(AuditLoggingError):
        outbox.flush()
    assert outbox.pending == []
    assert outbox.failed == [event]
    assert event.status == "failed"


def test_outbox_delivers_in_order_after_recovery():
    writer = MemoryWriter(fail_times=1)
    outbox = AuditOutbox(writer, max_retries=3)
    first = AuditEvent(entity_type="variation", entity_id="v1", action_type="edit", field_name="title")
    second = AuditEvent(entity_type="variation", entity_id="v1", action_type="edit", field_name="location")
    outbox.emit([first, second])

    with pytest.raises(AuditLoggingError):
        outbox.flush()
    assert writer.written == [second]

    assert outbox.flush() == [first]
    assert first.status == "delivered"
    assert first.delivered_at is not None


@pytest.mark.django_db
def test_events_reach_the_audit_table():
    diff_logger = DiffLogger("variation", ("title",))
    diff_logger.log_field_changes("3f1b5f8e-1111-4a4a-9999-000000000001", {"title": "A"}, {"title": "B"})

    entry = AuditEntry.objects.get()
    assert (entry.field_name, entry.old_value, entry.new_value) == ("title", "A", "B")

    history = AuditService.get_history("variation", "3f1b5f8e-1111-4a4a-9999-000000000001")
    assert len(history) == 1
    assert history[0]["action_type"] == "edit"

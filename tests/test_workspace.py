import asyncio
import time

import pytest

from apps.audit.services import AuditOutbox, DiffLogger
from apps.core.context import AppContext
from apps.core.errors import ConflictError, InputValidationError, PermissionDeniedError, RemoteError
from apps.inspections.services import inspection_diff_logger
from apps.permissions.gate import Role
from apps.sync.workspace import InspectionWorkspace, VariationWorkspace
from apps.variations.services import variation_diff_logger


class MemoryWriter:
    def __init__(self):
        self.written = []

    def __call__(self, event):
        self.written.append(event)


class FakeVariationService:
    """Synchronous stand-in for VariationService"""

    def __init__(self, records=(), fail_with=None, delay=0):
        self.records = {record["id"]: dict(record) for record in records}
        self.calls = []
        self.fail_with = fail_with
        self.delay = delay
        # one-shot errors, raised by the next calls in order
        self.failures = []

    def _call(self, name, *args):
        self.calls.append((name, *args))
        if self.delay:
            time.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        if self.fail_with:
            raise self.fail_with

    def fetch(self, scope_id, force_refresh=False):
        self._call("fetch", scope_id)
        return list(self.records.values())

    def create(self, scope_id, form_data, user):
        self._call("create", scope_id)
        record = {**form_data, "id": "v-server", "status": "draft", "variation_number": "VAR-001", "requested_by": user.user_id}
        self.records[record["id"]] = record
        return dict(record)

    def update(self, record_id, updates, user):
        self._call("update", record_id)
        self.records[record_id].update(updates)
        return dict(self.records[record_id])

    def delete(self, record_id, user):
        self._call("delete", record_id)
        del self.records[record_id]
        return {"id": record_id}

    def change_status(self, record_id, to_status, user, comments=None):
        self._call("change_status", record_id, to_status)
        self.records[record_id]["status"] = to_status
        return dict(self.records[record_id])

    def send_email(self, record_id, user):
        self._call("send_email", record_id)
        self.records[record_id]["email_sent"] = True
        return dict(self.records[record_id])


class FakeInspectionService(FakeVariationService):
    def update_inspection(self, record_id, updates, user, client_version=None):
        self._call("update_inspection", record_id, client_version)
        record = self.records[record_id]
        if client_version is not None and client_version != record["version"]:
            raise ConflictError(record=dict(record), client_version=client_version, server_version=record["version"])
        record.update(updates, version=record["version"] + 1)
        return dict(record)

    def submit(self, record_id, user, client_version=None):
        return self.update_inspection(record_id, {"status": "in_review"}, user, client_version=client_version)


async def _no_history(entity_id):
    return []


@pytest.fixture
def writer():
    return MemoryWriter()


@pytest.fixture
def variation_records():
    return [
        {"id": "v1", "title": "Extra riser", "status": "draft", "cost_impact": 100, "client_email": "client@example.com", "time_impact": 2},
        {"id": "v2", "title": "Stair change", "status": "approved", "cost_impact": 50, "client_email": "", "time_impact": 4},
    ]


@pytest.fixture
def make_workspace(make_context, writer):
    def factory(service, role=Role.PROJECT_MANAGER, **kwargs):
        diff_logger = variation_diff_logger(outbox=AuditOutbox(writer, max_retries=3))
        return VariationWorkspace(make_context(role), service, diff_logger, audit_fetcher=_no_history, scope_id="p1", **kwargs)

    return factory


def _run(workspace, coro):
    async def scenario():
        await workspace.load()
        workspace.context.notifier.clear()
        return await coro()

    return asyncio.run(scenario())


def test_update_confirms_and_logs_one_field_change(make_workspace, variation_records, writer, notifier):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service)

    result = _run(workspace, lambda: workspace.update("v1", {"title": "Extra riser (revised)", "cost_impact": 100}))

    assert result["title"] == "Extra riser (revised)"
    assert workspace.collection.find("v1")["title"] == "Extra riser (revised)"
    assert [(e.field_name, e.old_value, e.new_value) for e in writer.written] == [("title", "Extra riser", "Extra riser (revised)")]
    assert [n.description for n in notifier.history] == ["Variation updated"]
    assert workspace.audit_trail.refresh_pending("v1")


def test_failed_update_reverts_and_skips_audit(make_workspace, variation_records, writer, notifier):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service)

    async def scenario():
        await workspace.load()
        notifier.clear()
        service.fail_with = RemoteError("network down")
        return await workspace.update("v1", {"status": "approved"})

    assert asyncio.run(scenario()) is None
    assert workspace.collection.find("v1")["status"] == "draft"
    assert writer.written == []
    assert len(notifier.history) == 1
    assert notifier.history[0].description == "Failed to update variation: network down"


def test_denied_update_never_reaches_the_service(make_workspace, variation_records, notifier):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service, role=Role.CLIENT)

    async def scenario():
        await workspace.load()
        with pytest.raises(PermissionDeniedError):
            await workspace.update("v1", {"title": "Nope"})

    asyncio.run(scenario())
    assert [call[0] for call in service.calls] == ["fetch"]
    assert [n.title for n in notifier.history] == ["Access Denied"]
    assert workspace.collection.find("v1")["title"] == "Extra riser"


def test_create_replaces_the_optimistic_draft(make_workspace, variation_records, notifier):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service)

    result = _run(workspace, lambda: workspace.create({"title": "New", "description": "Added"}))

    ids = [item["id"] for item in workspace.items]
    assert result["id"] == "v-server"
    assert ids.count("v-server") == 1
    assert not any(item_id.startswith("temp-") for item_id in ids)
    assert service.calls[-1] == ("create", "p1")


def test_delete_and_failed_delete(make_workspace, variation_records):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service)

    _run(workspace, lambda: workspace.delete("v2"))
    assert [item["id"] for item in workspace.items] == ["v1"]

    service.fail_with = RemoteError("locked")
    asyncio.run(workspace.delete("v1"))
    assert [item["id"] for item in workspace.items] == ["v1"]


def test_estimator_cannot_approve(make_workspace, variation_records, notifier):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service, role=Role.ESTIMATOR)

    async def scenario():
        await workspace.load()
        await workspace.change_status("v1", "pending_approval")
        with pytest.raises(PermissionDeniedError):
            await workspace.change_status("v1", "approved")

    asyncio.run(scenario())
    assert workspace.collection.find("v1")["status"] == "pending_approval"
    assert ("change_status", "v1", "approved") not in service.calls


def test_send_email_requires_client_email(make_workspace, variation_records, notifier):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service)

    async def scenario():
        await workspace.load()
        notifier.clear()
        with pytest.raises(InputValidationError):
            await workspace.send_email("v2")
        return await workspace.send_email("v1")

    result = asyncio.run(scenario())
    assert result["email_sent"] is True
    assert ("send_email", "v2") not in service.calls
    assert [n.description for n in notifier.history] == ["No client email found for this variation", "Variation emailed to client@example.com"]


def test_slow_store_call_times_out_and_reverts(make_workspace, variation_records, notifier):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service, submit_timeout=0.05)

    async def scenario():
        await workspace.load()
        notifier.clear()
        service.delay = 0.2
        return await workspace.update("v1", {"title": "Slow"})

    assert asyncio.run(scenario()) is None
    assert workspace.collection.find("v1")["title"] == "Extra riser"
    assert "timed out" in notifier.history[0].description


def test_summary(make_workspace, variation_records):
    workspace = make_workspace(FakeVariationService(variation_records))
    asyncio.run(workspace.load())

    summary = workspace.summary()
    assert summary["total"] == 2
    assert summary["approved"] == 1
    assert summary["average_time_impact"] == 3.0


def test_workspace_needs_an_open_context(session, writer):
    context = AppContext(session)
    with pytest.raises(RuntimeError):
        VariationWorkspace(context, FakeVariationService(), DiffLogger("variation", ("title",), outbox=AuditOutbox(writer)))


def test_inspection_conflict_adopts_server_copy(make_context, writer, notifier):
    local = {"id": "qa1", "title": "Pre-pour", "status": "draft", "version": 1, "comments": ""}
    server_copy = {**local, "comments": "Edited elsewhere", "version": 2}
    service = FakeInspectionService([local])
    workspace = InspectionWorkspace(
        make_context(), service, inspection_diff_logger(outbox=AuditOutbox(writer)), audit_fetcher=_no_history, scope_id="p1"
    )

    async def scenario():
        await workspace.load()
        notifier.clear()
        service.records["qa1"] = dict(server_copy)
        return await workspace.update("qa1", {"comments": "My edit"})

    assert asyncio.run(scenario()) is None
    assert workspace.collection.find("qa1") == server_copy
    assert [n.title for n in notifier.history] == ["Error", "Version Conflict"]
    assert service.calls[-1] == ("update_inspection", "qa1", 1)
    assert writer.written == []


def test_inspection_submit(make_context, writer, notifier):
    local = {"id": "qa1", "title": "Pre-pour", "status": "draft", "version": 1}
    service = FakeInspectionService([local])
    workspace = InspectionWorkspace(
        make_context(Role.SITE_SUPERVISOR), service, inspection_diff_logger(outbox=AuditOutbox(writer)), audit_fetcher=_no_history, scope_id="p1"
    )

    async def scenario():
        await workspace.load()
        return await workspace.submit("qa1")

    result = asyncio.run(scenario())
    assert result["status"] == "in_review"
    assert workspace.collection.find("qa1")["version"] == 2


def _inspection_workspace(make_context, service, writer, role=Role.PROJECT_MANAGER):
    return InspectionWorkspace(
        make_context(role), service, inspection_diff_logger(outbox=AuditOutbox(writer)), audit_fetcher=_no_history, scope_id="p1"
    )


def test_inspection_update_cannot_approve_without_approval_rights(make_context, writer, notifier):
    local = {"id": "qa1", "title": "Pre-pour", "status": "in_review", "version": 1}
    service = FakeInspectionService([local])
    workspace = _inspection_workspace(make_context, service, writer, role=Role.SITE_SUPERVISOR)

    async def scenario():
        await workspace.load()
        notifier.clear()
        with pytest.raises(PermissionDeniedError):
            await workspace.update("qa1", {"status": "approved"})

    asyncio.run(scenario())
    assert [n.title for n in notifier.history] == ["Access Denied"]
    assert [call[0] for call in service.calls] == ["fetch"]
    assert workspace.collection.find("qa1")["status"] == "in_review"


def test_inspection_update_can_move_status_with_edit_rights(make_context, writer, notifier):
    local = {"id": "qa1", "title": "Pre-pour", "status": "draft", "version": 1}
    service = FakeInspectionService([local])
    workspace = _inspection_workspace(make_context, service, writer, role=Role.SITE_SUPERVISOR)

    result = _run(workspace, lambda: workspace.update("qa1", {"status": "in_review"}))

    assert result["status"] == "in_review"
    assert service.calls[-1] == ("update_inspection", "qa1", 1)


def test_concurrent_inspection_updates_send_the_settled_version(make_context, writer, notifier):
    local = {"id": "qa1", "title": "Pre-pour", "status": "draft", "version": 1, "comments": ""}
    service = FakeInspectionService([local])
    workspace = _inspection_workspace(make_context, service, writer)

    async def scenario():
        await workspace.load()
        notifier.clear()
        return await asyncio.gather(
            workspace.update("qa1", {"title": "Pre-pour slab"}),
            workspace.update("qa1", {"comments": "Reo checked"}),
        )

    first, second = asyncio.run(scenario())
    assert first["version"] == 2
    assert second["version"] == 3
    assert [call for call in service.calls if call[0] == "update_inspection"] == [
        ("update_inspection", "qa1", 1),
        ("update_inspection", "qa1", 2),
    ]
    assert workspace.collection.find("qa1") == {**local, "title": "Pre-pour slab", "comments": "Reo checked", "version": 3}
    assert "Version Conflict" not in [n.title for n in notifier.history]
    assert [(e.field_name, e.old_value, e.new_value) for e in writer.written] == [
        ("title", "Pre-pour", "Pre-pour slab"),
        ("comments", "", "Reo checked"),
    ]


def test_diff_after_a_failed_update_uses_the_reverted_value(make_workspace, variation_records, writer, notifier):
    service = FakeVariationService(variation_records)
    workspace = make_workspace(service)

    async def scenario():
        await workspace.load()
        notifier.clear()
        service.failures = [RemoteError("network down")]
        return await asyncio.gather(
            workspace.update("v1", {"title": "Lost edit"}),
            workspace.update("v1", {"title": "Kept edit"}),
        )

    first, second = asyncio.run(scenario())
    assert first is None
    assert second["title"] == "Kept edit"
    assert service.records["v1"]["title"] == "Kept edit"
    assert [(e.field_name, e.old_value, e.new_value) for e in writer.written] == [("title", "Extra riser", "Kept edit")]
    assert [n.description for n in notifier.history] == ["Failed to update variation: network down", "Variation updated"]

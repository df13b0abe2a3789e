import asyncio

import pytest

from apps.core.errors import InputValidationError, RemoteError
from apps.core.notifications import Notifier
from apps.sync.optimistic import ActionStatus, ActionType, OptimisticCollection


def _collection(items=(), notifier=None):
    return OptimisticCollection("variations", items, notifier=notifier or Notifier(), success_clear_delay=0.01, error_clear_delay=0.01)


def _failing(message):
    async def call():
        raise RemoteError(message)

    return call


def _returning(value, delay=0):
    async def call():
        await asyncio.sleep(delay)
        return value

    return call


def test_failed_update_reverts_and_notifies_once():
    notifier = Notifier()
    collection = _collection([{"id": "v1", "status": "draft", "title": "Slab"}], notifier)

    async def scenario():
        return await collection.perform(ActionType.UPDATE, {"id": "v1", "status": "approved"}, _failing("network down"))

    result = asyncio.run(scenario())

    assert result is None
    assert collection.find("v1") == {"id": "v1", "status": "draft", "title": "Slab"}

    action = collection.pending_actions[0]
    assert action.entity_id == "v1"
    assert action.status is ActionStatus.ERROR
    assert action.error == "network down"

    errors = [n for n in notifier.history if n.variant == "destructive"]
    assert len(errors) == 1
    assert "network down" in errors[0].description
    assert len(notifier.history) == 1


def test_item_is_changed_while_the_call_is_pending():
    collection = _collection([{"id": "v1", "status": "draft"}])
    seen = {}

    async def call():
        seen["during"] = collection.find("v1")["status"]
        seen["pending"] = collection.has_pending_action("v1")
        seen["busy"] = collection.is_performing_action
        return {"id": "v1", "status": "pending_approval", "variation_number": "VAR-001"}

    async def scenario():
        return await collection.perform(ActionType.STATUS_CHANGE, {"id": "v1", "status": "pending_approval"}, call)

    result = asyncio.run(scenario())

    assert seen == {"during": "pending_approval", "pending": True, "busy": True}
    assert result["variation_number"] == "VAR-001"
    assert collection.find("v1") == result
    assert not collection.is_performing_action
    assert collection.pending_actions[0].status is ActionStatus.SUCCESS


def test_create_substitutes_server_record_without_duplicates():
    collection = _collection([{"id": "v0", "title": "Existing"}])
    counts = []

    async def call():
        counts.append(sum(1 for item in collection.items if item["id"] == "temp-1"))
        return {"id": "v-server", "title": "New"}

    async def scenario():
        return await collection.perform(ActionType.CREATE, {"id": "temp-1", "title": "New"}, call)

    asyncio.run(scenario())

    ids = [item["id"] for item in collection.items]
    assert counts == [1]
    assert ids == ["v-server", "v0"]


def test_create_drops_optimistic_row_when_server_row_already_present():
    collection = _collection()

    async def call():
        collection.upsert({"id": "v-server", "title": "New"})
        return {"id": "v-server", "title": "New"}

    async def scenario():
        await collection.perform(ActionType.CREATE, {"id": "temp-1", "title": "New"}, call)

    asyncio.run(scenario())
    assert [item["id"] for item in collection.items] == ["v-server"]


def test_failed_create_removes_the_optimistic_row():
    collection = _collection([{"id": "v0"}])

    async def scenario():
        await collection.perform(ActionType.CREATE, {"id": "temp-1"}, _failing("insert failed"))

    asyncio.run(scenario())
    assert collection.items == [{"id": "v0"}]


def test_failed_delete_reinserts_at_original_position():
    collection = _collection([{"id": "a"}, {"id": "b"}, {"id": "c"}])

    during = []

    async def call():
        during.extend(item["id"] for item in collection.items)
        raise RemoteError("delete failed")

    async def scenario():
        await collection.perform(ActionType.DELETE, {"id": "b"}, call)

    asyncio.run(scenario())
    assert during == ["a", "c"]
    assert [item["id"] for item in collection.items] == ["a", "b", "c"]


def test_successful_delete_keeps_the_row_removed():
    collection = _collection([{"id": "a"}, {"id": "b"}])

    async def scenario():
        return await collection.perform(ActionType.DELETE, {"id": "a"}, _returning({"id": "a"}))

    assert asyncio.run(scenario()) == {"id": "a"}
    assert collection.items == [{"id": "b"}]


def test_rollback_restores_nested_values_deeply():
    original = {"id": "v1", "cost_breakdown": [{"description": "Concrete", "quantity": 2}]}
    collection = _collection([original])

    async def scenario():
        await collection.perform(ActionType.UPDATE, {"id": "v1", "cost_breakdown": []}, _failing("nope"))

    asyncio.run(scenario())
    assert collection.find("v1") == original


def test_mutations_of_one_id_are_serialized():
    collection = _collection([{"id": "v1", "title": "A"}])
    events = []

    def tracked(name, delay):
        async def call():
            events.append(f"{name}:start")
            assert len(collection.pending_actions_by_type(ActionType.UPDATE)) == 1
            await asyncio.sleep(delay)
            events.append(f"{name}:end")
            return {"id": "v1", "title": name}

        return call

    async def scenario():
        await asyncio.gather(
            collection.perform(ActionType.UPDATE, {"id": "v1", "title": "first"}, tracked("first", 0.02)),
            collection.perform(ActionType.UPDATE, {"id": "v1", "title": "second"}, tracked("second", 0)),
        )

    asyncio.run(scenario())
    assert events == ["first:start", "first:end", "second:start", "second:end"]
    assert collection.find("v1")["title"] == "second"


def test_different_ids_run_concurrently():
    collection = _collection([{"id": "a"}, {"id": "b"}])
    events = []

    def tracked(name, delay):
        async def call():
            events.append(f"{name}:start")
            await asyncio.sleep(delay)
            events.append(f"{name}:end")
            return {"id": name}

        return call

    async def scenario():
        await asyncio.gather(
            collection.perform(ActionType.UPDATE, {"id": "a"}, tracked("a", 0.02)),
            collection.perform(ActionType.UPDATE, {"id": "b"}, tracked("b", 0)),
        )

    asyncio.run(scenario())
    assert events[:2] == ["a:start", "b:start"]


def test_cancellation_rolls_back_and_propagates():
    collection = _collection([{"id": "v1", "status": "draft"}])

    async def scenario():
        task = asyncio.ensure_future(collection.perform(ActionType.UPDATE, {"id": "v1", "status": "approved"}, _returning({}, delay=1)))
        await asyncio.sleep(0.01)
        assert collection.find("v1")["status"] == "approved"
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert collection.find("v1")["status"] == "draft"
    assert collection.pending_actions[0].error == "Cancelled"


def test_settled_actions_are_cleared_after_delay():
    collection = _collection([{"id": "v1"}])

    async def scenario():
        await collection.perform(ActionType.UPDATE, {"id": "v1", "title": "x"}, _returning({"id": "v1", "title": "x"}))
        assert len(collection.pending_actions) == 1
        await asyncio.sleep(0.03)
        assert collection.pending_actions == []

    asyncio.run(scenario())


def test_callbacks_and_suppressed_notifications():
    notifier = Notifier()
    collection = _collection([{"id": "v1"}], notifier)
    results, errors = [], []

    async def scenario():
        await collection.perform(ActionType.UPDATE, {"id": "v1"}, _returning({"id": "v1"}), on_success=results.append, skip_notification=True)
        await collection.perform(ActionType.UPDATE, {"id": "v1"}, _failing("bad"), on_error=errors.append, skip_notification=True)

    asyncio.run(scenario())
    assert results == [{"id": "v1"}]
    assert [str(e) for e in errors] == ["bad"]
    assert notifier.history == []


def test_missing_id_is_rejected_before_any_call():
    collection = _collection()
    calls = []

    async def call():
        calls.append(True)

    async def scenario():
        with pytest.raises(InputValidationError) as exc_info:
            await collection.perform(ActionType.UPDATE, {"title": "x"}, call)
        assert exc_info.value.code == "MISSING_ID"

    asyncio.run(scenario())
    assert calls == []
    assert collection.pending_actions == []


def test_items_are_copies():
    collection = _collection([{"id": "v1", "title": "A"}])
    collection.items[0]["title"] = "changed"
    assert collection.find("v1")["title"] == "A"


def test_original_of_reads_the_settled_state_under_the_lock():
    collection = _collection([{"id": "v1", "title": "Slab"}])
    seen = []

    def call_recording_original(result):
        async def call():
            seen.append(collection.original_of("v1"))
            return result

        return call

    async def scenario():
        await asyncio.gather(
            collection.perform(ActionType.UPDATE, {"id": "v1", "title": "Slab A"}, call_recording_original({"id": "v1", "title": "Slab A", "version": 2})),
            collection.perform(ActionType.UPDATE, {"id": "v1", "title": "Slab B"}, call_recording_original({"id": "v1", "title": "Slab B", "version": 3})),
        )

    asyncio.run(scenario())
    assert seen == [{"id": "v1", "title": "Slab"}, {"id": "v1", "title": "Slab A", "version": 2}]
    assert collection.original_of("v1") is None

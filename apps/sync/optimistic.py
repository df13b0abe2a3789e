"""
Optimistic update engine

Applies a mutation to the in-memory collection before the server call
resolves, tracks it as a pending action, and restores the pre-mutation
snapshot if the server call fails. Mutations of one entity id are
serialized, so at most one action per id is pending at any time.
"""

import asyncio
import copy
import itertools
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from django.conf import settings

from apps.core.errors import InputValidationError
from apps.core.notifications import Notifier
from apps.core.scheduling import Scheduler

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status-change"


class ActionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    ROLLING_BACK = "rolling-back"


@dataclass
class PendingAction:
    id: str
    type: ActionType
    data: dict
    module: str
    timestamp: float
    status: ActionStatus = ActionStatus.PENDING
    original_data: Optional[dict] = None
    original_index: Optional[int] = None
    error: Optional[str] = None

    @property
    def entity_id(self):
        return self.data["id"]


class OptimisticCollection:
    def __init__(
        self,
        module: str,
        items: Iterable[dict] = (),
        scheduler: Scheduler = None,
        notifier: Notifier = None,
        success_clear_delay: float = None,
        error_clear_delay: float = None,
    ):
        self.module = module
        self._items: List[dict] = [copy.deepcopy(item) for item in items]
        self._actions: List[PendingAction] = []
        self._scheduler = scheduler or Scheduler()
        self._notifier = notifier or Notifier()
        self._locks: Dict[Any, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._lock_users: Dict[Any, int] = defaultdict(int)
        self._counter = itertools.count(1)
        self.success_clear_delay = success_clear_delay if success_clear_delay is not None else settings.OPTIMISTIC_SUCCESS_CLEAR_DELAY
        self.error_clear_delay = error_clear_delay if error_clear_delay is not None else settings.OPTIMISTIC_ERROR_CLEAR_DELAY

    # --- Queries ---

    @property
    def items(self) -> List[dict]:
        return copy.deepcopy(self._items)

    @property
    def pending_actions(self) -> List[PendingAction]:
        return list(self._actions)

    @property
    def is_performing_action(self) -> bool:
        return any(action.status is ActionStatus.PENDING for action in self._actions)

    def find(self, item_id) -> Optional[dict]:
        index = self._index_of(item_id)
        return copy.deepcopy(self._items[index]) if index is not None else None

    def get_pending_action(self, item_id) -> Optional[PendingAction]:
        for action in self._actions:
            if action.entity_id == item_id and action.status is ActionStatus.PENDING:
                return action
        return None

    def has_pending_action(self, item_id) -> bool:
        return self.get_pending_action(item_id) is not None

    def original_of(self, item_id) -> Optional[dict]:
        """
        Pre-mutation copy of an item whose action is pending

        Server calls run while their action is pending and under the item's
        lock, so this is the state the previous mutation of the item settled to.
        """
        action = self.get_pending_action(item_id)
        if action is None or action.original_data is None:
            return None
        return copy.deepcopy(action.original_data)

    def pending_actions_by_type(self, action_type: ActionType) -> List[PendingAction]:
        action_type = ActionType(action_type)
        return [a for a in self._actions if a.type is action_type and a.status is ActionStatus.PENDING]

    def replace_items(self, items: Iterable[dict]):
        """Replace the visible state with a server-confirmed snapshot (e.g. after a refetch)"""
        self._items = [copy.deepcopy(item) for item in items]

    def upsert(self, item: dict):
        """Adopt a server copy of one record outside of any pending action"""
        index = self._index_of(item["id"])
        if index is None:
            self._items.insert(0, copy.deepcopy(item))
        else:
            self._items[index] = copy.deepcopy(item)

    def close(self):
        for action in self._actions:
            self._scheduler.cancel(self._cleanup_key(action))

    # --- Mutation ---

    def _index_of(self, item_id) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.get("id") == item_id:
                return index
        return None

    def _next_action_id(self) -> str:
        return f"{self.module}-action-{next(self._counter)}-{int(time.time() * 1000)}"

    def _apply(self, action: PendingAction):
        item_id = action.entity_id
        index = self._index_of(item_id)

        if action.type is ActionType.CREATE:
            self._items.insert(0, copy.deepcopy(action.data))
        elif action.type in (ActionType.UPDATE, ActionType.STATUS_CHANGE):
            if index is not None:
                merged = dict(self._items[index])
                merged.update(copy.deepcopy(action.data))
                self._items[index] = merged
        elif action.type is ActionType.DELETE:
            if index is not None:
                del self._items[index]

    def _rollback(self, action: PendingAction):
        item_id = action.entity_id
        index = self._index_of(item_id)

        if action.type is ActionType.CREATE:
            if index is not None:
                del self._items[index]
        elif action.type in (ActionType.UPDATE, ActionType.STATUS_CHANGE):
            # no snapshot means the item did not exist locally; nothing to restore
            if action.original_data is not None and index is not None:
                self._items[index] = copy.deepcopy(action.original_data)
        elif action.type is ActionType.DELETE:
            if action.original_data is not None and index is None:
                position = action.original_index if action.original_index is not None else len(self._items)
                self._items.insert(min(position, len(self._items)), copy.deepcopy(action.original_data))

    def _reconcile(self, action: PendingAction, result):
        """Substitute the server's copy of the record for the optimistic one"""
        if action.type is ActionType.DELETE or not isinstance(result, dict) or "id" not in result:
            return

        index = self._index_of(action.entity_id)
        if index is None:
            return

        if result["id"] != action.entity_id and self._index_of(result["id"]) is not None:
            # the server row is already present (e.g. a refetch landed first)
            del self._items[index]
            return

        self._items[index] = copy.deepcopy(result)

    def _cleanup_key(self, action: PendingAction):
        return ("optimistic-cleanup", self.module, action.id)

    def _schedule_cleanup(self, action: PendingAction, delay: float):
        def remove():
            if action in self._actions:
                self._actions.remove(action)

        try:
            self._scheduler.call_later(self._cleanup_key(action), delay, remove)
        except RuntimeError:
            # scheduler already closed; drop the record now
            remove()

    async def perform(
        self,
        action_type: ActionType,
        data: dict,
        server_call: Callable[[], Awaitable[Any]],
        *,
        success_message: str = None,
        error_message: str = None,
        skip_notification: bool = False,
        on_success: Callable[[Any], None] = None,
        on_error: Callable[[Exception], None] = None,
    ):
        """
        Apply ``data`` optimistically, then run ``server_call``

        ``server_call`` is invoked under the item's lock with the action
        pending; it may read ``original_of(id)`` to build its request.

        Returns:
            the server result, or None when the call failed and the change was
            rolled back; callers must not assume the mutation happened on None
        """
        action_type = ActionType(action_type)
        if not data or data.get("id") is None:
            raise InputValidationError("Optimistic actions require an entity id", "MISSING_ID")

        item_id = data["id"]
        lock = self._locks[item_id]
        self._lock_users[item_id] += 1
        try:
            async with lock:
                return await self._perform(action_type, data, server_call, success_message, error_message, skip_notification, on_success, on_error)
        finally:
            self._lock_users[item_id] -= 1
            if not self._lock_users[item_id]:
                del self._lock_users[item_id]
                self._locks.pop(item_id, None)

    async def _perform(self, action_type, data, server_call, success_message, error_message, skip_notification, on_success, on_error):
        item_id = data["id"]
        index = self._index_of(item_id)

        action = PendingAction(
            id=self._next_action_id(),
            type=action_type,
            data=copy.deepcopy(data),
            module=self.module,
            timestamp=time.time(),
        )
        if action_type is not ActionType.CREATE and index is not None:
            action.original_data = copy.deepcopy(self._items[index])
            action.original_index = index

        self._apply(action)
        self._actions.append(action)
        logger.info(f"Optimistic {action_type.value} on {self.module} {item_id} ({action.id})")

        try:
            result = await server_call()
        except asyncio.CancelledError:
            action.status = ActionStatus.ROLLING_BACK
            self._rollback(action)
            action.status = ActionStatus.ERROR
            action.error = "Cancelled"
            self._schedule_cleanup(action, self.error_clear_delay)
            raise
        except Exception as e:
            action.status = ActionStatus.ROLLING_BACK
            self._rollback(action)
            action.status = ActionStatus.ERROR
            action.error = str(e) or e.__class__.__name__
            logger.warning(f"Optimistic {action_type.value} on {self.module} {item_id} failed and was reverted: {action.error}")

            if not skip_notification:
                prefix = error_message or "Operation failed and has been reverted"
                self._notifier.error(f"{prefix}: {action.error}")

            if on_error:
                on_error(e)

            self._schedule_cleanup(action, self.error_clear_delay)
            return None

        action.status = ActionStatus.SUCCESS
        self._reconcile(action, result)
        logger.info(f"Optimistic {action_type.value} on {self.module} {item_id} confirmed")

        if not skip_notification:
            self._notifier.success(success_message or "Changes saved")

        if on_success:
            on_success(result)

        self._schedule_cleanup(action, self.success_clear_delay)
        return result

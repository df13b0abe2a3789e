"""
Module workspaces

A workspace is the per-user, per-module unit the UI talks to: it consults the
permission gate, dispatches mutations through the optimistic collection,
writes field diffs after confirmed updates, and keeps the audit trail cache
fresh. Blocking store calls run on a worker thread through sync_to_async.
"""

import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, List, Optional

from asgiref.sync import sync_to_async
from django.conf import settings

from apps.audit.services import AuditService, AuditTrailCache, DiffLogger
from apps.core.context import AppContext
from apps.core.errors import ConflictError, InputValidationError, PermissionDeniedError, RemoteError
from apps.core.scheduling import with_timeout
from apps.permissions.gate import Action, Decision, Module, decide, status_change_action
from apps.variations.services import VariationEmailService, VariationService
from .optimistic import ActionType, OptimisticCollection

logger = logging.getLogger(__name__)


class ModuleWorkspace:
    module: Module = None
    entity_type: str = None
    label = "record"
    owner_field: Optional[str] = None

    def __init__(
        self,
        context: AppContext,
        service,
        diff_logger: DiffLogger,
        audit_fetcher: Callable[[str], Awaitable[List[dict]]] = None,
        scope_id=None,
        submit_timeout: float = None,
    ):
        scheduler = context.require_open()

        self.context = context
        self.service = service
        self.diff_logger = diff_logger
        if self.diff_logger.notifier is None:
            self.diff_logger.notifier = context.notifier
        self.scope_id = scope_id
        self.submit_timeout = submit_timeout if submit_timeout is not None else settings.FORM_SUBMIT_TIMEOUT

        self.collection = OptimisticCollection(self.module.value, scheduler=scheduler, notifier=context.notifier)
        self.audit_trail = AuditTrailCache(audit_fetcher or self._fetch_history, scheduler=scheduler)

    @property
    def title(self) -> str:
        return self.label[:1].upper() + self.label[1:]

    @property
    def notifier(self):
        return self.context.notifier

    @property
    def user(self):
        return self.context.session

    @property
    def items(self) -> List[dict]:
        return self.collection.items

    async def _fetch_history(self, entity_id: str) -> List[dict]:
        return await sync_to_async(AuditService.get_history)(self.entity_type, entity_id)

    # --- Gate ---

    def _is_owner(self, record: Optional[dict]) -> bool:
        if not record or not self.owner_field or self.user is None:
            return False
        return str(record.get(self.owner_field) or "") == str(self.user.user_id)

    def check(self, action: Action, record: dict = None) -> Decision:
        """Consult the gate; a denial is shown once and raised before any store call"""
        decision = decide(self.context.role, self.module, action, is_owner=self._is_owner(record))
        if not decision:
            logger.warning(f"Denied {action.value} on {self.module.value} for {self.context.role.value}: {decision.reason}")
            self.notifier.error(f"You do not have permission to {action.value.replace('_', ' ')} this {self.label}", title="Access Denied")
            raise PermissionDeniedError(decision.reason)
        return decision

    def can(self, action: Action, record: dict = None) -> bool:
        return decide(self.context.role, self.module, action, is_owner=self._is_owner(record)).allowed

    # --- Store calls ---

    def server_call(self, func: Callable[..., Any], *args, **kwargs) -> Callable[[], Awaitable[Any]]:
        """Bind a blocking service call as an awaitable bounded by the form submit timeout"""

        async def call():
            try:
                return await with_timeout(sync_to_async(func)(*args, **kwargs), self.submit_timeout)
            except asyncio.TimeoutError:
                raise RemoteError("The request timed out. Please try again.", "TIMEOUT")

        return call

    def _bind_original(self, entity_id, make_call: Callable[[Optional[dict]], Callable[[], Awaitable[Any]]]):
        """
        Server call that reads the pre-mutation snapshot once the item's lock is held

        Returns the call and a dict that holds the snapshot under "original"
        after the call has started.
        """
        bound = {}

        async def call():
            bound["original"] = self.collection.original_of(entity_id)
            return await make_call(bound["original"])()

        return call, bound

    async def _log_diff(self, entity_id, original: Optional[dict], updates: dict, result):
        if not isinstance(result, dict) or original is None:
            return
        updated = {key: result[key] for key in updates if key in result}
        await sync_to_async(self.diff_logger.log_field_changes)(entity_id, original, updated, user=self.user)

    # --- Operations ---

    async def load(self, force_refresh: bool = False) -> List[dict]:
        self.check(Action.VIEW)
        try:
            records = await sync_to_async(self.service.fetch)(self.scope_id, force_refresh)
        except Exception as e:
            self.notifier.error(f"Failed to load {self.label}s: {str(e)}")
            raise

        self.collection.replace_items(records)
        return self.collection.items

    async def create(self, form_data: dict):
        """Prepend an optimistic draft, replaced by the server record on success"""
        self.check(Action.CREATE)

        draft = {**form_data, "id": f"temp-{uuid.uuid4()}", "status": "draft"}
        return await self.collection.perform(
            ActionType.CREATE,
            draft,
            self.server_call(self.service.create, self.scope_id, form_data, self.user),
            success_message=f"{self.title} created",
            error_message=f"Failed to create {self.label}",
        )

    def _update_call(self, entity_id, updates: dict, original: Optional[dict]):
        return self.server_call(self.service.update, entity_id, updates, self.user)

    def _check_update(self, updates: dict, current: Optional[dict]):
        self.check(Action.EDIT, current)
        # a status carried by a plain update is still a workflow move
        to_status = updates.get("status")
        if to_status is not None and to_status != (current or {}).get("status"):
            self.check(status_change_action((current or {}).get("status"), to_status), current)

    def _after_failure(self, errors: List[Exception]):
        pass

    async def update(self, entity_id, updates: dict):
        current = self.collection.find(entity_id)
        self._check_update(updates, current)

        call, bound = self._bind_original(entity_id, lambda original: self._update_call(entity_id, updates, original))
        errors = []
        result = await self.collection.perform(
            ActionType.UPDATE,
            {**updates, "id": entity_id},
            call,
            success_message=f"{self.title} updated",
            error_message=f"Failed to update {self.label}",
            on_error=errors.append,
        )
        if result is None:
            self._after_failure(errors)
            return None

        await self._log_diff(entity_id, bound.get("original"), updates, result)
        self.audit_trail.debounced_refresh(str(entity_id))
        return result

    async def delete(self, entity_id):
        current = self.collection.find(entity_id)
        self.check(Action.DELETE, current)

        return await self.collection.perform(
            ActionType.DELETE,
            {"id": entity_id},
            self.server_call(self.service.delete, entity_id, self.user),
            success_message=f"{self.title} deleted",
            error_message=f"Failed to delete {self.label}",
        )

    async def audit_history(self, entity_id, force_refresh: bool = False) -> List[dict]:
        self.check(Action.VIEW)
        return await self.audit_trail.fetch_audit_trail(str(entity_id), force_refresh=force_refresh)

    def close(self):
        self.collection.close()
        self.audit_trail.cleanup()


class VariationWorkspace(ModuleWorkspace):
    module = Module.VARIATIONS
    entity_type = "variation"
    label = "variation"
    owner_field = "requested_by"

    async def change_status(self, entity_id, to_status: str, comments: str = None):
        current = self.collection.find(entity_id) or {}
        self.check(status_change_action(current.get("status"), to_status), current)

        result = await self.collection.perform(
            ActionType.STATUS_CHANGE,
            {"id": entity_id, "status": to_status},
            self.server_call(self.service.change_status, entity_id, to_status, self.user, comments=comments),
            success_message=f"Variation moved to {to_status.replace('_', ' ')}",
            error_message="Failed to update variation status",
        )
        if result is not None:
            self.audit_trail.debounced_refresh(str(entity_id))
        return result

    async def send_email(self, entity_id):
        current = self.collection.find(entity_id) or {}
        self.check(Action.SEND_EMAIL, current)

        try:
            VariationEmailService.validate_recipient(current)
        except InputValidationError as e:
            self.notifier.error(e.message)
            raise

        result = await self.collection.perform(
            ActionType.UPDATE,
            {"id": entity_id, "email_sent": True},
            self.server_call(self.service.send_email, entity_id, self.user),
            success_message=f"Variation emailed to {current['client_email']}",
            error_message="Failed to send variation email",
        )
        if result is not None:
            self.audit_trail.debounced_refresh(str(entity_id))
        return result

    def summary(self) -> dict:
        return VariationService.summarize(self.collection.items)


class InspectionWorkspace(ModuleWorkspace):
    module = Module.QA_ITP
    entity_type = "qa_inspection"
    label = "QA inspection"
    owner_field = "inspector"

    def _update_call(self, entity_id, updates: dict, original: Optional[dict]):
        client_version = (original or {}).get("version")
        return self.server_call(self.service.update_inspection, entity_id, updates, self.user, client_version=client_version)

    def _adopt_server_copy(self, error: Exception):
        # a stale local copy is replaced once the rollback has run
        if isinstance(error, ConflictError) and error.record:
            self.collection.upsert(error.record)
            self.notifier.warning(f"This {self.label} was changed by someone else. The latest version has been loaded.", title="Version Conflict")

    def _after_failure(self, errors: List[Exception]):
        for error in errors:
            self._adopt_server_copy(error)

    async def submit(self, entity_id):
        current = self.collection.find(entity_id) or {}
        self.check(status_change_action(current.get("status"), "in_review"), current)

        call, _ = self._bind_original(
            entity_id,
            lambda original: self.server_call(self.service.submit, entity_id, self.user, client_version=(original or {}).get("version")),
        )
        errors = []
        result = await self.collection.perform(
            ActionType.STATUS_CHANGE,
            {"id": entity_id, "status": "in_review"},
            call,
            success_message=f"{self.title} submitted for review",
            error_message=f"Failed to submit {self.label}",
            on_error=errors.append,
        )
        if result is None:
            self._after_failure(errors)
            return None

        self.audit_trail.debounced_refresh(str(entity_id))
        return result

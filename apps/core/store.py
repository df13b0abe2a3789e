"""
Remote store adapter base

A thin wrapper over one table: scope-filtered reads behind a short-TTL read
cache, sequence-number generation, and typed errors for every failure.
Module services (variations, QA inspections) subclass it.
"""

import logging
import re
from contextlib import contextmanager
from typing import List, Optional

from django.conf import settings
from django.core.cache import cache as default_cache
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError, transaction
from django.utils import timezone

from .errors import InputValidationError, RemoteError, ServiceError

logger = logging.getLogger(__name__)


@contextmanager
def remote_call(code: str, message: str):
    """Wrap a block of store I/O so only typed errors escape"""
    try:
        yield
    except ServiceError:
        raise
    except DatabaseError as e:
        logger.error(f"{message}: {str(e)}")
        raise RemoteError(message, code, details={"reason": str(e)}) from e
    except Exception as e:
        logger.error(f"Unexpected error - {message}: {str(e)}")
        raise RemoteError(f"Unexpected error: {message[0].lower()}{message[1:]}", "UNKNOWN_ERROR", details={"reason": str(e)}) from e


class RemoteStoreAdapter:
    model = None
    serializer_class = None
    scope_field = "project_id"
    cache_namespace = None
    sequence_field = None
    sequence_prefix = None
    entity_label = "record"
    create_serializer_class = None
    update_serializer_class = None

    def __init__(self, cache_backend=None, cache_ttl: Optional[int] = None):
        self.cache = cache_backend or default_cache
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.REMOTE_STORE_CACHE_TTL

    # --- Cache ---

    def _namespace_version(self) -> int:
        return self.cache.get_or_set(f"{self.cache_namespace}:version", 1, timeout=None)

    def cache_key(self, scope_id) -> str:
        return f"{self.cache_namespace}:v{self._namespace_version()}:{scope_id}"

    def invalidate(self, scope_id=None):
        """Drop one scope from the read cache, or the whole namespace"""
        if scope_id is not None:
            self.cache.delete(self.cache_key(scope_id))
            return

        version_key = f"{self.cache_namespace}:version"
        try:
            self.cache.incr(version_key)
        except ValueError:
            self.cache.set(version_key, 2, timeout=None)

    # --- Records ---

    def to_record(self, instance) -> dict:
        return dict(self.serializer_class(instance).data)

    def get_queryset(self):
        return self.model.objects.all()

    def fetch(self, scope_id, force_refresh: bool = False) -> List[dict]:
        """
        List records for a scope, newest first

        Args:
            scope_id: parent identifier (project id)
            force_refresh: bypass the read cache

        Returns:
            list of normalized records

        Raises:
            InputValidationError: scope id missing
            RemoteError: store failure (FETCH_ERROR)
        """
        if not scope_id:
            raise InputValidationError("Project ID is required", "MISSING_PROJECT_ID")

        key = self.cache_key(scope_id)
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit for {key}")
                return cached

        with remote_call("FETCH_ERROR", f"Failed to fetch {self.entity_label}s"):
            queryset = self.get_queryset().filter(**{self.scope_field: scope_id}).order_by("-created_at")
            records = [self.to_record(instance) for instance in queryset]

        self.cache.set(key, records, timeout=self.cache_ttl)
        logger.info(f"Fetched {len(records)} {self.entity_label}s for scope {scope_id}")
        return records

    def get_instance(self, record_id, for_update: bool = False):
        with remote_call("FETCH_ERROR", f"Failed to fetch {self.entity_label}"):
            queryset = self.get_queryset().select_for_update() if for_update else self.get_queryset()
            try:
                return queryset.get(pk=record_id)
            # malformed uuids surface as ValidationError from the field
            except (self.model.DoesNotExist, ValueError, DjangoValidationError):
                raise RemoteError(f"{self.entity_label.capitalize()} {record_id} not found", "NOT_FOUND")

    def get(self, record_id) -> dict:
        return self.to_record(self.get_instance(record_id))

    # --- Sequence numbers ---

    def next_sequence_number(self, scope_id) -> str:
        """
        Next human-readable number for a scope, e.g. "VAR-003"

        Must be called inside the creating transaction so the row locks are
        held until the insert commits.
        """
        pattern = re.compile(rf"^{re.escape(self.sequence_prefix)}-(\d+)$")

        with remote_call("NUMBER_GENERATION_ERROR", f"Failed to generate {self.entity_label} number"):
            with transaction.atomic():
                numbers = list(
                    self.model.objects.select_for_update().filter(**{self.scope_field: scope_id}).values_list(self.sequence_field, flat=True)
                )

        highest = 0
        for number in numbers:
            match = pattern.match(number or "")
            if match:
                highest = max(highest, int(match.group(1)))

        return f"{self.sequence_prefix}-{highest + 1:03d}"

    # --- Writes ---

    @staticmethod
    def user_id_for(user) -> Optional[str]:
        """Primary key of a Django user, or the id carried by a UserSession"""
        if user is None:
            return None
        if hasattr(user, "user_id"):
            return user.user_id
        return user.pk

    def build_create_fields(self, form_data: dict, user_id) -> dict:
        """Transform submitted form data into model field values"""
        return dict(form_data)

    def creation_stamps(self, user_id) -> dict:
        """Model fields set from the creating user, e.g. requested_by"""
        return {}

    def after_create(self, instance, user):
        pass

    def _validated(self, serializer_class, data: dict, instance=None):
        serializer = serializer_class(instance, data=data, partial=instance is not None)
        if not serializer.is_valid():
            raise InputValidationError(f"Invalid {self.entity_label} data", "VALIDATION_ERROR", details=serializer.errors)
        return serializer

    def create(self, scope_id, form_data: dict, user) -> dict:
        """
        Insert a record with the next sequence number

        Raises:
            InputValidationError: missing scope or user, invalid data
            RemoteError: NUMBER_GENERATION_ERROR, CREATE_ERROR, UNKNOWN_ERROR
        """
        user_id = self.user_id_for(user)
        if not scope_id or not user_id:
            raise InputValidationError("User ID and Project ID are required", "MISSING_REQUIRED_FIELDS")

        with remote_call("CREATE_ERROR", f"Failed to create {self.entity_label}"):
            serializer = self._validated(self.create_serializer_class, self.build_create_fields(form_data or {}, user_id))
            with transaction.atomic():
                extra = {self.scope_field: scope_id, "updated_by_id": user_id, **self.creation_stamps(user_id)}
                if self.sequence_field:
                    extra[self.sequence_field] = self.next_sequence_number(scope_id)
                instance = serializer.save(**extra)

        self.invalidate(scope_id)
        logger.info(f"Created {self.entity_label} {instance.pk} in scope {scope_id}")

        self.after_create(instance, user)
        return self.to_record(instance)

    def update(self, record_id, updates: dict, user) -> dict:
        """
        Apply a partial update and stamp updated_at / updated_by

        Raises:
            InputValidationError: missing user, invalid data
            RemoteError: NOT_FOUND, UPDATE_ERROR, UNKNOWN_ERROR
        """
        user_id = self.user_id_for(user)
        if not user_id:
            raise InputValidationError("User ID is required", "MISSING_USER_ID")

        with remote_call("UPDATE_ERROR", f"Failed to update {self.entity_label}"):
            with transaction.atomic():
                instance = self.get_instance(record_id)
                serializer = self._validated(self.update_serializer_class, updates or {}, instance=instance)
                instance = serializer.save(updated_by_id=user_id, updated_at=timezone.now())

        self.invalidate(getattr(instance, self.scope_field))
        logger.info(f"Updated {self.entity_label} {record_id}: {', '.join(sorted(serializer.validated_data)) or 'no fields'}")
        return self.to_record(instance)

    def delete(self, record_id, user) -> dict:
        """Remove a record; audit entries for it are kept"""
        if not self.user_id_for(user):
            raise InputValidationError("User ID is required", "MISSING_USER_ID")

        with remote_call("DELETE_ERROR", f"Failed to delete {self.entity_label}"):
            instance = self.get_instance(record_id)
            scope_id = getattr(instance, self.scope_field)
            instance.delete()

        self.invalidate(scope_id)
        logger.info(f"Deleted {self.entity_label} {record_id}")
        return {"id": str(record_id)}

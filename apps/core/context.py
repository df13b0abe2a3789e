"""
Explicitly owned application state

Auth session, current organization and feature flags live on an AppContext
that is handed to every workspace, instead of in module-level globals. The
context also owns the Scheduler and Notifier, so ``close()`` tears down every
timer the workspaces started.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Set

from django.conf import settings

from apps.permissions.gate import Role, role_for_user
from .notifications import Notifier
from .scheduling import Scheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserSession:
    user_id: str
    user_name: str
    email: str
    role: Role

    @classmethod
    def from_user(cls, user) -> "UserSession":
        full_name = f"{user.first_name} {user.last_name}".strip()
        return cls(
            user_id=str(user.pk),
            user_name=full_name or user.email,
            email=user.email,
            role=role_for_user(user),
        )


@dataclass
class FeatureFlags:
    enabled: Set[str] = field(default_factory=set)

    @classmethod
    def from_settings(cls, extra: Iterable[str] = ()) -> "FeatureFlags":
        return cls(enabled=set(getattr(settings, "FEATURE_FLAGS", [])) | set(extra))

    def is_enabled(self, name: str, default: bool = False) -> bool:
        if not self.enabled:
            return default
        return name in self.enabled

    def enable(self, name: str):
        self.enabled.add(name)

    def disable(self, name: str):
        self.enabled.discard(name)


class AppContext:
    """Per-session state shared by the workspaces of one user"""

    def __init__(self, session: Optional[UserSession], organization_id: str = None, feature_flags: FeatureFlags = None, notifier: Notifier = None):
        self.session = session
        self.organization_id = organization_id
        self.feature_flags = feature_flags or FeatureFlags.from_settings()
        self.notifier = notifier or Notifier()
        self.scheduler: Optional[Scheduler] = None

    @property
    def is_open(self) -> bool:
        return self.scheduler is not None and not self.scheduler.closed

    @property
    def role(self) -> Role:
        if self.session is None:
            return Role.CLIENT
        return self.session.role

    def open(self) -> "AppContext":
        if not self.is_open:
            self.scheduler = Scheduler()
            logger.info(f"Opened context for {self.session.user_id if self.session else 'anonymous'}")
        return self

    def close(self):
        if self.scheduler is not None:
            self.scheduler.close()
            logger.info(f"Closed context for {self.session.user_id if self.session else 'anonymous'}")

    def require_open(self) -> Scheduler:
        if not self.is_open:
            raise RuntimeError("AppContext is not open")
        return self.scheduler

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
